"""
ICT Module (``fleet_modules.ict``).

ICT equipment requests: supervisor review, ICT officer review, then
fulfilment.  Send-back and rejection restart at supervisor review on
resubmission.
"""

from fleet_modules.ict.models import IctRequestDetails, IctRequestDraft
from fleet_modules.ict.orm import IctRequestModel
from fleet_modules.ict.service import IctRequestService

__all__ = [
    "IctRequestDetails",
    "IctRequestDraft",
    "IctRequestModel",
    "IctRequestService",
]
