"""
Store Module (``fleet_modules.store``).

Store supply requests: supervisor review, store officer review, then
fulfilment.  Resubmission restarts at supervisor review.
"""

from fleet_modules.store.models import StoreRequestDetails, StoreRequestDraft
from fleet_modules.store.orm import StoreRequestModel
from fleet_modules.store.service import StoreRequestService

__all__ = [
    "StoreRequestDetails",
    "StoreRequestDraft",
    "StoreRequestModel",
    "StoreRequestService",
]
