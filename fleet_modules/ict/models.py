"""
ICT Domain Models.

Requester input and the read-side payload of ICT equipment requests.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from fleet_kernel.domain.requests import Urgency


@dataclass(frozen=True)
class IctRequestDraft:
    """Requester input for a new (or corrected) ICT equipment request."""

    equipment_type: str
    specifications: str
    purpose: str
    urgency: Urgency | str = Urgency.NORMAL
    quantity: int = 1
    estimated_cost: Decimal | None = None
    justification: str | None = None
    supervisor_id: UUID | None = None


@dataclass(frozen=True)
class IctRequestDetails:
    equipment_type: str
    specifications: str
    purpose: str
    urgency: Urgency
    quantity: int
    estimated_cost: Decimal | None
    justification: str | None
