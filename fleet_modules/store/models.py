"""
Store Domain Models.

Requester input and the read-side payload of store supply requests.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from fleet_kernel.domain.requests import Urgency


@dataclass(frozen=True)
class StoreRequestDraft:
    """Requester input for a new (or corrected) store supply request."""

    item_name: str
    category: str
    quantity: int
    unit: str
    purpose: str
    specifications: str | None = None
    urgency: Urgency | str = Urgency.NORMAL
    estimated_cost: Decimal | None = None
    justification: str | None = None
    supervisor_id: UUID | None = None


@dataclass(frozen=True)
class StoreRequestDetails:
    item_name: str
    category: str
    quantity: int
    unit: str
    purpose: str
    specifications: str | None
    urgency: Urgency
    estimated_cost: Decimal | None
    justification: str | None
