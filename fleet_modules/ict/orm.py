"""
SQLAlchemy ORM persistence model for the ICT module.

ICT payload columns live on ``resource_requests`` (single-table
inheritance).  Columns shared with store requests are declared with
``use_existing_column`` so both subclasses map the same physical column.
"""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from fleet_kernel.domain.requests import Urgency
from fleet_kernel.domain.workflow import RequestKind
from fleet_kernel.models.request import ResourceRequestModel
from fleet_modules.ict.models import IctRequestDetails


class IctRequestModel(ResourceRequestModel):
    """A request for ICT equipment."""

    __mapper_args__ = {"polymorphic_identity": RequestKind.ICT.value}

    equipment_type: Mapped[str | None] = mapped_column(String(200), nullable=True)
    specifications: Mapped[str | None] = mapped_column(
        Text, nullable=True, use_existing_column=True,
    )
    purpose: Mapped[str | None] = mapped_column(Text, nullable=True, use_existing_column=True)
    urgency: Mapped[str | None] = mapped_column(
        String(20), nullable=True, use_existing_column=True,
    )
    quantity: Mapped[int | None] = mapped_column(
        Integer, nullable=True, use_existing_column=True,
    )
    estimated_cost: Mapped[Decimal | None] = mapped_column(nullable=True, use_existing_column=True)
    justification: Mapped[str | None] = mapped_column(
        Text, nullable=True, use_existing_column=True,
    )

    def details(self) -> IctRequestDetails:
        return IctRequestDetails(
            equipment_type=self.equipment_type,
            specifications=self.specifications,
            purpose=self.purpose,
            urgency=Urgency(self.urgency),
            quantity=self.quantity,
            estimated_cost=self.estimated_cost,
            justification=self.justification,
        )
