"""
SQLAlchemy ORM persistence model for the Store module.

Store payload columns on ``resource_requests``; columns shared with ICT
requests map the same physical column via ``use_existing_column``.
"""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from fleet_kernel.domain.requests import Urgency
from fleet_kernel.domain.workflow import RequestKind
from fleet_kernel.models.request import ResourceRequestModel
from fleet_modules.store.models import StoreRequestDetails


class StoreRequestModel(ResourceRequestModel):
    """A request for store supplies."""

    __mapper_args__ = {"polymorphic_identity": RequestKind.STORE.value}

    item_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    category: Mapped[str | None] = mapped_column(String(100), nullable=True)
    unit: Mapped[str | None] = mapped_column(String(30), nullable=True)
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

    def details(self) -> StoreRequestDetails:
        return StoreRequestDetails(
            item_name=self.item_name,
            category=self.category,
            quantity=self.quantity,
            unit=self.unit,
            purpose=self.purpose,
            specifications=self.specifications,
            urgency=Urgency(self.urgency),
            estimated_cost=self.estimated_cost,
            justification=self.justification,
        )
