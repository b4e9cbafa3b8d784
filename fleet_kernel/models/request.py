"""
Module: fleet_kernel.models.request
Responsibility: ORM persistence for resource requests (all kinds, single
    table inheritance on ``kind``), their append-only action history and
    their correction history.
Architecture position: Kernel > Models.  May import from db/base.py,
    domain/ and exceptions.py.  Kind-specific subclasses live in
    ``fleet_modules.<kind>.orm``.

Invariants enforced:
    - ``current_stage`` is the only stored workflow state; display status
      is derived at read time.
    - ``version`` is the mapper's version_id_col, so every UPDATE of a
      request is a compare-and-swap; a lost race raises StaleDataError.
    - UNIQUE(request_id, sequence) on action history: two writers can never
      both append entry N.
    - Corrections carry their own per-request sequence; history and
      ``latest_correction`` follow it, not ``requested_at``.
    - Action history rows are append-only (ORM listeners below).

Failure modes:
    - ImmutabilityViolationError on UPDATE/DELETE of an action entry.
    - StaleDataError on a concurrent request update.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import (
    JSON,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    event,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fleet_kernel.db.base import Base, TrackedBase, UUIDString
from fleet_kernel.domain.requests import ActionEntry, CorrectionEntry, RequestView
from fleet_kernel.domain.workflow import RequestKind, RequestSnapshot, WorkflowAction
from fleet_kernel.exceptions import ImmutabilityViolationError


class ResourceRequestModel(TrackedBase):
    """Common columns of every request kind."""

    __tablename__ = "resource_requests"

    __table_args__ = (
        Index("idx_request_kind_stage", "kind", "current_stage"),
        Index("idx_request_requester", "requester_id"),
        Index("idx_request_supervisor", "supervisor_id"),
    )

    kind: Mapped[str] = mapped_column(String(20), nullable=False)
    requester_id: Mapped[UUID] = mapped_column(ForeignKey("users.id"), nullable=False)
    supervisor_id: Mapped[UUID | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    department: Mapped[str | None] = mapped_column(String(100), nullable=True)
    current_stage: Mapped[str] = mapped_column(String(60), nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    rejected_at: Mapped[datetime | None]
    rejected_by: Mapped[UUID | None]
    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    cancelled_at: Mapped[datetime | None]
    cancelled_by: Mapped[UUID | None]
    correction_note: Mapped[str | None] = mapped_column(Text, nullable=True)
    corrected_at: Mapped[datetime | None]
    corrected_by: Mapped[UUID | None]
    resubmitted_at: Mapped[datetime | None]
    fulfilled_at: Mapped[datetime | None]
    fulfilled_by: Mapped[UUID | None]
    fulfillment_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    actions: Mapped[list["RequestActionModel"]] = relationship(
        back_populates="request",
        order_by="RequestActionModel.sequence",
        lazy="selectin",
    )
    corrections: Mapped[list["RequestCorrectionModel"]] = relationship(
        back_populates="request",
        order_by="RequestCorrectionModel.sequence",
        lazy="selectin",
    )

    __mapper_args__ = {
        "polymorphic_on": "kind",
        "version_id_col": version,
    }

    def __repr__(self) -> str:
        return f"<Request {self.kind} {self.id} stage={self.current_stage}>"

    # Overridden by kinds that carry an assigned driver.
    @property
    def driver_id(self) -> UUID | None:
        return None

    def snapshot(self) -> RequestSnapshot:
        return RequestSnapshot(
            kind=RequestKind(self.kind),
            request_id=self.id,
            current_stage=self.current_stage,
            requester_id=self.requester_id,
            supervisor_id=self.supervisor_id,
            assigned_driver_id=self.driver_id,
        )

    def latest_correction(self) -> RequestCorrectionModel | None:
        return self.corrections[-1] if self.corrections else None

    def latest_action(self, action: WorkflowAction) -> RequestActionModel | None:
        for entry in reversed(self.actions):
            if entry.action == action.value:
                return entry
        return None

    def details(self) -> Any:
        """Kind-specific payload DTO."""
        return None

    def to_view(self, status: str) -> RequestView:
        return RequestView(
            id=self.id,
            kind=RequestKind(self.kind),
            requester_id=self.requester_id,
            supervisor_id=self.supervisor_id,
            current_stage=self.current_stage,
            status=status,
            action_history=tuple(a.to_dto() for a in self.actions),
            correction_history=tuple(c.to_dto() for c in self.corrections),
            rejection_reason=self.rejection_reason,
            rejected_at=self.rejected_at,
            rejected_by=self.rejected_by,
            cancellation_reason=self.cancellation_reason,
            cancelled_at=self.cancelled_at,
            cancelled_by=self.cancelled_by,
            correction_note=self.correction_note,
            corrected_at=self.corrected_at,
            corrected_by=self.corrected_by,
            resubmitted_at=self.resubmitted_at,
            fulfilled_at=self.fulfilled_at,
            fulfilled_by=self.fulfilled_by,
            fulfillment_notes=self.fulfillment_notes,
            created_at=self.created_at,
            details=self.details(),
        )


class RequestActionModel(Base):
    """One successful workflow action. Append-only."""

    __tablename__ = "request_actions"

    __table_args__ = (
        UniqueConstraint("request_id", "sequence", name="uq_request_action_sequence"),
        Index("idx_request_action_actor", "performed_by"),
    )

    request_id: Mapped[UUID] = mapped_column(
        ForeignKey("resource_requests.id"), nullable=False,
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    action: Mapped[str] = mapped_column(String(30), nullable=False)
    performed_by: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    performed_at: Mapped[datetime] = mapped_column(nullable=False)
    stage: Mapped[str] = mapped_column(String(60), nullable=False)
    to_stage: Mapped[str] = mapped_column(String(60), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    action_metadata: Mapped[dict | None] = mapped_column("metadata", JSON, nullable=True)

    request: Mapped[ResourceRequestModel] = relationship(back_populates="actions")

    def __repr__(self) -> str:
        return f"<RequestAction {self.request_id}#{self.sequence} {self.action}>"

    def to_dto(self) -> ActionEntry:
        return ActionEntry(
            sequence=self.sequence,
            action=WorkflowAction(self.action),
            performed_by=self.performed_by,
            performed_at=self.performed_at,
            stage=self.stage,
            to_stage=self.to_stage,
            notes=self.notes,
            metadata=self.action_metadata,
        )


class RequestCorrectionModel(Base):
    """One send-back. ``resolved_at``/``resubmission_count`` move on resubmit."""

    __tablename__ = "request_corrections"

    __table_args__ = (
        UniqueConstraint("request_id", "sequence", name="uq_request_correction_sequence"),
        Index("idx_request_correction_request", "request_id"),
    )

    request_id: Mapped[UUID] = mapped_column(
        ForeignKey("resource_requests.id"), nullable=False,
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    stage: Mapped[str] = mapped_column(String(60), nullable=False)
    requested_by: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    requested_at: Mapped[datetime] = mapped_column(nullable=False)
    correction_note: Mapped[str] = mapped_column(Text, nullable=False)
    resolved_at: Mapped[datetime | None]
    resubmission_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    request: Mapped[ResourceRequestModel] = relationship(back_populates="corrections")

    def to_dto(self) -> CorrectionEntry:
        return CorrectionEntry(
            sequence=self.sequence,
            stage=self.stage,
            requested_by=self.requested_by,
            requested_at=self.requested_at,
            correction_note=self.correction_note,
            resubmission_count=self.resubmission_count,
            resolved_at=self.resolved_at,
        )


# =============================================================================
# ORM-level immutability for action history
# =============================================================================


@event.listens_for(RequestActionModel, "before_update")
def prevent_action_update(mapper, connection, target):
    raise ImmutabilityViolationError(
        entity_type="RequestAction",
        entity_id=str(target.id),
        reason="Action history is append-only -- cannot modify",
    )


@event.listens_for(RequestActionModel, "before_delete")
def prevent_action_delete(mapper, connection, target):
    raise ImmutabilityViolationError(
        entity_type="RequestAction",
        entity_id=str(target.id),
        reason="Action history is append-only -- cannot delete",
    )
