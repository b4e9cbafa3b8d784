"""
Request DTOs -- immutable read views of resource requests.

``status`` is not stored anywhere; it is derived from ``current_stage``
through the stage catalog when the view is built.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from fleet_kernel.domain.workflow import RequestKind, WorkflowAction



class Urgency(str, Enum):
    """Priority of an ICT or store request."""

    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


@dataclass(frozen=True)
class ActionEntry:
    sequence: int
    action: WorkflowAction
    performed_by: UUID
    performed_at: datetime
    stage: str
    to_stage: str
    notes: str | None = None
    metadata: dict[str, Any] | None = None


@dataclass(frozen=True)
class CorrectionEntry:
    sequence: int
    stage: str
    requested_by: UUID
    requested_at: datetime
    correction_note: str
    resubmission_count: int = 0
    resolved_at: datetime | None = None


@dataclass(frozen=True)
class RequestView:
    id: UUID
    kind: RequestKind
    requester_id: UUID
    supervisor_id: UUID | None
    current_stage: str
    status: str
    action_history: tuple[ActionEntry, ...] = ()
    correction_history: tuple[CorrectionEntry, ...] = ()
    rejection_reason: str | None = None
    rejected_at: datetime | None = None
    rejected_by: UUID | None = None
    cancellation_reason: str | None = None
    cancelled_at: datetime | None = None
    cancelled_by: UUID | None = None
    correction_note: str | None = None
    corrected_at: datetime | None = None
    corrected_by: UUID | None = None
    resubmitted_at: datetime | None = None
    fulfilled_at: datetime | None = None
    fulfilled_by: UUID | None = None
    fulfillment_notes: str | None = None
    created_at: datetime | None = None
    details: Any = field(default=None)

    @property
    def approvers(self) -> tuple[UUID, ...]:
        seen: list[UUID] = []
        for entry in self.action_history:
            if entry.action == WorkflowAction.APPROVE and entry.performed_by not in seen:
                seen.append(entry.performed_by)
        return tuple(seen)
