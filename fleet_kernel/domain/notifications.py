"""
Notification intents returned by lifecycle operations.

Operations never send anything themselves.  They return intents alongside
their result; the caller dispatches them after the transaction commits.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import Generic, TypeVar
from uuid import UUID

T = TypeVar("T")


class NotificationType(str, Enum):
    REQUEST_CREATED = "request_created"
    REQUEST_APPROVED = "request_approved"
    REQUEST_REJECTED = "request_rejected"
    REQUEST_RESUBMITTED = "request_resubmitted"
    REQUEST_NEEDS_CORRECTION = "request_needs_correction"
    REQUEST_CANCELLED = "request_cancelled"
    REQUEST_FULFILLED = "request_fulfilled"
    DRIVER_ASSIGNED = "driver_assigned"
    DRIVER_UNASSIGNED = "driver_unassigned"
    TRIP_STARTED = "trip_started"
    TRIP_COMPLETED = "trip_completed"
    TRIP_RETURNED = "trip_returned"


@dataclass(frozen=True)
class NotificationIntent:
    recipients: tuple[UUID, ...]
    type: NotificationType
    title: str
    body: str
    related_id: UUID | None = None


def notify(
    recipients: Iterable[UUID | None],
    type: NotificationType,
    title: str,
    body: str,
    related_id: UUID | None = None,
    *,
    exclude: Iterable[UUID | None] = (),
) -> tuple[NotificationIntent, ...]:
    """Build zero or one intent with de-duplicated, non-null recipients."""
    skip = {u for u in exclude if u is not None}
    unique: list[UUID] = []
    for user_id in recipients:
        if user_id is not None and user_id not in skip and user_id not in unique:
            unique.append(user_id)
    if not unique:
        return ()
    return (NotificationIntent(tuple(unique), type, title, body, related_id),)


@dataclass(frozen=True)
class OperationResult(Generic[T]):
    """A committed-state result plus the post-commit notification hooks."""

    value: T
    notifications: tuple[NotificationIntent, ...] = field(default=())
