"""
Pure domain layer.

Value objects and pure functions with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- I/O

Time comes from an injected ``Clock``.  All domain objects are immutable.
"""

from fleet_kernel.domain.actors import Actor, IdentityProvider, Role
from fleet_kernel.domain.availability import TimeWindow
from fleet_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from fleet_kernel.domain.geo import GeoPoint, GeoProvider, haversine_km, route_distance_km
from fleet_kernel.domain.notifications import (
    NotificationIntent,
    NotificationType,
    OperationResult,
    notify,
)
from fleet_kernel.domain.requests import (
    ActionEntry,
    CorrectionEntry,
    RequestView,
    Urgency,
)
from fleet_kernel.domain.workflow import (
    RequestKind,
    RequestSnapshot,
    ResubmitPolicy,
    Stage,
    Transition,
    TransitionContext,
    Workflow,
    WorkflowAction,
    WorkflowCatalog,
)

__all__ = [
    "ActionEntry",
    "Actor",
    "Clock",
    "CorrectionEntry",
    "DeterministicClock",
    "GeoPoint",
    "GeoProvider",
    "IdentityProvider",
    "NotificationIntent",
    "NotificationType",
    "OperationResult",
    "RequestKind",
    "RequestSnapshot",
    "RequestView",
    "ResubmitPolicy",
    "Role",
    "Stage",
    "SystemClock",
    "TimeWindow",
    "Transition",
    "TransitionContext",
    "Urgency",
    "Workflow",
    "WorkflowAction",
    "WorkflowCatalog",
    "haversine_km",
    "notify",
    "route_distance_km",
]
