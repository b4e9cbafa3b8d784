"""Services for the fleet kernel (write side)."""

from fleet_kernel.services.base import BaseService
from fleet_kernel.services.directory_service import DirectoryService
from fleet_kernel.services.request_lifecycle import RequestLifecycleService
from fleet_kernel.services.workflow_engine import (
    PermissionDecision,
    TransitionPlan,
    Visibility,
    WorkflowEngine,
)

__all__ = [
    "BaseService",
    "DirectoryService",
    "PermissionDecision",
    "RequestLifecycleService",
    "TransitionPlan",
    "Visibility",
    "WorkflowEngine",
]
