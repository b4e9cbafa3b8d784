"""
fleet_services -- stateful orchestration and outbound adapters.

Responsibility:
    The transaction boundary (``WorkflowOrchestrator``), best-effort
    notification delivery (``NotificationDispatcher``) and geo lookups
    that degrade to "unset" (``GeoGateway``).

Architecture position:
    Services -- above ``fleet_kernel``.  ``fleet_modules`` imports the geo
    gateway from here, so this package init stays import-light: import
    the orchestrator from ``fleet_services.workflow_orchestrator``.

    Dependency direction:
        fleet_services/ -> fleet_kernel/   (allowed)
        fleet_kernel/   -> fleet_services/ (FORBIDDEN)
        fleet_services/ -> fleet_modules/  (FORBIDDEN)
"""

from fleet_kernel.logging_config import get_logger

logger = get_logger("services")

from fleet_services.geo_gateway import GeoGateway, HaversineGeoProvider  # noqa: E402
from fleet_services.notification_dispatcher import (  # noqa: E402
    DispatchReport,
    LoggingNotificationSender,
    NotificationDispatcher,
    NotificationSender,
)

__all__ = [
    "DispatchReport",
    "GeoGateway",
    "HaversineGeoProvider",
    "LoggingNotificationSender",
    "NotificationDispatcher",
    "NotificationSender",
]
