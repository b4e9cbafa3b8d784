"""
Module service wiring (``fleet_modules.wiring``).

Builds every request-kind service for one session, sharing a single
workflow engine, clock and geo gateway, so a ``WorkflowOrchestrator`` can
hand the bundle to an operation.  No service constructs its own
collaborators outside this function.

``build_runtime`` is the process entrypoint: it reads ``FleetSettings``
(environment by default), configures logging and the engine, and returns
the orchestrator together with the adapters it owns.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from sqlalchemy.orm import Session

from fleet_config import get_workflow_catalog
from fleet_config.settings import FleetSettings
from fleet_kernel.db.engine import get_session_factory, init_engine_from_url
from fleet_kernel.domain.clock import Clock, SystemClock
from fleet_kernel.domain.geo import GeoProvider
from fleet_kernel.logging_config import configure_logging, get_logger
from fleet_kernel.services.workflow_engine import WorkflowEngine
from fleet_modules._orm_registry import create_all_tables
from fleet_modules.ict.service import IctRequestService
from fleet_modules.store.service import StoreRequestService
from fleet_modules.vehicle.assignment import AssignmentEngine
from fleet_modules.vehicle.service import VehicleRequestService
from fleet_modules.vehicle.trips import TripService
from fleet_services.geo_gateway import GeoGateway
from fleet_services.notification_dispatcher import NotificationDispatcher, NotificationSender
from fleet_services.workflow_orchestrator import WorkflowOrchestrator

logger = get_logger("modules.wiring")


@dataclass(frozen=True)
class ModuleServices:
    vehicle: VehicleRequestService
    ict: IctRequestService
    store: StoreRequestService
    assignment: AssignmentEngine
    trips: TripService


def build_module_services(
    session: Session,
    engine: WorkflowEngine,
    clock: Clock | None = None,
    geo: GeoGateway | None = None,
    settings: FleetSettings | None = None,
) -> ModuleServices:
    clock = clock or SystemClock()
    settings = settings or FleetSettings()
    vehicle = VehicleRequestService(
        session, engine, clock=clock, geo=geo,
        min_lead_time=settings.min_lead_time,
        fuel_km_per_litre=settings.fuel_km_per_litre,
    )
    return ModuleServices(
        vehicle=vehicle,
        ict=IctRequestService(session, engine, clock=clock),
        store=StoreRequestService(session, engine, clock=clock),
        assignment=AssignmentEngine(session, vehicle, clock=clock, geo=geo),
        trips=TripService(session, vehicle, clock=clock, geofence_km=settings.return_geofence_km),
    )


@dataclass
class FleetRuntime:
    """Orchestrator plus the thread-pooled adapters it shares across operations."""

    settings: FleetSettings
    orchestrator: WorkflowOrchestrator[ModuleServices]
    dispatcher: NotificationDispatcher
    geo: GeoGateway
    engine: WorkflowEngine = field(repr=False)

    def shutdown(self) -> None:
        self.dispatcher.shutdown()
        self.geo.shutdown()


def build_runtime(
    settings: FleetSettings | None = None,
    sender: NotificationSender | None = None,
    geo_provider: GeoProvider | None = None,
    clock: Clock | None = None,
    create_schema: bool = False,
) -> FleetRuntime:
    """Build a FleetRuntime from settings (single entrypoint for production).

    Args:
        settings: Runtime knobs; default ``FleetSettings.from_env()``.
        sender: Notification channel; default logs one line per recipient.
        geo_provider: Distance/geocoding provider; default offline haversine.
        clock: Optional clock; default SystemClock.
        create_schema: Create kernel and module tables on the new engine.

    Returns:
        FleetRuntime whose orchestrator builds ``ModuleServices`` per
        session, with notification and geo timeouts taken from settings.
    """
    settings = settings or FleetSettings.from_env()
    configure_logging(level=settings.log_level)
    init_engine_from_url(settings.database_url)
    if create_schema:
        create_all_tables()

    engine = WorkflowEngine(get_workflow_catalog())
    geo = GeoGateway(geo_provider, timeout_seconds=settings.geo_timeout_seconds)
    dispatcher = NotificationDispatcher(
        sender, timeout_seconds=settings.notification_timeout_seconds,
    )
    clock = clock or SystemClock()
    orchestrator = WorkflowOrchestrator(
        lambda session: build_module_services(
            session, engine, clock=clock, geo=geo, settings=settings,
        ),
        dispatcher,
        get_session_factory(),
    )
    logger.info(
        "fleet_runtime_built",
        extra={
            "notification_timeout_seconds": settings.notification_timeout_seconds,
            "geo_timeout_seconds": settings.geo_timeout_seconds,
        },
    )
    return FleetRuntime(settings, orchestrator, dispatcher, geo, engine)
