"""
Trip state machine (``fleet_modules.vehicle.trips``).

States: ``pending -> in_progress -> completed -> returned``.

Responsibility
--------------
Driver-initiated start and completion, route tracking, and the return of
the vehicle to its pickup office (manual, or automatic when a location
update lands inside the return geofence).  Every trip transition pushes
the owning request one stage forward through the workflow engine, so the
request's action history mirrors the trip.

Invariants enforced
-------------------
* Only the trip's assigned driver starts, completes or reports location.
* Route points are accepted only while ``in_progress`` or ``completed``.
* Auto-return is idempotent: a returned trip ignores further updates.
* A repeated manual return is a no-op only for an actor allowed to return
  the vehicle; route coordinates outside the valid range are rejected as
  ``InvalidPayloadError``.
* On return the vehicle goes back to ``available`` unless another trip
  still holds it.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from fleet_kernel.domain.clock import Clock, ensure_utc
from fleet_kernel.domain.geo import GeoPoint, route_distance_km, within_radius
from fleet_kernel.domain.notifications import (
    NotificationIntent,
    NotificationType,
    OperationResult,
    notify,
)
from fleet_kernel.domain.workflow import WorkflowAction
from fleet_kernel.exceptions import (
    ActionForbiddenError,
    ConcurrentModificationError,
    InvalidPayloadError,
    NotAssignedDriverError,
    TripNotFoundError,
    TripStateError,
)
from fleet_kernel.logging_config import LogContext, get_logger
from fleet_kernel.models.directory import VehicleStatus
from fleet_kernel.services.base import BaseService
from fleet_modules.vehicle.models import (
    TRIP_TRANSITIONS,
    VEHICLE_BLOCKING,
    TripStatus,
    TripView,
)
from fleet_modules.vehicle.orm import TripModel, TripRoutePointModel, VehicleRequestModel
from fleet_modules.vehicle.service import VehicleRequestService

logger = get_logger("modules.vehicle.trips")

DEFAULT_RETURN_GEOFENCE_KM = 0.05

TRIGGER_MANUAL = "manual"
TRIGGER_GEOFENCE = "geofence"


class TripService(BaseService):

    def __init__(
        self,
        session: Session,
        requests: VehicleRequestService,
        clock: Clock | None = None,
        geofence_km: float = DEFAULT_RETURN_GEOFENCE_KM,
    ):
        super().__init__(session, clock or requests.clock)
        self._requests = requests
        self._geofence_km = geofence_km

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_trip(self, trip_id: UUID) -> TripView:
        return self._load(trip_id).to_dto()

    def trip_for_request(self, request_id: UUID) -> TripView | None:
        trip = self.session.execute(
            select(TripModel).where(TripModel.request_id == request_id)
        ).scalar_one_or_none()
        return trip.to_dto() if trip is not None else None

    # ------------------------------------------------------------------
    # Driver actions
    # ------------------------------------------------------------------

    def start(self, trip_id: UUID, driver_id: UUID) -> OperationResult[TripView]:
        trip = self._load(trip_id)
        self._require_driver(trip, driver_id)
        self._require_next(trip, TripStatus.IN_PROGRESS)

        request = self._advance_request(trip, WorkflowAction.START_TRIP, driver_id)
        trip.status = TripStatus.IN_PROGRESS.value
        trip.start_time = self._clock.now()
        self._flush_trip(trip)
        self._log("trip_started", trip)

        return OperationResult(trip.to_dto(), notify(
            [request.requester_id, *request.participants],
            NotificationType.TRIP_STARTED,
            "Trip started",
            f"Your trip to {request.destination} has started.",
            request.id,
        ))

    def update_location(
        self,
        trip_id: UUID,
        driver_id: UUID,
        latitude: float,
        longitude: float,
        recorded_at: datetime | None = None,
    ) -> OperationResult[TripView]:
        """Append a route point; auto-return inside the pickup geofence."""
        trip = self._load(trip_id)
        self._require_driver(trip, driver_id)
        if trip.trip_status is TripStatus.RETURNED:
            return OperationResult(trip.to_dto())
        self._require_status(trip, TripStatus.IN_PROGRESS, TripStatus.COMPLETED)

        point = _route_point(latitude, longitude)
        trip.route.append(TripRoutePointModel(
            trip_id=trip.id,
            sequence=len(trip.route) + 1,
            latitude=point.latitude,
            longitude=point.longitude,
            recorded_at=ensure_utc(recorded_at) if recorded_at else self._clock.now(),
        ))
        self._flush_trip(trip)

        if trip.trip_status is TripStatus.COMPLETED and within_radius(
            point, trip.pickup_point, self._geofence_km,
        ):
            return self._return(trip, driver_id, TRIGGER_GEOFENCE)
        return OperationResult(trip.to_dto())

    def complete(self, trip_id: UUID, driver_id: UUID) -> OperationResult[TripView]:
        trip = self._load(trip_id)
        self._require_driver(trip, driver_id)
        self._require_next(trip, TripStatus.COMPLETED)

        request = self._advance_request(trip, WorkflowAction.COMPLETE_TRIP, driver_id)
        now = self._clock.now()
        distance = route_distance_km(p.to_dto().point for p in trip.route)
        duration = max((now - trip.start_time).total_seconds() / 60.0, 0.0)
        hours = duration / 60.0
        trip.status = TripStatus.COMPLETED.value
        trip.end_time = now
        trip.distance_km = round(distance, 3)
        trip.duration_minutes = round(duration, 2)
        trip.average_speed_kmh = round(distance / hours, 2) if hours > 0 else 0.0
        request.actual_distance_km = trip.distance_km
        request.actual_duration_minutes = trip.duration_minutes
        self._flush_trip(trip)
        self._log(
            "trip_completed", trip,
            distance_km=trip.distance_km, duration_minutes=trip.duration_minutes,
        )

        return OperationResult(trip.to_dto(), notify(
            [request.requester_id],
            NotificationType.TRIP_COMPLETED,
            "Trip completed",
            f"Your trip to {request.destination} is complete "
            f"({trip.distance_km} km in {trip.duration_minutes} min).",
            request.id,
        ))

    def mark_returned(
        self, trip_id: UUID, actor_id: UUID, trigger: str = TRIGGER_MANUAL,
    ) -> OperationResult[TripView]:
        trip = self._load(trip_id)
        if trip.trip_status is TripStatus.RETURNED:
            self._require_returner(trip, actor_id)
            return OperationResult(trip.to_dto())
        self._require_next(trip, TripStatus.RETURNED)
        return self._return(trip, actor_id, trigger)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _return(
        self, trip: TripModel, actor_id: UUID, trigger: str,
    ) -> OperationResult[TripView]:
        request = self._advance_request(
            trip, WorkflowAction.RETURN_VEHICLE, actor_id, metadata={"trigger": trigger},
        )
        trip.status = TripStatus.RETURNED.value
        trip.return_time = self._clock.now()
        self._release_vehicle(trip)
        self._flush_trip(trip)
        self._log("trip_returned", trip, trigger=trigger)

        notes: tuple[NotificationIntent, ...] = notify(
            [request.requester_id, *self._transport_officers()],
            NotificationType.TRIP_RETURNED,
            "Vehicle returned",
            f"The vehicle for the trip to {request.destination} is back at its pickup office.",
            request.id,
            exclude=[actor_id],
        )
        return OperationResult(trip.to_dto(), notes)

    def _advance_request(
        self,
        trip: TripModel,
        action: WorkflowAction,
        actor_id: UUID,
        metadata: dict | None = None,
    ) -> VehicleRequestModel:
        request: VehicleRequestModel = self._requests.load(trip.request_id)
        actor = self._requests.require_actor(actor_id)
        plan = self._requests.engine.plan(
            actor, request.snapshot(), action, self._requests.context_for(request),
        )
        self._requests.apply_plan(
            request, plan, actor.id,
            metadata={"trip_id": str(trip.id), **(metadata or {})},
        )
        return request

    def _release_vehicle(self, trip: TripModel) -> None:
        others = self.session.execute(
            select(func.count(TripModel.id)).where(
                TripModel.vehicle_id == trip.vehicle_id,
                TripModel.id != trip.id,
                TripModel.status.in_([s.value for s in VEHICLE_BLOCKING]),
            )
        ).scalar_one()
        if others == 0:
            vehicle = self._requests.directory.get_vehicle(trip.vehicle_id)
            vehicle.status = VehicleStatus.AVAILABLE.value

    def _transport_officers(self) -> list[UUID]:
        workflow = self._requests.workflow
        return [
            a.id for role in workflow.stage(workflow.assignment_stage).required_roles
            for a in self._requests.directory.find_by_role(role)
        ]

    def _load(self, trip_id: UUID) -> TripModel:
        trip = self.session.get(TripModel, trip_id)
        if trip is None:
            raise TripNotFoundError(trip_id)
        return trip

    def _require_driver(self, trip: TripModel, driver_id: UUID) -> None:
        if trip.driver_id != driver_id:
            raise NotAssignedDriverError(driver_id, trip.id)

    def _require_status(self, trip: TripModel, *expected: TripStatus) -> None:
        if trip.trip_status not in expected:
            raise TripStateError(trip.id, trip.status, tuple(s.value for s in expected))

    def _require_next(self, trip: TripModel, target: TripStatus) -> None:
        if target not in TRIP_TRANSITIONS[trip.trip_status]:
            expected = tuple(s.value for s, nxt in TRIP_TRANSITIONS.items() if target in nxt)
            raise TripStateError(trip.id, trip.status, expected)

    def _require_returner(self, trip: TripModel, actor_id: UUID) -> None:
        # A repeated return is a no-op only for actors who could have returned it.
        request: VehicleRequestModel = self._requests.load(trip.request_id)
        actor = self._requests.require_actor(actor_id)
        workflow = self._requests.workflow
        stage = workflow.stage(next(
            t.from_stage for t in workflow.transitions
            if t.action == WorkflowAction.RETURN_VEHICLE
        ))
        decision = self._requests.engine.check_roles(actor, request.snapshot(), stage)
        if not decision.allowed:
            raise ActionForbiddenError(
                actor.id, WorkflowAction.RETURN_VEHICLE.value,
                request.current_stage, decision.reason,
            )

    def _flush_trip(self, trip: TripModel) -> None:
        self._flush(lambda: ConcurrentModificationError("Trip", trip.id))

    def _log(self, event: str, trip: TripModel, **fields) -> None:
        with LogContext.bind(trip_id=str(trip.id), request_id=str(trip.request_id)):
            logger.info(
                event,
                extra={"status": trip.status, "driver": str(trip.driver_id), **fields},
            )


def _route_point(latitude: float, longitude: float) -> GeoPoint:
    if not -90.0 <= latitude <= 90.0:
        raise InvalidPayloadError(f"latitude out of range: {latitude}", field="latitude")
    if not -180.0 <= longitude <= 180.0:
        raise InvalidPayloadError(f"longitude out of range: {longitude}", field="longitude")
    return GeoPoint(latitude, longitude)
