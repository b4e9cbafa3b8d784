"""
Vehicle Request Service (``fleet_modules.vehicle.service``).

Responsibility
--------------
Creation and correction of vehicle requests on top of the shared
``RequestLifecycleService``: booking-window and lead-time validation,
origin office and participant checks, best-effort distance and fuel
estimates, and participant notifications.

Invariants enforced
-------------------
* The booking window is ``[start, end)`` with end after start, and start
  at least ``min_lead_time`` after now.
* Participants exist, are de-duplicated, and never include the requester.
* Distance estimation failures leave the estimate unset; they never block
  creation.

Usage::

    service = VehicleRequestService(session, engine, geo=gateway, clock=clock)
    result = service.create(draft, requester_id)
"""

from __future__ import annotations

from datetime import timedelta
from uuid import UUID

from sqlalchemy.orm import Session

from fleet_kernel.domain.actors import IdentityProvider
from fleet_kernel.domain.availability import TimeWindow
from fleet_kernel.domain.clock import Clock
from fleet_kernel.domain.notifications import OperationResult
from fleet_kernel.domain.requests import RequestView
from fleet_kernel.domain.workflow import RequestKind
from fleet_kernel.exceptions import (
    ConcurrentModificationError,
    InvalidParticipantError,
    InvalidPayloadError,
    InvalidWindowError,
)
from fleet_kernel.logging_config import get_logger
from fleet_kernel.services.request_lifecycle import RequestLifecycleService
from fleet_kernel.services.workflow_engine import WorkflowEngine
from fleet_modules.vehicle.models import VehicleRequestDraft
from fleet_modules.vehicle.orm import VehicleRequestModel
from fleet_services.geo_gateway import GeoGateway

logger = get_logger("modules.vehicle.service")

DEFAULT_MIN_LEAD_TIME = timedelta(hours=1)
DEFAULT_FUEL_KM_PER_LITRE = 10.0


class VehicleRequestService(RequestLifecycleService):
    kind = RequestKind.VEHICLE
    model_class = VehicleRequestModel

    def __init__(
        self,
        session: Session,
        engine: WorkflowEngine,
        identity: IdentityProvider | None = None,
        clock: Clock | None = None,
        geo: GeoGateway | None = None,
        min_lead_time: timedelta = DEFAULT_MIN_LEAD_TIME,
        fuel_km_per_litre: float = DEFAULT_FUEL_KM_PER_LITRE,
    ):
        super().__init__(session, engine, identity=identity, clock=clock)
        self._geo = geo
        self._min_lead_time = min_lead_time
        self._fuel_km_per_litre = fuel_km_per_litre

    def create(
        self, draft: VehicleRequestDraft, requester_id: UUID,
    ) -> OperationResult[RequestView]:
        requester = self._require_requester(requester_id)
        supervisor_id = self._resolve_supervisor(requester, draft.supervisor_id)
        window = self._validate_window(draft)
        origin = self._directory.get_office(draft.origin_office_id)
        participants = self._validate_participants(draft.participant_ids, requester.id)
        passenger_count = self._require_positive(draft.passenger_count, "passenger_count")
        destination = (draft.destination or "").strip()
        if not destination:
            raise InvalidPayloadError("destination is required", field="destination")

        model = VehicleRequestModel(
            requester_id=requester.id,
            supervisor_id=supervisor_id,
            department=requester.department,
            origin_office_id=origin.id,
            destination=destination,
            start_date=window.start,
            end_date=window.end,
            passenger_count=passenger_count,
            trip_purpose=draft.purpose,
            participant_ids=[str(p) for p in participants],
        )
        self._set_destination(model, draft)
        self._estimate(model, origin.location)

        plan = self._submit(model, requester)
        return OperationResult(
            self.view(model),
            self._creation_notifications(model, plan, participants),
        )

    def update(
        self, request_id: UUID, requester_id: UUID, draft: VehicleRequestDraft,
    ) -> OperationResult[RequestView]:
        """Replace the payload of a request that is still editable."""
        model = self.load(request_id)
        self._require_editable(model, requester_id)
        window = self._validate_window(draft)
        origin = self._directory.get_office(draft.origin_office_id)
        participants = self._validate_participants(draft.participant_ids, requester_id)
        passenger_count = self._require_positive(draft.passenger_count, "passenger_count")
        destination = (draft.destination or "").strip()
        if not destination:
            raise InvalidPayloadError("destination is required", field="destination")

        model.origin_office_id = origin.id
        model.destination = destination
        model.start_date = window.start
        model.end_date = window.end
        model.passenger_count = passenger_count
        model.trip_purpose = draft.purpose
        model.participant_ids = [str(p) for p in participants]
        self._set_destination(model, draft)
        self._estimate(model, origin.location)
        self._flush(lambda: ConcurrentModificationError("Request", model.id))

        logger.info(
            "request_updated",
            extra={"kind": self.kind.value, "request_id": str(model.id)},
        )
        return OperationResult(self.view(model))

    def _validate_window(self, draft: VehicleRequestDraft) -> TimeWindow:
        window = TimeWindow(draft.start_date, draft.end_date)
        earliest = self._clock.now() + self._min_lead_time
        if window.start < earliest:
            raise InvalidWindowError(
                f"start must be at least {self._min_lead_time} from now",
                field="start_date",
            )
        return window

    def _validate_participants(
        self, participant_ids: tuple[UUID, ...], requester_id: UUID,
    ) -> tuple[UUID, ...]:
        unique: list[UUID] = []
        for user_id in participant_ids:
            if user_id == requester_id or user_id in unique:
                continue
            if self._identity.find_by_id(user_id) is None:
                raise InvalidParticipantError(
                    f"participant {user_id} does not exist", field="participant_ids",
                )
            unique.append(user_id)
        return tuple(unique)

    def _set_destination(self, model: VehicleRequestModel, draft: VehicleRequestDraft) -> None:
        point = draft.destination_coordinates
        if point is None and self._geo is not None:
            point = self._geo.geocode_address(model.destination)
        model.destination_latitude = point.latitude if point else None
        model.destination_longitude = point.longitude if point else None

    def _estimate(self, model: VehicleRequestModel, origin) -> None:
        destination = model.destination_point
        distance = None
        if destination is not None and self._geo is not None:
            distance = self._geo.calculate_distance(origin, destination)
        model.estimated_distance_km = round(distance, 2) if distance is not None else None
        model.estimated_fuel_litres = (
            round(distance / self._fuel_km_per_litre, 2) if distance is not None else None
        )

    def _driver_column(self):
        return VehicleRequestModel.assigned_driver_id
