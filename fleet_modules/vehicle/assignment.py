"""
Assignment Engine (``fleet_modules.vehicle.assignment``).

Responsibility
--------------
Commits a driver and a vehicle to an approved vehicle request, creating
its single Trip, and swaps drivers before departure.  Also answers
availability queries for a booking window.

Architecture position
---------------------
**Modules layer** -- composes ``VehicleRequestService`` (load, plan
application, views) with the kernel directory and the workflow engine.
Flush-only; the caller commits.

Invariants enforced
-------------------
* Every precondition (stage, role, driver, vehicle, capacity, office) is
  checked before the first write.
* Overlap rule: ``[s1,e1)`` and ``[s2,e2)`` overlap iff ``s1 < e2`` and
  ``s2 < e1``; abutting windows do not conflict.
* Critical section per (driver, vehicle): both rows are read with
  ``FOR UPDATE`` where the backend supports it and are always written
  through their version column, the request is version-checked, and
  ``trips.request_id`` is unique.  Two overlapping assignments cannot both
  commit; the loser gets ``AssignmentConflictError``.
* Re-assigning an already-assigned request returns the existing trip.
* The DGS shortcut is the named override ``dgs_direct_assignment``; it
  records its own history entry before the assignment entry.

Failure modes
-------------
* RequestNotFoundError / UserNotFoundError / VehicleNotFoundError /
  OfficeNotFoundError  (404)
* ActionForbiddenError  (403)
* ActionNotAllowedError / ResourceUnavailableError /
  AssignmentConflictError  (409)
* CapacityError  (400)
"""

from __future__ import annotations

from dataclasses import replace
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from fleet_kernel.domain.actors import Actor, Role
from fleet_kernel.domain.availability import TimeWindow
from fleet_kernel.domain.clock import Clock
from fleet_kernel.domain.notifications import (
    NotificationType,
    OperationResult,
    notify,
)
from fleet_kernel.domain.workflow import TransitionContext, WorkflowAction
from fleet_kernel.exceptions import (
    ActionForbiddenError,
    ActionNotAllowedError,
    AssignmentConflictError,
    CapacityError,
    ConcurrentModificationError,
    ResourceUnavailableError,
)
from fleet_kernel.logging_config import get_logger
from fleet_kernel.models.directory import (
    OUT_OF_SERVICE,
    UserModel,
    VehicleModel,
    VehicleStatus,
)
from fleet_kernel.services.base import BaseService
from fleet_kernel.services.workflow_engine import TransitionPlan
from fleet_modules.vehicle.models import (
    DRIVER_BLOCKING,
    VEHICLE_BLOCKING,
    AssignmentResult,
    AvailableDriver,
    AvailableVehicle,
    TripStatus,
)
from fleet_modules.vehicle.orm import TripModel, VehicleRequestModel
from fleet_modules.vehicle.service import VehicleRequestService
from fleet_services.geo_gateway import GeoGateway

logger = get_logger("modules.vehicle.assignment")

SWAP_DRIVER = "swap_driver"


class AssignmentEngine(BaseService):
    """
    Driver/vehicle assignment for vehicle requests.

    Contract
    --------
    * ``assign`` returns ``OperationResult[AssignmentResult]``; notifications
      are empty when an existing assignment is returned.
    * ``available_drivers``/``available_vehicles`` are read-only.
    """

    def __init__(
        self,
        session: Session,
        requests: VehicleRequestService,
        clock: Clock | None = None,
        geo: GeoGateway | None = None,
    ):
        super().__init__(session, clock or requests.clock)
        self._requests = requests
        self._engine = requests.engine
        self._directory = requests.directory
        self._geo = geo

    # ------------------------------------------------------------------
    # Assignment
    # ------------------------------------------------------------------

    def assign(
        self,
        request_id: UUID,
        driver_id: UUID,
        vehicle_id: UUID,
        pickup_office_id: UUID | None,
        actor_id: UUID,
    ) -> OperationResult[AssignmentResult]:
        """Commit driver and vehicle; ``pickup_office_id`` defaults to the origin office."""
        actor = self._requests.require_actor(actor_id)
        model: VehicleRequestModel = self._requests.load(request_id)

        existing = self._trip_for(model.id)
        if existing is not None:
            self._require_assigner(actor, model)
            logger.info(
                "assignment_already_committed",
                extra={"request_id": str(model.id), "trip_id": str(existing.id)},
            )
            return OperationResult(
                AssignmentResult(self._requests.view(model), existing.to_dto(), created=False)
            )

        plans = self._plan(actor, model)
        window = TimeWindow(model.start_date, model.end_date)
        driver = self._check_driver(driver_id, window)
        vehicle = self._check_vehicle(vehicle_id, window, model.passenger_count)
        pickup = self._directory.get_office(pickup_office_id or model.origin_office_id)
        start_location = pickup.as_location()

        # All checks passed; writes start here.
        now = self._clock.now()
        driver.assignment_count += 1
        driver.last_assigned_at = now
        vehicle.assignment_count += 1
        vehicle.status = VehicleStatus.ASSIGNED.value
        model.assigned_driver_id = driver.id
        model.assigned_vehicle_id = vehicle.id
        model.pickup_office_id = pickup.id

        trip = TripModel(
            request_id=model.id,
            driver_id=driver.id,
            vehicle_id=vehicle.id,
            status=TripStatus.PENDING.value,
            scheduled_start=window.start,
            scheduled_end=window.end,
            start_location=start_location,
            end_location=self._end_location(model),
        )
        self.session.add(trip)
        self._flush(lambda: AssignmentConflictError(
            model.id, "driver, vehicle or trip was committed concurrently",
        ))

        assignment = {
            "driver_id": str(driver.id),
            "vehicle_id": str(vehicle.id),
            "pickup_office_id": str(pickup.id),
        }
        for plan in plans:
            note = None
            if plan.override is not None:
                note = "Assigned directly (DGS skipped intermediate approvals)"
            try:
                self._requests.apply_plan(
                    model, plan, actor.id, notes=note,
                    metadata=assignment if plan is plans[-1] else None,
                )
            except ConcurrentModificationError as exc:
                raise AssignmentConflictError(model.id, "request changed concurrently") from exc

        logger.info(
            "assignment_committed",
            extra={
                "request_id": str(model.id),
                "trip_id": str(trip.id),
                "driver": str(driver.id),
                "vehicle": str(vehicle.id),
                "override": plans[0].override,
            },
        )

        notes = notify(
            [driver.id],
            NotificationType.DRIVER_ASSIGNED,
            "New trip assigned",
            f"You are assigned to drive to {model.destination} "
            f"on {window.start.isoformat()}.",
            model.id,
        )
        notes += notify(
            [model.requester_id, *model.participants],
            NotificationType.DRIVER_ASSIGNED,
            "Driver assigned",
            f"A driver and vehicle {vehicle.plate_number} are assigned to your trip.",
            model.id,
            exclude=[actor.id, driver.id],
        )
        return OperationResult(
            AssignmentResult(self._requests.view(model), trip.to_dto(), created=True),
            notes,
        )

    def swap_driver(
        self, request_id: UUID, new_driver_id: UUID, actor_id: UUID,
    ) -> OperationResult[AssignmentResult]:
        actor = self._requests.require_actor(actor_id)
        model: VehicleRequestModel = self._requests.load(request_id)
        workflow = self._requests.workflow
        assigned_stage = self._assigned_stage()

        if model.current_stage != assigned_stage:
            raise ActionNotAllowedError(
                SWAP_DRIVER, model.current_stage, f"driver can be swapped only at {assigned_stage}",
            )
        self._require_assigner(actor, model, SWAP_DRIVER)
        if self._clock.now() >= model.start_date:
            raise ActionNotAllowedError(
                SWAP_DRIVER, model.current_stage, "the trip's scheduled start has passed",
            )

        trip = self._trip_for(model.id)
        old_driver_id = model.assigned_driver_id
        if new_driver_id == old_driver_id:
            return OperationResult(AssignmentResult(self._requests.view(model), trip.to_dto(), False))
        window = TimeWindow(model.start_date, model.end_date)
        driver = self._check_driver(new_driver_id, window, exclude_trip_id=trip.id)

        driver.assignment_count += 1
        driver.last_assigned_at = self._clock.now()
        trip.driver_id = driver.id
        model.assigned_driver_id = driver.id
        self._flush(lambda: AssignmentConflictError(model.id, "driver was committed concurrently"))

        # Stage is unchanged; the swap is still recorded in action history.
        swap = TransitionPlan(
            kind=model.snapshot().kind,
            request_id=model.id,
            action=WorkflowAction.ASSIGN,
            from_stage=assigned_stage,
            to_stage=assigned_stage,
            status=workflow.status_of(assigned_stage),
        )
        try:
            self._requests.apply_plan(
                model, swap, actor.id, notes="Driver swapped",
                metadata={
                    "operation": SWAP_DRIVER,
                    "previous_driver_id": str(old_driver_id),
                    "driver_id": str(driver.id),
                },
            )
        except ConcurrentModificationError as exc:
            raise AssignmentConflictError(model.id, "request changed concurrently") from exc

        logger.info(
            "driver_swapped",
            extra={
                "request_id": str(model.id),
                "trip_id": str(trip.id),
                "previous_driver": str(old_driver_id),
                "driver": str(driver.id),
            },
        )
        notes = notify(
            [driver.id],
            NotificationType.DRIVER_ASSIGNED,
            "New trip assigned",
            f"You are now the driver for the trip to {model.destination}.",
            model.id,
        )
        notes += notify(
            [old_driver_id],
            NotificationType.DRIVER_UNASSIGNED,
            "Trip reassigned",
            f"You are no longer assigned to the trip to {model.destination}.",
            model.id,
        )
        notes += notify(
            [model.requester_id, *model.participants],
            NotificationType.DRIVER_ASSIGNED,
            "Driver changed",
            "The driver for your trip has changed.",
            model.id,
            exclude=[actor.id],
        )
        return OperationResult(
            AssignmentResult(self._requests.view(model), trip.to_dto(), created=False), notes,
        )

    # ------------------------------------------------------------------
    # Availability
    # ------------------------------------------------------------------

    def available_drivers(self, window: TimeWindow | None = None) -> list[AvailableDriver]:
        available = []
        for user in self._directory.list_drivers():
            if self._driver_conflict(user.id, window) is None:
                available.append(AvailableDriver(user.id, user.name))
        return available

    def available_vehicles(
        self, window: TimeWindow | None = None, min_capacity: int = 1,
    ) -> list[AvailableVehicle]:
        available = []
        for vehicle in self._directory.list_vehicles():
            if vehicle.vehicle_status in OUT_OF_SERVICE or vehicle.capacity < min_capacity:
                continue
            if self._vehicle_conflict(vehicle.id, window) is None:
                available.append(AvailableVehicle(
                    vehicle.id, vehicle.plate_number, vehicle.capacity, vehicle.status,
                ))
        return available

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _plan(self, actor: Actor, model: VehicleRequestModel) -> list[TransitionPlan]:
        workflow = self._requests.workflow
        snapshot = model.snapshot()
        context = self._requests.context_for(model)
        if model.current_stage == workflow.assignment_stage:
            return [self._engine.plan(actor, snapshot, WorkflowAction.ASSIGN, context)]

        overrides = workflow.overrides_from(model.current_stage, WorkflowAction.ASSIGN)
        if not overrides:
            raise ActionNotAllowedError(
                WorkflowAction.ASSIGN.value, model.current_stage,
                f"request is not at {workflow.assignment_stage}",
            )
        override = next((o for o in overrides if actor.has_role(o.role)), overrides[0])
        skip = self._engine.plan_override(actor, snapshot, override.name, context)
        at_assignment = replace(snapshot, current_stage=skip.to_stage)
        final = self._engine.plan(
            actor, at_assignment, WorkflowAction.ASSIGN,
            TransitionContext(requester_is_supervisor=context.requester_is_supervisor),
        )
        return [skip, final]

    def _require_assigner(
        self, actor: Actor, model: VehicleRequestModel, operation: str = "assign",
    ) -> None:
        """Only actors who may assign at the assignment stage manage trips."""
        workflow = self._requests.workflow
        decision = self._engine.check_roles(
            actor, model.snapshot(), workflow.stage(workflow.assignment_stage),
        )
        if not decision.allowed:
            raise ActionForbiddenError(actor.id, operation, model.current_stage, decision.reason)

    def _assigned_stage(self) -> str:
        workflow = self._requests.workflow
        transitions = workflow.transitions_for(workflow.assignment_stage, WorkflowAction.ASSIGN)
        return transitions[0].to_stage

    def _trip_for(self, request_id: UUID) -> TripModel | None:
        return self.session.execute(
            select(TripModel).where(TripModel.request_id == request_id)
        ).scalar_one_or_none()

    def _check_driver(
        self, driver_id: UUID, window: TimeWindow, exclude_trip_id: UUID | None = None,
    ) -> UserModel:
        driver = self._directory.get_user(driver_id, for_update=True)
        if Role.DRIVER.value not in (driver.roles or ()):
            raise ResourceUnavailableError("Driver", driver_id, "user is not a driver")
        reason = self._driver_conflict(driver_id, window, exclude_trip_id)
        if reason is not None:
            raise ResourceUnavailableError("Driver", driver_id, reason)
        return driver

    def _check_vehicle(
        self, vehicle_id: UUID, window: TimeWindow, passenger_count: int,
    ) -> VehicleModel:
        vehicle = self._directory.get_vehicle(vehicle_id, for_update=True)
        if vehicle.vehicle_status in OUT_OF_SERVICE:
            raise ResourceUnavailableError("Vehicle", vehicle_id, f"vehicle is {vehicle.status}")
        if vehicle.capacity < passenger_count:
            raise CapacityError(vehicle_id, vehicle.capacity, passenger_count)
        reason = self._vehicle_conflict(vehicle_id, window)
        if reason is not None:
            raise ResourceUnavailableError("Vehicle", vehicle_id, reason)
        return vehicle

    def _driver_conflict(
        self, driver_id: UUID, window: TimeWindow | None, exclude_trip_id: UUID | None = None,
    ) -> str | None:
        trips = self._blocking_trips(TripModel.driver_id == driver_id, DRIVER_BLOCKING)
        for trip in trips:
            if trip.id == exclude_trip_id:
                continue
            if trip.trip_status is TripStatus.IN_PROGRESS:
                return f"driver is on trip {trip.id}"
            if window is not None and window.overlaps(
                TimeWindow(trip.scheduled_start, trip.scheduled_end)
            ):
                return f"driver is booked on trip {trip.id} in an overlapping window"
        return None

    def _vehicle_conflict(self, vehicle_id: UUID, window: TimeWindow | None) -> str | None:
        trips = self._blocking_trips(TripModel.vehicle_id == vehicle_id, VEHICLE_BLOCKING)
        for trip in trips:
            if trip.trip_status is TripStatus.IN_PROGRESS:
                return f"vehicle is on trip {trip.id}"
            if window is not None and window.overlaps(
                TimeWindow(trip.scheduled_start, trip.scheduled_end)
            ):
                return f"vehicle is committed to trip {trip.id} in an overlapping window"
        return None

    def _blocking_trips(self, criterion, statuses) -> list[TripModel]:
        return list(self.session.execute(
            select(TripModel).where(
                criterion, TripModel.status.in_([s.value for s in statuses]),
            )
        ).scalars())

    def _end_location(self, model: VehicleRequestModel) -> dict:
        point = model.destination_point
        location = {
            "name": model.destination,
            "latitude": point.latitude if point else None,
            "longitude": point.longitude if point else None,
            "address": None,
        }
        if point is not None and self._geo is not None:
            location["address"] = self._geo.reverse_geocode(point)
        return location
