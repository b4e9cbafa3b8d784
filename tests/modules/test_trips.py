"""
Trip state machine: pending -> in_progress -> completed -> returned.

Covers:
- Only the assigned driver starts, completes and reports location
- Out-of-order transitions raise TripStateError
- Completion metrics: route distance, duration, average speed
- Automatic return inside the pickup geofence, manual return otherwise
- Returned trips ignore further updates and release the vehicle
"""

from datetime import timedelta
from uuid import uuid4

import pytest

from fleet_kernel.domain.geo import haversine_km
from fleet_kernel.domain.notifications import NotificationType
from fleet_kernel.domain.workflow import WorkflowAction
from fleet_kernel.exceptions import (
    ActionForbiddenError,
    InvalidPayloadError,
    NotAssignedDriverError,
    TripNotFoundError,
    TripStateError,
)
from fleet_kernel.models.directory import VehicleModel, VehicleStatus
from fleet_modules.vehicle.models import TripStatus
from tests.conftest import BRANCH_OFFICE, MOTOR_POOL

# ~11 m from the Motor Pool, inside the 50 m return geofence.
NEAR_MOTOR_POOL = (5.6038, -0.1870)


@pytest.fixture
def trip_id(assigned_trip):
    return assigned_trip.trip.id


@pytest.fixture
def completed_trip(services, trip_id, directory, deterministic_clock):
    """Trip driven Motor Pool -> Branch Office in two hours."""
    trips = services.trips
    trips.start(trip_id, directory.driver)
    trips.update_location(trip_id, directory.driver, MOTOR_POOL.latitude, MOTOR_POOL.longitude)
    trips.update_location(
        trip_id, directory.driver, BRANCH_OFFICE.latitude, BRANCH_OFFICE.longitude,
    )
    deterministic_clock.advance(hours=2)
    trips.complete(trip_id, directory.driver)
    return trip_id


def _request(services, trip_id, actor):
    trip = services.trips.get_trip(trip_id)
    return services.vehicle.get(trip.request_id, actor)


class TestStart:

    def test_driver_starts_trip(self, services, trip_id, directory, deterministic_clock):
        result = services.trips.start(trip_id, directory.driver)

        assert result.value.status is TripStatus.IN_PROGRESS
        assert result.value.start_time == deterministic_clock.now()
        request = _request(services, trip_id, directory.staff)
        assert request.current_stage == "in_progress"
        assert request.action_history[-1].action == WorkflowAction.START_TRIP
        assert request.action_history[-1].metadata == {"trip_id": str(trip_id)}
        (intent,) = result.notifications
        assert intent.type == NotificationType.TRIP_STARTED
        assert intent.recipients == (directory.staff,)

    def test_other_driver_is_refused(self, services, trip_id, directory):
        with pytest.raises(NotAssignedDriverError) as exc_info:
            services.trips.start(trip_id, directory.second_driver)
        assert exc_info.value.http_status == 403

    def test_cannot_start_twice(self, services, trip_id, directory):
        services.trips.start(trip_id, directory.driver)
        with pytest.raises(TripStateError) as exc_info:
            services.trips.start(trip_id, directory.driver)
        assert exc_info.value.status == "in_progress"

    def test_unknown_trip(self, services, directory):
        with pytest.raises(TripNotFoundError):
            services.trips.start(uuid4(), directory.driver)

    def test_no_location_before_start(self, services, trip_id, directory):
        with pytest.raises(TripStateError):
            services.trips.update_location(trip_id, directory.driver, 5.6, -0.18)

    def test_cannot_complete_pending_trip(self, services, trip_id, directory):
        with pytest.raises(TripStateError) as exc_info:
            services.trips.complete(trip_id, directory.driver)
        assert exc_info.value.expected == ("in_progress",)


class TestComplete:

    def test_completion_metrics(self, services, completed_trip, directory):
        trip = services.trips.get_trip(completed_trip)
        expected_km = round(haversine_km(MOTOR_POOL, BRANCH_OFFICE), 3)

        assert trip.status is TripStatus.COMPLETED
        assert len(trip.route) == 2
        assert trip.distance_km == expected_km
        assert trip.duration_minutes == 120.0
        assert trip.average_speed_kmh == round(expected_km / 2, 2)

        request = _request(services, completed_trip, directory.staff)
        assert request.current_stage == "completed"
        assert request.details.actual_distance_km == expected_km
        assert request.details.actual_duration_minutes == 120.0

    def test_instant_trip_has_zero_speed(self, services, trip_id, directory):
        services.trips.start(trip_id, directory.driver)
        trip = services.trips.complete(trip_id, directory.driver).value
        assert trip.distance_km == 0.0
        assert trip.duration_minutes == 0.0
        assert trip.average_speed_kmh == 0.0

    def test_recorded_at_is_kept(self, services, trip_id, directory):
        services.trips.start(trip_id, directory.driver)
        stamp = services.trips.get_trip(trip_id).start_time + timedelta(minutes=5)
        trip = services.trips.update_location(
            trip_id, directory.driver, 5.61, -0.18, recorded_at=stamp,
        ).value
        assert trip.route[-1].recorded_at == stamp

    def test_out_of_range_coordinates(self, services, trip_id, directory):
        services.trips.start(trip_id, directory.driver)
        with pytest.raises(InvalidPayloadError) as exc_info:
            services.trips.update_location(trip_id, directory.driver, 95.0, 0.0)
        assert exc_info.value.field == "latitude"
        assert exc_info.value.http_status == 400
        with pytest.raises(InvalidPayloadError) as exc_info:
            services.trips.update_location(trip_id, directory.driver, 5.6, -181.0)
        assert exc_info.value.field == "longitude"
        assert services.trips.get_trip(trip_id).route == ()


class TestReturn:

    def test_location_outside_geofence_keeps_trip_completed(
        self, services, completed_trip, directory,
    ):
        trip = services.trips.update_location(
            completed_trip, directory.driver, BRANCH_OFFICE.latitude, BRANCH_OFFICE.longitude,
        ).value
        assert trip.status is TripStatus.COMPLETED

    def test_geofence_returns_vehicle(self, services, completed_trip, directory, session):
        result = services.trips.update_location(completed_trip, directory.driver, *NEAR_MOTOR_POOL)

        assert result.value.status is TripStatus.RETURNED
        assert result.value.return_time is not None
        request = _request(services, completed_trip, directory.staff)
        assert request.current_stage == "returned"
        returned = request.action_history[-1]
        assert returned.action == WorkflowAction.RETURN_VEHICLE
        assert returned.metadata["trigger"] == "geofence"
        assert session.get(VehicleModel, directory.van).status == VehicleStatus.AVAILABLE.value
        (intent,) = result.notifications
        assert intent.type == NotificationType.TRIP_RETURNED
        assert set(intent.recipients) == {
            directory.staff, directory.transport_officer, directory.dgs,
        }

    def test_returned_trip_ignores_updates(self, services, completed_trip, directory):
        services.trips.update_location(completed_trip, directory.driver, *NEAR_MOTOR_POOL)
        again = services.trips.update_location(completed_trip, directory.driver, *NEAR_MOTOR_POOL)
        marked = services.trips.mark_returned(completed_trip, directory.transport_officer)

        assert again.notifications == () and marked.notifications == ()
        assert len(again.value.route) == 3
        history = _request(services, completed_trip, directory.staff).action_history
        assert [e.action for e in history].count(WorkflowAction.RETURN_VEHICLE) == 1

    def test_repeated_return_still_checks_the_actor(self, services, completed_trip, directory):
        services.trips.mark_returned(completed_trip, directory.transport_officer)
        with pytest.raises(ActionForbiddenError):
            services.trips.mark_returned(completed_trip, directory.colleague)
        again = services.trips.mark_returned(completed_trip, directory.driver)
        assert again.value.status is TripStatus.RETURNED
        assert again.notifications == ()

    def test_manual_return_by_transport_officer(self, services, completed_trip, directory):
        result = services.trips.mark_returned(completed_trip, directory.transport_officer)
        assert result.value.status is TripStatus.RETURNED
        request = _request(services, completed_trip, directory.staff)
        assert request.action_history[-1].metadata["trigger"] == "manual"
        assert request.action_history[-1].performed_by == directory.transport_officer

    def test_manual_return_needs_completed_trip(self, services, trip_id, directory):
        services.trips.start(trip_id, directory.driver)
        with pytest.raises(TripStateError):
            services.trips.mark_returned(trip_id, directory.transport_officer)

    def test_return_by_unrelated_staff_is_refused(self, services, completed_trip, directory):
        with pytest.raises(ActionForbiddenError):
            services.trips.mark_returned(completed_trip, directory.colleague)

    def test_vehicle_stays_assigned_while_another_trip_holds_it(
        self, services, completed_trip, approved_request, directory, session,
    ):
        later = approved_request(
            start_date=services.trips.get_trip(completed_trip).scheduled_end,
            end_date=services.trips.get_trip(completed_trip).scheduled_end + timedelta(hours=1),
        )
        services.assignment.assign(
            later, directory.second_driver, directory.van, directory.motor_pool,
            directory.transport_officer,
        )
        services.trips.mark_returned(completed_trip, directory.transport_officer)
        assert session.get(VehicleModel, directory.van).status == VehicleStatus.ASSIGNED.value

    def test_trip_for_request(self, services, assigned_trip):
        assert services.trips.trip_for_request(assigned_trip.request.id).id == assigned_trip.trip.id
        assert services.trips.trip_for_request(uuid4()) is None
