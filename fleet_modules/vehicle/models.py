"""
Vehicle Domain Models.

The nouns of vehicle requests and trips: drafts, request details, trips,
route points and the trip status machine.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from fleet_kernel.domain.geo import GeoPoint
from fleet_kernel.domain.requests import RequestView


class TripStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    RETURNED = "returned"


TRIP_TRANSITIONS: dict[TripStatus, frozenset[TripStatus]] = {
    TripStatus.PENDING: frozenset({TripStatus.IN_PROGRESS}),
    TripStatus.IN_PROGRESS: frozenset({TripStatus.COMPLETED}),
    TripStatus.COMPLETED: frozenset({TripStatus.RETURNED}),
    TripStatus.RETURNED: frozenset(),
}

# Trip statuses that still hold the driver for the booked window.
DRIVER_BLOCKING: frozenset[TripStatus] = frozenset({
    TripStatus.PENDING, TripStatus.IN_PROGRESS,
})

# The vehicle stays committed until it is physically back.
VEHICLE_BLOCKING: frozenset[TripStatus] = frozenset({
    TripStatus.PENDING, TripStatus.IN_PROGRESS, TripStatus.COMPLETED,
})


@dataclass(frozen=True)
class VehicleRequestDraft:
    """Requester input for a new (or corrected) vehicle request."""

    origin_office_id: UUID
    destination: str
    start_date: datetime
    end_date: datetime
    passenger_count: int
    purpose: str = ""
    destination_coordinates: GeoPoint | None = None
    participant_ids: tuple[UUID, ...] = ()
    supervisor_id: UUID | None = None


@dataclass(frozen=True)
class VehicleRequestDetails:
    origin_office_id: UUID
    destination: str
    destination_coordinates: GeoPoint | None
    start_date: datetime
    end_date: datetime
    passenger_count: int
    purpose: str
    participant_ids: tuple[UUID, ...]
    assigned_driver_id: UUID | None = None
    assigned_vehicle_id: UUID | None = None
    pickup_office_id: UUID | None = None
    estimated_distance_km: float | None = None
    estimated_fuel_litres: float | None = None
    actual_distance_km: float | None = None
    actual_duration_minutes: float | None = None


@dataclass(frozen=True)
class RoutePoint:
    latitude: float
    longitude: float
    recorded_at: datetime

    @property
    def point(self) -> GeoPoint:
        return GeoPoint(self.latitude, self.longitude)


@dataclass(frozen=True)
class TripView:
    id: UUID
    request_id: UUID
    driver_id: UUID
    vehicle_id: UUID
    status: TripStatus
    scheduled_start: datetime
    scheduled_end: datetime
    start_location: dict[str, Any]
    end_location: dict[str, Any]
    route: tuple[RoutePoint, ...] = ()
    start_time: datetime | None = None
    end_time: datetime | None = None
    return_time: datetime | None = None
    distance_km: float | None = None
    duration_minutes: float | None = None
    average_speed_kmh: float | None = None


@dataclass(frozen=True)
class AvailableVehicle:
    id: UUID
    plate_number: str
    capacity: int
    status: str


@dataclass(frozen=True)
class AvailableDriver:
    id: UUID
    name: str


@dataclass(frozen=True)
class AssignmentResult:
    request: RequestView
    trip: TripView
    created: bool = field(default=True)
