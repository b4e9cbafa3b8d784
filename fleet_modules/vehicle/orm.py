"""
SQLAlchemy ORM persistence models for the Vehicle module.

Responsibility
--------------
Vehicle-request payload columns (single-table inheritance on
``resource_requests``), trips, and trip route points.

Invariants enforced
-------------------
* ``trips.request_id`` is UNIQUE -- at most one trip per request, so a
  repeated or concurrent assignment can never create a second trip.
* ``TripModel.version`` is a version_id_col; concurrent trip updates
  fail instead of overwriting each other.
* Trips are never deleted; route points are append-only in practice.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import JSON, Float, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fleet_kernel.db.base import Base, TrackedBase
from fleet_kernel.domain.geo import GeoPoint
from fleet_kernel.domain.workflow import RequestKind
from fleet_kernel.models.request import ResourceRequestModel
from fleet_modules.vehicle.models import (
    RoutePoint,
    TripStatus,
    TripView,
    VehicleRequestDetails,
)


class VehicleRequestModel(ResourceRequestModel):
    """A request for a vehicle trip."""

    __mapper_args__ = {"polymorphic_identity": RequestKind.VEHICLE.value}

    origin_office_id: Mapped[UUID | None] = mapped_column(ForeignKey("offices.id"), nullable=True)
    destination: Mapped[str | None] = mapped_column(String(300), nullable=True)
    destination_latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    destination_longitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    start_date: Mapped[datetime | None]
    end_date: Mapped[datetime | None]
    passenger_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    trip_purpose: Mapped[str | None] = mapped_column(Text, nullable=True)
    participant_ids: Mapped[list | None] = mapped_column(JSON, nullable=True)
    assigned_driver_id: Mapped[UUID | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    assigned_vehicle_id: Mapped[UUID | None] = mapped_column(ForeignKey("vehicles.id"), nullable=True)
    pickup_office_id: Mapped[UUID | None] = mapped_column(ForeignKey("offices.id"), nullable=True)
    estimated_distance_km: Mapped[float | None] = mapped_column(Float, nullable=True)
    estimated_fuel_litres: Mapped[float | None] = mapped_column(Float, nullable=True)
    actual_distance_km: Mapped[float | None] = mapped_column(Float, nullable=True)
    actual_duration_minutes: Mapped[float | None] = mapped_column(Float, nullable=True)

    @property
    def driver_id(self) -> UUID | None:
        return self.assigned_driver_id

    @property
    def destination_point(self) -> GeoPoint | None:
        if self.destination_latitude is None or self.destination_longitude is None:
            return None
        return GeoPoint(self.destination_latitude, self.destination_longitude)

    @property
    def participants(self) -> tuple[UUID, ...]:
        return tuple(UUID(p) for p in (self.participant_ids or ()))

    def details(self) -> VehicleRequestDetails:
        return VehicleRequestDetails(
            origin_office_id=self.origin_office_id,
            destination=self.destination,
            destination_coordinates=self.destination_point,
            start_date=self.start_date,
            end_date=self.end_date,
            passenger_count=self.passenger_count,
            purpose=self.trip_purpose or "",
            participant_ids=self.participants,
            assigned_driver_id=self.assigned_driver_id,
            assigned_vehicle_id=self.assigned_vehicle_id,
            pickup_office_id=self.pickup_office_id,
            estimated_distance_km=self.estimated_distance_km,
            estimated_fuel_litres=self.estimated_fuel_litres,
            actual_distance_km=self.actual_distance_km,
            actual_duration_minutes=self.actual_duration_minutes,
        )


class TripModel(TrackedBase):
    """The execution record of an assigned vehicle request."""

    __tablename__ = "trips"

    __table_args__ = (
        Index("idx_trip_driver_status", "driver_id", "status"),
        Index("idx_trip_vehicle_status", "vehicle_id", "status"),
    )

    request_id: Mapped[UUID] = mapped_column(
        ForeignKey("resource_requests.id"), nullable=False, unique=True,
    )
    driver_id: Mapped[UUID] = mapped_column(ForeignKey("users.id"), nullable=False)
    vehicle_id: Mapped[UUID] = mapped_column(ForeignKey("vehicles.id"), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=TripStatus.PENDING.value,
    )
    scheduled_start: Mapped[datetime] = mapped_column(nullable=False)
    scheduled_end: Mapped[datetime] = mapped_column(nullable=False)
    start_location: Mapped[dict] = mapped_column(JSON, nullable=False)
    end_location: Mapped[dict] = mapped_column(JSON, nullable=False)
    start_time: Mapped[datetime | None]
    end_time: Mapped[datetime | None]
    return_time: Mapped[datetime | None]
    distance_km: Mapped[float | None] = mapped_column(Float, nullable=True)
    duration_minutes: Mapped[float | None] = mapped_column(Float, nullable=True)
    average_speed_kmh: Mapped[float | None] = mapped_column(Float, nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    route: Mapped[list["TripRoutePointModel"]] = relationship(
        back_populates="trip",
        order_by="TripRoutePointModel.sequence",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<Trip {self.id} request={self.request_id} status={self.status}>"

    @property
    def trip_status(self) -> TripStatus:
        return TripStatus(self.status)

    @property
    def pickup_point(self) -> GeoPoint:
        return GeoPoint(self.start_location["latitude"], self.start_location["longitude"])

    def to_dto(self) -> TripView:
        return TripView(
            id=self.id,
            request_id=self.request_id,
            driver_id=self.driver_id,
            vehicle_id=self.vehicle_id,
            status=self.trip_status,
            scheduled_start=self.scheduled_start,
            scheduled_end=self.scheduled_end,
            start_location=dict(self.start_location),
            end_location=dict(self.end_location),
            route=tuple(p.to_dto() for p in self.route),
            start_time=self.start_time,
            end_time=self.end_time,
            return_time=self.return_time,
            distance_km=self.distance_km,
            duration_minutes=self.duration_minutes,
            average_speed_kmh=self.average_speed_kmh,
        )


class TripRoutePointModel(Base):
    __tablename__ = "trip_route_points"

    __table_args__ = (
        Index("idx_route_point_trip", "trip_id", "sequence"),
    )

    trip_id: Mapped[UUID] = mapped_column(ForeignKey("trips.id"), nullable=False)
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    latitude: Mapped[float] = mapped_column(Float, nullable=False)
    longitude: Mapped[float] = mapped_column(Float, nullable=False)
    recorded_at: Mapped[datetime] = mapped_column(nullable=False)

    trip: Mapped[TripModel] = relationship(back_populates="route")

    def to_dto(self) -> RoutePoint:
        return RoutePoint(self.latitude, self.longitude, self.recorded_at)
