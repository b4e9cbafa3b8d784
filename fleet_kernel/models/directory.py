"""
Module: fleet_kernel.models.directory
Responsibility: Minimal persistence for the directory collaborators the
    workflow consumes: users (identity and roles), offices and vehicles.
    Full CRUD for these lives outside the kernel.
Architecture position: Kernel > Models.

Invariants enforced:
    - ``UserModel.version`` and ``VehicleModel.version`` are version_id_cols.
      The assignment engine increments ``assignment_count`` on both rows on
      every assignment, forcing a versioned UPDATE, so two concurrent
      assignments of the same driver or vehicle cannot both commit.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from sqlalchemy import JSON, Boolean, Float, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from fleet_kernel.db.base import TrackedBase
from fleet_kernel.domain.actors import Actor
from fleet_kernel.domain.geo import GeoPoint


class VehicleStatus(str, Enum):
    AVAILABLE = "available"
    ASSIGNED = "assigned"
    MAINTENANCE = "maintenance"
    PERMANENTLY_ASSIGNED = "permanently_assigned"


# Vehicles in these states are never offered for a trip.
OUT_OF_SERVICE: frozenset[VehicleStatus] = frozenset({
    VehicleStatus.MAINTENANCE,
    VehicleStatus.PERMANENTLY_ASSIGNED,
})


class UserModel(TrackedBase):
    __tablename__ = "users"

    __table_args__ = (
        UniqueConstraint("email", name="uq_user_email"),
    )

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[str] = mapped_column(String(200), nullable=False)
    roles: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    is_supervisor: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    department: Mapped[str | None] = mapped_column(String(100), nullable=True)
    last_assigned_at: Mapped[datetime | None]
    assignment_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<User {self.email} roles={self.roles}>"

    def to_actor(self) -> Actor:
        return Actor(
            id=self.id,
            roles=frozenset(self.roles or ()),
            is_supervisor=self.is_supervisor,
            department=self.department,
            name=self.name,
        )


class OfficeModel(TrackedBase):
    __tablename__ = "offices"

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    address: Mapped[str | None] = mapped_column(String(500), nullable=True)
    latitude: Mapped[float] = mapped_column(Float, nullable=False)
    longitude: Mapped[float] = mapped_column(Float, nullable=False)

    def __repr__(self) -> str:
        return f"<Office {self.name}>"

    @property
    def location(self) -> GeoPoint:
        return GeoPoint(self.latitude, self.longitude)

    def as_location(self) -> dict:
        return {
            "office_id": str(self.id),
            "name": self.name,
            "address": self.address,
            "latitude": self.latitude,
            "longitude": self.longitude,
        }


class VehicleModel(TrackedBase):
    __tablename__ = "vehicles"

    __table_args__ = (
        UniqueConstraint("plate_number", name="uq_vehicle_plate"),
    )

    plate_number: Mapped[str] = mapped_column(String(30), nullable=False)
    model: Mapped[str | None] = mapped_column(String(100), nullable=True)
    capacity: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(
        String(30), nullable=False, default=VehicleStatus.AVAILABLE.value,
    )
    assignment_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<Vehicle {self.plate_number} status={self.status}>"

    @property
    def vehicle_status(self) -> VehicleStatus:
        return VehicleStatus(self.status)
