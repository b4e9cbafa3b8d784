"""
DirectoryService -- SQL-backed identity, office and vehicle lookups.

Implements the ``IdentityProvider`` protocol over ``users`` and the simple
by-id registries the assignment engine validates against.  Lookups that
the assignment critical section depends on can lock the row
(``for_update=True``); on PostgreSQL that is ``SELECT ... FOR UPDATE``, on
SQLite the IMMEDIATE transaction already serializes writers.
"""

from __future__ import annotations

from collections.abc import Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from fleet_kernel.domain.actors import Actor
from fleet_kernel.exceptions import (
    OfficeNotFoundError,
    UserNotFoundError,
    VehicleNotFoundError,
)
from fleet_kernel.models.directory import OfficeModel, UserModel, VehicleModel


class DirectoryService:

    def __init__(self, session: Session):
        self.session = session

    # IdentityProvider

    def find_by_id(self, user_id: UUID) -> Actor | None:
        user = self.session.get(UserModel, user_id)
        return user.to_actor() if user is not None else None

    def find_by_role(self, role: str) -> Sequence[Actor]:
        # roles is a JSON list; filter in Python for portability.
        users = self.session.execute(select(UserModel)).scalars().all()
        return [u.to_actor() for u in users if role in (u.roles or ())]

    # Loaders

    def require_actor(self, user_id: UUID) -> Actor:
        return self.get_user(user_id).to_actor()

    def get_user(self, user_id: UUID, for_update: bool = False) -> UserModel:
        return self._get(UserModel, user_id, for_update, UserNotFoundError)

    def get_office(self, office_id: UUID) -> OfficeModel:
        return self._get(OfficeModel, office_id, False, OfficeNotFoundError)

    def get_vehicle(self, vehicle_id: UUID, for_update: bool = False) -> VehicleModel:
        return self._get(VehicleModel, vehicle_id, for_update, VehicleNotFoundError)

    def list_vehicles(self) -> list[VehicleModel]:
        return list(
            self.session.execute(
                select(VehicleModel).order_by(VehicleModel.plate_number)
            ).scalars()
        )

    def list_drivers(self) -> list[UserModel]:
        users = self.session.execute(select(UserModel).order_by(UserModel.name)).scalars()
        return [u for u in users if "driver" in (u.roles or ())]

    def _get(self, model, entity_id, for_update, not_found):
        if for_update:
            row = self.session.execute(
                select(model).where(model.id == entity_id).with_for_update()
            ).scalar_one_or_none()
        else:
            row = self.session.get(model, entity_id)
        if row is None:
            raise not_found(entity_id)
        return row
