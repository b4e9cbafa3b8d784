"""Kernel ORM models. Importing this package registers their tables."""

from fleet_kernel.models.directory import (
    OUT_OF_SERVICE,
    OfficeModel,
    UserModel,
    VehicleModel,
    VehicleStatus,
)
from fleet_kernel.models.request import (
    RequestActionModel,
    RequestCorrectionModel,
    ResourceRequestModel,
)

__all__ = [
    "OUT_OF_SERVICE",
    "OfficeModel",
    "RequestActionModel",
    "RequestCorrectionModel",
    "ResourceRequestModel",
    "UserModel",
    "VehicleModel",
    "VehicleStatus",
]
