"""
Vehicle Module (``fleet_modules.vehicle``).

Responsibility
--------------
Vehicle trip requests end to end: creation and correction of the request,
the multi-tier approval chain (shared lifecycle service), driver and
vehicle assignment, and the trip state machine through to the vehicle's
return to its pickup office.

Architecture position
---------------------
**Modules layer** -- payload DTOs (``models``), single-table-inheritance
ORM (``orm``), the kind service (``service``), the ``AssignmentEngine``
(``assignment``) and the ``TripService`` (``trips``).  Stage routing
lives in ``fleet_config/workflows/vehicle.yaml``.

Invariants enforced
-------------------
* Resubmission resumes at the stage that interrupted the request.
* At most one trip per request; a driver or vehicle is never committed
  to two overlapping windows.
"""

from fleet_modules.vehicle.assignment import AssignmentEngine
from fleet_modules.vehicle.models import (
    AssignmentResult,
    AvailableDriver,
    AvailableVehicle,
    RoutePoint,
    TripStatus,
    TripView,
    VehicleRequestDetails,
    VehicleRequestDraft,
)
from fleet_modules.vehicle.orm import TripModel, TripRoutePointModel, VehicleRequestModel
from fleet_modules.vehicle.service import VehicleRequestService
from fleet_modules.vehicle.trips import TripService

__all__ = [
    "AssignmentEngine",
    "AssignmentResult",
    "AvailableDriver",
    "AvailableVehicle",
    "RoutePoint",
    "TripModel",
    "TripRoutePointModel",
    "TripService",
    "TripStatus",
    "TripView",
    "VehicleRequestDetails",
    "VehicleRequestDraft",
    "VehicleRequestModel",
    "VehicleRequestService",
]
