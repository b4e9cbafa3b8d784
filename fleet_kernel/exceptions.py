"""
Typed Exception Hierarchy for the fleet request kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers (a transport layer, the orchestrator, tests) must tell apart "this
request does not exist", "you may not do that", "not at this stage" and
"your input is malformed" without parsing message text.  Every exception
therefore carries:

  1. A TYPED class (catch by type, not message)
  2. A CODE class attribute (machine-readable, API-safe)
  3. An HTTP_STATUS class attribute on each category base, so a transport
     layer can map kinds to distinguishable responses
  4. Structured DATA attributes (ids, stages, actions)

Example:
    try:
        lifecycle.approve(request_id, actor_id)
    except ActionForbiddenError as e:
        return {"error": e.code, "stage": e.stage, "action": e.action}, e.http_status

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    FleetError (base)
    |
    +-- NotFoundError                      404
    |   +-- RequestNotFoundError
    |   +-- TripNotFoundError
    |   +-- UserNotFoundError
    |   +-- VehicleNotFoundError
    |   +-- OfficeNotFoundError
    |
    +-- ForbiddenError                     403
    |   +-- ActionForbiddenError
    |   +-- NotRequesterError
    |   +-- NotAssignedDriverError
    |
    +-- InvalidStateError                  409
    |   +-- ActionNotAllowedError
    |   +-- CorrectionPendingError
    |   +-- TripStateError
    |   +-- ResourceUnavailableError
    |   +-- AssignmentConflictError
    |   +-- ConcurrentModificationError
    |
    +-- ValidationError                    400
    |   +-- MissingReasonError
    |   +-- InvalidWindowError
    |   +-- CapacityError
    |   +-- InvalidParticipantError
    |   +-- InvalidSupervisorError
    |   +-- InvalidPayloadError
    |
    +-- WorkflowConfigurationError         500
    |
    +-- ImmutabilityViolationError         500

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
NotFound        | REQUEST_NOT_FOUND           | Request id unknown for the kind
                | TRIP_NOT_FOUND              | Trip id / request id has no trip
                | USER_NOT_FOUND              | Actor, driver or participant unknown
                | VEHICLE_NOT_FOUND           | Vehicle id unknown
                | OFFICE_NOT_FOUND            | Origin or pickup office unknown
----------------|-----------------------------|-----------------------------------------
Forbidden       | ACTION_FORBIDDEN            | Actor lacks role / supervisor match
                | NOT_REQUESTER               | cancel/resubmit/update by non-requester
                | NOT_ASSIGNED_DRIVER         | Trip action by someone else
----------------|-----------------------------|-----------------------------------------
InvalidState    | ACTION_NOT_ALLOWED          | Action not in the stage's allowed set
                | CORRECTION_PENDING          | Needs correction, resubmit first
                | TRIP_STATE                  | Trip not in the required status
                | RESOURCE_UNAVAILABLE        | Driver/vehicle busy or out of service
                | ASSIGNMENT_CONFLICT         | Lost a concurrent assignment race
                | CONCURRENT_MODIFICATION     | Request changed under the caller
----------------|-----------------------------|-----------------------------------------
Validation      | MISSING_REASON              | Empty reason/note text
                | INVALID_WINDOW              | End before start, start too soon
                | CAPACITY_EXCEEDED           | Vehicle seats < passenger count
                | INVALID_PARTICIPANT         | Participant id unknown
                | INVALID_SUPERVISOR          | Supervisor missing/not eligible
                | INVALID_PAYLOAD             | Other malformed request fields
----------------|-----------------------------|-----------------------------------------
Configuration   | WORKFLOW_CONFIGURATION      | No transition matched, bad YAML
Immutability    | IMMUTABILITY_VIOLATION      | Update/delete of action history

===============================================================================
DESIGN DECISIONS
===============================================================================

1. Category bases carry ``http_status``; leaves inherit it.  A transport
   layer catches ``FleetError`` and reads ``code`` plus ``http_status``.

2. Lost races are InvalidState (409), never retried inside the kernel.
   The caller re-fetches availability and retries explicitly.

3. WorkflowConfigurationError is a programmer/deployment error.  It is
   raised loudly instead of silently defaulting to a stage.
===============================================================================
"""

from uuid import UUID


class FleetError(Exception):
    """
    Base exception for all fleet kernel errors.

    All subclasses must have a ``code`` class attribute.
    """

    code: str = "FLEET_ERROR"
    http_status: int = 500


# Not found


class NotFoundError(FleetError):
    """Base exception for missing entities."""

    code: str = "NOT_FOUND"
    http_status: int = 404

    entity_type: str = "entity"

    def __init__(self, entity_id: UUID | str):
        self.entity_id = str(entity_id)
        super().__init__(f"{self.entity_type} not found: {entity_id}")


class RequestNotFoundError(NotFoundError):
    code: str = "REQUEST_NOT_FOUND"
    entity_type = "Request"


class TripNotFoundError(NotFoundError):
    code: str = "TRIP_NOT_FOUND"
    entity_type = "Trip"


class UserNotFoundError(NotFoundError):
    code: str = "USER_NOT_FOUND"
    entity_type = "User"


class VehicleNotFoundError(NotFoundError):
    code: str = "VEHICLE_NOT_FOUND"
    entity_type = "Vehicle"


class OfficeNotFoundError(NotFoundError):
    code: str = "OFFICE_NOT_FOUND"
    entity_type = "Office"


# Forbidden


class ForbiddenError(FleetError):
    """Base exception for permission failures."""

    code: str = "FORBIDDEN"
    http_status: int = 403


class ActionForbiddenError(ForbiddenError):
    """Actor does not satisfy the role requirements of the current stage."""

    code: str = "ACTION_FORBIDDEN"

    def __init__(self, actor_id: UUID | str, action: str, stage: str, reason: str):
        self.actor_id = str(actor_id)
        self.action = action
        self.stage = stage
        self.reason = reason
        super().__init__(
            f"Actor {actor_id} may not {action} at stage {stage}: {reason}"
        )


class NotRequesterError(ForbiddenError):
    """Only the original requester may perform this action."""

    code: str = "NOT_REQUESTER"

    def __init__(self, actor_id: UUID | str, request_id: UUID | str, action: str):
        self.actor_id = str(actor_id)
        self.request_id = str(request_id)
        self.action = action
        super().__init__(
            f"Only the requester may {action} request {request_id}"
        )


class NotAssignedDriverError(ForbiddenError):
    """Trip operations are reserved for the trip's driver."""

    code: str = "NOT_ASSIGNED_DRIVER"

    def __init__(self, actor_id: UUID | str, trip_id: UUID | str):
        self.actor_id = str(actor_id)
        self.trip_id = str(trip_id)
        super().__init__(f"Actor {actor_id} is not the driver of trip {trip_id}")


# Invalid state


class InvalidStateError(FleetError):
    """Base exception for actions not permitted in the current state."""

    code: str = "INVALID_STATE"
    http_status: int = 409


class ActionNotAllowedError(InvalidStateError):
    """The action is not in the current stage's allowed set."""

    code: str = "ACTION_NOT_ALLOWED"

    def __init__(self, action: str, stage: str, detail: str | None = None):
        self.action = action
        self.stage = stage
        self.detail = detail
        message = f"Action {action} is not allowed at stage {stage}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class CorrectionPendingError(InvalidStateError):
    """Request awaits correction; the requester must resubmit first."""

    code: str = "CORRECTION_PENDING"

    def __init__(self, request_id: UUID | str):
        self.request_id = str(request_id)
        super().__init__(
            f"Request {request_id} needs correction and must be resubmitted first"
        )


class TripStateError(InvalidStateError):
    """Trip is not in the status the operation requires."""

    code: str = "TRIP_STATE"

    def __init__(self, trip_id: UUID | str, status: str, expected: tuple[str, ...]):
        self.trip_id = str(trip_id)
        self.status = status
        self.expected = expected
        super().__init__(
            f"Trip {trip_id} is {status}; expected one of {', '.join(expected)}"
        )


class ResourceUnavailableError(InvalidStateError):
    """Driver or vehicle is busy, out of service, or committed elsewhere."""

    code: str = "RESOURCE_UNAVAILABLE"

    def __init__(self, resource_type: str, resource_id: UUID | str, reason: str):
        self.resource_type = resource_type
        self.resource_id = str(resource_id)
        self.reason = reason
        super().__init__(f"{resource_type} {resource_id} is unavailable: {reason}")


class AssignmentConflictError(InvalidStateError):
    """A concurrent assignment won the race for the driver, vehicle or request."""

    code: str = "ASSIGNMENT_CONFLICT"

    def __init__(self, request_id: UUID | str, detail: str):
        self.request_id = str(request_id)
        self.detail = detail
        super().__init__(
            f"Assignment for request {request_id} conflicted: {detail}"
        )


class ConcurrentModificationError(InvalidStateError):
    """Optimistic version check failed on a lifecycle update."""

    code: str = "CONCURRENT_MODIFICATION"

    def __init__(self, entity_type: str, entity_id: UUID | str):
        self.entity_type = entity_type
        self.entity_id = str(entity_id)
        super().__init__(
            f"{entity_type} {entity_id} was modified by another transaction"
        )


# Validation


class ValidationError(FleetError):
    """Base exception for malformed input."""

    code: str = "VALIDATION_ERROR"
    http_status: int = 400

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class MissingReasonError(ValidationError):
    code: str = "MISSING_REASON"

    def __init__(self, field: str):
        super().__init__(f"{field} is required", field=field)


class InvalidWindowError(ValidationError):
    code: str = "INVALID_WINDOW"


class CapacityError(ValidationError):
    code: str = "CAPACITY_EXCEEDED"

    def __init__(self, vehicle_id: UUID | str, capacity: int, passenger_count: int):
        self.vehicle_id = str(vehicle_id)
        self.capacity = capacity
        self.passenger_count = passenger_count
        super().__init__(
            f"Vehicle {vehicle_id} seats {capacity}, "
            f"request needs {passenger_count}",
            field="passenger_count",
        )


class InvalidParticipantError(ValidationError):
    code: str = "INVALID_PARTICIPANT"


class InvalidSupervisorError(ValidationError):
    code: str = "INVALID_SUPERVISOR"


class InvalidPayloadError(ValidationError):
    code: str = "INVALID_PAYLOAD"


# Configuration


class WorkflowConfigurationError(FleetError):
    """Workflow definitions are inconsistent or no transition matched."""

    code: str = "WORKFLOW_CONFIGURATION"
    http_status: int = 500


# Immutability


class ImmutabilityViolationError(FleetError):
    """Attempted to modify an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"
    http_status: int = 500

    def __init__(self, entity_type: str, entity_id: UUID | str, reason: str):
        self.entity_type = entity_type
        self.entity_id = str(entity_id)
        self.reason = reason
        super().__init__(
            f"Cannot modify {entity_type} {entity_id}: {reason}"
        )
