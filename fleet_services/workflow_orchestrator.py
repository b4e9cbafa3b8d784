"""
fleet_services.workflow_orchestrator -- transaction boundary for operations.

Responsibility:
    Runs one lifecycle, assignment or trip operation inside its own
    ``session_scope``: builds the services for the session, invokes the
    operation, commits, and only then dispatches the operation's
    notification hooks.

Architecture position:
    Services -- top of the stack.  It knows nothing about request kinds;
    the caller supplies a ``services_factory`` (for example
    ``fleet_modules.wiring.build_module_services``) that turns a
    ``Session`` into whatever bundle its operations expect.

Invariants enforced:
    - Commit happens before any notification is dispatched; a failed
      operation rolls back and dispatches nothing.
    - Notification failures never surface to the caller.
    - Every operation runs under a fresh ``correlation_id`` bound into
      ``LogContext`` so its log lines can be joined.

Failure modes:
    - Any ``FleetError`` raised by the operation propagates after rollback.

Usage:
    orchestrator = WorkflowOrchestrator(factory, NotificationDispatcher())
    view = orchestrator.execute(
        lambda s: s.vehicle.approve(request_id, actor_id),
        actor_id=actor_id, request_id=request_id,
    )
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Generic, TypeVar
from uuid import UUID, uuid4

from sqlalchemy.orm import Session, sessionmaker

from fleet_kernel.db.engine import get_session, session_scope
from fleet_kernel.domain.notifications import OperationResult
from fleet_kernel.logging_config import LogContext, get_logger
from fleet_services.notification_dispatcher import DispatchReport, NotificationDispatcher

logger = get_logger("services.orchestrator")

S = TypeVar("S")
T = TypeVar("T")


class WorkflowOrchestrator(Generic[S]):
    """Owns commit/rollback; services below it only flush.

    Contract:
        ``execute`` returns the operation's value after commit.
        ``query`` runs a read in a session that is always rolled back.
    """

    def __init__(
        self,
        services_factory: Callable[[Session], S],
        dispatcher: NotificationDispatcher | None = None,
        session_factory: sessionmaker[Session] | None = None,
    ):
        self._services_factory = services_factory
        self._dispatcher = dispatcher or NotificationDispatcher()
        self._session_factory = session_factory
        self.last_dispatch: DispatchReport | None = None

    def execute(
        self,
        operation: Callable[[S], OperationResult[T]],
        *,
        actor_id: UUID | None = None,
        request_id: UUID | None = None,
        trip_id: UUID | None = None,
    ) -> T:
        with LogContext.bind(
            correlation_id=uuid4(), actor_id=actor_id, request_id=request_id, trip_id=trip_id,
        ):
            with session_scope(self._session_factory) as session:
                result = operation(self._services_factory(session))

            self.last_dispatch = self._dispatcher.dispatch(result.notifications)
            logger.info(
                "operation_committed",
                extra={
                    "notifications": len(result.notifications),
                    "delivered": self.last_dispatch.delivered,
                    "failed": self.last_dispatch.failed + self.last_dispatch.timed_out,
                },
            )
            return result.value

    def query(self, operation: Callable[[S], T], *, actor_id: UUID | None = None) -> T:
        with LogContext.bind(correlation_id=uuid4(), actor_id=actor_id):
            session = (
                self._session_factory() if self._session_factory is not None
                else get_session()
            )
            try:
                return operation(self._services_factory(session))
            finally:
                session.rollback()
                session.close()
