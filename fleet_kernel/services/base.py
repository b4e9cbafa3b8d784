"""
BaseService -- shared constructor and flush contract for kernel services.

Responsibility:
    Every stateful service receives a SQLAlchemy ``Session`` and an
    injectable ``Clock``.  Services persist with ``session.flush()`` and
    never commit or roll back; the caller (``session_scope`` or the
    orchestrator) owns the transaction.

Failure modes:
    - ``_flush`` translates optimistic version failures (StaleDataError)
      and uniqueness races (IntegrityError) into the exception returned by
      the caller-supplied factory, so a lost race surfaces as a typed
      InvalidStateError instead of a raw database error.
"""

from abc import ABC
from collections.abc import Callable

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from fleet_kernel.domain.clock import Clock, SystemClock
from fleet_kernel.exceptions import FleetError
from fleet_kernel.logging_config import get_logger

logger = get_logger("services.base")


class BaseService(ABC):
    """Session + clock holder. Subclasses flush, never commit."""

    def __init__(self, session: Session, clock: Clock | None = None):
        self.session = session
        self._clock = clock or SystemClock()

    @property
    def clock(self) -> Clock:
        return self._clock

    def _flush(self, conflict: Callable[[], FleetError]) -> None:
        try:
            self.session.flush()
        except (StaleDataError, IntegrityError) as exc:
            error = conflict()
            logger.warning(
                "flush_conflict",
                extra={"error_code": error.code, "db_error": type(exc).__name__},
            )
            raise error from exc
