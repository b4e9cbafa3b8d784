"""
NotificationDispatcher -- best-effort, post-commit delivery of notifications.

Responsibility:
    Delivers the ``NotificationIntent`` hooks returned by lifecycle,
    assignment and trip operations, after the authoritative state change
    has been committed.  Delivery runs on a small thread pool with a
    bounded wait; failures and timeouts are logged and swallowed.

Architecture position:
    Services -- outbound adapter.  Called by ``WorkflowOrchestrator``
    after ``session_scope`` commits.  Never called inside a transaction.

Invariants enforced:
    - ``dispatch`` never raises because of a sender failure.
    - ``dispatch`` returns within roughly ``timeout_seconds``; a sender
      that is still running is abandoned, not awaited.

Failure modes:
    - Sender exception  -> ``notification_delivery_failed`` (WARNING).
    - Sender too slow   -> ``notification_delivery_timed_out`` (WARNING).
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import Protocol
from uuid import UUID

from fleet_kernel.domain.notifications import NotificationIntent, NotificationType
from fleet_kernel.logging_config import get_logger

logger = get_logger("services.notifications")


class NotificationSender(Protocol):
    """Delivery channel (push, e-mail, in-app inbox...)."""

    def notify(
        self,
        user_id: UUID,
        type: NotificationType,
        title: str,
        body: str,
        related_id: UUID | None = None,
    ) -> None:
        ...

    def notify_many(
        self,
        user_ids: Sequence[UUID],
        type: NotificationType,
        title: str,
        body: str,
        related_id: UUID | None = None,
    ) -> None:
        ...


class LoggingNotificationSender:
    """Sender that only writes a structured log line per recipient."""

    def notify(self, user_id, type, title, body, related_id=None) -> None:
        logger.info(
            "notification_sent",
            extra={
                "recipient": str(user_id),
                "notification_type": type.value,
                "title": title,
                "related_id": str(related_id) if related_id else None,
            },
        )

    def notify_many(self, user_ids, type, title, body, related_id=None) -> None:
        for user_id in user_ids:
            self.notify(user_id, type, title, body, related_id)


@dataclass(frozen=True)
class DispatchReport:
    delivered: int = 0
    failed: int = 0
    timed_out: int = 0

    @property
    def attempted(self) -> int:
        return self.delivered + self.failed + self.timed_out


class NotificationDispatcher:

    def __init__(
        self,
        sender: NotificationSender | None = None,
        timeout_seconds: float = 5.0,
        max_workers: int = 4,
        executor: ThreadPoolExecutor | None = None,
    ):
        self._sender = sender or LoggingNotificationSender()
        self._timeout = timeout_seconds
        self._executor = executor or ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="fleet-notify",
        )

    def dispatch(self, intents: Iterable[NotificationIntent]) -> DispatchReport:
        pending: list[tuple[NotificationIntent, Future]] = []
        for intent in intents:
            future = self._executor.submit(
                self._sender.notify_many,
                intent.recipients,
                intent.type,
                intent.title,
                intent.body,
                intent.related_id,
            )
            pending.append((intent, future))

        delivered = failed = timed_out = 0
        if pending:
            wait([future for _, future in pending], timeout=self._timeout)
        # Only unfinished futures time out; a sender's own TimeoutError is a failure.
        for intent, future in pending:
            if not future.done():
                timed_out += 1
                logger.warning(
                    "notification_delivery_timed_out",
                    extra=self._describe(intent, timeout_seconds=self._timeout),
                )
                continue
            exc = future.exception()
            if exc is not None:
                failed += 1
                logger.warning(
                    "notification_delivery_failed",
                    extra=self._describe(intent),
                    exc_info=(type(exc), exc, exc.__traceback__),
                )
                continue
            delivered += 1
        return DispatchReport(delivered, failed, timed_out)

    @property
    def timeout_seconds(self) -> float:
        return self._timeout

    def shutdown(self) -> None:
        self._executor.shutdown(wait=False)

    @staticmethod
    def _describe(intent: NotificationIntent, **fields) -> dict:
        return {
            "notification_type": intent.type.value,
            "recipients": [str(r) for r in intent.recipients],
            "related_id": str(intent.related_id) if intent.related_id else None,
            **fields,
        }
