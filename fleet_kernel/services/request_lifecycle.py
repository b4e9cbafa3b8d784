"""
RequestLifecycleService -- owns every mutation of a request's stage.

Responsibility:
    Loads a request, asks the ``WorkflowEngine`` for permission and the next
    stage, then applies the transition: sets ``current_stage``, appends
    exactly one action-history entry, maintains correction history and the
    terminal snapshot fields, and returns the post-commit notification
    intents.  One subclass per request kind adds creation and editing of
    its payload (``fleet_modules.<kind>.service``).

Architecture position:
    Kernel > Services.  Flush-only; the caller commits.  Consumes the
    engine, an ``IdentityProvider`` and a ``Clock``.

Invariants enforced:
    - Stage change and its history entry are flushed together and commit
      together (same session, same flush).
    - The request row is version-checked on UPDATE; a concurrent change
      raises ConcurrentModificationError and nothing is written.
    - Input validation happens before any mutation.
    - Resubmission re-enters the workflow according to the kind's
      resubmit policy: RESUME returns to the interrupted stage, RESTART
      re-routes as a fresh submission.

Failure modes:
    - RequestNotFoundError / UserNotFoundError (404)
    - ActionForbiddenError / NotRequesterError (403)
    - ActionNotAllowedError / CorrectionPendingError /
      ConcurrentModificationError (409)
    - MissingReasonError and other ValidationErrors (400)
"""

from __future__ import annotations

from collections.abc import Iterable
from decimal import Decimal
from typing import Any, ClassVar
from uuid import UUID, uuid4

from sqlalchemy import and_, or_, select
from sqlalchemy.orm import Session

from fleet_kernel.domain.actors import Actor, IdentityProvider, Role
from fleet_kernel.domain.clock import Clock
from fleet_kernel.domain.notifications import (
    NotificationIntent,
    NotificationType,
    OperationResult,
    notify,
)
from fleet_kernel.domain.requests import RequestView, Urgency
from fleet_kernel.domain.workflow import (
    SUPERVISOR_ROLE,
    RequestKind,
    ResubmitPolicy,
    TransitionContext,
    Workflow,
    WorkflowAction,
)
from fleet_kernel.exceptions import (
    ActionForbiddenError,
    ActionNotAllowedError,
    ConcurrentModificationError,
    CorrectionPendingError,
    InvalidPayloadError,
    InvalidSupervisorError,
    MissingReasonError,
    NotRequesterError,
    RequestNotFoundError,
    UserNotFoundError,
)
from fleet_kernel.logging_config import get_logger
from fleet_kernel.models.request import (
    RequestActionModel,
    RequestCorrectionModel,
    ResourceRequestModel,
)
from fleet_kernel.services.base import BaseService
from fleet_kernel.services.directory_service import DirectoryService
from fleet_kernel.services.workflow_engine import TransitionPlan, WorkflowEngine

logger = get_logger("services.request_lifecycle")


def _require_text(value: str | None, field: str) -> str:
    if value is None or not value.strip():
        raise MissingReasonError(field)
    return value.strip()


class RequestLifecycleService(BaseService):
    """
    Shared lifecycle operations for one request kind.

    Subclasses set ``kind`` and ``model_class`` and implement ``create``.
    """

    kind: ClassVar[RequestKind]
    model_class: ClassVar[type[ResourceRequestModel]]

    def __init__(
        self,
        session: Session,
        engine: WorkflowEngine,
        identity: IdentityProvider | None = None,
        clock: Clock | None = None,
    ):
        super().__init__(session, clock)
        self._engine = engine
        self._directory = DirectoryService(session)
        self._identity = identity or self._directory

    @property
    def engine(self) -> WorkflowEngine:
        return self._engine

    @property
    def workflow(self) -> Workflow:
        return self._engine.workflow(self.kind)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def view(self, model: ResourceRequestModel) -> RequestView:
        return model.to_view(self.workflow.status_of(model.current_stage))

    def get(self, request_id: UUID, actor_id: UUID) -> RequestView:
        actor = self._require_actor(actor_id)
        model = self.load(request_id)
        if not self._is_visible(actor, model):
            raise ActionForbiddenError(
                actor.id, "view", model.current_stage,
                "request is not at a stage this actor reviews",
            )
        return self.view(model)

    def find_all(self, actor_id: UUID) -> list[RequestView]:
        """Own requests, requests acted upon, and requests awaiting this actor."""
        actor = self._require_actor(actor_id)
        model = self.model_class
        visibility = self._engine.visibility(actor, self.kind)
        acted = select(RequestActionModel.request_id).where(
            RequestActionModel.performed_by == actor.id
        )
        clauses = [model.requester_id == actor.id, model.id.in_(acted)]
        if visibility.open_stages:
            clauses.append(model.current_stage.in_(visibility.open_stages))
        if visibility.supervisor_stages:
            clauses.append(and_(
                model.current_stage.in_(visibility.supervisor_stages),
                model.supervisor_id == actor.id,
            ))
        driver_column = self._driver_column()
        if visibility.driver_stages and driver_column is not None:
            clauses.append(and_(
                model.current_stage.in_(visibility.driver_stages),
                driver_column == actor.id,
            ))
        rows = self.session.execute(
            select(model).where(or_(*clauses)).order_by(model.created_at.desc(), model.id)
        ).scalars().all()
        return [self.view(r) for r in rows]

    def find_history(self, actor_id: UUID) -> list[RequestView]:
        """Requests this actor has performed any workflow action on."""
        model = self.model_class
        acted = select(RequestActionModel.request_id).where(
            RequestActionModel.performed_by == actor_id
        )
        rows = self.session.execute(
            select(model).where(model.id.in_(acted)).order_by(model.created_at.desc(), model.id)
        ).scalars().all()
        return [self.view(r) for r in rows]

    # ------------------------------------------------------------------
    # Reviewer actions
    # ------------------------------------------------------------------

    def approve(
        self, request_id: UUID, actor_id: UUID, comments: str | None = None,
    ) -> OperationResult[RequestView]:
        actor = self._require_actor(actor_id)
        model = self.load(request_id)
        if model.current_stage == self.workflow.correction_stage:
            raise CorrectionPendingError(model.id)

        plan = self._engine.plan(
            actor, model.snapshot(), WorkflowAction.APPROVE, self._context(model),
        )
        self._apply(model, plan, actor.id, notes=comments)

        notes: tuple[NotificationIntent, ...] = notify(
            [model.requester_id],
            NotificationType.REQUEST_APPROVED,
            "Request approved",
            f"Your {self.kind.value} request was approved and is now {plan.status}.",
            model.id,
            exclude=[actor.id],
        )
        next_stage = self.workflow.stage(plan.to_stage)
        if not next_stage.terminal and plan.to_stage != self.workflow.assignment_stage:
            notes += notify(
                self._responsible_parties(model, plan.to_stage),
                NotificationType.REQUEST_APPROVED,
                "Request awaiting your review",
                f"A {self.kind.value} request is waiting at {plan.to_stage}.",
                model.id,
                exclude=[actor.id, model.requester_id],
            )
        return OperationResult(self.view(model), notes)

    def reject(
        self, request_id: UUID, actor_id: UUID, reason: str,
    ) -> OperationResult[RequestView]:
        reason = _require_text(reason, "reason")
        actor = self._require_actor(actor_id)
        model = self.load(request_id)
        plan = self._engine.plan(
            actor, model.snapshot(), WorkflowAction.REJECT, self._context(model),
        )
        now = self._clock.now()
        model.rejection_reason = reason
        model.rejected_at = now
        model.rejected_by = actor.id
        self._apply(model, plan, actor.id, notes=reason)

        return OperationResult(self.view(model), notify(
            [model.requester_id],
            NotificationType.REQUEST_REJECTED,
            "Request rejected",
            f"Your {self.kind.value} request was rejected: {reason}",
            model.id,
        ))

    def send_back(
        self, request_id: UUID, actor_id: UUID, note: str,
    ) -> OperationResult[RequestView]:
        note = _require_text(note, "correction_note")
        actor = self._require_actor(actor_id)
        model = self.load(request_id)
        plan = self._engine.plan(
            actor, model.snapshot(), WorkflowAction.SEND_BACK, self._context(model),
        )
        now = self._clock.now()
        model.corrections.append(RequestCorrectionModel(
            request_id=model.id,
            sequence=len(model.corrections) + 1,
            stage=plan.from_stage,
            requested_by=actor.id,
            requested_at=now,
            correction_note=note,
            resubmission_count=0,
        ))
        model.correction_note = note
        model.corrected_at = now
        model.corrected_by = actor.id
        self._apply(model, plan, actor.id, notes=note)

        return OperationResult(self.view(model), notify(
            [model.requester_id],
            NotificationType.REQUEST_NEEDS_CORRECTION,
            "Request needs correction",
            f"Your {self.kind.value} request was sent back: {note}",
            model.id,
        ))

    def fulfill(
        self, request_id: UUID, actor_id: UUID, notes: str | None = None,
    ) -> OperationResult[RequestView]:
        actor = self._require_actor(actor_id)
        model = self.load(request_id)
        plan = self._engine.plan(
            actor, model.snapshot(), WorkflowAction.FULFILL, self._context(model),
        )
        model.fulfilled_at = self._clock.now()
        model.fulfilled_by = actor.id
        model.fulfillment_notes = notes
        self._apply(model, plan, actor.id, notes=notes)

        return OperationResult(self.view(model), notify(
            [model.requester_id],
            NotificationType.REQUEST_FULFILLED,
            "Request fulfilled",
            f"Your {self.kind.value} request has been fulfilled.",
            model.id,
        ))

    # ------------------------------------------------------------------
    # Requester actions
    # ------------------------------------------------------------------

    def resubmit(
        self, request_id: UUID, requester_id: UUID, notes: str | None = None,
    ) -> OperationResult[RequestView]:
        actor = self._require_actor(requester_id)
        model = self.load(request_id)
        prior_stage = model.current_stage
        context = self._context(model, resume_stage=self._resume_stage(model))
        plan = self._engine.plan(actor, model.snapshot(), WorkflowAction.RESUBMIT, context)

        now = self._clock.now()
        interrupted_by = (
            model.corrected_by if prior_stage == self.workflow.correction_stage
            else model.rejected_by
        )
        latest = model.latest_correction()
        if latest is not None:
            latest.resubmission_count += 1
            latest.resolved_at = now
        model.rejection_reason = None
        model.rejected_at = None
        model.rejected_by = None
        model.correction_note = None
        model.corrected_at = None
        model.corrected_by = None
        model.resubmitted_at = now
        self._apply(
            model, plan, actor.id, notes=notes,
            metadata={"resubmit_policy": self.workflow.resubmit_policy.value},
        )

        view = self.view(model)
        recipients = [interrupted_by, *view.approvers]
        recipients += self._responsible_parties(model, plan.to_stage)
        return OperationResult(view, notify(
            recipients,
            NotificationType.REQUEST_RESUBMITTED,
            "Request resubmitted",
            f"A {self.kind.value} request was resubmitted and is at {plan.to_stage}.",
            model.id,
            exclude=[actor.id],
        ))

    def cancel(
        self, request_id: UUID, requester_id: UUID, reason: str,
    ) -> OperationResult[RequestView]:
        reason = _require_text(reason, "reason")
        actor = self._require_actor(requester_id)
        model = self.load(request_id)
        plan = self._engine.plan(
            actor, model.snapshot(), WorkflowAction.CANCEL, self._context(model),
        )
        model.cancellation_reason = reason
        model.cancelled_at = self._clock.now()
        model.cancelled_by = actor.id
        self._apply(model, plan, actor.id, notes=reason)

        recipients = [model.supervisor_id] + [a.performed_by for a in model.actions]
        return OperationResult(self.view(model), notify(
            recipients,
            NotificationType.REQUEST_CANCELLED,
            "Request cancelled",
            f"A {self.kind.value} request was cancelled: {reason}",
            model.id,
            exclude=[actor.id],
        ))

    # ------------------------------------------------------------------
    # Building blocks for subclasses and collaborating services
    # ------------------------------------------------------------------

    def load(self, request_id: UUID) -> ResourceRequestModel:
        model = self.session.get(self.model_class, request_id)
        if model is None:
            raise RequestNotFoundError(request_id)
        return model

    def apply_plan(
        self,
        model: ResourceRequestModel,
        plan: TransitionPlan,
        actor_id: UUID,
        notes: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> RequestActionModel:
        """Apply an already-authorized plan (used by assignment and trips)."""
        return self._apply(model, plan, actor_id, notes=notes, metadata=metadata)

    def context_for(self, model: ResourceRequestModel) -> TransitionContext:
        return self._context(model)

    def require_actor(self, user_id: UUID) -> Actor:
        return self._require_actor(user_id)

    @property
    def directory(self) -> DirectoryService:
        return self._directory

    def _apply(
        self,
        model: ResourceRequestModel,
        plan: TransitionPlan,
        actor_id: UUID,
        notes: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> RequestActionModel:
        if model.current_stage != plan.from_stage:
            raise ConcurrentModificationError("Request", model.id)
        if plan.override is not None:
            metadata = {**(metadata or {}), "override": plan.override}
        entry = RequestActionModel(
            request_id=model.id,
            sequence=len(model.actions) + 1,
            action=plan.action.value,
            performed_by=actor_id,
            performed_at=self._clock.now(),
            stage=plan.from_stage,
            to_stage=plan.to_stage,
            notes=notes,
            action_metadata=metadata,
        )
        model.actions.append(entry)
        model.current_stage = plan.to_stage
        self._flush(lambda: ConcurrentModificationError("Request", model.id))

        logger.info(
            "request_transitioned",
            extra={
                "kind": self.kind.value,
                "request_id": str(model.id),
                "action": plan.action.value,
                "from_stage": plan.from_stage,
                "to_stage": plan.to_stage,
                "status": plan.status,
                "performed_by": str(actor_id),
                "override": plan.override,
            },
        )
        return entry

    def _submit(
        self, model: ResourceRequestModel, requester: Actor, notes: str | None = None,
    ) -> TransitionPlan:
        """Route a freshly built request from the entry stage into review."""
        if model.id is None:
            model.id = uuid4()
        model.current_stage = self.workflow.entry_stage
        self.session.add(model)
        plan = self._engine.plan(
            requester,
            model.snapshot(),
            WorkflowAction.SUBMIT,
            TransitionContext(requester_is_supervisor=requester.is_supervisor),
        )
        self._apply(model, plan, requester.id, notes=notes)
        logger.info(
            "request_created",
            extra={
                "kind": self.kind.value,
                "request_id": str(model.id),
                "requester": str(requester.id),
                "initial_stage": plan.to_stage,
            },
        )
        return plan

    def _creation_notifications(
        self,
        model: ResourceRequestModel,
        plan: TransitionPlan,
        extra_recipients: Iterable[UUID] = (),
    ) -> tuple[NotificationIntent, ...]:
        intents = notify(
            self._responsible_parties(model, plan.to_stage),
            NotificationType.REQUEST_CREATED,
            "New request awaiting review",
            f"A new {self.kind.value} request is waiting at {plan.to_stage}.",
            model.id,
            exclude=[model.requester_id],
        )
        intents += notify(
            extra_recipients,
            NotificationType.REQUEST_CREATED,
            "You were added to a request",
            f"You are listed on a {self.kind.value} request.",
            model.id,
            exclude=[model.requester_id],
        )
        return intents

    def _require_actor(self, user_id: UUID) -> Actor:
        actor = self._identity.find_by_id(user_id)
        if actor is None:
            raise UserNotFoundError(user_id)
        return actor

    def _require_requester(self, user_id: UUID) -> Actor:
        actor = self._require_actor(user_id)
        if not actor.has_role(Role.STAFF):
            raise ActionForbiddenError(
                actor.id, WorkflowAction.SUBMIT.value, self.workflow.entry_stage,
                "only staff members may submit requests",
            )
        return actor

    def _resolve_supervisor(self, requester: Actor, supervisor_id: UUID | None) -> UUID | None:
        """Supervisors skip first-tier review and carry no supervisor."""
        if requester.is_supervisor:
            return None
        if supervisor_id is None:
            raise InvalidSupervisorError(
                "a supervisor is required for non-supervisor requesters",
                field="supervisor_id",
            )
        supervisor = self._identity.find_by_id(supervisor_id)
        if supervisor is None or not supervisor.is_supervisor:
            raise InvalidSupervisorError(
                f"user {supervisor_id} is not a supervisor", field="supervisor_id",
            )
        if supervisor.id == requester.id:
            raise InvalidSupervisorError(
                "requester cannot supervise their own request", field="supervisor_id",
            )
        if requester.department and supervisor.department != requester.department:
            raise InvalidSupervisorError(
                f"supervisor {supervisor_id} is not in department {requester.department}",
                field="supervisor_id",
            )
        return supervisor.id

    def _require_editable(self, model: ResourceRequestModel, requester_id: UUID) -> None:
        """Payload edits: awaiting correction, or at first review before any approval."""
        if model.requester_id != requester_id:
            raise NotRequesterError(requester_id, model.id, "update")
        submitted = model.latest_action(WorkflowAction.SUBMIT)
        untouched = (
            submitted is not None
            and model.current_stage == submitted.to_stage
            and model.latest_action(WorkflowAction.APPROVE) is None
        )
        if model.current_stage != self.workflow.correction_stage and not untouched:
            raise ActionNotAllowedError(
                "update", model.current_stage,
                "only requests awaiting correction or first review can be edited",
            )

    def _require_positive(self, value: int, field: str) -> int:
        if value is None or int(value) < 1:
            raise InvalidPayloadError(f"{field} must be at least 1", field=field)
        return int(value)

    def _require_payload_text(self, value: str | None, field: str) -> str:
        if value is None or not value.strip():
            raise InvalidPayloadError(f"{field} is required", field=field)
        return value.strip()

    def _parse_urgency(self, value: Urgency | str | None) -> Urgency:
        if value is None:
            return Urgency.NORMAL
        try:
            return Urgency(value)
        except ValueError as exc:
            choices = ", ".join(u.value for u in Urgency)
            raise InvalidPayloadError(
                f"urgency must be one of {choices}",
                field="urgency",
            ) from exc

    def _require_non_negative(self, value: Decimal | None, field: str) -> Decimal | None:
        if value is None:
            return None
        amount = Decimal(str(value))
        if amount < 0:
            raise InvalidPayloadError(f"{field} cannot be negative", field=field)
        return amount

    def _context(
        self, model: ResourceRequestModel, resume_stage: str | None = None,
    ) -> TransitionContext:
        requester = self._identity.find_by_id(model.requester_id)
        is_supervisor = (
            requester.is_supervisor if requester is not None else model.supervisor_id is None
        )
        return TransitionContext(requester_is_supervisor=is_supervisor, resume_stage=resume_stage)

    def _resume_stage(self, model: ResourceRequestModel) -> str | None:
        """Stage the request was interrupted at (RESUME policy only)."""
        if self.workflow.resubmit_policy is not ResubmitPolicy.RESUME:
            return None
        if model.current_stage == self.workflow.correction_stage:
            latest = model.latest_correction()
            return latest.stage if latest is not None else None
        if model.current_stage == self.workflow.rejected_stage:
            rejection = model.latest_action(WorkflowAction.REJECT)
            return rejection.stage if rejection is not None else None
        return None

    def _responsible_parties(self, model: ResourceRequestModel, stage_id: str) -> list[UUID]:
        stage = self.workflow.stage(stage_id)
        parties: list[UUID] = []
        for role in stage.required_roles:
            if role == SUPERVISOR_ROLE:
                if stage.requires_supervisor_match and model.supervisor_id is not None:
                    parties.append(model.supervisor_id)
            elif role == Role.DRIVER.value and stage.requires_driver_match:
                if model.driver_id is not None:
                    parties.append(model.driver_id)
            else:
                parties.extend(a.id for a in self._identity.find_by_role(role))
        return parties

    def _driver_column(self):
        return None

    def _is_visible(self, actor: Actor, model: ResourceRequestModel) -> bool:
        if actor.id == model.requester_id:
            return True
        if any(a.performed_by == actor.id for a in model.actions):
            return True
        visibility = self._engine.visibility(actor, self.kind)
        stage = model.current_stage
        if stage in visibility.open_stages:
            return True
        if stage in visibility.supervisor_stages and model.supervisor_id == actor.id:
            return True
        return stage in visibility.driver_stages and model.driver_id == actor.id
