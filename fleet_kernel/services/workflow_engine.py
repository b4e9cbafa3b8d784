"""
WorkflowEngine -- permission evaluation and next-stage resolution.

Responsibility:
    Answers "may this actor perform this action on this request, and
    where does the request go next?" from the stage catalog and the
    transition table.  Produces a ``TransitionPlan``; never mutates a
    request.  Callers apply the plan.

Architecture position:
    Kernel > Services -- pure.  No session, no clock.  Consumes a
    ``WorkflowCatalog`` built by ``fleet_config`` and injected by the caller.

Invariants enforced:
    - An action absent from the current stage's ``allowed_actions`` is
      never permitted.
    - submit/cancel/resubmit are reserved for the original requester.
    - cancel only from cancellable stages; send_back only from correctable
      stages.
    - The first transition whose guard holds wins.  Transitions tagged
      with an override are eligible only for that override.
    - A permitted action with no matching transition raises
      WorkflowConfigurationError rather than leaving the stage unchanged.

Failure modes:
    - ``require()``/``plan()`` raise ActionNotAllowedError (InvalidState),
      NotRequesterError or ActionForbiddenError (Forbidden).
    - Unknown guard names or stage ids raise WorkflowConfigurationError.

Audit relevance:
    Every decision emits a structured log record (``workflow_decision``, or
    ``workflow_permission_denied`` on denial) with an outcome code
    (allowed / action_not_allowed / not_requester / role_mismatch /
    supervisor_mismatch / driver_mismatch).
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from uuid import UUID

from fleet_kernel.domain.actors import Actor, compile_role_requirements
from fleet_kernel.domain.workflow import (
    BUILTIN_GUARDS,
    REQUESTER_ACTIONS,
    GuardEvaluator,
    RequestKind,
    RequestSnapshot,
    Stage,
    TransitionContext,
    Workflow,
    WorkflowAction,
    WorkflowCatalog,
)
from fleet_kernel.exceptions import (
    ActionForbiddenError,
    ActionNotAllowedError,
    NotRequesterError,
    WorkflowConfigurationError,
)
from fleet_kernel.logging_config import get_logger

logger = get_logger("services.workflow_engine")

OUTCOME_ALLOWED = "allowed"
OUTCOME_ACTION_NOT_ALLOWED = "action_not_allowed"
OUTCOME_NOT_REQUESTER = "not_requester"
OUTCOME_ROLE_MISMATCH = "role_mismatch"
OUTCOME_SUPERVISOR_MISMATCH = "supervisor_mismatch"
OUTCOME_DRIVER_MISMATCH = "driver_mismatch"


@dataclass(frozen=True)
class PermissionDecision:
    allowed: bool
    outcome: str
    reason: str = ""


@dataclass(frozen=True)
class TransitionPlan:
    kind: RequestKind
    request_id: UUID | None
    action: WorkflowAction
    from_stage: str
    to_stage: str
    status: str
    override: str | None = None


@dataclass(frozen=True)
class Visibility:
    """Stages an actor may see, split by the request field they must match."""

    open_stages: frozenset[str]
    supervisor_stages: frozenset[str]
    driver_stages: frozenset[str]


class WorkflowEngine:
    """
    Read-only evaluator over a workflow catalog.

    Contract:
        ``can_perform_action`` and ``next_stage`` are pure functions of
        (stage, action, actor, context).  ``plan`` combines them and raises
        the typed error a caller should surface.
    """

    def __init__(
        self,
        catalog: WorkflowCatalog,
        guards: Mapping[str, GuardEvaluator] | None = None,
    ):
        self._catalog = catalog
        self._guards = dict(BUILTIN_GUARDS if guards is None else guards)

    @property
    def catalog(self) -> WorkflowCatalog:
        return self._catalog

    def workflow(self, kind: RequestKind | str) -> Workflow:
        return self._catalog.workflow(kind)

    # ------------------------------------------------------------------
    # Permission
    # ------------------------------------------------------------------

    def check_permission(
        self, actor: Actor, request: RequestSnapshot, action: WorkflowAction,
    ) -> PermissionDecision:
        stage = self.workflow(request.kind).stage(request.current_stage)

        if not stage.allows(action):
            decision = PermissionDecision(
                False, OUTCOME_ACTION_NOT_ALLOWED,
                f"{action.value} is not allowed at {stage.stage_id}",
            )
        elif action in REQUESTER_ACTIONS:
            decision = self._check_requester_action(actor, request, stage, action)
        elif action == WorkflowAction.SEND_BACK and not stage.correctable:
            decision = PermissionDecision(
                False, OUTCOME_ACTION_NOT_ALLOWED,
                f"{stage.stage_id} cannot be sent back for correction",
            )
        else:
            decision = self.check_roles(actor, request, stage)

        self._trace(actor, request, action, decision)
        return decision

    def can_perform_action(
        self, actor: Actor, request: RequestSnapshot, action: WorkflowAction,
    ) -> bool:
        return self.check_permission(actor, request, action).allowed

    def check_roles(
        self, actor: Actor, request: RequestSnapshot, stage: Stage,
    ) -> PermissionDecision:
        """Evaluate the stage's required-role predicates; any one suffices."""
        requirements = compile_role_requirements(stage)
        for requirement in requirements:
            if requirement.predicate(actor, request):
                return PermissionDecision(True, OUTCOME_ALLOWED, requirement.entry)

        for requirement in requirements:
            if requirement.match_field == "supervisor_id" and actor.is_supervisor:
                return PermissionDecision(
                    False, OUTCOME_SUPERVISOR_MISMATCH,
                    "actor is not this request's designated supervisor",
                )
            if requirement.match_field == "assigned_driver_id" and actor.has_role(requirement.entry):
                return PermissionDecision(
                    False, OUTCOME_DRIVER_MISMATCH,
                    "actor is not the driver assigned to this request",
                )
        return PermissionDecision(
            False, OUTCOME_ROLE_MISMATCH,
            f"requires one of: {', '.join(stage.required_roles) or '(none)'}",
        )

    def _check_requester_action(
        self,
        actor: Actor,
        request: RequestSnapshot,
        stage: Stage,
        action: WorkflowAction,
    ) -> PermissionDecision:
        if actor.id != request.requester_id:
            return PermissionDecision(
                False, OUTCOME_NOT_REQUESTER,
                f"only the requester may {action.value}",
            )
        workflow = self.workflow(request.kind)
        if action == WorkflowAction.CANCEL and (stage.terminal or not stage.cancellable):
            return PermissionDecision(
                False, OUTCOME_ACTION_NOT_ALLOWED,
                f"{stage.stage_id} can no longer be cancelled",
            )
        if action == WorkflowAction.RESUBMIT and stage.stage_id not in (
            workflow.correction_stage, workflow.rejected_stage,
        ):
            return PermissionDecision(
                False, OUTCOME_ACTION_NOT_ALLOWED,
                "only rejected or returned-for-correction requests can be resubmitted",
            )
        return PermissionDecision(True, OUTCOME_ALLOWED, "requester")

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def next_stage(
        self,
        request: RequestSnapshot,
        action: WorkflowAction,
        context: TransitionContext,
    ) -> str | None:
        workflow = self.workflow(request.kind)
        for transition in workflow.transitions_for(request.current_stage, action):
            if transition.override != context.override:
                continue
            if transition.guard is None or self._evaluate_guard(
                transition.guard.name, context, transition,
            ):
                return transition.to_stage
        return None

    def _evaluate_guard(self, name, context, transition) -> bool:
        evaluator = self._guards.get(name)
        if evaluator is None:
            raise WorkflowConfigurationError(f"Unknown guard {name!r}")
        return bool(evaluator(context, transition))

    def require(
        self, actor: Actor, request: RequestSnapshot, action: WorkflowAction,
    ) -> None:
        """Raise the typed error matching a denied permission decision."""
        decision = self.check_permission(actor, request, action)
        if decision.allowed:
            return
        if decision.outcome == OUTCOME_ACTION_NOT_ALLOWED:
            raise ActionNotAllowedError(action.value, request.current_stage, decision.reason)
        if decision.outcome == OUTCOME_NOT_REQUESTER:
            raise NotRequesterError(actor.id, request.request_id, action.value)
        raise ActionForbiddenError(
            actor.id, action.value, request.current_stage, decision.reason,
        )

    def plan(
        self,
        actor: Actor,
        request: RequestSnapshot,
        action: WorkflowAction,
        context: TransitionContext,
    ) -> TransitionPlan:
        self.require(actor, request, action)
        return self._resolve(request, action, context)

    def plan_override(
        self,
        actor: Actor,
        request: RequestSnapshot,
        name: str,
        context: TransitionContext,
    ) -> TransitionPlan:
        """Plan a named escape-hatch transition.

        The override's role replaces the stage's role list; the action must
        still be allowed at the stage.
        """
        workflow = self.workflow(request.kind)
        override = workflow.override(name)
        stage = workflow.stage(request.current_stage)
        if request.current_stage != override.from_stage or not stage.allows(override.action):
            raise ActionNotAllowedError(
                override.action.value, request.current_stage,
                f"override {name} applies only at {override.from_stage}",
            )
        if not actor.has_role(override.role):
            decision = PermissionDecision(
                False, OUTCOME_ROLE_MISMATCH, f"override {name} requires {override.role}",
            )
            self._trace(actor, request, override.action, decision)
            raise ActionForbiddenError(
                actor.id, override.action.value, request.current_stage, decision.reason,
            )
        self._trace(
            actor, request, override.action,
            PermissionDecision(True, OUTCOME_ALLOWED, f"override:{name}"),
        )
        return self._resolve(
            request,
            override.action,
            TransitionContext(
                requester_is_supervisor=context.requester_is_supervisor,
                resume_stage=context.resume_stage,
                override=name,
            ),
        )

    def _resolve(
        self,
        request: RequestSnapshot,
        action: WorkflowAction,
        context: TransitionContext,
    ) -> TransitionPlan:
        to_stage = self.next_stage(request, action, context)
        if to_stage is None:
            raise WorkflowConfigurationError(
                f"No {request.kind.value} transition from {request.current_stage!r} "
                f"via {action.value!r} matches context {context}"
            )
        workflow = self.workflow(request.kind)
        return TransitionPlan(
            kind=request.kind,
            request_id=request.request_id,
            action=action,
            from_stage=request.current_stage,
            to_stage=to_stage,
            status=workflow.status_of(to_stage),
            override=context.override,
        )

    # ------------------------------------------------------------------
    # Visibility
    # ------------------------------------------------------------------

    def visibility(self, actor: Actor, kind: RequestKind | str) -> Visibility:
        """Stages at which ``actor`` is (or may be) the responsible reviewer."""
        open_stages: set[str] = set()
        supervisor_stages: set[str] = set()
        driver_stages: set[str] = set()
        for stage in self.workflow(kind).stages.values():
            if not stage.reviewer_actions:
                continue
            for requirement in compile_role_requirements(stage):
                if requirement.match_field == "supervisor_id":
                    if actor.is_supervisor:
                        supervisor_stages.add(stage.stage_id)
                elif requirement.match_field == "assigned_driver_id":
                    if actor.has_role(requirement.entry):
                        driver_stages.add(stage.stage_id)
                elif requirement.predicate(actor, _ANY_REQUEST):
                    open_stages.add(stage.stage_id)
        return Visibility(
            frozenset(open_stages),
            frozenset(supervisor_stages - open_stages),
            frozenset(driver_stages - open_stages),
        )

    def responsible_roles(self, kind: RequestKind | str, stage_id: str) -> tuple[str, ...]:
        return self.workflow(kind).stage(stage_id).required_roles

    def _trace(
        self,
        actor: Actor,
        request: RequestSnapshot,
        action: WorkflowAction,
        decision: PermissionDecision,
    ) -> None:
        event = "workflow_decision" if decision.allowed else "workflow_permission_denied"
        logger.info(
            event,
            extra={
                "kind": request.kind.value,
                "request_id": str(request.request_id) if request.request_id else None,
                "stage": request.current_stage,
                "action": action.value,
                "actor": str(actor.id),
                "outcome": decision.outcome,
                "reason": decision.reason,
            },
        )


# Role predicates that ignore the request only need some snapshot to call.
_ANY_REQUEST = RequestSnapshot(
    kind=RequestKind.VEHICLE,
    request_id=None,
    current_stage="",
    requester_id=UUID(int=0),
)
