"""
Workflow -- stage catalog and transition table value objects.

Responsibility:
    Declarative description of a request kind's workflow: its stages (with
    allowed actions, required roles and supervisor/driver match flags) and
    its transitions ``(from_stage, action) -> to_stage`` with optional
    named guards and named override paths.  Also the pure guard evaluators
    that branch transitions on a ``TransitionContext``.

Architecture position:
    Kernel > Domain -- pure value objects, zero I/O.  Built by
    ``fleet_config`` from YAML, consumed by the workflow engine.

Invariants enforced:
    - All objects are frozen; a catalog is immutable once built.
    - ``Workflow.stage()`` raises WorkflowConfigurationError for unknown
      stage ids, so a request can never sit in a stage outside its catalog.
    - Transitions tagged with an override name are eligible only when the
      caller asks for that override explicitly.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from uuid import UUID

from fleet_kernel.exceptions import WorkflowConfigurationError


class RequestKind(str, Enum):
    VEHICLE = "vehicle"
    ICT = "ict"
    STORE = "store"


class WorkflowAction(str, Enum):
    SUBMIT = "submit"
    APPROVE = "approve"
    REJECT = "reject"
    SEND_BACK = "send_back"
    CANCEL = "cancel"
    RESUBMIT = "resubmit"
    ASSIGN = "assign"
    ACCEPT = "accept"
    START_TRIP = "start_trip"
    COMPLETE_TRIP = "complete_trip"
    RETURN_VEHICLE = "return_vehicle"
    FULFILL = "fulfill"


# Actions reserved for the original requester, whatever the stage roles say.
REQUESTER_ACTIONS: frozenset[WorkflowAction] = frozenset({
    WorkflowAction.SUBMIT,
    WorkflowAction.CANCEL,
    WorkflowAction.RESUBMIT,
})

# Required-role entry meaning "holds supervisor status".
SUPERVISOR_ROLE = "supervisor"


class ResubmitPolicy(str, Enum):
    """Where a resubmitted request re-enters its workflow."""

    RESUME = "resume"    # back to the stage that was interrupted
    RESTART = "restart"  # re-routed as if freshly submitted


@dataclass(frozen=True)
class Guard:
    name: str
    description: str = ""


@dataclass(frozen=True)
class Stage:
    stage_id: str
    status: str
    description: str = ""
    allowed_actions: frozenset[WorkflowAction] = frozenset()
    required_roles: tuple[str, ...] = ()
    requires_supervisor_match: bool = False
    requires_driver_match: bool = False
    cancellable: bool = False
    correctable: bool = False
    terminal: bool = False

    def allows(self, action: WorkflowAction) -> bool:
        return action in self.allowed_actions

    @property
    def reviewer_actions(self) -> frozenset[WorkflowAction]:
        """Actions at this stage that are gated by roles rather than authorship."""
        return self.allowed_actions - REQUESTER_ACTIONS


@dataclass(frozen=True)
class Transition:
    from_stage: str
    action: WorkflowAction
    to_stage: str
    guard: Guard | None = None
    override: str | None = None


@dataclass(frozen=True)
class OverridePath:
    """A named, audited shortcut through the workflow."""

    name: str
    from_stage: str
    action: WorkflowAction
    role: str
    description: str = ""


@dataclass(frozen=True)
class TransitionContext:
    """Facts the transition table may branch on."""

    requester_is_supervisor: bool = False
    resume_stage: str | None = None
    override: str | None = None


@dataclass(frozen=True)
class RequestSnapshot:
    """The slice of a request the engine needs to decide permissions."""

    kind: RequestKind
    request_id: UUID | None
    current_stage: str
    requester_id: UUID
    supervisor_id: UUID | None = None
    assigned_driver_id: UUID | None = None


@dataclass(frozen=True)
class Workflow:
    """
    One request kind's stage catalog plus transition table.

    ``entry_stage`` is where a new request is routed from with ``submit``.
    ``correction_stage`` and ``rejected_stage`` are the two stages that
    accept ``resubmit``.  ``assignment_stage`` is set only for kinds that
    go through driver/vehicle assignment.
    """

    kind: RequestKind
    description: str
    entry_stage: str
    correction_stage: str
    rejected_stage: str
    resubmit_policy: ResubmitPolicy
    stages: Mapping[str, Stage]
    transitions: tuple[Transition, ...]
    overrides: Mapping[str, OverridePath] = field(default_factory=dict)
    assignment_stage: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "stages", MappingProxyType(dict(self.stages)))
        object.__setattr__(self, "overrides", MappingProxyType(dict(self.overrides)))
        index: dict[tuple[str, WorkflowAction], tuple[Transition, ...]] = {}
        for t in self.transitions:
            key = (t.from_stage, t.action)
            index[key] = index.get(key, ()) + (t,)
        object.__setattr__(self, "_index", MappingProxyType(index))

    def stage(self, stage_id: str) -> Stage:
        try:
            return self.stages[stage_id]
        except KeyError:
            raise WorkflowConfigurationError(
                f"Stage {stage_id!r} is not in the {self.kind.value} catalog"
            ) from None

    def has_stage(self, stage_id: str) -> bool:
        return stage_id in self.stages

    def transitions_for(
        self, from_stage: str, action: WorkflowAction,
    ) -> tuple[Transition, ...]:
        return self._index.get((from_stage, action), ())

    def override(self, name: str) -> OverridePath:
        try:
            return self.overrides[name]
        except KeyError:
            raise WorkflowConfigurationError(
                f"Override {name!r} is not defined for {self.kind.value}"
            ) from None

    def overrides_from(self, stage_id: str, action: WorkflowAction) -> tuple[OverridePath, ...]:
        return tuple(
            o for o in self.overrides.values()
            if o.from_stage == stage_id and o.action == action
        )

    def status_of(self, stage_id: str) -> str:
        return self.stage(stage_id).status


class WorkflowCatalog:
    """Read-only registry of workflows, indexed by kind and ``(kind, stage_id)``."""

    def __init__(self, workflows: Iterable[Workflow], checksum: str | None = None):
        self._workflows: Mapping[RequestKind, Workflow] = MappingProxyType(
            {w.kind: w for w in workflows}
        )
        self.checksum = checksum

    def workflow(self, kind: RequestKind | str) -> Workflow:
        try:
            return self._workflows[RequestKind(kind)]
        except (KeyError, ValueError):
            raise WorkflowConfigurationError(f"No workflow for kind {kind!r}") from None

    def stage(self, kind: RequestKind | str, stage_id: str) -> Stage:
        return self.workflow(kind).stage(stage_id)

    @property
    def kinds(self) -> tuple[RequestKind, ...]:
        return tuple(self._workflows)

    def __contains__(self, kind: object) -> bool:
        return kind in self._workflows


# ---------------------------------------------------------------------------
# Guard evaluators
# ---------------------------------------------------------------------------

GuardEvaluator = Callable[[TransitionContext, Transition], bool]


def _requester_is_supervisor(ctx: TransitionContext, transition: Transition) -> bool:
    return ctx.requester_is_supervisor


def _requester_is_not_supervisor(ctx: TransitionContext, transition: Transition) -> bool:
    return not ctx.requester_is_supervisor


def _resumes_here(ctx: TransitionContext, transition: Transition) -> bool:
    return ctx.resume_stage == transition.to_stage


BUILTIN_GUARDS: Mapping[str, GuardEvaluator] = MappingProxyType({
    "requester_is_supervisor": _requester_is_supervisor,
    "requester_is_not_supervisor": _requester_is_not_supervisor,
    "resumes_here": _resumes_here,
})
