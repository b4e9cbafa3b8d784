"""
Workflow Validator (``fleet_config.validator``).

Responsibility
--------------
Structural checks on a parsed ``Workflow`` before it is admitted to the
catalog.  A workflow that fails validation is never used at runtime.

Invariants enforced
-------------------
* Entry, correction, rejected and (if set) assignment stages exist.
* Every transition references known stages and a known guard, and its
  action is allowed at its source stage.
* Every action a stage allows has at least one transition out of it.
* The correction and rejected stages accept ``resubmit``.
* Override transitions and override declarations agree on stage and
  action, and name a role.
* A ``send_back`` transition only leaves a correctable stage and lands
  on the correction stage.

Failure modes
-------------
* ``WorkflowValidationResult.raise_if_invalid`` raises
  ``WorkflowConfigurationError`` listing every error found.
"""

from __future__ import annotations

from collections.abc import Collection
from dataclasses import dataclass, field

from fleet_kernel.domain.workflow import BUILTIN_GUARDS, Workflow, WorkflowAction
from fleet_kernel.exceptions import WorkflowConfigurationError


@dataclass
class WorkflowValidationResult:
    """Errors block loading; warnings are informational."""

    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return len(self.errors) == 0

    def add_error(self, msg: str) -> None:
        self.errors.append(msg)

    def add_warning(self, msg: str) -> None:
        self.warnings.append(msg)

    def raise_if_invalid(self, source: str) -> None:
        if not self.is_valid:
            raise WorkflowConfigurationError(
                f"{source}: workflow validation failed:\n"
                + "\n".join(f"  - {e}" for e in self.errors)
            )


def validate_workflow(
    workflow: Workflow, guard_names: Collection[str] | None = None,
) -> WorkflowValidationResult:
    result = WorkflowValidationResult()
    guards = set(BUILTIN_GUARDS if guard_names is None else guard_names)

    _check_special_stages(workflow, result)
    _check_transitions(workflow, guards, result)
    _check_coverage(workflow, result)
    _check_overrides(workflow, result)
    return result


def _check_special_stages(workflow: Workflow, result: WorkflowValidationResult) -> None:
    named = {
        "entry_stage": workflow.entry_stage,
        "correction_stage": workflow.correction_stage,
        "rejected_stage": workflow.rejected_stage,
    }
    if workflow.assignment_stage is not None:
        named["assignment_stage"] = workflow.assignment_stage
    for key, stage_id in named.items():
        if not workflow.has_stage(stage_id):
            result.add_error(f"{key} {stage_id!r} is not a declared stage")

    for stage_id in (workflow.correction_stage, workflow.rejected_stage):
        if workflow.has_stage(stage_id) and not workflow.stages[stage_id].allows(
            WorkflowAction.RESUBMIT
        ):
            result.add_error(f"stage {stage_id!r} must allow resubmit")


def _check_transitions(
    workflow: Workflow, guards: set[str], result: WorkflowValidationResult,
) -> None:
    for t in workflow.transitions:
        label = f"transition {t.from_stage} --{t.action.value}--> {t.to_stage}"
        if not workflow.has_stage(t.from_stage):
            result.add_error(f"{label}: unknown source stage")
            continue
        if not workflow.has_stage(t.to_stage):
            result.add_error(f"{label}: unknown target stage")
        if not workflow.stages[t.from_stage].allows(t.action):
            result.add_error(f"{label}: action not allowed at {t.from_stage}")
        if t.guard is not None and t.guard.name not in guards:
            result.add_error(f"{label}: unknown guard {t.guard.name!r}")
        if t.override is not None and t.override not in workflow.overrides:
            result.add_error(f"{label}: unknown override {t.override!r}")
        if t.action == WorkflowAction.SEND_BACK:
            if not workflow.stages[t.from_stage].correctable:
                result.add_error(f"{label}: source stage is not correctable")
            if t.to_stage != workflow.correction_stage:
                result.add_error(f"{label}: send_back must land on {workflow.correction_stage}")
        if workflow.has_stage(t.from_stage) and workflow.stages[t.from_stage].terminal and (
            t.action != WorkflowAction.RESUBMIT
        ):
            result.add_error(f"{label}: terminal stages only leave via resubmit")


def _check_coverage(workflow: Workflow, result: WorkflowValidationResult) -> None:
    for stage in workflow.stages.values():
        for action in stage.allowed_actions:
            if not workflow.transitions_for(stage.stage_id, action):
                result.add_error(
                    f"stage {stage.stage_id!r} allows {action.value} but has no transition for it"
                )
        if stage.reviewer_actions and not stage.required_roles:
            result.add_error(f"stage {stage.stage_id!r} has reviewer actions but no required roles")
        if not stage.allowed_actions and not stage.terminal:
            result.add_warning(f"stage {stage.stage_id!r} is a dead end but not marked terminal")


def _check_overrides(workflow: Workflow, result: WorkflowValidationResult) -> None:
    for override in workflow.overrides.values():
        label = f"override {override.name!r}"
        if not override.role:
            result.add_error(f"{label}: role is required")
        tagged = [t for t in workflow.transitions if t.override == override.name]
        if not tagged:
            result.add_error(f"{label}: no transition is tagged with it")
        for t in tagged:
            if t.from_stage != override.from_stage or t.action != override.action:
                result.add_error(
                    f"{label}: tagged transition {t.from_stage}/{t.action.value} does not "
                    f"match {override.from_stage}/{override.action.value}"
                )
