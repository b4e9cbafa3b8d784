"""
Workflow Loader (``fleet_config.loader``).

Responsibility
--------------
Loads ``workflows/<kind>.yaml`` files and parses them into the kernel's
frozen ``Workflow`` value objects.  Runtime callers go through
``fleet_config.get_workflow_catalog()``; this module is the tooling
underneath it and is used directly by tests that need a custom catalog.

Architecture position
---------------------
**Config layer** -- sits above ``fleet_kernel`` (imports its domain value
objects and exceptions) and below ``fleet_services``/``fleet_modules``.
The kernel never imports this package.

Invariants enforced
-------------------
* No silent defaults for required keys: ``kind``, ``entry_stage``,
  ``correction_stage``, ``rejected_stage``, ``resubmission``, ``stages``
  and ``transitions`` must be present.
* Unknown actions, policies or kinds raise ``WorkflowConfigurationError``.
* ``compute_checksum`` is a deterministic SHA-256 over canonical JSON.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``WorkflowConfigurationError`` (wrapping ``yaml.YAMLError``).
* Missing keys or bad values  -> ``WorkflowConfigurationError``.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from fleet_config.validator import validate_workflow
from fleet_kernel.domain.workflow import (
    Guard,
    OverridePath,
    RequestKind,
    ResubmitPolicy,
    Stage,
    Transition,
    Workflow,
    WorkflowAction,
    WorkflowCatalog,
)
from fleet_kernel.exceptions import WorkflowConfigurationError

DEFAULT_WORKFLOW_DIR = Path(__file__).parent / "workflows"


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        WorkflowConfigurationError: if the file is not valid YAML or its
            top level is not a mapping.
    """
    with open(path) as f:
        try:
            data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise WorkflowConfigurationError(f"{path.name}: invalid YAML: {exc}") from exc
    if not isinstance(data, dict):
        raise WorkflowConfigurationError(f"{path.name}: top level must be a mapping")
    return data


def compute_checksum(data: Any) -> str:
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def _required(data: dict[str, Any], key: str, source: str) -> Any:
    try:
        return data[key]
    except KeyError:
        raise WorkflowConfigurationError(f"{source}: missing required key {key!r}") from None


def _enum(enum_cls, value: Any, source: str):
    try:
        return enum_cls(value)
    except ValueError:
        choices = ", ".join(m.value for m in enum_cls)
        raise WorkflowConfigurationError(
            f"{source}: {value!r} is not one of {choices}"
        ) from None


def parse_stage(data: dict[str, Any], source: str) -> Stage:
    stage_id = _required(data, "id", source)
    where = f"{source} stage {stage_id!r}"
    return Stage(
        stage_id=stage_id,
        status=_required(data, "status", where),
        description=data.get("description", ""),
        allowed_actions=frozenset(
            _enum(WorkflowAction, a, where) for a in data.get("allowed_actions", ())
        ),
        required_roles=tuple(data.get("required_roles", ())),
        requires_supervisor_match=bool(data.get("requires_supervisor_match", False)),
        requires_driver_match=bool(data.get("requires_driver_match", False)),
        cancellable=bool(data.get("cancellable", False)),
        correctable=bool(data.get("correctable", False)),
        terminal=bool(data.get("terminal", False)),
    )


def parse_transition(data: dict[str, Any], source: str) -> Transition:
    guard = data.get("guard")
    return Transition(
        from_stage=_required(data, "from", source),
        action=_enum(WorkflowAction, _required(data, "action", source), source),
        to_stage=_required(data, "to", source),
        guard=Guard(guard) if guard else None,
        override=data.get("override"),
    )


def parse_override(data: dict[str, Any], source: str) -> OverridePath:
    name = _required(data, "name", source)
    where = f"{source} override {name!r}"
    return OverridePath(
        name=name,
        from_stage=_required(data, "from", where),
        action=_enum(WorkflowAction, _required(data, "action", where), where),
        role=_required(data, "role", where),
        description=data.get("description", ""),
    )


def parse_workflow(data: dict[str, Any], source: str = "<workflow>") -> Workflow:
    """Parse one workflow document into a ``Workflow``.  Does not validate."""
    stages: dict[str, Stage] = {}
    for raw in _required(data, "stages", source):
        stage = parse_stage(raw, source)
        if stage.stage_id in stages:
            raise WorkflowConfigurationError(
                f"{source}: duplicate stage id {stage.stage_id!r}"
            )
        stages[stage.stage_id] = stage

    overrides = {}
    for raw in data.get("overrides", ()):
        override = parse_override(raw, source)
        overrides[override.name] = override

    return Workflow(
        kind=_enum(RequestKind, _required(data, "kind", source), source),
        description=data.get("description", ""),
        entry_stage=_required(data, "entry_stage", source),
        correction_stage=_required(data, "correction_stage", source),
        rejected_stage=_required(data, "rejected_stage", source),
        resubmit_policy=_enum(ResubmitPolicy, _required(data, "resubmission", source), source),
        stages=stages,
        transitions=tuple(
            parse_transition(t, source) for t in _required(data, "transitions", source)
        ),
        overrides=overrides,
        assignment_stage=data.get("assignment_stage"),
    )


def build_workflow(data: dict[str, Any], source: str = "<workflow>") -> Workflow:
    """Parse and validate one workflow document."""
    workflow = parse_workflow(data, source)
    validate_workflow(workflow).raise_if_invalid(source)
    return workflow


def load_workflow_file(path: Path) -> Workflow:
    """Load, parse and validate a single workflow file."""
    return build_workflow(load_yaml_file(path), source=path.name)


def load_catalog(directory: Path | None = None) -> WorkflowCatalog:
    """
    Load every ``*.yaml`` workflow in ``directory`` into a catalog.

    Postconditions:
        - Each request kind appears at most once.
        - ``catalog.checksum`` identifies the exact YAML content loaded.
    """
    directory = directory or DEFAULT_WORKFLOW_DIR
    if not directory.is_dir():
        raise FileNotFoundError(f"Workflow directory not found: {directory}")

    workflows: list[Workflow] = []
    raw_documents: dict[str, Any] = {}
    for path in sorted(directory.glob("*.yaml")):
        raw = load_yaml_file(path)
        workflow = build_workflow(raw, source=path.name)
        if any(w.kind == workflow.kind for w in workflows):
            raise WorkflowConfigurationError(
                f"{path.name}: kind {workflow.kind.value!r} is defined twice"
            )
        workflows.append(workflow)
        raw_documents[path.name] = raw

    if not workflows:
        raise WorkflowConfigurationError(f"No workflow files in {directory}")
    return WorkflowCatalog(workflows, checksum=compute_checksum(raw_documents))
