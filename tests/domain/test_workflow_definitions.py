"""
Tests for the workflow value objects and the shipped workflow catalog.

Covers:
- Workflow lookups: stage(), transitions_for(), overrides_from(), status_of()
- WorkflowCatalog: lookup by kind, unknown kinds fail loudly
- Built-in guards: supervisor branch and resume-here
- The shipped vehicle/ICT/store definitions: entry routing, resubmit policy,
  the DGS override path, terminal stages
"""

import pytest

from fleet_kernel.domain.workflow import (
    BUILTIN_GUARDS,
    RequestKind,
    ResubmitPolicy,
    Transition,
    TransitionContext,
    WorkflowAction,
)
from fleet_kernel.exceptions import WorkflowConfigurationError


class TestWorkflowLookups:

    def test_unknown_stage_raises(self, catalog):
        with pytest.raises(WorkflowConfigurationError, match="not in the vehicle catalog"):
            catalog.workflow(RequestKind.VEHICLE).stage("limbo")

    def test_unknown_kind_raises(self, catalog):
        with pytest.raises(WorkflowConfigurationError):
            catalog.workflow("boat")

    def test_catalog_accepts_kind_strings(self, catalog):
        assert catalog.workflow("ict").kind is RequestKind.ICT
        assert set(catalog.kinds) == {RequestKind.VEHICLE, RequestKind.ICT, RequestKind.STORE}
        assert RequestKind.STORE in catalog

    def test_transitions_share_a_key_in_declaration_order(self, catalog):
        vehicle = catalog.workflow(RequestKind.VEHICLE)
        submits = vehicle.transitions_for("submitted", WorkflowAction.SUBMIT)
        assert [t.to_stage for t in submits] == ["supervisor_review", "dgs_review"]

    def test_missing_transition_is_empty(self, catalog):
        vehicle = catalog.workflow(RequestKind.VEHICLE)
        assert vehicle.transitions_for("returned", WorkflowAction.APPROVE) == ()

    def test_status_is_derived_from_stage(self, catalog):
        vehicle = catalog.workflow(RequestKind.VEHICLE)
        assert vehicle.status_of("transport_officer_assignment") == "ad_transport_approved"
        assert vehicle.status_of("assigned") == "transport_officer_assigned"

    def test_stages_are_read_only(self, catalog):
        vehicle = catalog.workflow(RequestKind.VEHICLE)
        with pytest.raises(TypeError):
            vehicle.stages["extra"] = vehicle.stage("submitted")


class TestGuards:

    def _transition(self, to_stage="dgs_review"):
        return Transition("needs_correction", WorkflowAction.RESUBMIT, to_stage)

    def test_supervisor_guards_are_complementary(self):
        supervisor = TransitionContext(requester_is_supervisor=True)
        staff = TransitionContext(requester_is_supervisor=False)
        is_sup = BUILTIN_GUARDS["requester_is_supervisor"]
        not_sup = BUILTIN_GUARDS["requester_is_not_supervisor"]
        assert is_sup(supervisor, self._transition()) and not not_sup(supervisor, self._transition())
        assert not_sup(staff, self._transition()) and not is_sup(staff, self._transition())

    def test_resumes_here_matches_target_stage(self):
        resumes_here = BUILTIN_GUARDS["resumes_here"]
        ctx = TransitionContext(resume_stage="ddgs_review")
        assert resumes_here(ctx, self._transition("ddgs_review"))
        assert not resumes_here(ctx, self._transition("dgs_review"))
        assert not resumes_here(TransitionContext(), self._transition("dgs_review"))


class TestShippedDefinitions:

    def test_vehicle_resumes_and_ict_store_restart(self, catalog):
        assert catalog.workflow(RequestKind.VEHICLE).resubmit_policy is ResubmitPolicy.RESUME
        assert catalog.workflow(RequestKind.ICT).resubmit_policy is ResubmitPolicy.RESTART
        assert catalog.workflow(RequestKind.STORE).resubmit_policy is ResubmitPolicy.RESTART

    def test_dgs_override_is_declared_and_tagged(self, catalog):
        vehicle = catalog.workflow(RequestKind.VEHICLE)
        (override,) = vehicle.overrides_from("dgs_review", WorkflowAction.ASSIGN)
        assert override.name == "dgs_direct_assignment"
        assert override.role == "dgs"
        (tagged,) = vehicle.transitions_for("dgs_review", WorkflowAction.ASSIGN)
        assert tagged.override == "dgs_direct_assignment"
        assert tagged.to_stage == vehicle.assignment_stage

    def test_post_assignment_stages_are_not_cancellable_or_correctable(self, catalog):
        vehicle = catalog.workflow(RequestKind.VEHICLE)
        for stage_id in ("transport_officer_assignment", "assigned", "in_progress", "completed"):
            stage = vehicle.stage(stage_id)
            assert not stage.cancellable
            assert not stage.correctable
            assert not stage.allows(WorkflowAction.SEND_BACK)

    def test_only_ict_and_store_fulfil(self, catalog):
        assert catalog.workflow(RequestKind.ICT).stage("ict_approved").allows(WorkflowAction.FULFILL)
        assert catalog.workflow(RequestKind.STORE).stage("store_approved").allows(
            WorkflowAction.FULFILL
        )
        vehicle = catalog.workflow(RequestKind.VEHICLE)
        assert not any(s.allows(WorkflowAction.FULFILL) for s in vehicle.stages.values())

    @pytest.mark.parametrize("kind", list(RequestKind))
    def test_every_kind_has_terminal_rejected_and_cancelled(self, catalog, kind):
        workflow = catalog.workflow(kind)
        assert workflow.stage(workflow.rejected_stage).terminal
        assert workflow.stage(workflow.rejected_stage).allows(WorkflowAction.RESUBMIT)
        cancelled = [s for s in workflow.stages.values() if s.status == "cancelled"]
        assert len(cancelled) == 1 and cancelled[0].terminal

