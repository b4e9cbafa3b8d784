"""
End-to-end: one vehicle request from submission to the vehicle's return,
then an ICT request through fulfilment.

Every step goes through WorkflowOrchestrator, so each one commits on its
own and dispatches its notifications after the commit.
"""

import pytest

from fleet_kernel.domain.notifications import NotificationType
from fleet_kernel.domain.workflow import WorkflowAction
from fleet_kernel.models.directory import VehicleModel, VehicleStatus
from fleet_kernel.db.engine import session_scope
from fleet_modules.ict.models import IctRequestDraft
from fleet_modules.vehicle.models import TripStatus
from fleet_modules.wiring import build_module_services
from fleet_services.notification_dispatcher import NotificationDispatcher
from fleet_services.workflow_orchestrator import WorkflowOrchestrator
from tests.conftest import BRANCH_OFFICE, MOTOR_POOL

pytestmark = pytest.mark.integration


class RecordingSender:

    def __init__(self):
        self.calls = []

    def notify(self, user_id, type, title, body, related_id=None):
        self.notify_many([user_id], type, title, body, related_id)

    def notify_many(self, user_ids, type, title, body, related_id=None):
        self.calls.append((NotificationType(type), tuple(user_ids)))

    def received(self, user_id):
        return [t for t, users in self.calls if user_id in users]


@pytest.fixture
def sender():
    return RecordingSender()


@pytest.fixture
def orchestrator(sender, session_factory, workflow_engine, deterministic_clock, geo_gateway):
    dispatcher = NotificationDispatcher(sender, timeout_seconds=5.0)
    yield WorkflowOrchestrator(
        lambda s: build_module_services(
            s, workflow_engine, clock=deterministic_clock, geo=geo_gateway,
        ),
        dispatcher,
        session_factory,
    )
    dispatcher.shutdown()


def test_vehicle_request_lifecycle(
    orchestrator, sender, directory, vehicle_draft, deterministic_clock, session_factory,
):
    run = orchestrator.execute
    request_id = run(
        lambda s: s.vehicle.create(
            vehicle_draft(participant_ids=(directory.colleague,)), directory.staff,
        ),
    ).id

    # The supervisor sends it back once before the chain completes.
    run(lambda s: s.vehicle.send_back(request_id, directory.supervisor, "Add the agenda"))
    run(lambda s: s.vehicle.resubmit(request_id, directory.staff, "Agenda attached"))
    for reviewer in (directory.supervisor, directory.dgs, directory.ddgs, directory.ad_transport):
        view = run(lambda s, r=reviewer: s.vehicle.approve(request_id, r))
    assert view.current_stage == "transport_officer_assignment"

    assignment = run(
        lambda s: s.assignment.assign(
            request_id, directory.driver, directory.van, directory.motor_pool,
            directory.transport_officer,
        ),
    )
    trip_id = assignment.trip.id

    run(lambda s: s.trips.start(trip_id, directory.driver))
    for point in (MOTOR_POOL, BRANCH_OFFICE):
        run(lambda s, p=point: s.trips.update_location(
            trip_id, directory.driver, p.latitude, p.longitude,
        ))
    deterministic_clock.advance(hours=3)
    completed = run(lambda s: s.trips.complete(trip_id, directory.driver))
    assert completed.status is TripStatus.COMPLETED
    assert completed.distance_km > 0

    returned = run(lambda s: s.trips.update_location(
        trip_id, directory.driver, MOTOR_POOL.latitude, MOTOR_POOL.longitude,
    ))
    assert returned.status is TripStatus.RETURNED

    final = orchestrator.query(lambda s: s.vehicle.get(request_id, directory.staff))
    assert final.current_stage == "returned"
    assert [e.action for e in final.action_history] == [
        WorkflowAction.SUBMIT,
        WorkflowAction.SEND_BACK,
        WorkflowAction.RESUBMIT,
        WorkflowAction.APPROVE,
        WorkflowAction.APPROVE,
        WorkflowAction.APPROVE,
        WorkflowAction.APPROVE,
        WorkflowAction.ASSIGN,
        WorkflowAction.START_TRIP,
        WorkflowAction.COMPLETE_TRIP,
        WorkflowAction.RETURN_VEHICLE,
    ]
    assert [e.sequence for e in final.action_history] == list(
        range(1, len(final.action_history) + 1)
    )
    assert final.approvers == (
        directory.supervisor, directory.dgs, directory.ddgs, directory.ad_transport,
    )

    with session_scope(session_factory) as sess:
        assert sess.get(VehicleModel, directory.van).status == VehicleStatus.AVAILABLE.value

    assert NotificationType.REQUEST_CREATED in sender.received(directory.supervisor)
    assert NotificationType.DRIVER_ASSIGNED in sender.received(directory.driver)
    staff_saw = sender.received(directory.staff)
    for expected in (
        NotificationType.REQUEST_NEEDS_CORRECTION,
        NotificationType.REQUEST_APPROVED,
        NotificationType.DRIVER_ASSIGNED,
        NotificationType.TRIP_STARTED,
        NotificationType.TRIP_RETURNED,
    ):
        assert expected in staff_saw
    assert NotificationType.DRIVER_ASSIGNED in sender.received(directory.colleague)
    assert orchestrator.last_dispatch.failed == 0


def test_ict_request_lifecycle(orchestrator, sender, directory):
    draft = IctRequestDraft(
        equipment_type="Projector",
        specifications="3000 lumens, HDMI",
        purpose="Board room",
        quantity=1,
        supervisor_id=directory.supervisor,
    )
    request_id = orchestrator.execute(lambda s: s.ict.create(draft, directory.staff)).id
    orchestrator.execute(lambda s: s.ict.approve(request_id, directory.supervisor))
    orchestrator.execute(lambda s: s.ict.approve(request_id, directory.admin))
    view = orchestrator.execute(
        lambda s: s.ict.fulfill(request_id, directory.admin, "Installed"),
    )

    assert view.current_stage == "ict_fulfilled"
    assert [e.action for e in view.action_history] == [
        WorkflowAction.SUBMIT,
        WorkflowAction.APPROVE,
        WorkflowAction.APPROVE,
        WorkflowAction.FULFILL,
    ]
    assert sender.received(directory.staff)[-1] == NotificationType.REQUEST_FULFILLED
