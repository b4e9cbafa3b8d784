"""
ICT and store requests: the same lifecycle under a restart resubmit policy.

Covers:
- Supervisor review then officer review then fulfilment
- Supervisor requesters go straight to officer review
- Resubmission restarts the chain instead of resuming
- Payload validation (urgency, quantity, cost, required text)
- Fulfilment is reserved for the officer and for approved requests
"""

from decimal import Decimal

import pytest

from fleet_kernel.domain.notifications import NotificationType
from fleet_kernel.domain.requests import Urgency
from fleet_kernel.domain.workflow import RequestKind
from fleet_kernel.exceptions import (
    ActionForbiddenError,
    ActionNotAllowedError,
    InvalidPayloadError,
)
from fleet_modules.ict.models import IctRequestDraft
from fleet_modules.store.models import StoreRequestDraft


@pytest.fixture
def ict_draft(directory):
    def _make(**overrides):
        fields = dict(
            equipment_type="Laptop",
            specifications="16GB RAM, 512GB SSD",
            purpose="Replacement for failed unit",
            urgency=Urgency.HIGH,
            quantity=1,
            estimated_cost=Decimal("1450.00"),
            supervisor_id=directory.supervisor,
        )
        fields.update(overrides)
        return IctRequestDraft(**fields)

    return _make


@pytest.fixture
def store_draft(directory):
    def _make(**overrides):
        fields = dict(
            item_name="A4 paper",
            category="Stationery",
            quantity=10,
            unit="ream",
            purpose="Monthly office supplies",
            supervisor_id=directory.supervisor,
        )
        fields.update(overrides)
        return StoreRequestDraft(**fields)

    return _make


class TestIctRequests:

    def test_create_routes_to_supervisor(self, services, ict_draft, directory):
        view = services.ict.create(ict_draft(), directory.staff).value
        assert view.kind is RequestKind.ICT
        assert view.current_stage == "ict_supervisor_review"
        assert view.details.urgency is Urgency.HIGH
        assert view.details.estimated_cost == Decimal("1450.00")

    def test_supervisor_requester_goes_to_officer(self, services, ict_draft, directory):
        view = services.ict.create(ict_draft(), directory.supervisor_requester).value
        assert view.current_stage == "ict_officer_review"

    def test_approval_and_fulfilment(self, services, ict_draft, directory):
        request_id = services.ict.create(ict_draft(), directory.staff).value.id
        services.ict.approve(request_id, directory.supervisor)
        approved = services.ict.approve(request_id, directory.admin, "Stock available").value
        assert approved.current_stage == "ict_approved"
        assert approved.status == "approved"

        result = services.ict.fulfill(request_id, directory.admin, "Handed over at IT desk")
        view = result.value
        assert view.current_stage == "ict_fulfilled"
        assert view.fulfilled_by == directory.admin
        assert view.fulfillment_notes == "Handed over at IT desk"
        (intent,) = result.notifications
        assert intent.type == NotificationType.REQUEST_FULFILLED
        assert intent.recipients == (directory.staff,)

    def test_resubmit_restarts_at_supervisor(self, services, ict_draft, directory):
        request_id = services.ict.create(ict_draft(), directory.staff).value.id
        services.ict.approve(request_id, directory.supervisor)
        services.ict.send_back(request_id, directory.admin, "Specify the model")

        view = services.ict.resubmit(request_id, directory.staff).value

        assert view.current_stage == "ict_supervisor_review"
        assert view.action_history[-1].metadata == {"resubmit_policy": "restart"}

    def test_rejected_supervisor_request_restarts_at_officer(
        self, services, ict_draft, directory,
    ):
        request_id = services.ict.create(ict_draft(), directory.supervisor_requester).value.id
        services.ict.reject(request_id, directory.admin, "Use the shared pool")
        view = services.ict.resubmit(request_id, directory.supervisor_requester).value
        assert view.current_stage == "ict_officer_review"

    def test_fulfil_requires_approval(self, services, ict_draft, directory):
        request_id = services.ict.create(ict_draft(), directory.supervisor_requester).value.id
        with pytest.raises(ActionNotAllowedError):
            services.ict.fulfill(request_id, directory.admin)

    def test_fulfil_requires_officer(self, services, ict_draft, directory):
        request_id = services.ict.create(ict_draft(), directory.supervisor_requester).value.id
        services.ict.approve(request_id, directory.admin)
        with pytest.raises(ActionForbiddenError):
            services.ict.fulfill(request_id, directory.supervisor_requester)

    @pytest.mark.parametrize("overrides,field", [
        ({"urgency": "whenever"}, "urgency"),
        ({"quantity": 0}, "quantity"),
        ({"estimated_cost": Decimal("-1")}, "estimated_cost"),
        ({"specifications": ""}, "specifications"),
        ({"equipment_type": "  "}, "equipment_type"),
    ])
    def test_invalid_payload(self, services, ict_draft, directory, overrides, field):
        with pytest.raises(InvalidPayloadError) as exc_info:
            services.ict.create(ict_draft(**overrides), directory.staff)
        assert exc_info.value.field == field

    def test_urgency_defaults_to_normal(self, services, ict_draft, directory):
        view = services.ict.create(ict_draft(urgency=None), directory.staff).value
        assert view.details.urgency is Urgency.NORMAL


class TestStoreRequests:

    def test_full_flow(self, services, store_draft, directory):
        request_id = services.store.create(store_draft(), directory.staff).value.id
        services.store.approve(request_id, directory.supervisor)
        services.store.approve(request_id, directory.admin)
        view = services.store.fulfill(request_id, directory.admin).value

        assert view.kind is RequestKind.STORE
        assert view.current_stage == "store_fulfilled"
        assert view.details.item_name == "A4 paper"
        assert view.details.unit == "ream"
        assert view.approvers == (directory.supervisor, directory.admin)

    def test_correction_then_update_then_restart(self, services, store_draft, directory):
        request_id = services.store.create(store_draft(), directory.staff).value.id
        services.store.send_back(request_id, directory.supervisor, "Ten reams is too many")

        updated = services.store.update(request_id, directory.staff, store_draft(quantity=4)).value
        assert updated.details.quantity == 4
        assert updated.current_stage == "store_needs_correction"

        view = services.store.resubmit(request_id, directory.staff, "Reduced to four").value
        assert view.current_stage == "store_supervisor_review"

    def test_kinds_do_not_leak_between_services(self, services, store_draft, ict_draft, directory):
        services.store.create(store_draft(), directory.staff)
        services.ict.create(ict_draft(), directory.staff)
        assert [v.kind for v in services.store.find_all(directory.staff)] == [RequestKind.STORE]
        assert [v.kind for v in services.ict.find_all(directory.staff)] == [RequestKind.ICT]

    def test_optional_specifications(self, services, store_draft, directory):
        view = services.store.create(store_draft(specifications="  "), directory.staff).value
        assert view.details.specifications is None

    def test_unit_is_required(self, services, store_draft, directory):
        with pytest.raises(InvalidPayloadError) as exc_info:
            services.store.create(store_draft(unit=""), directory.staff)
        assert exc_info.value.field == "unit"
