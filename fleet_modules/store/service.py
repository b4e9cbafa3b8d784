"""
Store Request Service (``fleet_modules.store.service``).

Creation and correction of store supply requests.  Routing, including
restart-on-resubmit and fulfilment by the store officer, is configured in
``fleet_config/workflows/store.yaml``.
"""

from __future__ import annotations

from uuid import UUID

from fleet_kernel.domain.notifications import OperationResult
from fleet_kernel.domain.requests import RequestView
from fleet_kernel.domain.workflow import RequestKind
from fleet_kernel.exceptions import ConcurrentModificationError
from fleet_kernel.logging_config import get_logger
from fleet_kernel.services.request_lifecycle import RequestLifecycleService
from fleet_modules.store.models import StoreRequestDraft
from fleet_modules.store.orm import StoreRequestModel

logger = get_logger("modules.store.service")


class StoreRequestService(RequestLifecycleService):
    kind = RequestKind.STORE
    model_class = StoreRequestModel

    def create(
        self, draft: StoreRequestDraft, requester_id: UUID,
    ) -> OperationResult[RequestView]:
        requester = self._require_requester(requester_id)
        supervisor_id = self._resolve_supervisor(requester, draft.supervisor_id)
        model = StoreRequestModel(
            requester_id=requester.id,
            supervisor_id=supervisor_id,
            department=requester.department,
            **self._validate(draft),
        )
        plan = self._submit(model, requester)
        return OperationResult(self.view(model), self._creation_notifications(model, plan))

    def update(
        self, request_id: UUID, requester_id: UUID, draft: StoreRequestDraft,
    ) -> OperationResult[RequestView]:
        model = self.load(request_id)
        self._require_editable(model, requester_id)
        for name, value in self._validate(draft).items():
            setattr(model, name, value)
        self._flush(lambda: ConcurrentModificationError("Request", model.id))
        logger.info("request_updated", extra={"kind": self.kind.value, "request_id": str(model.id)})
        return OperationResult(self.view(model))

    def _validate(self, draft: StoreRequestDraft) -> dict:
        specifications = (draft.specifications or "").strip() or None
        return {
            "item_name": self._require_payload_text(draft.item_name, "item_name"),
            "category": self._require_payload_text(draft.category, "category"),
            "quantity": self._require_positive(draft.quantity, "quantity"),
            "unit": self._require_payload_text(draft.unit, "unit"),
            "purpose": self._require_payload_text(draft.purpose, "purpose"),
            "specifications": specifications,
            "urgency": self._parse_urgency(draft.urgency).value,
            "estimated_cost": self._require_non_negative(draft.estimated_cost, "estimated_cost"),
            "justification": (draft.justification or "").strip() or None,
        }
