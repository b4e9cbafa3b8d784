"""
ICT Request Service (``fleet_modules.ict.service``).

Creation and correction of ICT equipment requests.  Approval routing is
the shared lifecycle; ``fleet_config/workflows/ict.yaml`` makes
resubmission restart at supervisor review and ends at fulfilment by an
admin officer.
"""

from __future__ import annotations

from uuid import UUID

from fleet_kernel.domain.notifications import OperationResult
from fleet_kernel.domain.requests import RequestView
from fleet_kernel.domain.workflow import RequestKind
from fleet_kernel.exceptions import ConcurrentModificationError
from fleet_kernel.logging_config import get_logger
from fleet_kernel.services.request_lifecycle import RequestLifecycleService
from fleet_modules.ict.models import IctRequestDraft
from fleet_modules.ict.orm import IctRequestModel

logger = get_logger("modules.ict.service")


class IctRequestService(RequestLifecycleService):
    kind = RequestKind.ICT
    model_class = IctRequestModel

    def create(
        self, draft: IctRequestDraft, requester_id: UUID,
    ) -> OperationResult[RequestView]:
        requester = self._require_requester(requester_id)
        supervisor_id = self._resolve_supervisor(requester, draft.supervisor_id)
        fields = self._validate(draft)

        model = IctRequestModel(
            requester_id=requester.id,
            supervisor_id=supervisor_id,
            department=requester.department,
            **fields,
        )
        plan = self._submit(model, requester)
        return OperationResult(self.view(model), self._creation_notifications(model, plan))

    def update(
        self, request_id: UUID, requester_id: UUID, draft: IctRequestDraft,
    ) -> OperationResult[RequestView]:
        model = self.load(request_id)
        self._require_editable(model, requester_id)
        for name, value in self._validate(draft).items():
            setattr(model, name, value)
        self._flush(lambda: ConcurrentModificationError("Request", model.id))
        logger.info("request_updated", extra={"kind": self.kind.value, "request_id": str(model.id)})
        return OperationResult(self.view(model))

    def _validate(self, draft: IctRequestDraft) -> dict:
        return {
            "equipment_type": self._require_payload_text(draft.equipment_type, "equipment_type"),
            "specifications": self._require_payload_text(draft.specifications, "specifications"),
            "purpose": self._require_payload_text(draft.purpose, "purpose"),
            "urgency": self._parse_urgency(draft.urgency).value,
            "quantity": self._require_positive(draft.quantity, "quantity"),
            "estimated_cost": self._require_non_negative(draft.estimated_cost, "estimated_cost"),
            "justification": (draft.justification or "").strip() or None,
        }
