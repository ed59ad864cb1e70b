from dataclasses import asdict
from typing import Any

from app.core.exceptions import NotFound
from app.database.models import OrderRecord, UploadRecord
from app.database.repositories.order_repository import OrderRepository
from app.database.repositories.upload_repository import UploadRepository
from app.detection.detector import Detector
from app.detection.exceptions import DetectionFailure
from app.detection.models import DetectionResult
from app.logging.logger import Log
from app.orders import state_machine

FALLBACK_STATUS = "UNKNOWN"


class DetectionDispatcher:
    """Runs detection for a paid order and persists the verdict.

    Only the first upload of an order is analyzed. Detector failures never leave
    the order stuck: they are downgraded to a clearly marked fallback result.
    Storage errors propagate so the job runner can retry.
    """

    def __init__(
        self,
        *,
        order_repo: OrderRepository,
        upload_repo: UploadRepository,
        detector: Detector,
    ) -> None:
        self._order_repo = order_repo
        self._upload_repo = upload_repo
        self._detector = detector

    def process(self, order_id: str) -> OrderRecord:
        order = self._order_repo.get_order(order_id)
        if order is None:
            raise NotFound(f"Order {order_id} not found")

        if order.status == state_machine.COMPLETED:
            Log.info(f"Order {order_id} already completed, skipping detection")
            return order
        if order.status == state_machine.PAID:
            claimed = self._order_repo.transition_order_status(
                order_id, state_machine.PROCESSING, (state_machine.PAID,)
            )
            if claimed is None:
                current = self._order_repo.get_order(order_id)
                Log.info(f"Order {order_id} was moved concurrently, skipping detection")
                return current if current is not None else order
            order = claimed
            Log.info("Order processing", order_id=order_id)
        elif order.status == state_machine.PROCESSING:
            Log.warning(f"Order {order_id} resumed in processing (retry)")
        else:
            Log.warning(f"Order {order_id} is '{order.status}', not paid; skipping detection")
            return order

        upload = self._first_upload(order)
        result = self._detect(order, upload)
        payload = build_result_payload(upload, result)

        self._order_repo.set_order_result(order_id, payload)
        completed = self._order_repo.transition_order_status(
            order_id, state_machine.COMPLETED, (state_machine.PROCESSING,)
        )
        Log.info(
            "Order completed",
            order_id=order_id,
            verdict=result.status,
            fallback=result.fallback,
        )
        if completed is None:
            current = self._order_repo.get_order(order_id)
            return current if current is not None else order
        return completed

    def _first_upload(self, order: OrderRecord) -> UploadRecord | None:
        if not order.upload_ids:
            return None
        return self._upload_repo.get_upload(order.upload_ids[0])

    def _detect(self, order: OrderRecord, upload: UploadRecord | None) -> DetectionResult:
        if upload is None:
            return fallback_result(order.id, "Upload record not found")
        if not upload.data:
            return fallback_result(order.id, f"Upload {upload.id} has no stored media")
        try:
            return self._detector.detect(upload.data, filename=upload.filename, mime=upload.mime)
        except DetectionFailure as exc:
            Log.error(f"Detection failed for order {order.id}, using fallback: {exc}")
            return fallback_result(order.id, str(exc))


def fallback_result(order_id: str, reason: str) -> DetectionResult:
    """Synthetic verdict used when the detector is unavailable."""
    return DetectionResult(
        request_id=f"fallback_{order_id}",
        status=FALLBACK_STATUS,
        score=None,
        models=[],
        fallback=True,
        fallback_reason=reason,
    )


def build_result_payload(upload: UploadRecord | None, result: DetectionResult) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "fileMeta": {
            "name": upload.filename if upload else None,
            "type": upload.mime if upload else None,
            "size": upload.size if upload else None,
        },
        "analysis": {
            "requestId": result.request_id,
            "status": result.status,
            "score": result.score,
            "models": [asdict(model) for model in result.models],
            "raw": result.raw,
        },
        "fallback": result.fallback,
    }
    if result.fallback_reason:
        payload["fallbackReason"] = result.fallback_reason
    return payload
