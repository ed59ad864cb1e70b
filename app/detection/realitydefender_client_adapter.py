import time
from typing import Any

import httpx

from app.detection.client_base import BaseDetectionClient
from app.detection.exceptions import DetectionFailure, DetectionNetworkError
from app.logging.logger import Log

_PENDING_STATES = frozenset({"ANALYZING", "PROCESSING", "QUEUED", ""})


class RealityDefenderClientAdapter(BaseDetectionClient):
    """Detection client for the Reality Defender media API.

    Flow: request a presigned upload URL, PUT the bytes, then poll the media
    result until the summary leaves the analyzing state.
    """

    def __init__(
        self,
        *,
        api_key: str,
        base_url: str,
        timeout_seconds: int,
        poll_attempts: int,
        poll_interval_seconds: float,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._api_key = api_key
        self._poll_attempts = max(1, poll_attempts)
        self._poll_interval_seconds = poll_interval_seconds
        self._client = httpx.Client(
            base_url=base_url.rstrip("/"),
            timeout=timeout_seconds,
            transport=transport,
        )

    def detect_media(self, *, filename: str, content: bytes, mime: str) -> dict[str, Any]:
        if not self._api_key:
            raise DetectionFailure("Detection API key is not configured")
        request_id, signed_url = self._request_upload_url(filename)
        self._upload(signed_url, content, mime)
        Log.info(f"Uploaded {len(content)} bytes to detector, request {request_id}")
        summary = self._poll_result(request_id)
        return self._to_canonical(request_id, summary)

    def _request_upload_url(self, filename: str) -> tuple[str, str]:
        body = self._call("POST", "/api/files/aws-presigned", json={"fileName": filename})
        response = body.get("response") if isinstance(body, dict) else None
        signed_url = response.get("signedUrl") if isinstance(response, dict) else None
        request_id = body.get("requestId") if isinstance(body, dict) else None
        if not isinstance(signed_url, str) or not isinstance(request_id, str):
            raise DetectionFailure("Detector did not return an upload URL and request id")
        return request_id, signed_url

    def _upload(self, signed_url: str, content: bytes, mime: str) -> None:
        try:
            response = self._client.put(
                signed_url, content=content, headers={"Content-Type": mime}
            )
        except httpx.HTTPError as exc:
            raise DetectionNetworkError(f"Detector upload network error: {exc}") from exc
        if response.is_error:
            raise DetectionNetworkError(f"Detector upload failed: HTTP {response.status_code}")

    def _poll_result(self, request_id: str) -> dict[str, Any]:
        for attempt in range(self._poll_attempts):
            body = self._call("GET", f"/api/media/users/{request_id}")
            if not isinstance(body, dict):
                raise DetectionFailure("Detector result must be an object")
            summary = body.get("resultsSummary")
            status = summary.get("status", "") if isinstance(summary, dict) else ""
            if str(status).upper() not in _PENDING_STATES:
                return body
            Log.debug(f"Detector request {request_id} still analyzing (attempt {attempt + 1})")
            if attempt + 1 < self._poll_attempts:
                time.sleep(self._poll_interval_seconds)
        raise DetectionNetworkError(
            f"Detector result for {request_id} not ready after {self._poll_attempts} polls"
        )

    def _call(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            response = self._client.request(
                method, path, headers={"X-API-KEY": self._api_key}, **kwargs
            )
        except httpx.HTTPError as exc:
            raise DetectionNetworkError(f"Detector network error: {exc}") from exc
        if response.is_error:
            raise DetectionNetworkError(
                f"Detector API error: HTTP {response.status_code} on {method} {path}"
            )
        try:
            return response.json()
        except ValueError as exc:
            raise DetectionFailure("Detector returned a non-JSON body") from exc

    @staticmethod
    def _to_canonical(request_id: str, body: dict[str, Any]) -> dict[str, Any]:
        summary = body.get("resultsSummary") or {}
        metadata = summary.get("metadata") if isinstance(summary, dict) else None
        final_score = metadata.get("finalScore") if isinstance(metadata, dict) else None
        models = []
        for model in body.get("models") or []:
            if not isinstance(model, dict):
                continue
            models.append({
                "name": model.get("name"),
                "status": model.get("status", ""),
                "score": _percent_to_unit(model.get("finalScore")),
            })
        return {
            "requestId": body.get("requestId") or request_id,
            "status": summary.get("status") if isinstance(summary, dict) else None,
            "score": _percent_to_unit(final_score),
            "models": models,
        }


def _percent_to_unit(value: Any) -> Any:
    """Reality Defender reports 0-100 scores; the canonical contract uses 0-1."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return value
    return round(min(max(float(value), 0.0), 100.0) / 100.0, 4)
