"""Offline detection client.

Returns a fixed, deterministic verdict without network calls. Useful for local
development and tests.
"""

import hashlib
from typing import Any, ClassVar

from app.detection.client_base import BaseDetectionClient


class ExampleClientAdapter(BaseDetectionClient):
    """Example adapter that derives a stable request id from the media digest."""

    DEFAULT_MODELS: ClassVar[list[dict[str, Any]]] = [
        {"name": "example-context-img", "status": "AUTHENTIC", "score": 0.08},
        {"name": "example-pixel-img", "status": "AUTHENTIC", "score": 0.12},
    ]

    def detect_media(self, *, filename: str, content: bytes, mime: str) -> dict[str, Any]:
        _ = filename, mime
        digest = hashlib.sha256(content).hexdigest()[:16]
        return {
            "requestId": f"example_{digest}",
            "status": "AUTHENTIC",
            "score": 0.1,
            "models": [dict(model) for model in self.DEFAULT_MODELS],
        }
