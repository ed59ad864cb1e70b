from app.detection.client_base import BaseDetectionClient
from app.detection.models import DetectionResult
from app.detection.validator import validate_and_build
from app.logging.logger import Log


class Detector:
    """Runs one media item through a detection client and validates the verdict."""

    def __init__(self, *, client: BaseDetectionClient) -> None:
        self._client = client

    def detect(self, content: bytes, *, filename: str, mime: str) -> DetectionResult:
        raw = self._client.detect_media(filename=filename, content=content, mime=mime)
        Log.debug(f"Detector raw response: {raw}")
        result = validate_and_build(raw)
        Log.info(
            f"Detection {result.request_id}: {result.status} "
            f"(score={result.score}, {len(result.models)} models)"
        )
        return result
