from abc import ABC, abstractmethod
from typing import Any


class BaseDetectionClient(ABC):
    """Contract for provider-specific detection API clients."""

    @abstractmethod
    def detect_media(self, *, filename: str, content: bytes, mime: str) -> dict[str, Any]:
        """Submit media and return the canonical (unvalidated) result payload.

        Raises:
            DetectionFailure: if the provider cannot be reached or answers unusably.
        """
