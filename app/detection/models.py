from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class ModelScore:
    """Verdict of a single detection model."""

    name: str
    status: str
    score: float | None = None


@dataclass(frozen=True)
class DetectionResult:
    """Normalized detector output."""

    request_id: str
    status: str
    score: float | None = None
    models: list[ModelScore] = field(default_factory=list)
    raw: dict[str, Any] = field(default_factory=dict)
    fallback: bool = False
    fallback_reason: str | None = None
