"""Validates the canonical detector payload and builds a DetectionResult.

Canonical shape: {"requestId": str, "status": str, "score": number|null,
"models": [{"name": str, "status": str, "score": number|null}]}. Extra keys are
tolerated and kept in `raw`.
"""

from typing import Any

from app.detection.exceptions import DetectionValidationError
from app.detection.models import DetectionResult, ModelScore

_MAX_MODELS = 50


def validate_and_build(data: Any) -> DetectionResult:
    """Raises:
        DetectionValidationError: on any structural problem.
    """
    if not isinstance(data, dict):
        raise DetectionValidationError("Detector response must be an object")
    request_id = data.get("requestId")
    if not request_id or not isinstance(request_id, str):
        raise DetectionValidationError("'requestId' must be a non-empty string")
    status = data.get("status")
    if not status or not isinstance(status, str):
        raise DetectionValidationError("'status' must be a non-empty string")
    return DetectionResult(
        request_id=request_id,
        status=status.upper(),
        score=_build_score(data.get("score"), "score"),
        models=_build_models(data.get("models", [])),
        raw=data,
    )


def _build_models(raw: Any) -> list[ModelScore]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise DetectionValidationError("'models' must be a list")
    if len(raw) > _MAX_MODELS:
        raise DetectionValidationError(f"Too many models: {len(raw)} (max {_MAX_MODELS})")
    models: list[ModelScore] = []
    for i, item in enumerate(raw):
        if not isinstance(item, dict):
            raise DetectionValidationError(f"Model at index {i} must be an object")
        name = item.get("name")
        if not name or not isinstance(name, str):
            raise DetectionValidationError(f"Model at index {i}: 'name' must be a non-empty string")
        status = item.get("status")
        if not isinstance(status, str):
            raise DetectionValidationError(f"Model at index {i}: 'status' must be a string")
        models.append(
            ModelScore(
                name=name,
                status=status.upper(),
                score=_build_score(item.get("score"), f"models[{i}].score"),
            )
        )
    return models


def _build_score(raw: Any, label: str) -> float | None:
    if raw is None:
        return None
    if isinstance(raw, bool) or not isinstance(raw, (int, float)):
        raise DetectionValidationError(f"'{label}' must be a number or null")
    score = float(raw)
    if not 0.0 <= score <= 1.0:
        raise DetectionValidationError(f"'{label}' must be within [0, 1], got {score}")
    return score
