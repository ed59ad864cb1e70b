import json
from typing import Any

from app.database.exceptions import DataIntegrityError


def encode_json(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"))


def decode_json(raw: str | None, column: str, row_id: str) -> Any:
    """Decode a JSON text column.

    Raises:
        DataIntegrityError: if the stored value is not valid JSON.
    """
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except (TypeError, json.JSONDecodeError) as exc:
        raise DataIntegrityError(
            f"Malformed JSON in column '{column}' for row {row_id}: {exc}"
        ) from exc
