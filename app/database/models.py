from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass
class UploadRecord:
    """Represents a row from the uploads table."""

    id: str
    filename: str
    size: int
    mime: str
    status: str
    created_at: datetime | None = None
    data: bytes | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class OrderRecord:
    """Represents a row from the orders table."""

    id: str
    upload_ids: list[str]
    total_amount_cents: int
    currency: str
    status: str
    user_id: str | None = None
    payment_ref: str | None = None
    notes: str = ""
    result: dict[str, Any] | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class UserRecord:
    """Represents a row from the users table."""

    id: str
    email: str
    tokens: int
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class JobRecord:
    """Represents a row from the detection_jobs table."""

    id: int
    order_id: str
    status: str
    attempts: int
    error_message: str | None = None
    locked_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
