"""Builds typed payment payloads from raw provider JSON.

Known fields are type-checked; unknown fields are ignored. A payload whose
required structure is wrong raises GatewayPayloadError instead of being indexed
into optimistically.
"""

import json
from typing import Any

from app.payments.exceptions import GatewayPayloadError
from app.payments.models import (
    FAILED,
    PAID,
    PENDING,
    TOKEN_PURCHASE,
    OrderPaymentMetadata,
    PaymentMetadata,
    TokenPurchaseMetadata,
    TransactionInit,
    TransactionVerification,
    UnknownMetadata,
    WebhookEvent,
)

_PAID_STATES = frozenset({"success"})
_FAILED_STATES = frozenset({"failed", "abandoned", "reversed"})


def map_provider_status(provider_status: str) -> str:
    """Map a provider transaction state to paid/failed/pending.

    Anything unrecognized is 'pending', never 'paid'.
    """
    normalized = provider_status.strip().lower()
    if normalized in _PAID_STATES:
        return PAID
    if normalized in _FAILED_STATES:
        return FAILED
    return PENDING


def build_transaction_init(body: Any) -> TransactionInit:
    data = _require_data(body)
    url = data.get("authorization_url")
    if not url or not isinstance(url, str):
        raise GatewayPayloadError("Provider response is missing 'data.authorization_url'")
    reference = data.get("reference")
    access_code = data.get("access_code")
    return TransactionInit(
        authorization_url=url,
        reference=reference if isinstance(reference, str) else "",
        access_code=access_code if isinstance(access_code, str) else None,
    )


def build_verification(body: Any, reference: str) -> TransactionVerification:
    data = _require_data(body)
    provider_status = _optional_str(data, "status") or ""
    return TransactionVerification(
        status=map_provider_status(provider_status),
        reference=_optional_str(data, "reference") or reference,
        provider_status=provider_status,
        amount=_optional_int(data, "amount"),
        metadata=build_metadata(data.get("metadata")),
        raw=data,
    )


def build_webhook_event(body: Any) -> WebhookEvent:
    if not isinstance(body, dict):
        raise GatewayPayloadError("Webhook payload must be an object")
    event = body.get("event")
    if not isinstance(event, str) or not event:
        raise GatewayPayloadError("Webhook payload is missing 'event'")
    data = body.get("data")
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise GatewayPayloadError("Webhook 'data' must be an object")
    return WebhookEvent(
        event=event,
        reference=_optional_str(data, "reference"),
        provider_status=(_optional_str(data, "status") or "").lower(),
        amount=_optional_int(data, "amount"),
        metadata=build_metadata(data.get("metadata")),
        raw=body,
    )


def build_metadata(raw: Any) -> PaymentMetadata:
    """Discriminate the two payment flows by their metadata shape."""
    if isinstance(raw, str):
        # Paystack returns metadata as a JSON string when it was sent as one.
        try:
            raw = json.loads(raw) if raw.strip() else {}
        except json.JSONDecodeError:
            return UnknownMetadata()
    if not isinstance(raw, dict):
        return UnknownMetadata()

    if raw.get("type") == TOKEN_PURCHASE:
        tokens = raw.get("tokens")
        email = raw.get("userEmail")
        if isinstance(tokens, bool) or not isinstance(tokens, int) or tokens <= 0:
            raise GatewayPayloadError("token_purchase metadata requires a positive integer 'tokens'")
        if not isinstance(email, str) or not email:
            raise GatewayPayloadError("token_purchase metadata requires 'userEmail'")
        user_id = raw.get("userId")
        return TokenPurchaseMetadata(
            tokens=tokens,
            user_email=email,
            user_id=user_id if isinstance(user_id, str) else None,
        )

    order_id = raw.get("orderId")
    if isinstance(order_id, str) and order_id:
        return OrderPaymentMetadata(order_id=order_id)
    return UnknownMetadata(raw=raw)


def _require_data(body: Any) -> dict[str, Any]:
    if not isinstance(body, dict):
        raise GatewayPayloadError("Provider response must be an object")
    if body.get("status") is False:
        message = body.get("message", "unknown error")
        raise GatewayPayloadError(f"Provider reported failure: {message}")
    data = body.get("data")
    if not isinstance(data, dict):
        raise GatewayPayloadError("Provider response is missing 'data' object")
    return data


def _optional_str(data: dict[str, Any], key: str) -> str | None:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise GatewayPayloadError(f"'{key}' must be a string")
    return value


def _optional_int(data: dict[str, Any], key: str) -> int | None:
    value = data.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise GatewayPayloadError(f"'{key}' must be an integer")
    return value
