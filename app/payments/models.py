from dataclasses import dataclass, field
from typing import Any

PAID = "paid"
FAILED = "failed"
PENDING = "pending"

TOKEN_PURCHASE = "token_purchase"
CHARGE_SUCCESS = "charge.success"


@dataclass(frozen=True)
class OrderPaymentMetadata:
    """Metadata of a card payment for an order."""

    order_id: str
    kind: str = "order_payment"


@dataclass(frozen=True)
class TokenPurchaseMetadata:
    """Metadata of a token top-up payment."""

    tokens: int
    user_email: str
    user_id: str | None = None
    kind: str = TOKEN_PURCHASE


@dataclass(frozen=True)
class UnknownMetadata:
    """Metadata that matches neither flow. Never acted upon."""

    raw: dict[str, Any] = field(default_factory=dict)
    kind: str = "unknown"


PaymentMetadata = OrderPaymentMetadata | TokenPurchaseMetadata | UnknownMetadata


@dataclass(frozen=True)
class TransactionInit:
    """Result of initializing a hosted-checkout transaction."""

    authorization_url: str
    reference: str
    access_code: str | None = None


@dataclass(frozen=True)
class TransactionVerification:
    """Canonical outcome of verifying a transaction reference."""

    status: str
    reference: str
    provider_status: str
    amount: int | None = None
    metadata: PaymentMetadata = field(default_factory=UnknownMetadata)
    raw: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class WebhookEvent:
    """A parsed provider webhook delivery."""

    event: str
    reference: str | None
    provider_status: str
    amount: int | None = None
    metadata: PaymentMetadata = field(default_factory=UnknownMetadata)
    raw: dict[str, Any] = field(default_factory=dict)

    @property
    def is_success(self) -> bool:
        return self.event == CHARGE_SUCCESS
