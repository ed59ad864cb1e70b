from abc import ABC, abstractmethod
from typing import Any

from app.payments.models import TransactionInit, TransactionVerification


class BasePaymentGateway(ABC):
    """Contract for card-payment provider adapters."""

    @property
    @abstractmethod
    def is_configured(self) -> bool:
        """True when provider credentials are present."""

    @property
    @abstractmethod
    def webhook_secret(self) -> str:
        """Secret used to sign webhook deliveries ('' if unset)."""

    @abstractmethod
    def initialize_transaction(
        self,
        *,
        email: str,
        amount_cents: int,
        reference: str,
        callback_url: str,
        metadata: dict[str, Any],
    ) -> TransactionInit:
        """Create a hosted-checkout transaction.

        Raises:
            GatewayConfigError: if credentials are missing.
            GatewayError: on non-2xx provider response or missing authorization URL.
        """

    @abstractmethod
    def verify_reference(self, reference: str) -> TransactionVerification:
        """Ask the provider for the authoritative state of a transaction.

        Raises:
            GatewayConfigError: if credentials are missing.
            GatewayError: if the provider cannot be reached or answers non-2xx.
        """
