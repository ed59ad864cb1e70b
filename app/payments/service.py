"""Card-payment flows shared by the webhook, the status poll and token top-ups.

Two metadata-driven flows ride on the same gateway: order payment
(`metadata.orderId`) and token purchase (`metadata.type == token_purchase`).
Both confirmation paths are idempotent: an order only moves to paid once,
and a token credit is applied once per payment reference.
"""

import json
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote

from app.core.exceptions import InvalidRequest, Unauthorized
from app.core.identity import Viewer
from app.logging.logger import Log
from app.orders import state_machine
from app.orders.controller import OrderController, new_reference
from app.payments.base import BasePaymentGateway
from app.payments.exceptions import GatewayConfigError, GatewayPayloadError
from app.payments.models import (
    FAILED,
    PAID,
    TOKEN_PURCHASE,
    OrderPaymentMetadata,
    PaymentMetadata,
    TokenPurchaseMetadata,
)
from app.payments.signature import verify_webhook_signature
from app.payments.validator import build_webhook_event
from app.tokens.accounting import TokenAccounting


@dataclass(frozen=True)
class TokenPurchase:
    authorization_url: str
    reference: str
    tokens: int
    amount_cents: int


class PaymentService:
    def __init__(
        self,
        *,
        gateway: BasePaymentGateway,
        orders: OrderController,
        tokens: TokenAccounting,
        public_origin: str,
        require_webhook_secret: bool,
        poll_interval_seconds: int,
        poll_max_attempts: int,
    ) -> None:
        self._gateway = gateway
        self._orders = orders
        self._tokens = tokens
        self._public_origin = public_origin.rstrip("/")
        self._require_webhook_secret = require_webhook_secret
        self._poll_interval_seconds = poll_interval_seconds
        self._poll_max_attempts = poll_max_attempts

    @property
    def poll_policy(self) -> dict[str, int]:
        """Bounded client-side polling contract for the payment-pending page."""
        return {
            "pollIntervalSeconds": self._poll_interval_seconds,
            "maxAttempts": self._poll_max_attempts,
        }

    def purchase_tokens(self, viewer: Viewer | None, tokens: Any, origin: str | None = None) -> TokenPurchase:
        if viewer is None:
            raise Unauthorized()
        if not viewer.email:
            raise InvalidRequest("User email not found")
        if isinstance(tokens, bool) or not isinstance(tokens, int) or tokens <= 0:
            raise InvalidRequest("Valid tokens amount is required (positive number)")
        if self._tokens.is_demo_account(viewer.email):
            raise InvalidRequest("Demo users cannot purchase additional tokens")

        user = self._tokens.get_or_create_user(viewer.email)
        if not self._gateway.is_configured:
            raise GatewayConfigError("Server not configured: payment gateway secret missing")

        amount_cents = self._tokens.cents_for_tokens(tokens)
        reference = new_reference("TOKEN")
        callback_url = (
            f"{(origin or self._public_origin).rstrip('/')}/payment-pending"
            f"?type=tokens&tokens={tokens}&ref={quote(reference)}"
        )
        init = self._gateway.initialize_transaction(
            email=viewer.email,
            amount_cents=amount_cents,
            reference=reference,
            callback_url=callback_url,
            metadata={
                "type": TOKEN_PURCHASE,
                "tokens": tokens,
                "userId": user.id,
                "userEmail": viewer.email,
            },
        )
        Log.info(f"Token purchase {reference}: {tokens} token(s) for user {user.id}")
        return TokenPurchase(
            authorization_url=init.authorization_url,
            reference=reference,
            tokens=tokens,
            amount_cents=amount_cents,
        )

    def token_balance(self, viewer: Viewer | None) -> dict[str, Any]:
        if viewer is None:
            raise Unauthorized()
        if not viewer.email:
            raise InvalidRequest("User email not found")
        user = self._tokens.get_or_create_user(viewer.email)
        return {
            "tokens": user.tokens,
            "email": user.email,
            "isDemoUser": self._tokens.is_demo_account(viewer.email),
        }

    def handle_webhook(self, raw_body: bytes, signature: str | None) -> dict[str, Any]:
        secret = self._gateway.webhook_secret
        if not secret and self._require_webhook_secret:
            raise GatewayConfigError("Webhook secret is not configured")
        if not verify_webhook_signature(raw_body, signature, secret):
            Log.warning("Webhook signature mismatch")
            raise InvalidRequest("invalid_signature")

        try:
            event = build_webhook_event(json.loads(raw_body))
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise InvalidRequest("Webhook body is not valid JSON") from exc
        except GatewayPayloadError as exc:
            raise InvalidRequest(str(exc)) from exc

        if not event.is_success:
            Log.info(f"Unhandled webhook event '{event.event}' (status '{event.provider_status}')")
            return {"received": True}
        if not event.reference:
            Log.warning(f"Webhook '{event.event}' has no reference; ignoring")
            return {"received": True}

        outcome = self.apply_confirmed_payment(event.reference, event.metadata, event.amount)
        return {"received": True, **outcome}

    def payment_status(self, reference: str) -> dict[str, Any]:
        if not reference:
            raise InvalidRequest("reference param required")

        order = self._orders.find_by_reference(reference)
        if order is not None and order.status in state_machine.SETTLED_STATUSES:
            return {"status": PAID, "orderId": order.id, **self.poll_policy}

        if not self._gateway.is_configured:
            return {
                "status": order.status if order else "unknown",
                "orderId": order.id if order else None,
                **self.poll_policy,
            }

        verification = self._gateway.verify_reference(reference)
        if verification.status == PAID:
            metadata = verification.metadata
            if not isinstance(metadata, (OrderPaymentMetadata, TokenPurchaseMetadata)) and order:
                metadata = OrderPaymentMetadata(order_id=order.id)
            outcome = self.apply_confirmed_payment(reference, metadata, verification.amount)
            return {"status": PAID, **outcome, **self.poll_policy}

        if verification.status == FAILED and order is not None:
            self._orders.mark_payment_failed(order.id, reference)

        order_id = order.id if order else None
        if order_id is None and isinstance(verification.metadata, OrderPaymentMetadata):
            order_id = verification.metadata.order_id
        return {"status": verification.status, "orderId": order_id, **self.poll_policy}

    def apply_confirmed_payment(
        self,
        reference: str,
        metadata: PaymentMetadata,
        amount_cents: int | None,
    ) -> dict[str, Any]:
        """Apply a successful charge to exactly one of the two credit paths."""
        if isinstance(metadata, TokenPurchaseMetadata):
            return self._apply_token_purchase(reference, metadata, amount_cents)
        if isinstance(metadata, OrderPaymentMetadata):
            applied = self._orders.mark_paid(metadata.order_id, reference, amount_cents)
            return {"orderId": metadata.order_id, "applied": applied}
        Log.warning(f"Confirmed payment {reference} has no orderId or token metadata")
        return {"orderId": None, "applied": False}

    def _apply_token_purchase(
        self,
        reference: str,
        metadata: TokenPurchaseMetadata,
        amount_cents: int | None,
    ) -> dict[str, Any]:
        expected = self._tokens.cents_for_tokens(metadata.tokens)
        if amount_cents is not None and amount_cents < expected:
            Log.error(
                f"Token purchase {reference} paid {amount_cents} cents for "
                f"{metadata.tokens} tokens (expected {expected}); not crediting"
            )
            return {"type": TOKEN_PURCHASE, "applied": False}
        user = self._tokens.get_or_create_user(metadata.user_email)
        credited = self._tokens.credit_for_reference(user.id, metadata.tokens, reference)
        balance = credited.tokens if credited else self._tokens.balance(user.id)
        return {"type": TOKEN_PURCHASE, "applied": credited is not None, "tokens": balance}
