from typing import Any
from urllib.parse import quote

import httpx

from app.logging.logger import Log
from app.payments.base import BasePaymentGateway
from app.payments.exceptions import GatewayConfigError, GatewayError
from app.payments.models import TransactionInit, TransactionVerification
from app.payments.validator import build_transaction_init, build_verification


class PaystackAdapter(BasePaymentGateway):
    """Payment gateway adapter for the Paystack transaction API.

    The secret key authenticates API calls and also signs webhook deliveries.
    """

    def __init__(
        self,
        *,
        secret_key: str,
        base_url: str,
        timeout_seconds: int,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._secret_key = secret_key
        self._client = httpx.Client(
            base_url=base_url.rstrip("/"),
            timeout=timeout_seconds,
            transport=transport,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self._secret_key)

    @property
    def webhook_secret(self) -> str:
        return self._secret_key

    def initialize_transaction(
        self,
        *,
        email: str,
        amount_cents: int,
        reference: str,
        callback_url: str,
        metadata: dict[str, Any],
    ) -> TransactionInit:
        payload = {
            "email": email,
            # Paystack amounts are already in the smallest currency unit.
            "amount": amount_cents,
            "reference": reference,
            "callback_url": callback_url,
            "metadata": metadata,
        }
        body = self._request("POST", "/transaction/initialize", json=payload)
        init = build_transaction_init(body)
        Log.info(f"Initialized transaction {reference} for {amount_cents} cents")
        return init

    def verify_reference(self, reference: str) -> TransactionVerification:
        body = self._request("GET", f"/transaction/verify/{quote(reference, safe='')}")
        verification = build_verification(body, reference)
        Log.info(
            f"Verified transaction {reference}: provider status "
            f"'{verification.provider_status}' -> {verification.status}"
        )
        return verification

    def close(self) -> None:
        self._client.close()

    def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        if not self._secret_key:
            raise GatewayConfigError("Payment gateway secret key is not configured")
        try:
            response = self._client.request(
                method,
                path,
                headers={"Authorization": f"Bearer {self._secret_key}"},
                **kwargs,
            )
        except httpx.HTTPError as exc:
            raise GatewayError(f"Payment gateway network error: {exc}") from exc

        if response.is_error:
            Log.error(
                f"Payment gateway {method} {path} failed: "
                f"{response.status_code} {response.text[:500]}"
            )
            raise GatewayError(f"Payment gateway returned HTTP {response.status_code}")
        try:
            return response.json()
        except ValueError as exc:
            raise GatewayError("Payment gateway returned a non-JSON body") from exc
