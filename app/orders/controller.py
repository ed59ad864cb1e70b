"""Order lifecycle: creation, ownership, checkout and the paid transition."""

import secrets
import time
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote

from app.core.exceptions import AccessDenied, InvalidRequest, NotFound, Unauthorized
from app.core.identity import Viewer
from app.database.exceptions import TokenChargeUnavailable
from app.database.models import OrderRecord
from app.database.repositories.job_repository import JobRepository
from app.database.repositories.order_repository import OrderRepository
from app.database.repositories.upload_repository import UploadRepository
from app.logging.logger import Log
from app.orders import state_machine
from app.payments.base import BasePaymentGateway
from app.payments.exceptions import GatewayConfigError
from app.tokens.accounting import TokenAccounting

MAX_LIST_LIMIT = 200


def new_reference(prefix: str) -> str:
    return f"{prefix}-{int(time.time() * 1000)}-{secrets.token_hex(4)}"


@dataclass(frozen=True)
class CheckoutOutcome:
    order_id: str
    reference: str
    authorization_url: str | None = None
    bypassed: bool = False


class OrderController:
    """Owns every order state change outside detection itself.

    Marking an order paid persists the detection job in the same transaction,
    so detection is triggered exactly once per order regardless of how many
    payment confirmations arrive.
    """

    def __init__(
        self,
        *,
        order_repo: OrderRepository,
        upload_repo: UploadRepository,
        job_repo: JobRepository,
        tokens: TokenAccounting,
        gateway: BasePaymentGateway,
        public_origin: str,
    ) -> None:
        self._order_repo = order_repo
        self._upload_repo = upload_repo
        self._job_repo = job_repo
        self._tokens = tokens
        self._gateway = gateway
        self._public_origin = public_origin.rstrip("/")

    def create_order(
        self,
        upload_ids: Any,
        viewer: Viewer | None,
        *,
        currency: str | None = None,
        notes: str | None = None,
    ) -> OrderRecord:
        if not isinstance(upload_ids, list) or not upload_ids:
            raise InvalidRequest("Invalid body, expected { uploads: string[] }")
        if not all(isinstance(upload_id, str) and upload_id for upload_id in upload_ids):
            raise InvalidRequest("Every upload id must be a non-empty string")
        for upload_id in upload_ids:
            upload = self._upload_repo.get_upload(upload_id)
            if upload is None or upload.status != "uploaded":
                raise InvalidRequest(f"Upload {upload_id} does not exist")
        order = self._order_repo.create_order(
            upload_ids,
            user_id=viewer.id if viewer else None,
            currency=currency,
            notes=notes,
        )
        Log.info(
            f"Created order {order.id} with {len(upload_ids)} upload(s), "
            f"{order.total_amount_cents} {order.currency} cents, owner={order.user_id}"
        )
        return order

    @staticmethod
    def authorize(order: OrderRecord, viewer: Viewer | None) -> None:
        """Owners see their orders; anonymous viewers see only unclaimed orders."""
        if viewer is not None and order.user_id == viewer.id:
            return
        if viewer is None and order.user_id is None:
            return
        raise AccessDenied()

    def get_order(self, order_id: str, viewer: Viewer | None) -> OrderRecord:
        order = self._require_order(order_id)
        self.authorize(order, viewer)
        return order

    def list_orders(self, viewer: Viewer | None, limit: int = 50) -> list[OrderRecord]:
        if viewer is None:
            raise Unauthorized()
        limit = max(1, min(limit, MAX_LIST_LIMIT))
        return self._order_repo.list_orders_for_user(viewer.id, limit)

    def claim(self, order: OrderRecord, viewer: Viewer) -> OrderRecord:
        """Bind an anonymous order to `viewer`. The owner can be set only once."""
        if order.user_id == viewer.id:
            return order
        if order.user_id is not None:
            Log.warning(f"User {viewer.id} denied claim of order {order.id} owned by {order.user_id}")
            raise AccessDenied()
        claimed = self._order_repo.update_order_user(order.id, viewer.id)
        if claimed is None:
            raise AccessDenied()
        Log.info("Order claimed", order_id=order.id, user_id=viewer.id)
        return claimed

    def checkout(self, order_id: Any, viewer: Viewer | None, origin: str | None = None) -> CheckoutOutcome:
        """Start card payment for an order, or settle it directly for demo accounts.

        A gateway failure leaves the order untouched: the reference and the
        payment_pending status are only stored after the provider accepted it.
        """
        viewer, email = self._require_identity(viewer)
        order = self._require_order(self._require_order_id(order_id))
        order = self.claim(order, viewer)
        self._require_payable(order)

        if self._tokens.is_demo_account(email):
            self._tokens.get_or_create_user(email)
            reference = new_reference("DEMO")
            if not self.mark_paid(order.id, reference):
                # A concurrent confirmation settled the order first; report its reference.
                current = self._require_order(order.id)
                if current.status not in state_machine.SETTLED_STATUSES or not current.payment_ref:
                    raise InvalidRequest(f"Order {order.id} is no longer awaiting payment")
                return CheckoutOutcome(order_id=order.id, reference=current.payment_ref, bypassed=True)
            Log.info(f"Demo checkout for order {order.id} bypassed the gateway ({reference})")
            return CheckoutOutcome(order_id=order.id, reference=reference, bypassed=True)

        if not self._gateway.is_configured:
            raise GatewayConfigError("Server not configured: payment gateway secret missing")

        reference = new_reference("DT")
        callback_url = (
            f"{self._origin(origin)}/payment-pending?orderId={quote(order.id)}"
            f"&ref={quote(reference)}"
        )
        init = self._gateway.initialize_transaction(
            email=email,
            amount_cents=order.total_amount_cents,
            reference=reference,
            callback_url=callback_url,
            metadata={"orderId": order.id},
        )
        pending = self._order_repo.mark_order_payment_pending(
            order.id, reference, state_machine.sources_for(state_machine.PAYMENT_PENDING)
        )
        if pending is None:
            raise InvalidRequest(f"Order {order.id} is no longer awaiting payment")
        Log.info("Order awaiting card payment", order_id=order.id, ref=reference)
        return CheckoutOutcome(
            order_id=order.id,
            reference=reference,
            authorization_url=init.authorization_url,
        )

    def pay_with_tokens(self, order_id: Any, viewer: Viewer | None) -> CheckoutOutcome:
        """Settle an order whose uploads were each charged a token by this user.

        Each upload's token pays for exactly one order: the charge is spent in
        the same transaction that marks the order paid.
        """
        viewer, email = self._require_identity(viewer)
        order = self._require_order(self._require_order_id(order_id))
        order = self.claim(order, viewer)
        self._require_payable(order)

        user = self._tokens.get_or_create_user(email)
        reference = f"TOKENS-{order.id}"
        if self._tokens.is_demo_account(email):
            if not self.mark_paid(order.id, reference):
                raise InvalidRequest(f"Order {order.id} is no longer awaiting payment")
            return CheckoutOutcome(order_id=order.id, reference=reference, bypassed=True)

        for upload_id in order.upload_ids:
            upload = self._upload_repo.get_upload(upload_id)
            metadata = upload.metadata if upload else {}
            if metadata.get("tokenChargedUserId") != user.id:
                raise InvalidRequest(
                    f"Upload {upload_id} was not paid with tokens by this account"
                )
            if metadata.get("tokenConsumedOrderId") is not None:
                raise InvalidRequest(f"Upload {upload_id} token was already used for another order")

        try:
            paid = self._order_repo.mark_order_paid_with_tokens(order.id, reference, user.id)
        except TokenChargeUnavailable as exc:
            raise InvalidRequest(str(exc)) from exc
        if paid is None:
            raise InvalidRequest(f"Order {order.id} is no longer awaiting payment")
        Log.info("Order paid with tokens, detection scheduled", order_id=order.id, ref=reference)
        return CheckoutOutcome(order_id=order.id, reference=reference, bypassed=True)

    def mark_paid(self, order_id: str, reference: str, amount_cents: int | None = None) -> bool:
        """Record a confirmed payment and schedule detection.

        Idempotent: returns False without side effects when the order is already
        paid, processing, completed, or otherwise not payable.
        """
        if amount_cents is not None:
            order = self._require_order(order_id)
            if amount_cents < order.total_amount_cents:
                Log.error(
                    f"Payment {reference} for order {order_id} is {amount_cents} cents, "
                    f"expected {order.total_amount_cents}; not marking paid"
                )
                return False

        paid = self._order_repo.mark_order_paid(order_id, reference)
        if paid is not None:
            Log.info("Order marked paid, detection scheduled", order_id=order_id, ref=reference)
            return True

        current = self._require_order(order_id)
        if current.status in state_machine.SETTLED_STATUSES:
            Log.info(
                f"Order {order_id} already {current.status}; ignoring repeated confirmation {reference}"
            )
        else:
            Log.warning(
                f"Payment {reference} confirmed for order {order_id} in status "
                f"'{current.status}'; not marking paid"
            )
        return False

    def request_processing(self, order_id: Any, viewer: Viewer | None) -> OrderRecord:
        """Make sure a paid order has its detection scheduled and return it."""
        order = self.get_order(self._require_order_id(order_id), viewer)
        if not order.upload_ids:
            raise InvalidRequest("No uploads found for order")
        if order.status == state_machine.COMPLETED:
            return order
        if order.status not in state_machine.SETTLED_STATUSES:
            raise InvalidRequest(f"Order {order.id} is not paid (status: {order.status})")
        if self._job_repo.enqueue(order.id):
            Log.info(f"Detection job re-created for order {order.id}")
        return order

    def mark_payment_failed(self, order_id: str, reference: str) -> OrderRecord | None:
        failed = self._order_repo.transition_order_status(
            order_id, state_machine.FAILED, (state_machine.PAYMENT_PENDING,)
        )
        if failed is not None:
            Log.warning(f"Order {order_id} payment {reference} failed at the gateway")
        return failed

    def find_by_reference(self, reference: str) -> OrderRecord | None:
        return self._order_repo.find_order_by_payment_ref(reference)

    def _origin(self, origin: str | None) -> str:
        return (origin or self._public_origin).rstrip("/")

    def _require_order(self, order_id: str) -> OrderRecord:
        order = self._order_repo.get_order(order_id)
        if order is None:
            raise NotFound("Order not found")
        return order

    @staticmethod
    def _require_order_id(order_id: Any) -> str:
        if not isinstance(order_id, str) or not order_id:
            raise InvalidRequest("orderId is required")
        return order_id

    @staticmethod
    def _require_identity(viewer: Viewer | None) -> tuple[Viewer, str]:
        if viewer is None:
            raise Unauthorized()
        if not viewer.email:
            raise InvalidRequest("User email not found")
        return viewer, viewer.email

    @staticmethod
    def _require_payable(order: OrderRecord) -> None:
        if order.status not in state_machine.PAYABLE_STATUSES:
            raise InvalidRequest(f"Order {order.id} cannot be paid (status: {order.status})")
