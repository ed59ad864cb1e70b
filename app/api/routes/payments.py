from typing import Any

from fastapi import APIRouter, Request
from starlette.concurrency import run_in_threadpool

from app.api.dependencies import OriginHeader, ServicesDependency, ViewerDependency
from app.api.schemas import PurchaseTokensRequest, PurchaseTokensResponse, TokenBalanceResponse

router = APIRouter(tags=["payments"])


@router.post("/purchase-tokens", response_model=PurchaseTokensResponse)
def purchase_tokens(
    body: PurchaseTokensRequest,
    services: ServicesDependency,
    viewer: ViewerDependency,
    origin: OriginHeader = None,
) -> PurchaseTokensResponse:
    purchase = services.payments.purchase_tokens(viewer, body.tokens, origin)
    return PurchaseTokensResponse(
        authorization_url=purchase.authorization_url,
        reference=purchase.reference,
        tokens=purchase.tokens,
        amountCents=purchase.amount_cents,
    )


@router.get("/purchase-tokens", response_model=TokenBalanceResponse)
def token_balance(services: ServicesDependency, viewer: ViewerDependency) -> TokenBalanceResponse:
    return TokenBalanceResponse(**services.payments.token_balance(viewer))


@router.get("/payments/status/{reference}")
def payment_status(reference: str, services: ServicesDependency) -> dict[str, Any]:
    """Poll the authoritative state of a transaction and apply it if it succeeded."""
    return services.payments.payment_status(reference)


@router.post("/webhook/paystack")
async def paystack_webhook(request: Request, services: ServicesDependency) -> dict[str, Any]:
    # The signature covers the raw bytes, so the body must not be parsed first.
    raw_body = await request.body()
    signature = request.headers.get(services.settings.paystack_signature_header)
    return await run_in_threadpool(services.payments.handle_webhook, raw_body, signature)
