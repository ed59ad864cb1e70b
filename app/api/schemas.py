"""
Pydantic schemas for the HTTP API.

Field names mirror the JSON contract the web client already speaks (camelCase).
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

from app.database.models import OrderRecord


class CreateOrderRequest(BaseModel):
    uploads: list[str]
    currency: Optional[str] = None
    notes: Optional[str] = None


class CreateOrderResponse(BaseModel):
    orderId: str
    totalAmountCents: int
    currency: str
    status: str


class OrderIdRequest(BaseModel):
    """Body of POST /create-paystack, /pay-with-tokens and /process-order."""

    orderId: str = Field(min_length=1)


class OrderResponse(BaseModel):
    id: str
    uploadIds: list[str]
    userId: Optional[str] = None
    totalAmountCents: int
    currency: str
    status: str
    createdAt: Optional[datetime] = None
    updatedAt: Optional[datetime] = None
    paymentRef: Optional[str] = None
    notes: str = ""
    result: Optional[dict[str, Any]] = None

    @classmethod
    def from_record(cls, order: OrderRecord, include_result: bool = True) -> OrderResponse:
        return cls(
            id=order.id,
            uploadIds=order.upload_ids,
            userId=order.user_id,
            totalAmountCents=order.total_amount_cents,
            currency=order.currency,
            status=order.status,
            createdAt=order.created_at,
            updatedAt=order.updated_at,
            paymentRef=order.payment_ref,
            notes=order.notes,
            result=order.result if include_result else None,
        )


class UploadResponse(BaseModel):
    uploadId: str
    filename: str
    size: int
    mime: str
    remainingTokens: Optional[int] = None
    charged: bool


class CheckoutResponse(BaseModel):
    orderId: str
    reference: str
    authorization_url: Optional[str] = None
    demo: bool = False
    redirectUrl: Optional[str] = None


class ProcessOrderResponse(BaseModel):
    success: bool
    orderId: str
    status: str
    result: Optional[dict[str, Any]] = None


class PurchaseTokensRequest(BaseModel):
    tokens: int = Field(gt=0, strict=True)


class PurchaseTokensResponse(BaseModel):
    authorization_url: str
    reference: str
    tokens: int
    amountCents: int


class TokenBalanceResponse(BaseModel):
    tokens: int
    email: str
    isDemoUser: bool


class HealthResponse(BaseModel):
    """Simple health check response."""

    status: str


class ErrorResponse(BaseModel):
    error: str
    code: str
