"""Payment API v1 endpoints."""

from datetime import datetime

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from sketchbrains.auth.middleware import Principal, require_auth
from sketchbrains.payments.checkout import CheckoutService
from sketchbrains.storage.db import Database, get_database

router = APIRouter(prefix="/payments", tags=["payments"])


class CreateOrderRequest(BaseModel):
    registration_id: str


class OrderResponse(BaseModel):
    order_id: str
    transaction_id: str
    amount: int
    currency: str
    key_id: str | None = None


class TransactionResponse(BaseModel):
    id: str
    event_id: str
    registration_id: str | None = None
    amount: float
    currency: str
    status: str
    gateway_order_id: str | None = None
    gateway_payment_id: str | None = None
    payment_method: str | None = None
    error_message: str | None = None
    created_at: datetime
    completed_at: datetime | None = None


@router.post("/orders", response_model=OrderResponse)
async def create_order(
    body: CreateOrderRequest,
    principal: Principal = Depends(require_auth),
    database: Database = Depends(get_database),
):
    """Create a checkout order for a pending registration."""
    return CheckoutService(database).create_order(principal.user_id, body.registration_id)


@router.get("/history", response_model=list[TransactionResponse])
async def get_payment_history(
    principal: Principal = Depends(require_auth),
    database: Database = Depends(get_database),
):
    """Current user's payment transactions, newest first."""
    return [
        TransactionResponse(
            id=t.id,
            event_id=t.event_id,
            registration_id=t.registration_id,
            amount=t.amount,
            currency=t.currency,
            status=t.status.value,
            gateway_order_id=t.gateway_order_id,
            gateway_payment_id=t.gateway_payment_id,
            payment_method=t.payment_method,
            error_message=t.error_message,
            created_at=t.created_at,
            completed_at=t.completed_at,
        )
        for t in CheckoutService(database).payment_history(principal.user_id)
    ]
