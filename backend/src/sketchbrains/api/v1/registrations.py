"""Event registration API v1 endpoints."""

from datetime import datetime

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel

from sketchbrains.auth.middleware import Principal, require_auth
from sketchbrains.registrations.service import RegistrationService
from sketchbrains.storage.db import Database, get_database

router = APIRouter(prefix="/events", tags=["registrations"])


class RegisterRequest(BaseModel):
    coupon_code: str | None = None
    referral_code: str | None = None


class RegistrationResponse(BaseModel):
    id: str
    event_id: str
    payment_status: str
    amount_paid: float
    coupon_code: str | None = None
    registered_at: datetime


@router.post(
    "/{event_id}/register",
    response_model=RegistrationResponse,
    status_code=status.HTTP_201_CREATED,
)
async def register_for_event(
    event_id: str,
    body: RegisterRequest | None = None,
    principal: Principal = Depends(require_auth),
    database: Database = Depends(get_database),
):
    """Register the current user for an event.

    Free events (or fully discounted ones) are confirmed immediately; paid
    ones stay pending until the payment webhook arrives.
    """
    body = body or RegisterRequest()
    registration = RegistrationService(database).register(
        principal.user_id,
        event_id,
        coupon_code=body.coupon_code,
        referral_code=body.referral_code,
    )
    return RegistrationResponse(
        id=registration.id,
        event_id=registration.event_id,
        payment_status=registration.payment_status.value,
        amount_paid=registration.amount_paid,
        coupon_code=registration.coupon_code,
        registered_at=registration.registered_at,
    )
