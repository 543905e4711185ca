"""Webhook endpoints for external services."""

import json

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse

from sketchbrains.errors import RuleViolationError, SignatureError
from sketchbrains.logging_config import get_logger
from sketchbrains.payments.webhook import PaymentWebhookHandler, WebhookOutcome, verify_signature
from sketchbrains.settings import settings
from sketchbrains.storage.db import Database, get_database

logger = get_logger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post("/razorpay")
async def razorpay_webhook(request: Request, database: Database = Depends(get_database)):
    """Handle Razorpay payment webhook events.

    The signature is checked against the raw body before anything is parsed
    or stored.
    """
    if not settings.razorpay_webhook_secret:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Webhooks not configured",
        )

    payload = await request.body()
    signature = request.headers.get("x-razorpay-signature")

    try:
        verify_signature(payload, signature, settings.razorpay_webhook_secret)
    except SignatureError as e:
        logger.warning("razorpay_webhook_invalid_signature", error=str(e))
        raise

    try:
        body = json.loads(payload)
    except ValueError:
        raise RuleViolationError("Malformed webhook payload")
    if not isinstance(body, dict):
        raise RuleViolationError("Malformed webhook payload")

    handler = PaymentWebhookHandler(database)
    try:
        result = handler.handle(body)
    except RuleViolationError:
        raise
    except Exception as e:
        logger.error("razorpay_webhook_error", event_type=body.get("event"), error=str(e))
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Webhook processing failed", "details": str(e)},
        )

    if result.outcome == WebhookOutcome.NOT_FOUND:
        return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"error": result.message})

    return {"success": True, "message": result.message}
