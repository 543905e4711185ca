"""Razorpay checkout orders and payment webhooks."""

from sketchbrains.payments.checkout import CheckoutService
from sketchbrains.payments.webhook import PaymentWebhookHandler, WebhookOutcome, verify_signature

__all__ = ["CheckoutService", "PaymentWebhookHandler", "WebhookOutcome", "verify_signature"]
