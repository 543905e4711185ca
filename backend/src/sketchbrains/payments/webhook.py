"""Razorpay payment webhook handling.

Every delivery is logged before anything else happens. Transaction and
registration updates for one delivery commit together; user notifications are
written only after that commit, so a success message never precedes the state
it announces.
"""

import hashlib
import hmac
from dataclasses import dataclass
from enum import Enum
from typing import Any

from sqlalchemy.exc import SQLAlchemyError

from sketchbrains.errors import RuleViolationError, SignatureError
from sketchbrains.logging_config import get_logger
from sketchbrains.notifications.queue import NotificationQueue
from sketchbrains.storage.db import Database, db
from sketchbrains.storage.models import (
    InAppType,
    NotificationPriority,
    NotificationType,
    PaymentStatus,
    PaymentTransaction,
    Registration,
    TransactionStatus,
    WebhookLog,
    WebhookLogStatus,
    utcnow,
)

logger = get_logger(__name__)

WEBHOOK_SOURCE = "razorpay"
SUCCESS_EVENTS = {"payment.captured", "payment.authorized"}
FAILURE_EVENT = "payment.failed"


def verify_signature(payload: bytes, signature: str | None, secret: str) -> None:
    """Check the X-Razorpay-Signature header.

    Razorpay signs the raw request body with HMAC-SHA256 using the webhook
    secret and sends the hex digest.

    Raises:
        SignatureError: If the signature is missing or does not match
    """
    if not signature:
        raise SignatureError("Missing webhook signature")

    expected = hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()
    if not hmac.compare_digest(expected, signature):
        raise SignatureError("Invalid webhook signature")


class WebhookOutcome(str, Enum):
    PROCESSED = "processed"
    DUPLICATE = "duplicate"
    NOT_FOUND = "not_found"
    IGNORED = "ignored"


@dataclass
class WebhookResult:
    outcome: WebhookOutcome
    message: str
    log_id: str | None = None


@dataclass
class _Notice:
    """What to tell the user once the state change has committed."""

    user_id: str
    event_id: str
    payment_id: str
    amount: float


class PaymentWebhookHandler:
    """Applies gateway payment callbacks to transactions and registrations."""

    def __init__(self, database: Database | None = None, notifications: NotificationQueue | None = None):
        self.db = database or db
        self.notifications = notifications or NotificationQueue(self.db)
        self.logger = get_logger(__name__)

    def handle(self, payload: dict[str, Any]) -> WebhookResult:
        """Process one webhook delivery.

        Args:
            payload: Parsed JSON body ``{"event": ..., "payload": {"payment": {"entity": {...}}}}``

        Returns:
            Outcome of the delivery

        Raises:
            RuleViolationError: If a payment event carries no payment entity
            SQLAlchemyError: If the store fails; the log entry is marked failed
        """
        event_type = str(payload.get("event") or "")
        log_id = self._log_received(event_type, payload)

        try:
            if event_type in SUCCESS_EVENTS:
                result = self._payment_succeeded(self._entity(payload))
            elif event_type == FAILURE_EVENT:
                result = self._payment_failed(self._entity(payload))
            else:
                self.logger.info("payment_webhook_unhandled", event_type=event_type)
                result = WebhookResult(WebhookOutcome.IGNORED, "Webhook received but not processed")
        except Exception as e:
            self._finish_log(log_id, WebhookLogStatus.FAILED, str(e))
            raise

        if result.outcome == WebhookOutcome.NOT_FOUND:
            self._finish_log(log_id, WebhookLogStatus.FAILED, result.message)
        else:
            self._finish_log(log_id, WebhookLogStatus.PROCESSED)

        result.log_id = log_id
        return result

    @staticmethod
    def _entity(payload: dict[str, Any]) -> dict[str, Any]:
        try:
            entity = payload["payload"]["payment"]["entity"]
        except (KeyError, TypeError):
            raise RuleViolationError("Malformed webhook payload: missing payment entity")
        if not isinstance(entity, dict) or not entity.get("order_id"):
            raise RuleViolationError("Malformed webhook payload: missing order id")
        return entity

    # ==================== LOG ====================

    def _log_received(self, event_type: str, payload: dict[str, Any]) -> str:
        with self.db.session() as session:
            entry = WebhookLog(
                source=WEBHOOK_SOURCE,
                event_type=event_type,
                payload=payload,
                status=WebhookLogStatus.RECEIVED,
            )
            session.add(entry)
            session.flush()
            log_id = entry.id

        self.logger.info("payment_webhook_received", log_id=log_id, event_type=event_type)
        return log_id

    def _finish_log(self, log_id: str, status: WebhookLogStatus, error: str | None = None) -> None:
        with self.db.session() as session:
            entry = session.get(WebhookLog, log_id)
            entry.status = status
            entry.error_message = error
            entry.processed_at = utcnow()

    # ==================== EVENTS ====================

    def _payment_succeeded(self, payment: dict[str, Any]) -> WebhookResult:
        order_id = payment["order_id"]
        captured = payment.get("status") == "captured"
        notice = None

        with self.db.session() as session:
            transaction = session.query(PaymentTransaction).filter(
                PaymentTransaction.gateway_order_id == order_id
            ).first()

            if not transaction:
                self.logger.warning("payment_webhook_transaction_not_found", order_id=order_id)
                return WebhookResult(WebhookOutcome.NOT_FOUND, "Transaction not found")

            if transaction.status == TransactionStatus.SUCCESS:
                self.logger.info(
                    "payment_webhook_duplicate",
                    transaction_id=transaction.id,
                    payment_id=payment.get("id"),
                )
                return WebhookResult(WebhookOutcome.DUPLICATE, "Payment already processed")

            transaction.gateway_payment_id = payment.get("id")
            transaction.payment_method = payment.get("method")

            if captured:
                now = utcnow()
                transaction.status = TransactionStatus.SUCCESS
                transaction.completed_at = now

                registration = (
                    session.get(Registration, transaction.registration_id)
                    if transaction.registration_id
                    else None
                )
                if registration and registration.payment_status != PaymentStatus.REFUNDED:
                    registration.payment_status = PaymentStatus.COMPLETED
                    registration.payment_id = payment.get("id")
                    registration.payment_completed_at = now
                    notice = _Notice(
                        user_id=transaction.user_id,
                        event_id=transaction.event_id,
                        payment_id=payment.get("id"),
                        amount=(payment.get("amount") or 0) / 100,
                    )

            self.logger.info(
                "payment_captured" if captured else "payment_authorized",
                transaction_id=transaction.id,
                registration_id=transaction.registration_id,
                payment_id=payment.get("id"),
            )

        if notice:
            self._notify_success(notice)
        return WebhookResult(WebhookOutcome.PROCESSED, "Webhook processed")

    def _payment_failed(self, payment: dict[str, Any]) -> WebhookResult:
        order_id = payment["order_id"]
        notify = None

        with self.db.session() as session:
            transaction = session.query(PaymentTransaction).filter(
                PaymentTransaction.gateway_order_id == order_id
            ).first()

            if not transaction:
                # The gateway reports failures for orders we may never have stored
                self.logger.warning("payment_failure_for_unknown_order", order_id=order_id)
                return WebhookResult(WebhookOutcome.PROCESSED, "Payment failure processed")

            if transaction.status == TransactionStatus.SUCCESS:
                self.logger.warning("payment_failure_after_success_ignored", transaction_id=transaction.id)
                return WebhookResult(WebhookOutcome.IGNORED, "Transaction already succeeded")

            if transaction.status == TransactionStatus.FAILED:
                self.logger.info(
                    "payment_failure_duplicate",
                    transaction_id=transaction.id,
                    payment_id=payment.get("id"),
                )
                return WebhookResult(WebhookOutcome.DUPLICATE, "Payment failure already processed")

            transaction.gateway_payment_id = payment.get("id")
            transaction.status = TransactionStatus.FAILED
            transaction.error_code = payment.get("error_code")
            transaction.error_message = payment.get("error_description")

            superseded = self._superseded(session, transaction)
            if transaction.registration_id and not superseded:
                registration = session.get(Registration, transaction.registration_id)
                if registration and registration.payment_status == PaymentStatus.PENDING:
                    registration.payment_status = PaymentStatus.FAILED

            if not superseded:
                notify = (transaction.user_id, transaction.event_id)
            self.logger.info(
                "payment_failed",
                transaction_id=transaction.id,
                error_code=transaction.error_code,
                superseded=superseded,
            )

        if notify:
            self._notify_failure(*notify)
        return WebhookResult(WebhookOutcome.PROCESSED, "Payment failure processed")

    @staticmethod
    def _superseded(session, transaction: PaymentTransaction) -> bool:
        """True when the user has since started a newer checkout for the same registration."""
        if not transaction.registration_id:
            return False
        newer = session.query(PaymentTransaction.id).filter(
            PaymentTransaction.registration_id == transaction.registration_id,
            PaymentTransaction.id != transaction.id,
            PaymentTransaction.created_at > transaction.created_at,
        ).first()
        return newer is not None

    # ==================== NOTIFICATIONS ====================

    def _notify_success(self, notice: _Notice) -> None:
        try:
            self.notifications.notify_in_app(
                notice.user_id,
                "Payment Successful",
                "Your payment for the event has been confirmed. You're all set!",
                InAppType.SUCCESS,
                action_url=f"/events/{notice.event_id}",
            )
            self.notifications.enqueue(
                user_id=notice.user_id,
                type=NotificationType.EMAIL,
                subject="Payment Confirmation - Registration Complete",
                body=f"Your payment of ₹{notice.amount:g} has been successfully processed.",
                priority=NotificationPriority.HIGH,
                metadata={
                    "payment_id": notice.payment_id,
                    "amount": notice.amount,
                    "event_id": notice.event_id,
                },
            )
        except SQLAlchemyError as e:
            self.logger.error("payment_notification_not_queued", user_id=notice.user_id, error=str(e))

    def _notify_failure(self, user_id: str, event_id: str) -> None:
        try:
            self.notifications.notify_in_app(
                user_id,
                "Payment Failed",
                "Your payment failed. Please try again or contact support.",
                InAppType.ERROR,
                action_url=f"/events/{event_id}",
            )
        except SQLAlchemyError as e:
            self.logger.error("payment_notification_not_queued", user_id=user_id, error=str(e))
