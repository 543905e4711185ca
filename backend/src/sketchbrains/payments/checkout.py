"""Checkout orders for Razorpay payments."""

from typing import Any

from sketchbrains.errors import NotFoundError, RuleViolationError
from sketchbrains.logging_config import get_logger
from sketchbrains.settings import settings
from sketchbrains.storage.db import Database, db
from sketchbrains.storage.models import (
    PaymentStatus,
    PaymentTransaction,
    Registration,
    TransactionStatus,
)

logger = get_logger(__name__)


def order_id_for(transaction_id: str) -> str:
    """Gateway order id derived from the transaction id."""
    return f"order_{transaction_id.replace('-', '')[:14]}"


class CheckoutService:
    """Creates payment transactions for pending registrations."""

    def __init__(self, database: Database | None = None):
        self.db = database or db
        self.logger = get_logger(__name__)

    def create_order(self, user_id: str, registration_id: str) -> dict[str, Any]:
        """Start a checkout attempt for a registration.

        Args:
            user_id: Paying user
            registration_id: Registration being paid

        Returns:
            What the checkout widget needs: order id, transaction id, amount
            in the smallest currency unit, currency and public key id

        Raises:
            NotFoundError: If the registration does not exist or is not the user's
            RuleViolationError: If there is nothing to pay
        """
        with self.db.session() as session:
            registration = session.get(Registration, registration_id)
            if not registration or registration.user_id != user_id:
                raise NotFoundError("Registration", registration_id)

            if registration.payment_status not in (PaymentStatus.PENDING, PaymentStatus.FAILED):
                raise RuleViolationError(
                    f"Registration is {registration.payment_status.value}, nothing to pay"
                )

            if registration.amount_paid <= 0:
                raise RuleViolationError("Registration is free, nothing to pay")

            transaction = PaymentTransaction(
                user_id=user_id,
                event_id=registration.event_id,
                registration_id=registration.id,
                amount=registration.amount_paid,
                currency=settings.currency,
                status=TransactionStatus.INITIATED,
            )
            session.add(transaction)
            session.flush()
            transaction.gateway_order_id = order_id_for(transaction.id)

            self.logger.info(
                "checkout_order_created",
                user_id=user_id,
                registration_id=registration_id,
                transaction_id=transaction.id,
                order_id=transaction.gateway_order_id,
            )

            return {
                "order_id": transaction.gateway_order_id,
                "transaction_id": transaction.id,
                "amount": int(round(transaction.amount * 100)),
                "currency": transaction.currency,
                "key_id": settings.razorpay_key_id,
            }

    def payment_history(self, user_id: str) -> list[PaymentTransaction]:
        """List a user's payment transactions, newest first."""
        with self.db.session() as session:
            return (
                session.query(PaymentTransaction)
                .filter(PaymentTransaction.user_id == user_id)
                .order_by(PaymentTransaction.created_at.desc())
                .all()
            )
