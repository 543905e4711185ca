"""Notification dispatcher.

Drains due queue entries and delivers them by channel:

- email: sent unless the user's preference row turns email off
- sms: sent only when the user's preference row turns SMS on
- in_app: written to the in-app feed, always

A channel disabled by preference cancels the entry (terminal, not retried).
A failed delivery is retried up to 3 times, one hour apart, then marked failed.
"""

from dataclasses import asdict, dataclass
from datetime import datetime, timedelta
from typing import Protocol

from sqlalchemy import case
from sqlalchemy.exc import SQLAlchemyError

from sketchbrains.logging_config import get_logger
from sketchbrains.notifications.email import EmailService
from sketchbrains.notifications.queue import add_in_app
from sketchbrains.notifications.sms import SmsService
from sketchbrains.storage.db import Database, db
from sketchbrains.storage.models import (
    NotificationPreference,
    NotificationPriority,
    NotificationQueueItem,
    NotificationStatus,
    NotificationType,
    Profile,
    utcnow,
)

logger = get_logger(__name__)

BATCH_SIZE = 100
MAX_RETRIES = 3
RETRY_BACKOFF = timedelta(hours=1)
PREFERENCE_DISABLED_MESSAGE = "User preferences disabled for this notification type"

PRIORITY_RANK = case(
    {
        NotificationPriority.URGENT: 4,
        NotificationPriority.HIGH: 3,
        NotificationPriority.MEDIUM: 2,
        NotificationPriority.LOW: 1,
    },
    value=NotificationQueueItem.priority,
    else_=0,
)


class EmailSender(Protocol):
    async def send(self, to_email: str, subject: str, text_content: str) -> bool: ...


class SmsSender(Protocol):
    async def send(self, to_number: str, body: str) -> bool: ...


class DeliveryError(Exception):
    """A channel could not deliver the message."""


@dataclass
class DispatchResult:
    """Per-channel counts for one dispatcher pass."""

    email: int = 0
    sms: int = 0
    in_app: int = 0
    cancelled: int = 0
    failed: int = 0
    total: int = 0

    def as_dict(self) -> dict[str, int]:
        return asdict(self)


class NotificationDispatcher:
    """Delivers queued notifications, one independent attempt per entry."""

    def __init__(
        self,
        database: Database | None = None,
        email_sender: EmailSender | None = None,
        sms_sender: SmsSender | None = None,
    ):
        self.db = database or db
        self.email_sender = email_sender or EmailService()
        self.sms_sender = sms_sender or SmsService()
        self.logger = get_logger(__name__)

    def due_notifications(self, now: datetime) -> list[NotificationQueueItem]:
        """Select the next batch: pending, due, not exhausted, by priority then schedule."""
        with self.db.session() as session:
            return (
                session.query(NotificationQueueItem)
                .filter(
                    NotificationQueueItem.status == NotificationStatus.PENDING,
                    NotificationQueueItem.scheduled_for <= now,
                    NotificationQueueItem.retry_count < MAX_RETRIES,
                )
                .order_by(PRIORITY_RANK.desc(), NotificationQueueItem.scheduled_for.asc())
                .limit(BATCH_SIZE)
                .all()
            )

    async def dispatch(self, now: datetime | None = None) -> DispatchResult:
        """Run one dispatcher pass.

        Args:
            now: Reference time (defaults to current UTC time)

        Returns:
            Counts of delivered, cancelled and failed entries
        """
        now = now or utcnow()
        items = self.due_notifications(now)
        result = DispatchResult(total=len(items))

        for item in items:
            try:
                delivered = await self._deliver(item)
            except Exception as e:
                self.logger.warning(
                    "notification_delivery_failed",
                    notification_id=item.id,
                    type=item.type.value,
                    retry_count=item.retry_count,
                    error=str(e),
                )
                self._record_failure(item, str(e), now)
                result.failed += 1
                continue

            if not delivered:
                result.cancelled += 1
            elif item.type == NotificationType.EMAIL:
                result.email += 1
            elif item.type == NotificationType.SMS:
                result.sms += 1
            else:
                result.in_app += 1

        self.logger.info("notifications_dispatched", **result.as_dict())
        return result

    async def _deliver(self, item: NotificationQueueItem) -> bool:
        """Deliver one entry.

        Returns:
            True if sent, False if cancelled by preference

        Raises:
            DeliveryError: If the channel failed
        """
        if item.type == NotificationType.IN_APP:
            with self.db.session() as session:
                add_in_app(session, item.user_id, item.subject or "Notification", item.body)
                self._mark(session, item.id, NotificationStatus.SENT)
            return True

        prefs, profile = self._recipient(item.user_id)

        if item.type == NotificationType.EMAIL:
            # No preference row means email is on
            if prefs is not None and prefs.email_enabled is False:
                self._cancel(item)
                return False
            if not profile or not profile.email:
                raise DeliveryError("No email address for user")
            sent = await self.email_sender.send(profile.email, item.subject or "Sketch Brains", item.body)
            if not sent:
                raise DeliveryError("Email sending failed")

        elif item.type == NotificationType.SMS:
            # SMS is opt-in only
            if prefs is None or prefs.sms_enabled is not True:
                self._cancel(item)
                return False
            if not profile or not profile.phone:
                raise DeliveryError("No phone number for user")
            sent = await self.sms_sender.send(profile.phone, item.body)
            if not sent:
                raise DeliveryError("SMS sending failed")

        else:
            raise DeliveryError(f"Unknown notification type: {item.type}")

        with self.db.session() as session:
            self._mark(session, item.id, NotificationStatus.SENT)
        return True

    def _recipient(self, user_id: str) -> tuple[NotificationPreference | None, Profile | None]:
        with self.db.session() as session:
            prefs = session.query(NotificationPreference).filter(
                NotificationPreference.user_id == user_id
            ).first()
            profile = session.get(Profile, user_id)
            return prefs, profile

    def _mark(self, session, notification_id: str, status: NotificationStatus) -> None:
        row = session.get(NotificationQueueItem, notification_id)
        row.status = status
        if status == NotificationStatus.SENT:
            row.sent_at = utcnow()
        self.logger.info("notification_marked", notification_id=notification_id, status=status.value)

    def _cancel(self, item: NotificationQueueItem) -> None:
        with self.db.session() as session:
            row = session.get(NotificationQueueItem, item.id)
            row.status = NotificationStatus.CANCELLED
            row.error_message = PREFERENCE_DISABLED_MESSAGE
        self.logger.info("notification_cancelled", notification_id=item.id, type=item.type.value)

    def _record_failure(self, item: NotificationQueueItem, error: str, now: datetime) -> None:
        retry_count = min(item.retry_count + 1, MAX_RETRIES)
        status = NotificationStatus.FAILED if retry_count >= MAX_RETRIES else NotificationStatus.PENDING
        try:
            with self.db.session() as session:
                row = session.get(NotificationQueueItem, item.id)
                row.retry_count = retry_count
                row.status = status
                row.error_message = error
                row.scheduled_for = now + RETRY_BACKOFF
        except SQLAlchemyError:
            # Keep draining the batch; the entry stays pending and is picked up again
            self.logger.exception("notification_failure_not_recorded", notification_id=item.id)
            return

        self.logger.info(
            "notification_retry_scheduled" if status == NotificationStatus.PENDING else "notification_failed",
            notification_id=item.id,
            retry_count=retry_count,
        )
