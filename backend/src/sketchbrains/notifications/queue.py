"""Writers for the notification queue and the in-app feed.

Other workflows never deliver messages themselves: they call ``enqueue`` for
email/SMS and ``notify_in_app`` for the feed, and the dispatcher does the rest.
"""

from datetime import datetime
from typing import Any

from sqlalchemy.orm import Session

from sketchbrains.errors import NotFoundError
from sketchbrains.logging_config import get_logger
from sketchbrains.storage.db import Database, db
from sketchbrains.storage.models import (
    InAppNotification,
    InAppType,
    NotificationChannel,
    NotificationPreference,
    NotificationPriority,
    NotificationQueueItem,
    NotificationType,
    utcnow,
)

logger = get_logger(__name__)


def add_in_app(
    session: Session,
    user_id: str,
    title: str,
    message: str,
    type: InAppType = InAppType.INFO,
    action_url: str | None = None,
) -> InAppNotification:
    """Add an in-app notification inside an existing session."""
    notification = InAppNotification(
        user_id=user_id,
        title=title,
        message=message,
        type=type,
        action_url=action_url,
    )
    session.add(notification)
    return notification


class NotificationQueue:
    """Service for queueing notifications and reading the in-app feed."""

    def __init__(self, database: Database | None = None):
        self.db = database or db
        self.logger = get_logger(__name__)

    def enqueue(
        self,
        user_id: str,
        type: NotificationType,
        body: str,
        subject: str | None = None,
        channel: NotificationChannel = NotificationChannel.TRANSACTIONAL,
        priority: NotificationPriority = NotificationPriority.MEDIUM,
        metadata: dict[str, Any] | None = None,
        scheduled_for: datetime | None = None,
    ) -> NotificationQueueItem:
        """Queue a message for the dispatcher.

        Args:
            user_id: Recipient
            type: email, sms or in_app
            body: Message body
            subject: Subject line (email) or title (in-app)
            channel: transactional, marketing or alert
            priority: Dispatch priority
            metadata: Free-form context stored with the message
            scheduled_for: Earliest delivery time (defaults to now)

        Returns:
            Queued item
        """
        with self.db.session() as session:
            item = NotificationQueueItem(
                user_id=user_id,
                type=NotificationType(type),
                channel=NotificationChannel(channel),
                subject=subject,
                body=body,
                priority=NotificationPriority(priority),
                metadata_json=metadata or {},
                scheduled_for=scheduled_for or utcnow(),
            )
            session.add(item)
            session.flush()

            self.logger.info(
                "notification_queued",
                notification_id=item.id,
                user_id=user_id,
                type=item.type.value,
                priority=item.priority.value,
            )
            return item

    def notify_in_app(
        self,
        user_id: str,
        title: str,
        message: str,
        type: InAppType = InAppType.INFO,
        action_url: str | None = None,
    ) -> InAppNotification:
        """Write directly to the user's in-app feed."""
        with self.db.session() as session:
            notification = add_in_app(session, user_id, title, message, type, action_url)
            session.flush()
            return notification

    def inbox(self, user_id: str, unread_only: bool = False, limit: int = 50) -> list[InAppNotification]:
        """List a user's in-app notifications, newest first."""
        with self.db.session() as session:
            query = session.query(InAppNotification).filter(InAppNotification.user_id == user_id)
            if unread_only:
                query = query.filter(InAppNotification.read_at.is_(None))
            return query.order_by(InAppNotification.created_at.desc()).limit(limit).all()

    def mark_read(self, user_id: str, notification_id: str) -> InAppNotification:
        """Mark one of the user's notifications as read.

        Raises:
            NotFoundError: If the notification does not exist or is not the user's
        """
        with self.db.session() as session:
            notification = session.query(InAppNotification).filter(
                InAppNotification.id == notification_id,
                InAppNotification.user_id == user_id,
            ).first()
            if not notification:
                raise NotFoundError("Notification", notification_id)

            if notification.read_at is None:
                notification.read_at = utcnow()
            return notification

    def set_preferences(self, user_id: str, **flags: bool) -> NotificationPreference:
        """Create or update the user's channel preferences.

        Only the flags passed are changed; a new row starts from the defaults
        (email on, SMS off, in-app on, marketing off).
        """
        allowed = {"email_enabled", "sms_enabled", "in_app_enabled", "marketing_enabled"}
        unknown = set(flags) - allowed
        if unknown:
            raise ValueError(f"Unknown preference flags: {', '.join(sorted(unknown))}")

        with self.db.session() as session:
            prefs = session.query(NotificationPreference).filter(
                NotificationPreference.user_id == user_id
            ).first()
            if not prefs:
                prefs = NotificationPreference(
                    user_id=user_id,
                    email_enabled=True,
                    sms_enabled=False,
                    in_app_enabled=True,
                    marketing_enabled=False,
                )
                session.add(prefs)

            for name, value in flags.items():
                if value is not None:
                    setattr(prefs, name, value)
            prefs.updated_at = utcnow()
            session.flush()

            self.logger.info("notification_preferences_updated", user_id=user_id, **flags)
            return prefs
