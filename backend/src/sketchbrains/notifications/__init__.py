"""Notification queue, senders and dispatcher."""

from sketchbrains.notifications.dispatcher import DispatchResult, NotificationDispatcher
from sketchbrains.notifications.queue import NotificationQueue

__all__ = ["DispatchResult", "NotificationDispatcher", "NotificationQueue"]
