"""Notification API v1 endpoints."""

from datetime import datetime

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from sketchbrains.auth.middleware import Principal, require_auth, require_service
from sketchbrains.logging_config import get_logger
from sketchbrains.notifications.dispatcher import NotificationDispatcher
from sketchbrains.notifications.queue import NotificationQueue
from sketchbrains.storage.db import Database, get_database

logger = get_logger(__name__)

router = APIRouter(prefix="/notifications", tags=["notifications"])


class InAppNotificationResponse(BaseModel):
    id: str
    title: str
    message: str
    type: str
    action_url: str | None = None
    read_at: datetime | None = None
    created_at: datetime


class PreferencesRequest(BaseModel):
    email_enabled: bool | None = None
    sms_enabled: bool | None = None
    in_app_enabled: bool | None = None
    marketing_enabled: bool | None = None


class PreferencesResponse(BaseModel):
    email_enabled: bool
    sms_enabled: bool
    in_app_enabled: bool
    marketing_enabled: bool


def get_notification_dispatcher(database: Database = Depends(get_database)) -> NotificationDispatcher:
    """Dispatcher wired to the real SendGrid and Twilio senders."""
    return NotificationDispatcher(database)


def _to_response(notification) -> InAppNotificationResponse:
    return InAppNotificationResponse(
        id=notification.id,
        title=notification.title,
        message=notification.message,
        type=notification.type.value,
        action_url=notification.action_url,
        read_at=notification.read_at,
        created_at=notification.created_at,
    )


@router.post("/send")
async def send_notifications(
    principal: Principal = Depends(require_service),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
):
    """Deliver the next batch of queued notifications."""
    try:
        result = await dispatcher.dispatch()
    except Exception as e:
        logger.error("notification_dispatch_failed", error=str(e))
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"success": False, "error": str(e)},
        )

    counts = result.as_dict()
    total = counts.pop("total")
    return {"success": True, "processed": counts, "total": total}


@router.get("/inbox", response_model=list[InAppNotificationResponse])
async def get_inbox(
    unread_only: bool = False,
    limit: int = Query(default=50, ge=1, le=200),
    principal: Principal = Depends(require_auth),
    database: Database = Depends(get_database),
):
    """Current user's in-app notifications, newest first."""
    notifications = NotificationQueue(database).inbox(principal.user_id, unread_only=unread_only, limit=limit)
    return [_to_response(n) for n in notifications]


@router.post("/{notification_id}/read", response_model=InAppNotificationResponse)
async def mark_notification_read(
    notification_id: str,
    principal: Principal = Depends(require_auth),
    database: Database = Depends(get_database),
):
    """Mark one in-app notification as read."""
    notification = NotificationQueue(database).mark_read(principal.user_id, notification_id)
    return _to_response(notification)


@router.put("/preferences", response_model=PreferencesResponse)
async def update_preferences(
    body: PreferencesRequest,
    principal: Principal = Depends(require_auth),
    database: Database = Depends(get_database),
):
    """Turn delivery channels on or off for the current user."""
    flags = body.model_dump(exclude_none=True)
    prefs = NotificationQueue(database).set_preferences(principal.user_id, **flags)
    return PreferencesResponse(
        email_enabled=prefs.email_enabled,
        sms_enabled=prefs.sms_enabled,
        in_app_enabled=prefs.in_app_enabled,
        marketing_enabled=prefs.marketing_enabled,
    )
