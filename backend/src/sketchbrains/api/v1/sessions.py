"""Session attendance API v1 endpoints."""

from datetime import datetime

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel

from sketchbrains.attendance.service import AttendanceService
from sketchbrains.auth.middleware import Principal, require_auth
from sketchbrains.storage.db import Database, get_database

router = APIRouter(prefix="/sessions", tags=["sessions"])


class CheckInRequest(BaseModel):
    registration_id: str
    event_id: str | None = None


class CheckOutRequest(BaseModel):
    attendance_id: str


class AttendanceResponse(BaseModel):
    id: str
    registration_id: str
    event_id: str
    event_title: str | None = None
    check_in_time: datetime
    check_out_time: datetime | None = None
    duration_minutes: int | None = None


def _client_ip(request: Request) -> str | None:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


@router.post("/checkin")
async def check_in(
    body: CheckInRequest,
    request: Request,
    principal: Principal = Depends(require_auth),
    database: Database = Depends(get_database),
):
    """Check in to a live session of a paid registration."""
    attendance = AttendanceService(database).check_in(
        principal.user_id,
        body.registration_id,
        event_id=body.event_id,
        ip_address=_client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )
    return {
        "success": True,
        "attendanceId": attendance.id,
        "checkInTime": attendance.check_in_time.isoformat(),
    }


@router.post("/checkout")
async def check_out(
    body: CheckOutRequest,
    principal: Principal = Depends(require_auth),
    database: Database = Depends(get_database),
):
    """Close an open attendance record."""
    attendance = AttendanceService(database).check_out(principal.user_id, body.attendance_id)
    return {
        "success": True,
        "checkOutTime": attendance.check_out_time.isoformat(),
        "durationMinutes": attendance.duration_minutes,
    }


@router.get("/history")
async def attendance_history(
    principal: Principal = Depends(require_auth),
    database: Database = Depends(get_database),
):
    """Current user's attendance, latest check-in first."""
    rows = AttendanceService(database).history(principal.user_id)
    return {
        "success": True,
        "attendance": [
            AttendanceResponse(
                id=attendance.id,
                registration_id=attendance.registration_id,
                event_id=attendance.event_id,
                event_title=title,
                check_in_time=attendance.check_in_time,
                check_out_time=attendance.check_out_time,
                duration_minutes=attendance.duration_minutes,
            )
            for attendance, title in rows
        ],
    }
