"""Live session attendance: check-in, checkout and history."""

from datetime import datetime

from sketchbrains.analytics.service import track
from sketchbrains.errors import NotFoundError, RuleViolationError
from sketchbrains.logging_config import get_logger
from sketchbrains.storage.db import Database, db
from sketchbrains.storage.models import (
    Event,
    PaymentStatus,
    Registration,
    SessionAttendance,
    utcnow,
)

PAID_STATUSES = (PaymentStatus.COMPLETED, PaymentStatus.FREE)


class AttendanceService:
    """Records who joined which session and for how long."""

    def __init__(self, database: Database | None = None):
        self.db = database or db
        self.logger = get_logger(__name__)

    def check_in(
        self,
        user_id: str,
        registration_id: str,
        event_id: str | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> SessionAttendance:
        """Open an attendance record for the caller's paid registration.

        Args:
            user_id: Caller; must own the registration
            registration_id: Registration being attended
            event_id: Event the client believes it is joining (optional check)
            ip_address: Client address for the audit trail
            user_agent: Client user agent for the audit trail

        Returns:
            The new attendance record

        Raises:
            NotFoundError: If the registration does not exist or is not the caller's
            RuleViolationError: If the registration is unpaid or for another event
        """
        with self.db.session() as session:
            registration = session.query(Registration).filter(
                Registration.id == registration_id,
                Registration.user_id == user_id,
            ).first()
            if not registration:
                raise NotFoundError("Registration", registration_id)

            if registration.payment_status not in PAID_STATUSES:
                raise RuleViolationError("Payment not completed", status_code=403)

            if event_id and event_id != registration.event_id:
                raise RuleViolationError("Registration is for a different event")

            attendance = SessionAttendance(
                registration_id=registration.id,
                user_id=user_id,
                event_id=registration.event_id,
                check_in_time=utcnow(),
                ip_address=ip_address,
                user_agent=user_agent,
            )
            session.add(attendance)
            session.flush()

            track(
                session,
                "session_checkin",
                user_id=user_id,
                data={"event_id": attendance.event_id, "attendance_id": attendance.id},
                ip_address=ip_address,
                user_agent=user_agent,
            )

            self.logger.info(
                "session_checked_in",
                attendance_id=attendance.id,
                registration_id=registration_id,
                event_id=attendance.event_id,
            )
            return attendance

    def check_out(self, user_id: str, attendance_id: str, now: datetime | None = None) -> SessionAttendance:
        """Close an attendance record and store the whole minutes attended.

        Raises:
            NotFoundError: If the record does not exist or is not the caller's
            RuleViolationError: If the record was already closed
        """
        now = now or utcnow()

        with self.db.session() as session:
            attendance = session.query(SessionAttendance).filter(
                SessionAttendance.id == attendance_id,
                SessionAttendance.user_id == user_id,
            ).first()
            if not attendance:
                raise NotFoundError("Attendance record", attendance_id)

            if attendance.check_out_time is not None:
                raise RuleViolationError("Already checked out", status_code=409)

            elapsed = (now - attendance.check_in_time).total_seconds()
            attendance.check_out_time = now
            attendance.duration_minutes = max(0, int(elapsed // 60))

            track(
                session,
                "session_checkout",
                user_id=user_id,
                data={
                    "event_id": attendance.event_id,
                    "attendance_id": attendance.id,
                    "duration_minutes": attendance.duration_minutes,
                },
            )

            self.logger.info(
                "session_checked_out",
                attendance_id=attendance.id,
                duration_minutes=attendance.duration_minutes,
            )
            return attendance

    def history(self, user_id: str) -> list[tuple[SessionAttendance, str | None]]:
        """Caller's attendance records with the event title, latest check-in first."""
        with self.db.session() as session:
            return (
                session.query(SessionAttendance, Event.title)
                .outerjoin(Event, Event.id == SessionAttendance.event_id)
                .filter(SessionAttendance.user_id == user_id)
                .order_by(SessionAttendance.check_in_time.desc())
                .all()
            )
