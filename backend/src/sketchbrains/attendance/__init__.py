"""Live session attendance."""

from sketchbrains.attendance.service import AttendanceService

__all__ = ["AttendanceService"]
