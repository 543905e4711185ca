"""Product analytics events and admin reports."""

from sketchbrains.analytics.service import REPORT_TYPES, AnalyticsService, track

__all__ = ["REPORT_TYPES", "AnalyticsService", "track"]
