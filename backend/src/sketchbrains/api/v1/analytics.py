"""Admin analytics API v1 endpoints."""

from datetime import date

from fastapi import APIRouter, Depends, Query

from sketchbrains.analytics.service import AnalyticsService
from sketchbrains.auth.middleware import Principal, require_admin
from sketchbrains.storage.db import Database, get_database

router = APIRouter(prefix="/analytics", tags=["analytics"])


@router.get("/report")
async def get_report(
    report_type: str = Query("overview", alias="type"),
    start_date: date | None = Query(None, alias="startDate"),
    end_date: date | None = Query(None, alias="endDate"),
    principal: Principal = Depends(require_admin),
    database: Database = Depends(get_database),
):
    """Admin report: overview, revenue, events or referrals."""
    report = AnalyticsService(database).report(report_type, start_date, end_date)
    return {"success": True, **report}
