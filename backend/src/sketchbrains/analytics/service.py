"""Analytics events and the admin reports built from the main tables.

Reports:
- overview: headline counts and total captured revenue
- revenue: captured revenue in a date window, grouped by day
- events: registrations, revenue and feedback per event
- referrals: referral totals and the top referrers
"""

from datetime import date, datetime, time, timedelta
from typing import Any

from sqlalchemy import func
from sqlalchemy.orm import Session

from sketchbrains.errors import RuleViolationError
from sketchbrains.logging_config import get_logger
from sketchbrains.referral.service import ReferralService
from sketchbrains.storage.db import Database, db
from sketchbrains.storage.models import (
    AnalyticsCategory,
    AnalyticsEvent,
    Event,
    Feedback,
    PaymentStatus,
    PaymentTransaction,
    Profile,
    Referral,
    Registration,
    TransactionStatus,
)

REPORT_TYPES = ("overview", "revenue", "events", "referrals")
TOP_REFERRERS = 10


def track(
    session: Session,
    event_name: str,
    user_id: str | None = None,
    category: AnalyticsCategory = AnalyticsCategory.ENGAGEMENT,
    data: dict[str, Any] | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> AnalyticsEvent:
    """Append an analytics event inside the caller's unit of work."""
    entry = AnalyticsEvent(
        user_id=user_id,
        event_name=event_name,
        event_category=category,
        event_data=data or {},
        ip_address=ip_address,
        user_agent=user_agent,
    )
    session.add(entry)
    return entry


class AnalyticsService:
    """Read-only aggregates for the admin dashboard."""

    def __init__(self, database: Database | None = None):
        self.db = database or db
        self.logger = get_logger(__name__)

    def report(
        self,
        report_type: str = "overview",
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> dict[str, Any]:
        """Build one report by name.

        Raises:
            RuleViolationError: If the report type is unknown
        """
        if report_type not in REPORT_TYPES:
            raise RuleViolationError("Invalid report type")

        self.logger.info("analytics_report", report_type=report_type)
        if report_type == "revenue":
            return self.revenue(start_date, end_date)
        return getattr(self, report_type)()

    def overview(self) -> dict[str, Any]:
        with self.db.session() as session:
            total_revenue = (
                session.query(func.coalesce(func.sum(PaymentTransaction.amount), 0.0))
                .filter(PaymentTransaction.status == TransactionStatus.SUCCESS)
                .scalar()
            )
            return {
                "totalUsers": session.query(func.count(Profile.id)).scalar() or 0,
                "totalEvents": session.query(func.count(Event.id)).scalar() or 0,
                "totalRegistrations": session.query(func.count(Registration.id)).scalar() or 0,
                "completedPayments": (
                    session.query(func.count(Registration.id))
                    .filter(Registration.payment_status == PaymentStatus.COMPLETED)
                    .scalar()
                    or 0
                ),
                "totalRevenue": float(total_revenue),
            }

    def revenue(self, start_date: date | None = None, end_date: date | None = None) -> dict[str, Any]:
        """Captured revenue between two dates, both inclusive, newest day first."""
        with self.db.session() as session:
            query = session.query(PaymentTransaction.amount, PaymentTransaction.created_at).filter(
                PaymentTransaction.status == TransactionStatus.SUCCESS
            )
            if start_date:
                query = query.filter(PaymentTransaction.created_at >= datetime.combine(start_date, time.min))
            if end_date:
                next_day = datetime.combine(end_date + timedelta(days=1), time.min)
                query = query.filter(PaymentTransaction.created_at < next_day)
            rows = query.order_by(PaymentTransaction.created_at.desc()).all()

        by_date: dict[str, dict[str, Any]] = {}
        for amount, created_at in rows:
            day = created_at.date().isoformat()
            bucket = by_date.setdefault(day, {"date": day, "amount": 0.0, "count": 0})
            bucket["amount"] += amount
            bucket["count"] += 1

        return {
            "totalRevenue": sum(amount for amount, _ in rows),
            "transactionCount": len(rows),
            "revenueByDate": list(by_date.values()),
        }

    def events(self) -> dict[str, Any]:
        with self.db.session() as session:
            registrations = dict(
                session.query(Registration.event_id, func.count(Registration.id))
                .group_by(Registration.event_id)
                .all()
            )
            revenue = dict(
                session.query(PaymentTransaction.event_id, func.sum(PaymentTransaction.amount))
                .filter(PaymentTransaction.status == TransactionStatus.SUCCESS)
                .group_by(PaymentTransaction.event_id)
                .all()
            )
            feedback = {
                event_id: (avg, count)
                for event_id, avg, count in session.query(
                    Feedback.event_id, func.avg(Feedback.rating), func.count(Feedback.id)
                ).group_by(Feedback.event_id)
            }

            stats = []
            for event in session.query(Event).order_by(Event.created_at.desc()):
                avg_rating, feedback_count = feedback.get(event.id, (0, 0))
                stats.append(
                    {
                        "id": event.id,
                        "title": event.title,
                        "category": event.category.value,
                        "price": event.price,
                        "status": event.status.value,
                        "createdAt": event.created_at.isoformat(),
                        "registrations": registrations.get(event.id, 0),
                        "totalRevenue": float(revenue.get(event.id) or 0),
                        "averageRating": float(avg_rating or 0),
                        "feedbackCount": feedback_count,
                    }
                )

        return {"events": stats}

    def referrals(self) -> dict[str, Any]:
        with self.db.session() as session:
            total = session.query(func.count(Referral.id)).scalar() or 0

        top = ReferralService(self.db).top_referrers(limit=TOP_REFERRERS)
        return {
            "totalReferrals": total,
            "topReferrers": [
                {
                    "referrerId": entry["referrer_id"],
                    "referrerName": entry["referrer_name"] or "Unknown",
                    "referrerEmail": entry["referrer_email"] or "Unknown",
                    "total": entry["total_referrals"],
                    "completed": entry["completed_referrals"],
                    "rewarded": entry["rewarded_referrals"],
                }
                for entry in top
            ],
        }
