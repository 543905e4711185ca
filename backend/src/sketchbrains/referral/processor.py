"""Referral reward processor.

Batch pass, run on demand or from cron:

1. Pending referrals whose referee has paid become completed.
2. Completed referrals are counted per (referrer, event).
3. A referrer with at least two completed referrals for a technical event is
   granted one free registration for that event, once.

The "once" is enforced by the partial unique index on granted rewards: the
reward row is inserted first and a conflict means another run already granted
it, so nothing else is written for that group.
"""

from dataclasses import dataclass, field

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from sketchbrains.logging_config import get_logger
from sketchbrains.notifications.queue import NotificationQueue, add_in_app
from sketchbrains.storage.db import Database, db
from sketchbrains.storage.models import (
    Event,
    EventCategory,
    InAppType,
    NotificationPriority,
    NotificationType,
    PaymentStatus,
    Referral,
    ReferralReward,
    ReferralStatus,
    Registration,
    RewardStatus,
    utcnow,
)

logger = get_logger(__name__)

REFERRAL_THRESHOLD = 2
REWARD_CATEGORY = EventCategory.TECHNICAL


@dataclass
class GrantedReward:
    referrer_id: str
    event_id: str
    referral_count: int


@dataclass
class ProcessorResult:
    """Outcome of one processor pass."""

    processed_referrals: list[str] = field(default_factory=list)
    rewards: list[GrantedReward] = field(default_factory=list)


class ReferralRewardProcessor:
    """Promotes paid referrals and grants free registrations."""

    def __init__(self, database: Database | None = None, notifications: NotificationQueue | None = None):
        self.db = database or db
        self.notifications = notifications or NotificationQueue(self.db)
        self.logger = get_logger(__name__)

    def run(self) -> ProcessorResult:
        """Run both phases once."""
        result = ProcessorResult()
        result.processed_referrals = self.complete_paid_referrals()
        result.rewards = self.grant_rewards()

        self.logger.info(
            "referrals_processed",
            processed_referrals=len(result.processed_referrals),
            rewards_granted=len(result.rewards),
        )
        return result

    def complete_paid_referrals(self) -> list[str]:
        """Advance pending referrals whose registration payment completed.

        Returns:
            IDs of the referrals moved to completed
        """
        completed: list[str] = []
        with self.db.session() as session:
            referrals = (
                session.query(Referral)
                .join(Registration, Registration.id == Referral.registration_id)
                .filter(
                    Referral.status == ReferralStatus.PENDING,
                    Registration.payment_status == PaymentStatus.COMPLETED,
                )
                .all()
            )

            for referral in referrals:
                referral.status = ReferralStatus.COMPLETED
                add_in_app(
                    session,
                    referral.referrer_id,
                    "Referral Completed",
                    "Your referral has completed their registration! Keep sharing your code.",
                    InAppType.SUCCESS,
                )
                completed.append(referral.id)
                self.logger.info(
                    "referral_completed",
                    referral_id=referral.id,
                    referrer_id=referral.referrer_id,
                    event_id=referral.event_id,
                )

        return completed

    def eligible_groups(self) -> list[tuple[str, str, int]]:
        """(referrer, event, count) groups at the threshold on a technical event."""
        with self.db.session() as session:
            groups = (
                session.query(Referral.referrer_id, Referral.event_id, func.count(Referral.id))
                .filter(Referral.status == ReferralStatus.COMPLETED)
                .group_by(Referral.referrer_id, Referral.event_id)
                .all()
            )
            over_threshold = [(r, e, c) for r, e, c in groups if c >= REFERRAL_THRESHOLD]
            if not over_threshold:
                return []

            categories = dict(
                session.query(Event.id, Event.category).filter(
                    Event.id.in_(sorted({e for _, e, _ in over_threshold}))
                )
            )

        eligible = []
        for referrer_id, event_id, count in over_threshold:
            category = categories.get(event_id)
            if category is None:
                self.logger.warning("referral_event_missing", event_id=event_id)
                continue
            if category != REWARD_CATEGORY:
                continue
            eligible.append((referrer_id, event_id, count))
        return eligible

    def grant_rewards(self) -> list[GrantedReward]:
        """Grant one free registration per eligible (referrer, event)."""
        granted = []
        for referrer_id, event_id, count in self.eligible_groups():
            if self._grant(referrer_id, event_id, count):
                granted.append(GrantedReward(referrer_id, event_id, count))
        return granted

    def _grant(self, referrer_id: str, event_id: str, count: int) -> bool:
        """Grant the reward for one group in a single unit of work.

        Returns:
            True if granted now, False if it had already been granted
        """
        with self.db.session() as session:
            session.add(
                ReferralReward(
                    referrer_id=referrer_id,
                    event_id=event_id,
                    referral_count=count,
                    reward_status=RewardStatus.GRANTED,
                    granted_at=utcnow(),
                )
            )
            try:
                session.flush()
            except IntegrityError:
                session.rollback()
                self.logger.info("referral_reward_already_granted", referrer_id=referrer_id, event_id=event_id)
                return False

            registration = session.query(Registration).filter(
                Registration.user_id == referrer_id,
                Registration.event_id == event_id,
            ).first()

            if registration is None:
                session.add(
                    Registration(
                        user_id=referrer_id,
                        event_id=event_id,
                        payment_status=PaymentStatus.FREE,
                        amount_paid=0,
                    )
                )
            elif registration.payment_status in (PaymentStatus.PENDING, PaymentStatus.FAILED):
                registration.payment_status = PaymentStatus.FREE
                registration.amount_paid = 0
            # completed/free/refunded registrations are left as they are

            session.query(Referral).filter(
                Referral.referrer_id == referrer_id,
                Referral.event_id == event_id,
                Referral.status == ReferralStatus.COMPLETED,
            ).update({Referral.status: ReferralStatus.REWARDED}, synchronize_session=False)

            add_in_app(
                session,
                referrer_id,
                "Free Course Unlocked!",
                "Congratulations! You've earned free access to this event by referring 2 friends.",
                InAppType.SUCCESS,
                action_url=f"/events/{event_id}",
            )

        self.logger.info("referral_reward_granted", referrer_id=referrer_id, event_id=event_id, referral_count=count)

        try:
            self.notifications.enqueue(
                user_id=referrer_id,
                type=NotificationType.EMAIL,
                subject="You've Earned a Free Course!",
                body="Amazing! You've successfully referred 2 friends and earned free access to a technical course.",
                priority=NotificationPriority.HIGH,
                metadata={"event_id": event_id},
            )
        except SQLAlchemyError as e:
            self.logger.error("referral_reward_email_not_queued", referrer_id=referrer_id, error=str(e))

        return True
