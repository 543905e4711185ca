"""Referral service for managing referral codes and referral records."""

import secrets
from typing import Any

from sqlalchemy import func
from sqlalchemy.orm import Session

from sketchbrains.logging_config import get_logger
from sketchbrains.storage.db import Database, db
from sketchbrains.storage.models import (
    Profile,
    Referral,
    ReferralReward,
    ReferralStatus,
    RewardStatus,
)

logger = get_logger(__name__)


def _generate_unique_code(length: int = 8) -> str:
    """Generate a readable referral code.

    Uses uppercase letters and digits, avoiding confusing characters.
    Format: ABC12XYZ (8 chars by default)
    """
    # Exclude confusing characters: 0, O, I, l, 1
    alphabet = "ABCDEFGHJKMNPQRSTUVWXYZ23456789"
    return "".join(secrets.choice(alphabet) for _ in range(length))


def record_referral(
    session: Session,
    referral_code: str,
    referee_id: str,
    event_id: str,
    registration_id: str,
) -> Referral | None:
    """Create a pending referral for a registration made with a code.

    Runs inside the caller's session so the referral is written together with
    the registration. Unknown codes and self-referrals are ignored.

    Returns:
        The new referral, or None if the code was not usable
    """
    code = referral_code.upper().strip()
    referrer = session.query(Profile).filter(Profile.referral_code == code).first()

    if not referrer:
        logger.warning("referral_code_unknown", code=code, referee_id=referee_id)
        return None

    if referrer.id == referee_id:
        logger.warning("referral_self_referral_ignored", user_id=referee_id)
        return None

    referral = Referral(
        referrer_id=referrer.id,
        referee_id=referee_id,
        event_id=event_id,
        registration_id=registration_id,
        status=ReferralStatus.PENDING,
    )
    session.add(referral)

    logger.info(
        "referral_recorded",
        referrer_id=referrer.id,
        referee_id=referee_id,
        event_id=event_id,
    )
    return referral


class ReferralService:
    """Service for referral codes and referral statistics."""

    def __init__(self, database: Database | None = None):
        """Initialize referral service."""
        self.db = database or db
        self.logger = get_logger(__name__)

    def get_or_create_code(self, user_id: str) -> str:
        """Get the user's referral code, creating one on first use.

        Args:
            user_id: Profile ID

        Returns:
            Referral code

        Raises:
            ValueError: If the profile does not exist
        """
        with self.db.session() as session:
            profile = session.get(Profile, user_id)
            if not profile:
                raise ValueError(f"User {user_id} not found")

            if profile.referral_code:
                return profile.referral_code

            # Generate unique code
            code = _generate_unique_code()
            attempts = 0
            while attempts < 10:
                taken = session.query(Profile).filter(Profile.referral_code == code).first()
                if not taken:
                    break
                code = _generate_unique_code()
                attempts += 1

            profile.referral_code = code

            self.logger.info("referral_code_created", user_id=user_id, code=code)
            return code

    def validate_code(self, code: str) -> Profile | None:
        """Validate a referral code.

        Args:
            code: Referral code to validate

        Returns:
            Referrer profile if valid, None otherwise
        """
        if not code:
            return None

        code = code.upper().strip()

        with self.db.session() as session:
            return session.query(Profile).filter(Profile.referral_code == code).first()

    def get_referral_stats(self, user_id: str) -> dict[str, Any]:
        """Get referral statistics for a user.

        Args:
            user_id: Profile ID

        Returns:
            Dict with the code, per-status referral counts and granted rewards
        """
        code = self.get_or_create_code(user_id)

        with self.db.session() as session:
            rows = (
                session.query(Referral.status, func.count(Referral.id))
                .filter(Referral.referrer_id == user_id)
                .group_by(Referral.status)
                .all()
            )
            counts = {status.value: 0 for status in ReferralStatus}
            for status, count in rows:
                counts[ReferralStatus(status).value] = count

            rewards = session.query(ReferralReward).filter(
                ReferralReward.referrer_id == user_id,
                ReferralReward.reward_status == RewardStatus.GRANTED,
            ).all()

            return {
                "code": code,
                "total_referrals": sum(counts.values()),
                "pending_referrals": counts[ReferralStatus.PENDING.value],
                "completed_referrals": counts[ReferralStatus.COMPLETED.value],
                "rewarded_referrals": counts[ReferralStatus.REWARDED.value],
                "rewards": [
                    {"event_id": r.event_id, "referral_count": r.referral_count, "granted_at": r.granted_at}
                    for r in rewards
                ],
            }

    def top_referrers(self, limit: int = 10) -> list[dict[str, Any]]:
        """Referrers ordered by number of referrals, for the admin view."""
        with self.db.session() as session:
            rows = (
                session.query(Referral.referrer_id, Referral.status, func.count(Referral.id))
                .group_by(Referral.referrer_id, Referral.status)
                .all()
            )

            stats: dict[str, dict[str, Any]] = {}
            for referrer_id, status, count in rows:
                entry = stats.setdefault(
                    referrer_id,
                    {
                        "referrer_id": referrer_id,
                        "total_referrals": 0,
                        "pending_referrals": 0,
                        "completed_referrals": 0,
                        "rewarded_referrals": 0,
                    },
                )
                entry["total_referrals"] += count
                entry[f"{ReferralStatus(status).value}_referrals"] += count

            ranked = sorted(stats.values(), key=lambda s: s["total_referrals"], reverse=True)[:limit]

            profiles = {
                p.id: p
                for p in session.query(Profile).filter(
                    Profile.id.in_([s["referrer_id"] for s in ranked])
                )
            }
            for entry in ranked:
                profile = profiles.get(entry["referrer_id"])
                entry["referrer_name"] = profile.full_name if profile else None
                entry["referrer_email"] = profile.email if profile else None

            return ranked
