"""Referral system module for Sketch Brains.

Two completed referrals for the same technical event earn the referrer a free
registration for that event.
"""

from sketchbrains.referral.processor import ProcessorResult, ReferralRewardProcessor
from sketchbrains.referral.service import ReferralService, record_referral

__all__ = ["ProcessorResult", "ReferralRewardProcessor", "ReferralService", "record_referral"]
