"""Referral API v1 endpoints."""

from datetime import datetime

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from sketchbrains.api.rate_limit import REFERRAL_VALIDATE_LIMIT, limiter
from sketchbrains.auth.middleware import Principal, require_admin, require_auth, require_service
from sketchbrains.logging_config import get_logger
from sketchbrains.referral.processor import ReferralRewardProcessor
from sketchbrains.referral.service import ReferralService
from sketchbrains.settings import settings
from sketchbrains.storage.db import Database, get_database

logger = get_logger(__name__)

router = APIRouter(prefix="/referrals", tags=["referrals"])


# ==================== MODELS ====================


class ReferralCodeResponse(BaseModel):
    """Response with user's referral code."""
    code: str
    link: str


class RewardInfo(BaseModel):
    event_id: str
    referral_count: int
    granted_at: datetime | None = None


class ReferralStatsResponse(BaseModel):
    """Response with referral statistics."""
    code: str
    link: str
    total_referrals: int
    pending_referrals: int
    completed_referrals: int
    rewarded_referrals: int
    rewards: list[RewardInfo]


class ValidateCodeRequest(BaseModel):
    """Request to validate a referral code."""
    code: str


class ValidateCodeResponse(BaseModel):
    """Response from code validation."""
    valid: bool
    referrer_name: str | None = None


def _referral_link(code: str) -> str:
    base = (settings.frontend_url or "").rstrip("/")
    return f"{base}/signup?ref={code}"


# ==================== ENDPOINTS ====================


@router.api_route("/process", methods=["GET", "POST"])
async def process_referrals(
    principal: Principal = Depends(require_service),
    database: Database = Depends(get_database),
):
    """Run one referral reward pass.

    Called by the scheduler (service token) or by an admin.
    """
    try:
        result = ReferralRewardProcessor(database).run()
    except Exception as e:
        logger.error("referral_processing_failed", error=str(e))
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"success": False, "error": str(e)},
        )

    return {
        "success": True,
        "processedReferrals": len(result.processed_referrals),
        "rewardsGranted": len(result.rewards),
        "details": {
            "processedReferrals": result.processed_referrals,
            "rewards": [
                {
                    "referrerId": r.referrer_id,
                    "eventId": r.event_id,
                    "referralCount": r.referral_count,
                }
                for r in result.rewards
            ],
        },
    }


@router.get("/code", response_model=ReferralCodeResponse)
async def get_referral_code(
    principal: Principal = Depends(require_auth),
    database: Database = Depends(get_database),
):
    """Get current user's referral code, creating it on first use."""
    code = ReferralService(database).get_or_create_code(principal.user_id)
    return ReferralCodeResponse(code=code, link=_referral_link(code))


@router.post("/validate", response_model=ValidateCodeResponse)
@limiter.limit(REFERRAL_VALIDATE_LIMIT)
async def validate_referral_code(
    request: Request,
    body: ValidateCodeRequest,
    database: Database = Depends(get_database),
):
    """Validate a referral code during signup."""
    referrer = ReferralService(database).validate_code(body.code)

    if not referrer:
        return ValidateCodeResponse(valid=False)

    # First name only for privacy
    referrer_name = referrer.full_name.split()[0] if referrer.full_name else None
    return ValidateCodeResponse(valid=True, referrer_name=referrer_name)


@router.get("/stats", response_model=ReferralStatsResponse)
async def get_referral_stats(
    principal: Principal = Depends(require_auth),
    database: Database = Depends(get_database),
):
    """Get referral statistics for current user."""
    stats = ReferralService(database).get_referral_stats(principal.user_id)
    return ReferralStatsResponse(link=_referral_link(stats["code"]), **stats)


@router.get("/top")
async def get_top_referrers(
    limit: int = Query(default=10, ge=1, le=100),
    principal: Principal = Depends(require_admin),
    database: Database = Depends(get_database),
):
    """Referrers with the most referrals (admin only)."""
    return {"referrers": ReferralService(database).top_referrers(limit)}
