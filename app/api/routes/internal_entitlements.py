from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Request
from pydantic import BaseModel

from app.core.config import get_settings
from app.economy.errors import EconomyError

from .internal_helpers import assert_internal_access, get_engine, to_http_exception

router = APIRouter(tags=["internal", "entitlements"])


class EntitlementsResponse(BaseModel):
    user_id: int
    tier: str
    credit_exempt: bool
    max_word_count: int
    features: dict[str, bool]


class RecentReferralResponse(BaseModel):
    referee_user_id: int
    referee_username: str | None
    credits_earned: int
    awarded_at: datetime


class ReferralStatsResponse(BaseModel):
    user_id: int
    referral_code: str
    total_referrals: int
    total_credits_earned: int
    recent_referrals: list[RecentReferralResponse]


@router.get("/internal/entitlements/users/{user_id}", response_model=EntitlementsResponse)
async def get_entitlements(user_id: int, request: Request) -> EntitlementsResponse:
    assert_internal_access(request, settings=get_settings(), scope="entitlements")
    try:
        entitlements = await get_engine().get_entitlements(user_id)
    except EconomyError as exc:
        raise await to_http_exception(exc, operation="get_entitlements") from exc
    return EntitlementsResponse(
        user_id=entitlements.user_id,
        tier=entitlements.tier,
        credit_exempt=entitlements.credit_exempt,
        max_word_count=entitlements.max_word_count,
        features=dict(entitlements.features),
    )


@router.get("/internal/referrals/users/{user_id}", response_model=ReferralStatsResponse)
async def get_referral_stats(user_id: int, request: Request) -> ReferralStatsResponse:
    assert_internal_access(request, settings=get_settings(), scope="referrals")
    try:
        stats = await get_engine().get_referral_stats(user_id)
    except EconomyError as exc:
        raise await to_http_exception(exc, operation="get_referral_stats") from exc
    return ReferralStatsResponse(
        user_id=stats.user_id,
        referral_code=stats.referral_code,
        total_referrals=stats.total_referrals,
        total_credits_earned=stats.total_credits_earned,
        recent_referrals=[
            RecentReferralResponse(
                referee_user_id=item.referee_user_id,
                referee_username=item.referee_username,
                credits_earned=item.credits_earned,
                awarded_at=item.awarded_at,
            )
            for item in stats.recent_referrals
        ],
    )
