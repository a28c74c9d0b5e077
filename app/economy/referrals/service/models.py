from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime


@dataclass(frozen=True, slots=True)
class RecentReferral:
    referee_user_id: int
    referee_username: str | None
    credits_earned: int
    awarded_at: datetime


@dataclass(frozen=True, slots=True)
class ReferralStats:
    user_id: int
    referral_code: str
    total_referrals: int
    total_credits_earned: int
    recent_referrals: list[RecentReferral] = field(default_factory=list)
