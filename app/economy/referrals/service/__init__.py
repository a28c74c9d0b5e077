from __future__ import annotations

from .codes import get_or_create_referral_code
from .models import RecentReferral, ReferralStats
from .stats import get_referral_stats


class ReferralService:
    get_or_create_referral_code = staticmethod(get_or_create_referral_code)
    get_referral_stats = staticmethod(get_referral_stats)


__all__ = [
    "RecentReferral",
    "ReferralService",
    "ReferralStats",
]
