from __future__ import annotations

REFERRAL_CODE_PREFIX = "REF"
REFERRAL_CODE_RANDOM_LENGTH = 6
REFERRAL_CODE_MAX_ATTEMPTS = 5
REFERRAL_MIN_REFERRER_CREDITS = 50
RECENT_REFERRALS_LIMIT = 10
