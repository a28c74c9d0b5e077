from __future__ import annotations

import secrets

from app.economy.referrals.constants import REFERRAL_CODE_PREFIX, REFERRAL_CODE_RANDOM_LENGTH

# Uppercase without 0/O/1/I so a code read aloud is retyped correctly.
REFERRAL_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"


def generate_referral_code(body_length: int = REFERRAL_CODE_RANDOM_LENGTH) -> str:
    if body_length <= 0:
        raise ValueError("body_length must be positive")
    body = "".join(secrets.choice(REFERRAL_CODE_ALPHABET) for _ in range(body_length))
    return f"{REFERRAL_CODE_PREFIX}{body}"
