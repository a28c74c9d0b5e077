from __future__ import annotations

import re
from decimal import ROUND_HALF_UP, Decimal

from app.economy.vouchers.errors import VoucherCodeFormatError, VoucherIdempotencyKeyError
from app.economy.vouchers.types import DiscountDescriptor

VOUCHER_CODE_RE = re.compile(r"^[A-Z0-9_-]{3,50}$")
MIN_PAYMENT_USD = Decimal("0.01")
CENT = Decimal("0.01")
# Leaves room for the "client:<user_id>:" prefix inside the 128 character key columns.
CLIENT_KEY_MAX_LENGTH = 96


def normalize_voucher_code(raw_code: str) -> str:
    normalized = raw_code.strip().upper()
    if VOUCHER_CODE_RE.fullmatch(normalized) is None:
        raise VoucherCodeFormatError
    return normalized


def build_redemption_key(*, code: str, user_id: int, ordinal: int) -> str:
    return f"voucher:{code}:{user_id}:{ordinal}"


def build_client_redemption_key(*, user_id: int, client_key: str) -> str:
    if not 1 <= len(client_key) <= CLIENT_KEY_MAX_LENGTH:
        raise VoucherIdempotencyKeyError
    # Client keys live in their own per-user namespace, apart from derived voucher keys.
    return f"client:{user_id}:{client_key}"


def calculate_discount_usd(base_usd: Decimal, discount: DiscountDescriptor) -> Decimal:
    """Return the discount amount for `base_usd`, leaving at least one cent to pay."""
    if base_usd <= MIN_PAYMENT_USD:
        return Decimal("0")

    if discount.value_type == "percentage_discount":
        percent = min(discount.value, Decimal("100"))
        raw_discount = (base_usd * percent / Decimal("100")).quantize(CENT, rounding=ROUND_HALF_UP)
    elif discount.value_type == "dollar_discount":
        raw_discount = discount.value.quantize(CENT, rounding=ROUND_HALF_UP)
    else:
        return Decimal("0")

    return max(Decimal("0"), min(raw_discount, base_usd - MIN_PAYMENT_USD))
