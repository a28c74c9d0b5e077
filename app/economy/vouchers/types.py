from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID


@dataclass(frozen=True, slots=True)
class DiscountDescriptor:
    value_type: str
    value: Decimal


@dataclass(slots=True)
class VoucherRedeemResult:
    redemption_id: UUID
    voucher_code: str
    value_type: str
    idempotent_replay: bool
    credits_awarded: int = 0
    discount: DiscountDescriptor | None = None
    balance: int | None = None
    tier: str | None = None
    referrer_user_id: int | None = None
    referrer_credits_awarded: int = 0


@dataclass(frozen=True, slots=True)
class VoucherSummary:
    id: int
    code: str
    voucher_type: str
    value_type: str
    value_amount: Decimal
    max_uses: int | None
    per_user_limit: int
    total_uses: int
    is_active: bool
    tier_restriction: str | None
    referral_source_user_id: int | None
