from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.vouchers import Voucher
from app.db.repo.users_repo import UsersRepo
from app.db.repo.vouchers_repo import VouchersRepo
from app.economy.entitlements.tiers import is_known_tier
from app.economy.vouchers.codes import normalize_voucher_code
from app.economy.vouchers.errors import (
    VoucherCodeTakenError,
    VoucherDefinitionError,
    VoucherNotFoundError,
)
from app.economy.vouchers.types import VoucherSummary

VOUCHER_TYPES = frozenset({"discount", "referral"})
VOUCHER_VALUE_TYPES = frozenset({"credits", "percentage_discount", "dollar_discount"})


def _validate_definition(
    *,
    voucher_type: str,
    value_type: str,
    value_amount: Decimal,
    max_uses: int | None,
    per_user_limit: int,
    tier_restriction: str | None,
    referral_source_user_id: int | None,
) -> None:
    if voucher_type not in VOUCHER_TYPES:
        raise VoucherDefinitionError(f"unknown voucher type: {voucher_type}")
    if value_type not in VOUCHER_VALUE_TYPES:
        raise VoucherDefinitionError(f"unknown value type: {value_type}")
    if value_amount <= 0:
        raise VoucherDefinitionError("value amount must be positive")
    if value_type == "credits" and value_amount != value_amount.to_integral_value():
        raise VoucherDefinitionError("credit vouchers need a whole number of credits")
    if value_type == "percentage_discount" and value_amount > 100:
        raise VoucherDefinitionError("percentage discount cannot exceed 100")
    if max_uses is not None and max_uses <= 0:
        raise VoucherDefinitionError("max uses must be positive")
    if per_user_limit < 1:
        raise VoucherDefinitionError("per user limit must be at least 1")
    if tier_restriction is not None and not is_known_tier(tier_restriction):
        raise VoucherDefinitionError(f"unknown tier: {tier_restriction}")
    if voucher_type == "referral":
        if referral_source_user_id is None:
            raise VoucherDefinitionError("referral vouchers need a referral source user")
        if value_type != "credits":
            raise VoucherDefinitionError("referral vouchers must award credits")


def to_summary(voucher: Voucher) -> VoucherSummary:
    return VoucherSummary(
        id=voucher.id,
        code=voucher.code,
        voucher_type=voucher.voucher_type,
        value_type=voucher.value_type,
        value_amount=Decimal(voucher.value_amount),
        max_uses=voucher.max_uses,
        per_user_limit=voucher.per_user_limit,
        total_uses=voucher.total_uses,
        is_active=voucher.is_active,
        tier_restriction=voucher.tier_restriction,
        referral_source_user_id=voucher.referral_source_user_id,
    )


async def create_voucher(
    session: AsyncSession,
    *,
    code: str,
    voucher_type: str,
    value_type: str,
    value_amount: Decimal,
    created_by: str,
    max_uses: int | None = None,
    per_user_limit: int = 1,
    expires_at: datetime | None = None,
    tier_restriction: str | None = None,
    referral_source_user_id: int | None = None,
    now_utc: datetime | None = None,
) -> Voucher:
    now_utc = now_utc or datetime.now(timezone.utc)
    normalized_code = normalize_voucher_code(code)
    value_amount = Decimal(value_amount)
    _validate_definition(
        voucher_type=voucher_type,
        value_type=value_type,
        value_amount=value_amount,
        max_uses=max_uses,
        per_user_limit=per_user_limit,
        tier_restriction=tier_restriction,
        referral_source_user_id=referral_source_user_id,
    )
    if referral_source_user_id is not None:
        if await UsersRepo.get_by_id(session, referral_source_user_id) is None:
            raise VoucherDefinitionError("referral source user does not exist")

    if await VouchersRepo.get_by_code(session, normalized_code) is not None:
        raise VoucherCodeTakenError

    return await VouchersRepo.create(
        session,
        voucher=Voucher(
            code=normalized_code,
            voucher_type=voucher_type,
            value_type=value_type,
            value_amount=value_amount,
            max_uses=max_uses,
            per_user_limit=per_user_limit,
            expires_at=expires_at,
            tier_restriction=tier_restriction,
            referral_source_user_id=referral_source_user_id,
            is_active=True,
            total_uses=0,
            created_by=created_by,
            created_at=now_utc,
            updated_at=now_utc,
        ),
    )


async def list_vouchers(
    session: AsyncSession,
    *,
    voucher_type: str | None = None,
    is_active: bool | None = None,
    limit: int = 50,
) -> list[VoucherSummary]:
    vouchers = await VouchersRepo.list_vouchers(
        session,
        voucher_type=voucher_type,
        is_active=is_active,
        limit=max(1, min(limit, 200)),
    )
    return [to_summary(voucher) for voucher in vouchers]


async def set_voucher_active(
    session: AsyncSession,
    *,
    voucher_id: int,
    is_active: bool,
    now_utc: datetime | None = None,
) -> VoucherSummary:
    now_utc = now_utc or datetime.now(timezone.utc)
    voucher = await VouchersRepo.get_by_id_for_update(session, voucher_id)
    if voucher is None:
        raise VoucherNotFoundError
    if voucher.is_active != is_active:
        voucher.is_active = is_active
        voucher.updated_at = now_utc
        await session.flush()
    return to_summary(voucher)
