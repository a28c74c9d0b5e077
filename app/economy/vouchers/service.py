from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.users import User
from app.db.models.voucher_redemptions import VoucherRedemption
from app.db.models.vouchers import Voucher
from app.db.repo.users_repo import UsersRepo
from app.db.repo.vouchers_repo import VouchersRepo
from app.economy.entitlements.service import EntitlementService
from app.economy.ledger.errors import LedgerUserNotFoundError
from app.economy.ledger.service import LedgerService
from app.economy.referrals.constants import REFERRAL_MIN_REFERRER_CREDITS
from app.economy.vouchers.codes import (
    build_client_redemption_key,
    build_redemption_key,
    normalize_voucher_code,
)
from app.economy.vouchers.errors import (
    PerUserLimitReachedError,
    ReferralSelfRedeemError,
    TierRestrictedError,
    VoucherExhaustedError,
    VoucherExpiredError,
    VoucherIdempotencyConflictError,
    VoucherNotFoundError,
)
from app.economy.vouchers.types import DiscountDescriptor, VoucherRedeemResult


def _credit_award(voucher: Voucher) -> int:
    if voucher.value_type != "credits":
        return 0
    return int(voucher.value_amount)


def _discount_award(voucher: Voucher) -> DiscountDescriptor | None:
    if voucher.value_type not in {"percentage_discount", "dollar_discount"}:
        return None
    return DiscountDescriptor(value_type=voucher.value_type, value=Decimal(voucher.value_amount))


class VoucherService:
    @staticmethod
    async def _replay_if_redeemed(
        session: AsyncSession,
        *,
        redemption_key: str,
        code: str,
    ) -> VoucherRedeemResult | None:
        redemption = await VouchersRepo.get_redemption_by_idempotency_key(session, redemption_key)
        if redemption is None:
            return None
        voucher = await session.get(Voucher, redemption.voucher_id)
        if voucher is None:
            raise VoucherNotFoundError
        if voucher.code != code:
            raise VoucherIdempotencyConflictError

        user = await UsersRepo.get_by_id(session, redemption.user_id)
        resolution = await EntitlementService.resolve_tier(session, user_id=redemption.user_id)

        discount = None
        if redemption.discount_type is not None and redemption.discount_value is not None:
            discount = DiscountDescriptor(
                value_type=redemption.discount_type,
                value=Decimal(redemption.discount_value),
            )
        return VoucherRedeemResult(
            redemption_id=redemption.id,
            voucher_code=voucher.code,
            value_type=voucher.value_type,
            idempotent_replay=True,
            credits_awarded=redemption.credits_awarded,
            discount=discount,
            balance=user.credit_balance if user is not None else None,
            tier=resolution.tier,
            referrer_user_id=redemption.referrer_user_id,
            referrer_credits_awarded=redemption.referrer_credits_awarded,
        )

    @staticmethod
    async def _lock_participants(
        session: AsyncSession,
        *,
        user_id: int,
        code: str,
    ) -> User:
        # Users are locked before the voucher row.
        preview = await VouchersRepo.get_by_code(session, code)
        user_ids = {user_id}
        if preview is not None and preview.referral_source_user_id is not None:
            user_ids.add(preview.referral_source_user_id)

        locked = await UsersRepo.lock_many_for_update(session, sorted(user_ids))

        user = locked.get(user_id)
        if user is None:
            raise LedgerUserNotFoundError
        return user

    @staticmethod
    async def _award_referrer(
        session: AsyncSession,
        *,
        voucher: Voucher,
        referee: User,
        referee_credits: int,
        redemption_id: str,
        now_utc: datetime,
    ) -> tuple[int | None, int]:
        referrer_user_id = voucher.referral_source_user_id
        if referrer_user_id is None:
            return None, 0
        if referee.referred_by_user_id is not None and referee.referred_by_user_id != referrer_user_id:
            return None, 0

        if referee.referred_by_user_id is None:
            referee.referred_by_user_id = referrer_user_id

        reward = max(referee_credits, REFERRAL_MIN_REFERRER_CREDITS)
        result = await LedgerService.append(
            session,
            user_id=referrer_user_id,
            entry_type="BONUS",
            amount=reward,
            source="Referral",
            external_ref=str(referee.id),
            metadata={
                "referee_user_id": referee.id,
                "voucher_code": voucher.code,
                "redemption_id": redemption_id,
            },
            now_utc=now_utc,
        )
        if result.idempotent_replay:
            return referrer_user_id, 0
        return referrer_user_id, reward

    @staticmethod
    async def redeem(
        session: AsyncSession,
        *,
        user_id: int,
        code: str,
        idempotency_key: str | None = None,
        now_utc: datetime | None = None,
    ) -> VoucherRedeemResult:
        now_utc = now_utc or datetime.now(timezone.utc)
        normalized_code = normalize_voucher_code(code)

        client_key: str | None = None
        if idempotency_key is not None:
            client_key = build_client_redemption_key(user_id=user_id, client_key=idempotency_key)
            replay = await VoucherService._replay_if_redeemed(
                session,
                redemption_key=client_key,
                code=normalized_code,
            )
            if replay is not None:
                return replay

        user = await VoucherService._lock_participants(session, user_id=user_id, code=normalized_code)

        voucher = await VouchersRepo.get_by_code_for_update(session, normalized_code)
        if client_key is not None:
            # A request with the same key may have committed while this one waited on the locks.
            replay = await VoucherService._replay_if_redeemed(
                session,
                redemption_key=client_key,
                code=normalized_code,
            )
            if replay is not None:
                return replay

        if voucher is None or not voucher.is_active:
            raise VoucherNotFoundError
        if voucher.expires_at is not None and voucher.expires_at <= now_utc:
            raise VoucherExpiredError
        if voucher.max_uses is not None and voucher.total_uses >= voucher.max_uses:
            raise VoucherExhaustedError

        used_by_user = await VouchersRepo.count_user_redemptions(
            session,
            voucher_id=voucher.id,
            user_id=user_id,
        )
        if used_by_user >= voucher.per_user_limit:
            raise PerUserLimitReachedError

        if voucher.tier_restriction is not None:
            resolution = await EntitlementService.resolve_tier(session, user_id=user_id, now_utc=now_utc)
            if resolution.tier != voucher.tier_restriction:
                raise TierRestrictedError

        if voucher.voucher_type == "referral" and voucher.referral_source_user_id == user_id:
            raise ReferralSelfRedeemError

        redemption_key = client_key or build_redemption_key(
            code=voucher.code,
            user_id=user_id,
            ordinal=used_by_user + 1,
        )
        redemption_id = uuid4()
        credits = _credit_award(voucher)
        discount = _discount_award(voucher)

        balance: int | None = None
        tier: str | None = None
        ledger_entry_id: int | None = None
        if credits > 0:
            append_result = await LedgerService.append(
                session,
                user_id=user_id,
                entry_type="BONUS",
                amount=credits,
                source="Voucher",
                external_ref=redemption_key,
                metadata={"voucher_code": voucher.code, "redemption_id": str(redemption_id)},
                now_utc=now_utc,
            )
            ledger_entry_id = append_result.entry.id
            balance = append_result.balance
            tier = append_result.tier

        referrer_user_id: int | None = None
        referrer_credits = 0
        if voucher.voucher_type == "referral":
            referrer_user_id, referrer_credits = await VoucherService._award_referrer(
                session,
                voucher=voucher,
                referee=user,
                referee_credits=credits,
                redemption_id=str(redemption_id),
                now_utc=now_utc,
            )

        voucher.total_uses += 1
        voucher.updated_at = now_utc
        await VouchersRepo.create_redemption(
            session,
            redemption=VoucherRedemption(
                id=redemption_id,
                voucher_id=voucher.id,
                user_id=user_id,
                idempotency_key=redemption_key,
                credits_awarded=credits,
                discount_type=discount.value_type if discount is not None else None,
                discount_value=discount.value if discount is not None else None,
                ledger_entry_id=ledger_entry_id,
                referrer_user_id=referrer_user_id,
                referrer_credits_awarded=referrer_credits,
                redeemed_at=now_utc,
            ),
        )

        if tier is None:
            resolution = await EntitlementService.resolve_tier(session, user_id=user_id, now_utc=now_utc)
            tier = resolution.tier
        return VoucherRedeemResult(
            redemption_id=redemption_id,
            voucher_code=voucher.code,
            value_type=voucher.value_type,
            idempotent_replay=False,
            credits_awarded=credits,
            discount=discount,
            balance=balance if balance is not None else user.credit_balance,
            tier=tier,
            referrer_user_id=referrer_user_id,
            referrer_credits_awarded=referrer_credits,
        )
