from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.db.models.vouchers import Voucher
from app.db.repo.users_repo import UsersRepo
from app.db.repo.vouchers_repo import VouchersRepo
from app.economy.ledger.errors import LedgerUserNotFoundError
from app.economy.referrals.codes import generate_referral_code
from app.economy.referrals.constants import REFERRAL_CODE_MAX_ATTEMPTS


async def _pick_unused_code(session: AsyncSession) -> str:
    for _ in range(REFERRAL_CODE_MAX_ATTEMPTS):
        candidate = generate_referral_code()
        if await UsersRepo.get_by_referral_code(session, candidate) is not None:
            continue
        if await VouchersRepo.get_by_code(session, candidate) is not None:
            continue
        return candidate
    raise RuntimeError("could not allocate a unique referral code")


async def get_or_create_referral_code(
    session: AsyncSession,
    *,
    user_id: int,
    now_utc: datetime | None = None,
) -> str:
    now_utc = now_utc or datetime.now(timezone.utc)
    user = await UsersRepo.get_by_id_for_update(session, user_id)
    if user is None:
        raise LedgerUserNotFoundError
    if user.referral_code is not None:
        return user.referral_code

    code = await _pick_unused_code(session)
    await VouchersRepo.create(
        session,
        voucher=Voucher(
            code=code,
            voucher_type="referral",
            value_type="credits",
            value_amount=Decimal(get_settings().referral_referee_credits),
            max_uses=None,
            per_user_limit=1,
            expires_at=None,
            tier_restriction=None,
            referral_source_user_id=user_id,
            is_active=True,
            total_uses=0,
            created_by="referral_program",
            created_at=now_utc,
            updated_at=now_utc,
        ),
    )
    user.referral_code = code
    await session.flush()
    return code
