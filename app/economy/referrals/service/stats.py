from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from app.db.repo.ledger_repo import LedgerRepo
from app.db.repo.users_repo import UsersRepo
from app.economy.referrals.constants import RECENT_REFERRALS_LIMIT

from .codes import get_or_create_referral_code
from .models import RecentReferral, ReferralStats


def _referee_id(external_ref: str | None) -> int | None:
    if external_ref is None or not external_ref.isdigit():
        return None
    return int(external_ref)


async def get_referral_stats(session: AsyncSession, *, user_id: int) -> ReferralStats:
    referral_code = await get_or_create_referral_code(session, user_id=user_id)
    total_referrals, total_credits = await LedgerRepo.count_and_sum_by_source(
        session,
        user_id=user_id,
        source="Referral",
    )
    entries = await LedgerRepo.list_recent_by_source(
        session,
        user_id=user_id,
        source="Referral",
        limit=RECENT_REFERRALS_LIMIT,
    )
    pairs = [
        (referee_id, entry)
        for referee_id, entry in ((_referee_id(entry.external_ref), entry) for entry in entries)
        if referee_id is not None
    ]
    referee_ids = [referee_id for referee_id, _ in pairs]
    usernames = {user.id: user.username for user in await UsersRepo.list_by_ids(session, referee_ids)}

    recent = [
        RecentReferral(
            referee_user_id=referee_id,
            referee_username=usernames.get(referee_id),
            credits_earned=entry.amount,
            awarded_at=entry.created_at,
        )
        for referee_id, entry in pairs
    ]
    return ReferralStats(
        user_id=user_id,
        referral_code=referral_code,
        total_referrals=total_referrals,
        total_credits_earned=total_credits,
        recent_referrals=recent,
    )
