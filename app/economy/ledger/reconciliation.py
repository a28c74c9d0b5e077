from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from app.db.repo.ledger_repo import LedgerRepo
from app.db.repo.users_repo import UsersRepo
from app.services.ledger_reliability import BalanceDrift, find_balance_drifts


async def scan_balance_drifts(
    session: AsyncSession,
    *,
    after_user_id: int | None,
    limit: int,
) -> tuple[list[BalanceDrift], int | None, int]:
    snapshots = await LedgerRepo.list_balance_snapshots(
        session,
        after_user_id=after_user_id,
        limit=limit,
    )
    last_user_id = snapshots[-1][0] if snapshots else None
    return find_balance_drifts(snapshots), last_user_id, len(snapshots)


async def repair_balance_cache(session: AsyncSession, *, user_id: int) -> BalanceDrift | None:
    user = await UsersRepo.get_by_id_for_update(session, user_id)
    if user is None:
        return None
    ledger_balance = await LedgerRepo.sum_for_user(session, user_id=user_id)
    if user.credit_balance == ledger_balance:
        return None

    drift = BalanceDrift(
        user_id=user_id,
        cached_balance=user.credit_balance,
        ledger_balance=ledger_balance,
    )
    user.credit_balance = ledger_balance
    await session.flush()
    return drift
