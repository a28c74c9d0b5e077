from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.ledger_entries import LedgerEntry
from app.db.models.users import User


class LedgerRepo:
    @staticmethod
    async def get_by_source_external_ref(
        session: AsyncSession,
        *,
        source: str,
        external_ref: str,
    ) -> LedgerEntry | None:
        stmt = select(LedgerEntry).where(
            LedgerEntry.source == source,
            LedgerEntry.external_ref == external_ref,
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def create(session: AsyncSession, *, entry: LedgerEntry) -> LedgerEntry:
        session.add(entry)
        await session.flush()
        return entry

    @staticmethod
    async def sum_for_user(session: AsyncSession, *, user_id: int) -> int:
        stmt = select(func.coalesce(func.sum(LedgerEntry.amount), 0)).where(
            LedgerEntry.user_id == user_id
        )
        result = await session.execute(stmt)
        return int(result.scalar_one() or 0)

    @staticmethod
    async def list_for_user(
        session: AsyncSession,
        *,
        user_id: int,
        limit: int,
        offset: int = 0,
    ) -> list[LedgerEntry]:
        stmt = (
            select(LedgerEntry)
            .where(LedgerEntry.user_id == user_id)
            .order_by(LedgerEntry.created_at.desc(), LedgerEntry.id.desc())
            .limit(limit)
            .offset(offset)
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def totals_by_type(session: AsyncSession, *, user_id: int) -> dict[str, int]:
        stmt = (
            select(LedgerEntry.entry_type, func.coalesce(func.sum(LedgerEntry.amount), 0))
            .where(LedgerEntry.user_id == user_id)
            .group_by(LedgerEntry.entry_type)
        )
        result = await session.execute(stmt)
        return {entry_type: int(total or 0) for entry_type, total in result.all()}

    @staticmethod
    async def get_latest_tier_override(
        session: AsyncSession,
        *,
        user_id: int,
    ) -> LedgerEntry | None:
        stmt = (
            select(LedgerEntry)
            .where(
                LedgerEntry.user_id == user_id,
                LedgerEntry.entry_type == "ADJUSTMENT",
                LedgerEntry.metadata_.has_key("tier_override"),
            )
            .order_by(LedgerEntry.id.desc())
            .limit(1)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def sum_purchases_for_user(
        session: AsyncSession,
        *,
        user_id: int,
        after_entry_id: int | None = None,
    ) -> int:
        stmt = select(func.coalesce(func.sum(LedgerEntry.amount), 0)).where(
            LedgerEntry.user_id == user_id,
            LedgerEntry.entry_type == "PURCHASE",
        )
        if after_entry_id is not None:
            stmt = stmt.where(LedgerEntry.id > after_entry_id)
        result = await session.execute(stmt)
        return int(result.scalar_one() or 0)

    @staticmethod
    async def count_and_sum_by_source(
        session: AsyncSession,
        *,
        user_id: int,
        source: str,
    ) -> tuple[int, int]:
        stmt = select(
            func.count(LedgerEntry.id),
            func.coalesce(func.sum(LedgerEntry.amount), 0),
        ).where(
            LedgerEntry.user_id == user_id,
            LedgerEntry.source == source,
        )
        result = await session.execute(stmt)
        count, total = result.one()
        return int(count or 0), int(total or 0)

    @staticmethod
    async def list_recent_by_source(
        session: AsyncSession,
        *,
        user_id: int,
        source: str,
        limit: int,
    ) -> list[LedgerEntry]:
        stmt = (
            select(LedgerEntry)
            .where(
                LedgerEntry.user_id == user_id,
                LedgerEntry.source == source,
            )
            .order_by(LedgerEntry.created_at.desc(), LedgerEntry.id.desc())
            .limit(limit)
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def list_balance_snapshots(
        session: AsyncSession,
        *,
        after_user_id: int | None,
        limit: int,
    ) -> list[tuple[int, int, int]]:
        ledger_totals = (
            select(
                LedgerEntry.user_id.label("user_id"),
                func.sum(LedgerEntry.amount).label("total"),
            )
            .group_by(LedgerEntry.user_id)
            .subquery()
        )
        stmt = (
            select(User.id, User.credit_balance, func.coalesce(ledger_totals.c.total, 0))
            .outerjoin(ledger_totals, ledger_totals.c.user_id == User.id)
            .order_by(User.id.asc())
            .limit(max(1, limit))
        )
        if after_user_id is not None:
            stmt = stmt.where(User.id > after_user_id)
        result = await session.execute(stmt)
        return [(int(user_id), int(cached), int(total)) for user_id, cached, total in result.all()]
