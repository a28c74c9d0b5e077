from __future__ import annotations

from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.voucher_redemptions import VoucherRedemption
from app.db.models.vouchers import Voucher


class VouchersRepo:
    @staticmethod
    async def get_by_code(session: AsyncSession, code: str) -> Voucher | None:
        stmt = select(Voucher).where(Voucher.code == code)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_by_code_for_update(session: AsyncSession, code: str) -> Voucher | None:
        stmt = (
            select(Voucher)
            .where(Voucher.code == code)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_by_id_for_update(session: AsyncSession, voucher_id: int) -> Voucher | None:
        stmt = (
            select(Voucher)
            .where(Voucher.id == voucher_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def list_vouchers(
        session: AsyncSession,
        *,
        voucher_type: str | None = None,
        is_active: bool | None = None,
        limit: int = 50,
    ) -> list[Voucher]:
        stmt = select(Voucher).order_by(Voucher.created_at.desc(), Voucher.id.desc()).limit(limit)
        if voucher_type is not None:
            stmt = stmt.where(Voucher.voucher_type == voucher_type)
        if is_active is not None:
            stmt = stmt.where(Voucher.is_active.is_(is_active))
        result = await session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def create(session: AsyncSession, *, voucher: Voucher) -> Voucher:
        session.add(voucher)
        await session.flush()
        return voucher

    @staticmethod
    async def get_redemption_by_idempotency_key(
        session: AsyncSession,
        idempotency_key: str,
    ) -> VoucherRedemption | None:
        stmt = select(VoucherRedemption).where(
            VoucherRedemption.idempotency_key == idempotency_key
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_redemption_by_id_for_update(
        session: AsyncSession,
        redemption_id: UUID,
    ) -> VoucherRedemption | None:
        stmt = (
            select(VoucherRedemption)
            .where(VoucherRedemption.id == redemption_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def count_user_redemptions(
        session: AsyncSession,
        *,
        voucher_id: int,
        user_id: int,
    ) -> int:
        stmt = select(func.count(VoucherRedemption.id)).where(
            VoucherRedemption.voucher_id == voucher_id,
            VoucherRedemption.user_id == user_id,
        )
        result = await session.execute(stmt)
        return int(result.scalar_one() or 0)

    @staticmethod
    async def create_redemption(
        session: AsyncSession,
        *,
        redemption: VoucherRedemption,
    ) -> VoucherRedemption:
        session.add(redemption)
        await session.flush()
        return redemption
