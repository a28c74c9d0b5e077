from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.crypto_wallets import CryptoWallet


class CryptoWalletsRepo:
    @staticmethod
    async def get_by_id(session: AsyncSession, wallet_id: int) -> CryptoWallet | None:
        return await session.get(CryptoWallet, wallet_id)

    @staticmethod
    async def get_by_id_for_update(session: AsyncSession, wallet_id: int) -> CryptoWallet | None:
        stmt = (
            select(CryptoWallet)
            .where(CryptoWallet.id == wallet_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_active_for_user(
        session: AsyncSession,
        *,
        user_id: int,
        crypto_type: str,
    ) -> CryptoWallet | None:
        stmt = select(CryptoWallet).where(
            CryptoWallet.user_id == user_id,
            CryptoWallet.crypto_type == crypto_type,
            CryptoWallet.is_active.is_(True),
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def create(session: AsyncSession, *, wallet: CryptoWallet) -> CryptoWallet:
        session.add(wallet)
        await session.flush()
        return wallet
