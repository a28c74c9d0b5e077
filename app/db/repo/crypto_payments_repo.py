from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import and_, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.crypto_payment_requests import CryptoPaymentRequest
from app.db.models.crypto_transactions import CryptoTransaction

OPEN_REQUEST_STATUSES = ("pending", "awaiting_verification")


class CryptoPaymentsRepo:
    @staticmethod
    async def create_request(
        session: AsyncSession,
        *,
        payment_request: CryptoPaymentRequest,
    ) -> CryptoPaymentRequest:
        session.add(payment_request)
        await session.flush()
        return payment_request

    @staticmethod
    async def get_request_by_id(
        session: AsyncSession,
        request_id: UUID,
    ) -> CryptoPaymentRequest | None:
        return await session.get(CryptoPaymentRequest, request_id)

    @staticmethod
    async def get_request_by_id_for_update(
        session: AsyncSession,
        request_id: UUID,
    ) -> CryptoPaymentRequest | None:
        stmt = (
            select(CryptoPaymentRequest)
            .where(CryptoPaymentRequest.id == request_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_request_by_reference_for_update(
        session: AsyncSession,
        *,
        user_id: int,
        reference_id: str,
    ) -> CryptoPaymentRequest | None:
        stmt = (
            select(CryptoPaymentRequest)
            .where(
                CryptoPaymentRequest.user_id == user_id,
                CryptoPaymentRequest.reference_id == reference_id,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_latest_open_request_for_update(
        session: AsyncSession,
        *,
        user_id: int,
        crypto_type: str,
    ) -> CryptoPaymentRequest | None:
        stmt = (
            select(CryptoPaymentRequest)
            .where(
                CryptoPaymentRequest.user_id == user_id,
                CryptoPaymentRequest.crypto_type == crypto_type,
                CryptoPaymentRequest.status.in_(OPEN_REQUEST_STATUSES),
            )
            .order_by(CryptoPaymentRequest.created_at.desc())
            .limit(1)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_reusable_pending_request(
        session: AsyncSession,
        *,
        user_id: int,
        crypto_type: str,
        plan_code: str | None,
        amount_usd: Decimal,
        now_utc: datetime,
    ) -> CryptoPaymentRequest | None:
        stmt = (
            select(CryptoPaymentRequest)
            .where(
                CryptoPaymentRequest.user_id == user_id,
                CryptoPaymentRequest.crypto_type == crypto_type,
                CryptoPaymentRequest.status == "pending",
                CryptoPaymentRequest.amount_usd == amount_usd,
                CryptoPaymentRequest.discount_usd == 0,
                CryptoPaymentRequest.expires_at > now_utc,
            )
            .order_by(CryptoPaymentRequest.created_at.desc())
            .limit(1)
        )
        if plan_code is None:
            stmt = stmt.where(CryptoPaymentRequest.plan_code.is_(None))
        else:
            stmt = stmt.where(CryptoPaymentRequest.plan_code == plan_code)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def expire_stale_requests(
        session: AsyncSession,
        *,
        now_utc: datetime,
    ) -> int:
        stmt = (
            update(CryptoPaymentRequest)
            .where(
                or_(
                    and_(
                        CryptoPaymentRequest.status == "pending",
                        CryptoPaymentRequest.expires_at <= now_utc,
                    ),
                    and_(
                        CryptoPaymentRequest.status == "awaiting_verification",
                        CryptoPaymentRequest.verification_deadline_at <= now_utc,
                    ),
                )
            )
            .values(status="expired", updated_at=now_utc)
        )
        result = await session.execute(stmt)
        return int(result.rowcount or 0)

    @staticmethod
    async def list_awaiting_verification(
        session: AsyncSession,
        *,
        now_utc: datetime,
        limit: int = 100,
    ) -> list[CryptoPaymentRequest]:
        stmt = (
            select(CryptoPaymentRequest)
            .where(
                CryptoPaymentRequest.status == "awaiting_verification",
                CryptoPaymentRequest.transaction_hash.is_not(None),
                CryptoPaymentRequest.verification_deadline_at > now_utc,
            )
            .order_by(CryptoPaymentRequest.submitted_at.asc())
            .limit(limit)
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def get_transaction_by_hash(
        session: AsyncSession,
        transaction_hash: str,
    ) -> CryptoTransaction | None:
        stmt = select(CryptoTransaction).where(CryptoTransaction.transaction_hash == transaction_hash)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_transaction_by_hash_for_update(
        session: AsyncSession,
        transaction_hash: str,
    ) -> CryptoTransaction | None:
        stmt = (
            select(CryptoTransaction)
            .where(CryptoTransaction.transaction_hash == transaction_hash)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def create_transaction(
        session: AsyncSession,
        *,
        transaction: CryptoTransaction,
    ) -> CryptoTransaction:
        session.add(transaction)
        await session.flush()
        return transaction
