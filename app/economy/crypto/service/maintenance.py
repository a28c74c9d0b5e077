from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.db.repo.crypto_payments_repo import CryptoPaymentsRepo
from app.db.session import SessionLocal
from app.economy.crypto.errors import ChainQueryError
from app.economy.crypto.service.verification import verify_payment
from app.economy.crypto.types import ChainQueryClient
from app.economy.errors import EconomyError

logger = structlog.get_logger(__name__)

RECHECK_BATCH_SIZE = 100


@dataclass(slots=True)
class RecheckSummary:
    examined: int = 0
    chain_errors: int = 0
    failed: int = 0
    outcomes: dict[str, int] = field(default_factory=dict)


async def expire_stale_requests(
    *,
    now_utc: datetime | None = None,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
) -> int:
    now_utc = now_utc or datetime.now(timezone.utc)
    factory = session_factory or SessionLocal
    async with factory.begin() as session:
        return await CryptoPaymentsRepo.expire_stale_requests(session, now_utc=now_utc)


async def recheck_awaiting(
    *,
    chain_client: ChainQueryClient,
    now_utc: datetime | None = None,
    batch_size: int = RECHECK_BATCH_SIZE,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
) -> RecheckSummary:
    now_utc = now_utc or datetime.now(timezone.utc)
    factory = session_factory or SessionLocal
    async with factory.begin() as session:
        awaiting = await CryptoPaymentsRepo.list_awaiting_verification(
            session,
            now_utc=now_utc,
            limit=batch_size,
        )
        candidates = [
            (item.user_id, item.crypto_type, item.transaction_hash, item.reference_id)
            for item in awaiting
            if item.transaction_hash is not None
        ]

    summary = RecheckSummary()
    for user_id, crypto_type, transaction_hash, reference_id in candidates:
        summary.examined += 1
        try:
            result = await verify_payment(
                user_id=user_id,
                transaction_hash=transaction_hash,
                crypto_type=crypto_type,
                chain_client=chain_client,
                reference_id=reference_id,
                now_utc=now_utc,
                session_factory=factory,
            )
        except ChainQueryError:
            summary.chain_errors += 1
            continue
        except EconomyError as exc:
            summary.failed += 1
            logger.warning(
                "crypto_recheck_failed",
                user_id=user_id,
                reference_id=reference_id,
                error_code=exc.code,
            )
            continue
        summary.outcomes[result.status] = summary.outcomes.get(result.status, 0) + 1
    return summary
