from __future__ import annotations

from datetime import datetime, timezone

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.users import User
from app.economy.entitlements.tiers import is_known_tier
from app.economy.ledger.constants import TIER_OVERRIDE_METADATA_KEY
from app.economy.ledger.errors import LedgerValidationError
from app.economy.ledger.service import LedgerService
from app.economy.ledger.types import LedgerAppendResult

logger = structlog.get_logger(__name__)


async def adjust_credits(
    session: AsyncSession,
    *,
    user_id: int,
    amount: int,
    reason: str,
    admin_id: str,
    external_ref: str | None = None,
    now_utc: datetime | None = None,
) -> LedgerAppendResult:
    if amount == 0:
        raise LedgerValidationError("adjustment amount must be non-zero")
    if not reason.strip():
        raise LedgerValidationError("adjustment reason is required")

    result = await LedgerService.append(
        session,
        user_id=user_id,
        entry_type="ADJUSTMENT",
        amount=amount,
        source="Manual",
        external_ref=external_ref,
        metadata={"reason": reason.strip(), "admin_id": admin_id},
        now_utc=now_utc,
    )
    if not result.idempotent_replay:
        logger.info(
            "ledger_admin_adjustment",
            user_id=user_id,
            amount=amount,
            admin_id=admin_id,
            balance=result.balance,
        )
    return result


async def override_tier(
    session: AsyncSession,
    *,
    user_id: int,
    tier: str,
    reason: str,
    admin_id: str,
    now_utc: datetime | None = None,
) -> LedgerAppendResult:
    if not is_known_tier(tier):
        raise LedgerValidationError(f"unknown tier: {tier}")
    if not reason.strip():
        raise LedgerValidationError("tier override reason is required")

    result = await LedgerService.append(
        session,
        user_id=user_id,
        entry_type="ADJUSTMENT",
        amount=0,
        source="Manual",
        metadata={
            TIER_OVERRIDE_METADATA_KEY: tier,
            "reason": reason.strip(),
            "admin_id": admin_id,
        },
        now_utc=now_utc,
    )
    logger.info("ledger_admin_tier_override", user_id=user_id, tier=tier, admin_id=admin_id)
    return result


async def set_credit_exempt(
    session: AsyncSession,
    *,
    user_id: int,
    exempt: bool,
    admin_id: str,
    now_utc: datetime | None = None,
) -> User:
    now_utc = now_utc or datetime.now(timezone.utc)
    user = await LedgerService._get_user_for_update(session, user_id=user_id)
    if user.credit_exempt != exempt:
        user.credit_exempt = exempt
        await session.flush()
        logger.info(
            "ledger_credit_exempt_changed",
            user_id=user_id,
            credit_exempt=exempt,
            admin_id=admin_id,
            changed_at=now_utc.isoformat(),
        )
    return user
