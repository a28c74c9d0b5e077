from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy.ext.asyncio import AsyncSession

from app.economy.entitlements.service import EntitlementService
from app.economy.ledger.errors import LedgerValidationError
from app.economy.ledger.pricing import calculate_operation_cost
from app.economy.ledger.service import LedgerService
from app.economy.ledger.types import LedgerAppendResult


async def consume_credits(
    session: AsyncSession,
    *,
    user_id: int,
    amount: int,
    reason: str,
    external_ref: str | None = None,
    now_utc: datetime | None = None,
) -> LedgerAppendResult:
    if amount <= 0:
        raise LedgerValidationError("amount must be positive")
    return await LedgerService.append(
        session,
        user_id=user_id,
        entry_type="USAGE",
        amount=-amount,
        source="System",
        external_ref=external_ref,
        metadata={"reason": reason},
        now_utc=now_utc,
    )


async def charge_operation(
    session: AsyncSession,
    *,
    user_id: int,
    operation: str,
    quantity: int = 1,
    external_ref: str | None = None,
    now_utc: datetime | None = None,
) -> LedgerAppendResult:
    now_utc = now_utc or datetime.now(timezone.utc)
    resolution = await EntitlementService.resolve_tier(session, user_id=user_id, now_utc=now_utc)
    cost = calculate_operation_cost(operation, tier=resolution.tier, quantity=quantity)
    return await LedgerService.append(
        session,
        user_id=user_id,
        entry_type="CONSUMPTION",
        amount=-cost,
        source="System",
        external_ref=external_ref,
        metadata={"operation": operation, "quantity": quantity, "tier": resolution.tier},
        now_utc=now_utc,
    )
