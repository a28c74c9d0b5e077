from __future__ import annotations

from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.subscriptions import Subscription
from app.db.repo.subscriptions_repo import SubscriptionsRepo
from app.economy.entitlements.tiers import max_tier


async def activate_plan(
    session: AsyncSession,
    *,
    user_id: int,
    plan_code: str,
    tier: str,
    period_days: int,
    payment_request_id: UUID | None,
    now_utc: datetime,
) -> Subscription:
    active = await SubscriptionsRepo.get_active_for_update(session, user_id=user_id)
    if active is not None:
        base_end = active.current_period_end if active.current_period_end > now_utc else now_utc
        active.current_period_end = base_end + timedelta(days=period_days)
        active.plan_code = plan_code
        active.tier = max_tier(active.tier, tier)
        active.payment_request_id = payment_request_id
        active.updated_at = now_utc
        await session.flush()
        return active

    return await SubscriptionsRepo.create(
        session,
        subscription=Subscription(
            user_id=user_id,
            plan_code=plan_code,
            tier=tier,
            status="active",
            current_period_start=now_utc,
            current_period_end=now_utc + timedelta(days=period_days),
            payment_request_id=payment_request_id,
            created_at=now_utc,
            updated_at=now_utc,
        ),
    )
