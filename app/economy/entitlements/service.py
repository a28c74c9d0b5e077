from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy.ext.asyncio import AsyncSession

from app.db.repo.feature_flags_repo import FeatureFlagsRepo
from app.db.repo.ledger_repo import LedgerRepo
from app.db.repo.subscriptions_repo import SubscriptionsRepo
from app.db.repo.users_repo import UsersRepo
from app.economy.ledger.constants import TIER_OVERRIDE_METADATA_KEY
from app.economy.ledger.errors import LedgerUserNotFoundError

from .features import FeatureFlagRegistry, StaticFeatureFlagRegistry, evaluate_feature_gates
from .tiers import resolve_tier, word_count_cap
from .types import Entitlements, TierResolution


class EntitlementService:
    @staticmethod
    async def resolve_tier(
        session: AsyncSession,
        *,
        user_id: int,
        now_utc: datetime | None = None,
    ) -> TierResolution:
        now_utc = now_utc or datetime.now(timezone.utc)

        override_entry = await LedgerRepo.get_latest_tier_override(session, user_id=user_id)
        tier_override: str | None = None
        after_entry_id: int | None = None
        if override_entry is not None:
            tier_override = str(override_entry.metadata_.get(TIER_OVERRIDE_METADATA_KEY))
            after_entry_id = override_entry.id

        purchase_total = await LedgerRepo.sum_purchases_for_user(
            session,
            user_id=user_id,
            after_entry_id=after_entry_id,
        )
        subscription = await SubscriptionsRepo.get_active(session, user_id=user_id, now_utc=now_utc)
        subscription_tier = subscription.tier if subscription is not None else None

        return TierResolution(
            user_id=user_id,
            tier=resolve_tier(
                purchase_total=purchase_total,
                subscription_tier=subscription_tier,
                tier_override=tier_override,
            ),
            purchase_total=purchase_total,
            subscription_tier=subscription_tier,
            tier_override=tier_override,
        )

    @staticmethod
    async def load_feature_flags(session: AsyncSession) -> StaticFeatureFlagRegistry:
        rows = await FeatureFlagsRepo.list_all(session)
        return StaticFeatureFlagRegistry.from_rows(rows)

    @staticmethod
    async def get_entitlements(
        session: AsyncSession,
        *,
        user_id: int,
        registry: FeatureFlagRegistry | None = None,
        now_utc: datetime | None = None,
    ) -> Entitlements:
        user = await UsersRepo.get_by_id(session, user_id)
        if user is None:
            raise LedgerUserNotFoundError

        resolution = await EntitlementService.resolve_tier(session, user_id=user_id, now_utc=now_utc)
        if registry is None:
            registry = await EntitlementService.load_feature_flags(session)

        return Entitlements(
            user_id=user_id,
            tier=resolution.tier,
            credit_exempt=user.credit_exempt,
            max_word_count=word_count_cap(resolution.tier),
            features=evaluate_feature_gates(registry, tier=resolution.tier),
        )
