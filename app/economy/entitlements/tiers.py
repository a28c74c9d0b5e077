from __future__ import annotations

TIER_ORDER: tuple[str, ...] = ("free", "basic", "premium", "enterprise")
FREE_TIER = "free"
PAID_TIER = "premium"

WORD_COUNT_CAPS: dict[str, int] = {
    "free": 1000,
    "basic": 2500,
    "premium": 5000,
    "enterprise": 10000,
}


def is_known_tier(tier: str | None) -> bool:
    return tier in TIER_ORDER


def tier_rank(tier: str) -> int:
    try:
        return TIER_ORDER.index(tier)
    except ValueError:
        return 0


def tier_meets_requirement(tier: str, required_tier: str) -> bool:
    return tier_rank(tier) >= tier_rank(required_tier)


def max_tier(*tiers: str | None) -> str:
    known = [tier for tier in tiers if is_known_tier(tier)]
    if not known:
        return FREE_TIER
    return max(known, key=tier_rank)


def resolve_tier(
    *,
    purchase_total: int,
    subscription_tier: str | None,
    tier_override: str | None = None,
) -> str:
    """Derive the effective tier.

    `purchase_total` counts PURCHASE credits appended after the latest
    override (all of them when no override exists). An override is the only
    input that can lower the result; purchases and subscriptions only raise it.
    """
    tier = tier_override if is_known_tier(tier_override) else FREE_TIER
    if purchase_total > 0:
        tier = max_tier(tier, PAID_TIER)
    return max_tier(tier, subscription_tier)


def word_count_cap(tier: str) -> int:
    return WORD_COUNT_CAPS.get(tier, WORD_COUNT_CAPS[FREE_TIER])
