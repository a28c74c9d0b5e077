from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True, slots=True)
class TierResolution:
    user_id: int
    tier: str
    purchase_total: int
    subscription_tier: str | None
    tier_override: str | None


@dataclass(frozen=True, slots=True)
class Entitlements:
    user_id: int
    tier: str
    credit_exempt: bool
    max_word_count: int
    features: dict[str, bool] = field(default_factory=dict)
