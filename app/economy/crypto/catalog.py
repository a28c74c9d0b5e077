from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal


@dataclass(frozen=True, slots=True)
class PlanSpec:
    plan_code: str
    title: str
    price_usd: Decimal
    period_days: int
    tier: str


PLANS: dict[str, PlanSpec] = {
    "PRO_MONTHLY": PlanSpec(
        plan_code="PRO_MONTHLY",
        title="Pro (monthly)",
        price_usd=Decimal("19.99"),
        period_days=30,
        tier="premium",
    ),
    "PRO_YEARLY": PlanSpec(
        plan_code="PRO_YEARLY",
        title="Pro (yearly)",
        price_usd=Decimal("199.99"),
        period_days=365,
        tier="premium",
    ),
}


def get_plan(plan_code: str) -> PlanSpec | None:
    return PLANS.get(plan_code)
