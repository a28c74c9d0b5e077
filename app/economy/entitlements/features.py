from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Protocol

from .tiers import tier_meets_requirement

DEFAULT_FEATURE_MIN_TIERS: dict[str, str] = {
    "content_generation": "free",
    "export": "free",
    "plagiarism_check": "basic",
    "ai_shield": "premium",
    "clone_me": "premium",
    "high_word_count": "premium",
}


class FeatureFlagRegistry(Protocol):
    def feature_names(self) -> tuple[str, ...]: ...

    def is_enabled(self, feature_name: str, tier: str) -> bool: ...


@dataclass(frozen=True, slots=True)
class FeatureFlagRule:
    is_enabled: bool
    min_tier: str


class StaticFeatureFlagRegistry:
    def __init__(self, rules: Mapping[str, FeatureFlagRule]) -> None:
        self._rules = dict(rules)

    @classmethod
    def defaults(cls) -> StaticFeatureFlagRegistry:
        return cls(
            {
                feature_name: FeatureFlagRule(is_enabled=True, min_tier=min_tier)
                for feature_name, min_tier in DEFAULT_FEATURE_MIN_TIERS.items()
            }
        )

    @classmethod
    def from_rows(cls, rows: Iterable[object]) -> StaticFeatureFlagRegistry:
        rules = {
            feature_name: FeatureFlagRule(is_enabled=True, min_tier=min_tier)
            for feature_name, min_tier in DEFAULT_FEATURE_MIN_TIERS.items()
        }
        for row in rows:
            rules[str(getattr(row, "feature_name"))] = FeatureFlagRule(
                is_enabled=bool(getattr(row, "is_enabled")),
                min_tier=str(getattr(row, "min_tier")),
            )
        return cls(rules)

    def feature_names(self) -> tuple[str, ...]:
        return tuple(sorted(self._rules))

    def is_enabled(self, feature_name: str, tier: str) -> bool:
        rule = self._rules.get(feature_name)
        if rule is None or not rule.is_enabled:
            return False
        return tier_meets_requirement(tier, rule.min_tier)


def evaluate_feature_gates(registry: FeatureFlagRegistry, *, tier: str) -> dict[str, bool]:
    return {
        feature_name: registry.is_enabled(feature_name, tier)
        for feature_name in registry.feature_names()
    }
