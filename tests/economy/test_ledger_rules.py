from __future__ import annotations

from decimal import Decimal

import pytest

from app.economy.ledger.constants import TIER_OVERRIDE_METADATA_KEY, usd_to_credits
from app.economy.ledger.errors import LedgerValidationError
from app.economy.ledger.pricing import calculate_operation_cost, get_operation_unit_cost
from app.economy.ledger.service import validate_entry


@pytest.mark.parametrize(
    ("entry_type", "amount"),
    [
        ("PURCHASE", 100),
        ("BONUS", 1),
        ("USAGE", -5),
        ("CONSUMPTION", -1),
        ("ADJUSTMENT", 25),
        ("ADJUSTMENT", -25),
    ],
)
def test_validate_entry_accepts_signed_amounts(entry_type: str, amount: int) -> None:
    validate_entry(entry_type=entry_type, amount=amount, source="System", external_ref=None)


@pytest.mark.parametrize(
    ("entry_type", "amount"),
    [
        ("PURCHASE", 0),
        ("PURCHASE", -10),
        ("BONUS", -1),
        ("USAGE", 5),
        ("CONSUMPTION", 0),
    ],
)
def test_validate_entry_rejects_wrong_sign(entry_type: str, amount: int) -> None:
    with pytest.raises(LedgerValidationError):
        validate_entry(entry_type=entry_type, amount=amount, source="System", external_ref=None)


def test_validate_entry_rejects_unknown_type_and_source() -> None:
    with pytest.raises(LedgerValidationError):
        validate_entry(entry_type="REFUND", amount=10, source="System", external_ref=None)
    with pytest.raises(LedgerValidationError):
        validate_entry(entry_type="BONUS", amount=10, source="Stripe", external_ref=None)


def test_validate_entry_rejects_non_integer_amounts() -> None:
    with pytest.raises(LedgerValidationError):
        validate_entry(entry_type="BONUS", amount=True, source="System", external_ref=None)
    with pytest.raises(LedgerValidationError):
        validate_entry(entry_type="BONUS", amount=1.5, source="System", external_ref=None)  # type: ignore[arg-type]


def test_validate_entry_zero_adjustment_requires_tier_override() -> None:
    with pytest.raises(LedgerValidationError):
        validate_entry(entry_type="ADJUSTMENT", amount=0, source="Manual", external_ref=None)

    validate_entry(
        entry_type="ADJUSTMENT",
        amount=0,
        source="Manual",
        external_ref=None,
        metadata={TIER_OVERRIDE_METADATA_KEY: "premium"},
    )


def test_validate_entry_checks_external_ref_length() -> None:
    with pytest.raises(LedgerValidationError):
        validate_entry(entry_type="BONUS", amount=1, source="System", external_ref="")
    with pytest.raises(LedgerValidationError):
        validate_entry(entry_type="BONUS", amount=1, source="System", external_ref="x" * 129)


def test_usd_to_credits_floors_fractional_credits() -> None:
    assert usd_to_credits(Decimal("10.00")) == 1000
    assert usd_to_credits(Decimal("0.015")) == 1
    assert usd_to_credits(Decimal("19.999")) == 1999


def test_content_generation_cost_depends_on_tier() -> None:
    assert get_operation_unit_cost("content_generation", tier="free") == 10
    assert get_operation_unit_cost("content_generation", tier="premium") == 5
    assert get_operation_unit_cost("content_generation", tier="enterprise") == 3
    assert get_operation_unit_cost("content_generation", tier="unknown") == 10


def test_feature_costs_are_flat() -> None:
    assert get_operation_unit_cost("clone_me", tier="enterprise") == 20
    assert get_operation_unit_cost("plagiarism_check", tier="free") == 5
    assert get_operation_unit_cost("export", tier="basic") == 2


def test_bulk_discount_applies_from_ten_units() -> None:
    assert calculate_operation_cost("export", tier="free", quantity=9) == 18
    assert calculate_operation_cost("export", tier="free", quantity=10) == 16
    assert calculate_operation_cost("content_generation", tier="enterprise", quantity=11) == 27


def test_operation_cost_rejects_bad_input() -> None:
    with pytest.raises(LedgerValidationError):
        calculate_operation_cost("teleport", tier="free")
    with pytest.raises(LedgerValidationError):
        calculate_operation_cost("export", tier="free", quantity=0)
    with pytest.raises(LedgerValidationError):
        calculate_operation_cost("export", tier="free", quantity=1001)
