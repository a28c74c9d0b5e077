from __future__ import annotations

from math import ceil

from app.economy.ledger.errors import LedgerValidationError

CONTENT_GENERATION_COST_BY_TIER: dict[str, int] = {
    "free": 10,
    "basic": 5,
    "premium": 5,
    "enterprise": 3,
}
FEATURE_COSTS: dict[str, int] = {
    "clone_me": 20,
    "plagiarism_check": 5,
    "export": 2,
}
BULK_DISCOUNT_MIN_QUANTITY = 10
BULK_DISCOUNT_PERCENT = 20
MAX_OPERATION_QUANTITY = 1000


def get_operation_unit_cost(operation: str, *, tier: str) -> int:
    if operation == "content_generation":
        return CONTENT_GENERATION_COST_BY_TIER.get(tier, CONTENT_GENERATION_COST_BY_TIER["free"])
    cost = FEATURE_COSTS.get(operation)
    if cost is None:
        raise LedgerValidationError(f"unknown operation: {operation}")
    return cost


def calculate_operation_cost(operation: str, *, tier: str, quantity: int = 1) -> int:
    if quantity <= 0 or quantity > MAX_OPERATION_QUANTITY:
        raise LedgerValidationError("quantity is out of range")

    total = get_operation_unit_cost(operation, tier=tier) * quantity
    if quantity >= BULK_DISCOUNT_MIN_QUANTITY:
        total = ceil(total * (100 - BULK_DISCOUNT_PERCENT) / 100)
    return total
