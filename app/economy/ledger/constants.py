from __future__ import annotations

from decimal import ROUND_FLOOR, Decimal

ENTRY_TYPES = frozenset({"PURCHASE", "USAGE", "BONUS", "ADJUSTMENT", "CONSUMPTION"})
CREDIT_ENTRY_TYPES = frozenset({"PURCHASE", "BONUS"})
DEBIT_ENTRY_TYPES = frozenset({"USAGE", "CONSUMPTION"})

LEDGER_SOURCES = frozenset(
    {
        "PayPal",
        "Bitcoin",
        "Solana",
        "USDT-ERC20",
        "USDT-TRC20",
        "Voucher",
        "Referral",
        "Manual",
        "System",
    }
)

CREDITS_PER_USD = 100
MAX_EXTERNAL_REF_LENGTH = 128
TIER_OVERRIDE_METADATA_KEY = "tier_override"


def usd_to_credits(amount_usd: Decimal) -> int:
    return int((amount_usd * CREDITS_PER_USD).to_integral_value(rounding=ROUND_FLOOR))
