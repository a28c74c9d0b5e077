from __future__ import annotations

from decimal import Decimal

CRYPTO_TYPES: tuple[str, ...] = ("bitcoin", "solana", "usdt_erc20", "usdt_trc20")

MIN_CONFIRMATIONS: dict[str, int] = {
    "bitcoin": 3,
    "solana": 32,
    "usdt_erc20": 12,
    "usdt_trc20": 19,
}
DEFAULT_MIN_CONFIRMATIONS = 1

LEDGER_SOURCE_BY_CRYPTO_TYPE: dict[str, str] = {
    "bitcoin": "Bitcoin",
    "solana": "Solana",
    "usdt_erc20": "USDT-ERC20",
    "usdt_trc20": "USDT-TRC20",
}

CRYPTO_DECIMALS: dict[str, int] = {
    "bitcoin": 8,
    "solana": 9,
    "usdt_erc20": 6,
    "usdt_trc20": 6,
}

RATE_FEED_ASSET_IDS: dict[str, str] = {
    "bitcoin": "bitcoin",
    "solana": "solana",
    "usdt_erc20": "tether",
    "usdt_trc20": "tether",
}

CHAIN_NETWORKS: dict[str, str] = {
    "bitcoin": "bitcoin",
    "solana": "solana",
    "usdt_erc20": "ethereum",
    "usdt_trc20": "tron",
}

MIN_PAYMENT_USD = Decimal("1.00")
MAX_PAYMENT_USD = Decimal("10000.00")

REFERENCE_ID_BYTES = 12

FAILURE_ADDRESS_MISMATCH = "ADDRESS_MISMATCH"
FAILURE_PARTIAL_PAYMENT = "PARTIAL_PAYMENT"
FAILURE_AMOUNT_OUT_OF_TOLERANCE = "AMOUNT_OUT_OF_TOLERANCE"
