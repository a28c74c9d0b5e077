from __future__ import annotations

import re
from decimal import ROUND_DOWN, ROUND_UP, Decimal

from app.economy.crypto.constants import CRYPTO_DECIMALS, CRYPTO_TYPES, DEFAULT_MIN_CONFIRMATIONS, MIN_CONFIRMATIONS
from app.economy.crypto.errors import (
    CryptoPaymentValidationError,
    TransactionHashFormatError,
    UnsupportedCryptoTypeError,
)

HEX_HASH_RE = re.compile(r"^[0-9a-f]{64}$")
BASE58_SIGNATURE_RE = re.compile(r"^[1-9A-HJ-NP-Za-km-z]{64,90}$")

AMOUNT_OK = "ok"
AMOUNT_UNDERPAID = "underpaid"
AMOUNT_OVERPAID = "overpaid"


def ensure_crypto_type(crypto_type: str) -> str:
    if crypto_type not in CRYPTO_TYPES:
        raise UnsupportedCryptoTypeError
    return crypto_type


def required_confirmations(crypto_type: str) -> int:
    return MIN_CONFIRMATIONS.get(crypto_type, DEFAULT_MIN_CONFIRMATIONS)


def normalize_transaction_hash(raw_hash: str, *, crypto_type: str) -> str:
    candidate = raw_hash.strip()
    if crypto_type == "solana":
        if BASE58_SIGNATURE_RE.fullmatch(candidate) is None:
            raise TransactionHashFormatError
        return candidate

    lowered = candidate.lower()
    if crypto_type == "usdt_erc20":
        lowered = lowered.removeprefix("0x")
    if HEX_HASH_RE.fullmatch(lowered) is None:
        raise TransactionHashFormatError
    return f"0x{lowered}" if crypto_type == "usdt_erc20" else lowered


def addresses_match(expected: str, received: str | None, *, crypto_type: str) -> bool:
    if received is None:
        return False
    # Hex and bech32 addresses are case-insensitive; base58 addresses are not.
    if crypto_type == "usdt_erc20" or expected.lower().startswith("bc1"):
        return expected.strip().lower() == received.strip().lower()
    return expected.strip() == received.strip()


def quantize_crypto_amount(amount: Decimal, *, crypto_type: str, rounding: str = ROUND_UP) -> Decimal:
    exponent = Decimal(1).scaleb(-CRYPTO_DECIMALS[crypto_type])
    return amount.quantize(exponent, rounding=rounding)


def expected_crypto_amount(amount_usd: Decimal, *, rate_usd: Decimal, crypto_type: str) -> Decimal:
    if rate_usd <= 0:
        raise CryptoPaymentValidationError("exchange rate must be positive")
    return quantize_crypto_amount(amount_usd / rate_usd, crypto_type=crypto_type)


def classify_amount(received: Decimal, *, expected: Decimal, tolerance: Decimal) -> str:
    lower_bound = expected * (Decimal(1) - tolerance)
    upper_bound = expected * (Decimal(1) + tolerance)
    if received < lower_bound:
        return AMOUNT_UNDERPAID
    if received > upper_bound:
        return AMOUNT_OVERPAID
    return AMOUNT_OK


def crypto_to_usd(amount: Decimal, *, rate_usd: Decimal) -> Decimal:
    return (amount * rate_usd).quantize(Decimal("0.01"), rounding=ROUND_DOWN)
