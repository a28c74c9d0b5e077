from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Protocol
from uuid import UUID


@dataclass(frozen=True, slots=True)
class ChainTransaction:
    found: bool
    confirmations: int = 0
    to_address: str | None = None
    amount: Decimal | None = None
    block_height: int | None = None
    raw: dict[str, object] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class ProvisionedWallet:
    wallet_address: str
    public_key: str | None
    encrypted_private_key: str


class ChainQueryClient(Protocol):
    async def lookup(self, *, crypto_type: str, transaction_hash: str) -> ChainTransaction: ...


class ExchangeRateFeed(Protocol):
    async def rate_usd(self, crypto_type: str) -> Decimal: ...


class WalletProvisioner(Protocol):
    async def provision(self, *, user_id: int, crypto_type: str) -> ProvisionedWallet: ...


@dataclass(slots=True)
class CryptoPaymentRequestResult:
    request_id: UUID
    reference_id: str
    crypto_type: str
    wallet_address: str
    plan_code: str | None
    amount_usd: Decimal
    discount_usd: Decimal
    credits_amount: int
    rate_usd: Decimal
    expected_amount_crypto: Decimal
    status: str
    expires_at: datetime
    reused: bool


@dataclass(slots=True)
class VerificationResult:
    status: str
    request_id: UUID
    transaction_hash: str
    confirmations: int = 0
    required_confirmations: int = 0
    credits_awarded: int = 0
    balance: int | None = None
    tier: str | None = None
    received_amount: Decimal | None = None
    expected_amount: Decimal | None = None
    idempotent_replay: bool = False


@dataclass(slots=True)
class BoundSubmission:
    request_id: UUID
    crypto_type: str
    transaction_hash: str
    replay_result: VerificationResult | None = None


@dataclass(frozen=True, slots=True)
class ExchangeQuote:
    crypto_type: str
    amount_usd: Decimal
    rate_usd: Decimal
    amount_crypto: Decimal
    credits: int
