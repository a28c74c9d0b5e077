from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from app.db.models.ledger_entries import LedgerEntry


@dataclass(slots=True)
class LedgerAppendResult:
    entry: LedgerEntry
    balance: int
    tier: str
    idempotent_replay: bool


@dataclass(slots=True)
class BalanceSnapshot:
    user_id: int
    balance: int
    recomputed_balance: int
    credit_exempt: bool

    @property
    def is_consistent(self) -> bool:
        return self.balance == self.recomputed_balance


@dataclass(frozen=True, slots=True)
class PaymentCaptureEvent:
    user_id: int
    amount: Decimal
    currency: str
    gateway_transaction_id: str


@dataclass(slots=True)
class CreditStats:
    user_id: int
    balance: int
    total_purchased: int
    total_bonus: int
    total_used: int
    total_adjusted: int
