from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class BalanceDrift:
    user_id: int
    cached_balance: int
    ledger_balance: int

    @property
    def delta(self) -> int:
        return self.ledger_balance - self.cached_balance


def find_balance_drifts(snapshots: Iterable[tuple[int, int, int]]) -> list[BalanceDrift]:
    return [
        BalanceDrift(user_id=user_id, cached_balance=cached, ledger_balance=ledger_total)
        for user_id, cached, ledger_total in snapshots
        if cached != ledger_total
    ]


def reconciliation_status(drift_count: int) -> str:
    return "OK" if drift_count == 0 else "DIFF"
