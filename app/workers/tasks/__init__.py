from app.workers.tasks.crypto_maintenance import expire_crypto_requests, recheck_crypto_payments
from app.workers.tasks.ledger_reconciliation import run_ledger_reconciliation

__all__ = [
    "expire_crypto_requests",
    "recheck_crypto_payments",
    "run_ledger_reconciliation",
]
