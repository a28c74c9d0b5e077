from app.db.repo.crypto_payments_repo import CryptoPaymentsRepo
from app.db.repo.crypto_wallets_repo import CryptoWalletsRepo
from app.db.repo.feature_flags_repo import FeatureFlagsRepo
from app.db.repo.ledger_repo import LedgerRepo
from app.db.repo.subscriptions_repo import SubscriptionsRepo
from app.db.repo.users_repo import UsersRepo
from app.db.repo.vouchers_repo import VouchersRepo

__all__ = [
    "CryptoPaymentsRepo",
    "CryptoWalletsRepo",
    "FeatureFlagsRepo",
    "LedgerRepo",
    "SubscriptionsRepo",
    "UsersRepo",
    "VouchersRepo",
]
