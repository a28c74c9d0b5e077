from app.db.models.crypto_payment_requests import CryptoPaymentRequest
from app.db.models.crypto_transactions import CryptoTransaction
from app.db.models.crypto_wallets import CryptoWallet
from app.db.models.feature_flags import FeatureFlag
from app.db.models.ledger_entries import LedgerEntry
from app.db.models.subscriptions import Subscription
from app.db.models.users import User
from app.db.models.voucher_redemptions import VoucherRedemption
from app.db.models.vouchers import Voucher

__all__ = [
    "CryptoPaymentRequest",
    "CryptoTransaction",
    "CryptoWallet",
    "FeatureFlag",
    "LedgerEntry",
    "Subscription",
    "User",
    "Voucher",
    "VoucherRedemption",
]
