from __future__ import annotations

from .maintenance import RecheckSummary, expire_stale_requests, recheck_awaiting
from .requests import create_payment_request, get_exchange_quote
from .verification import bind_submission, settle_verification, verify_payment


class CryptoPaymentService:
    create_payment_request = staticmethod(create_payment_request)
    get_exchange_quote = staticmethod(get_exchange_quote)
    bind_submission = staticmethod(bind_submission)
    settle_verification = staticmethod(settle_verification)
    verify_payment = staticmethod(verify_payment)
    expire_stale_requests = staticmethod(expire_stale_requests)
    recheck_awaiting = staticmethod(recheck_awaiting)


__all__ = [
    "CryptoPaymentService",
    "RecheckSummary",
]
