from __future__ import annotations

from functools import lru_cache

import structlog
from fastapi import HTTPException, Request

from app.economy.crypto.errors import CryptoPaymentExpiredError, CryptoPaymentRequestNotFoundError
from app.economy.engine import LedgerEngine
from app.economy.errors import (
    EconomyError,
    ExternalDependencyError,
    InvariantViolationError,
    ValidationError,
)
from app.economy.ledger.errors import LedgerUserNotFoundError
from app.economy.vouchers.errors import VoucherExpiredError, VoucherNotFoundError
from app.services.alerts import send_ops_alert
from app.services.chain_query import HttpChainQueryClient
from app.services.exchange_rates import CoinGeckoRateFeed
from app.services.internal_auth import evaluate_internal_access
from app.services.wallet_custody import HttpWalletProvisioner

logger = structlog.get_logger(__name__)

NOT_FOUND_ERRORS = (LedgerUserNotFoundError, VoucherNotFoundError, CryptoPaymentRequestNotFoundError)
GONE_ERRORS = (VoucherExpiredError, CryptoPaymentExpiredError)


@lru_cache(maxsize=1)
def get_engine() -> LedgerEngine:
    return LedgerEngine(
        rate_feed=CoinGeckoRateFeed(),
        chain_client=HttpChainQueryClient(),
        provisioner=HttpWalletProvisioner(),
    )


def assert_internal_access(request: Request, *, settings: object, scope: str) -> None:
    decision = evaluate_internal_access(
        request,
        expected_token=getattr(settings, "internal_api_token"),
        allowlist=getattr(settings, "internal_api_allowlist"),
        trusted_proxies=getattr(settings, "internal_api_trusted_proxies", ""),
    )
    if not decision.allowed:
        logger.warning(
            "internal_auth_failed",
            scope=scope,
            reason=decision.reason,
            client_ip=decision.client_ip,
        )
        raise HTTPException(status_code=403, detail={"code": "E_FORBIDDEN"})


def http_status_for(exc: EconomyError) -> int:
    if isinstance(exc, ValidationError):
        return 422
    if isinstance(exc, ExternalDependencyError):
        return 503
    if isinstance(exc, NOT_FOUND_ERRORS):
        return 404
    if isinstance(exc, GONE_ERRORS):
        return 410
    return 409


async def to_http_exception(exc: EconomyError, *, operation: str) -> HTTPException:
    if isinstance(exc, InvariantViolationError):
        logger.error(
            "ledger_invariant_violation",
            operation=operation,
            error_code=exc.code,
            error_type=type(exc).__name__,
        )
        await send_ops_alert(
            event="ledger_invariant_violation",
            payload={"operation": operation, "error_code": exc.code},
        )
    return HTTPException(
        status_code=http_status_for(exc),
        detail={"code": exc.code, "reason": exc.reason},
    )
