from __future__ import annotations

import secrets
from datetime import datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation
from uuid import UUID, uuid4

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.db.models.crypto_payment_requests import CryptoPaymentRequest
from app.db.repo.crypto_payments_repo import CryptoPaymentsRepo
from app.db.repo.crypto_wallets_repo import CryptoWalletsRepo
from app.db.repo.users_repo import UsersRepo
from app.economy.crypto.catalog import get_plan
from app.economy.crypto.constants import MAX_PAYMENT_USD, MIN_PAYMENT_USD, REFERENCE_ID_BYTES
from app.economy.crypto.errors import CryptoPaymentValidationError, ExchangeRateUnavailableError
from app.economy.crypto.matching import ensure_crypto_type, expected_crypto_amount
from app.economy.crypto.service.wallets import get_or_create_wallet, prepare_wallet
from app.economy.crypto.types import (
    CryptoPaymentRequestResult,
    ExchangeQuote,
    ExchangeRateFeed,
    WalletProvisioner,
)
from app.economy.ledger.constants import usd_to_credits
from app.economy.ledger.errors import LedgerUserNotFoundError
from app.economy.vouchers.discounts import lock_discount_for_payment

logger = structlog.get_logger(__name__)

USD_CENT = Decimal("0.01")


def resolve_base_amount(*, plan_code: str | None, amount_usd: Decimal | None) -> Decimal:
    if (plan_code is None) == (amount_usd is None):
        raise CryptoPaymentValidationError("exactly one of plan_code or amount_usd is required")

    if plan_code is not None:
        plan = get_plan(plan_code)
        if plan is None:
            raise CryptoPaymentValidationError(f"unknown plan: {plan_code}")
        return plan.price_usd

    try:
        amount = Decimal(amount_usd)
    except (InvalidOperation, TypeError) as exc:
        raise CryptoPaymentValidationError("amount_usd is not a number") from exc
    if amount != amount.quantize(USD_CENT):
        raise CryptoPaymentValidationError("amount_usd has more than two decimal places")
    if amount < MIN_PAYMENT_USD or amount > MAX_PAYMENT_USD:
        raise CryptoPaymentValidationError("amount_usd is out of range")
    return amount


async def fetch_rate(rate_feed: ExchangeRateFeed, *, crypto_type: str) -> Decimal:
    rate = await rate_feed.rate_usd(crypto_type)
    if rate is None or rate <= 0:
        raise ExchangeRateUnavailableError
    return Decimal(rate)


def _to_result(
    payment_request: CryptoPaymentRequest,
    *,
    wallet_address: str,
    reused: bool,
) -> CryptoPaymentRequestResult:
    return CryptoPaymentRequestResult(
        request_id=payment_request.id,
        reference_id=payment_request.reference_id,
        crypto_type=payment_request.crypto_type,
        wallet_address=wallet_address,
        plan_code=payment_request.plan_code,
        amount_usd=payment_request.amount_usd,
        discount_usd=payment_request.discount_usd,
        credits_amount=payment_request.credits_amount,
        rate_usd=payment_request.rate_usd,
        expected_amount_crypto=payment_request.expected_amount_crypto,
        status=payment_request.status,
        expires_at=payment_request.expires_at,
        reused=reused,
    )


async def create_payment_request(
    session: AsyncSession,
    *,
    user_id: int,
    crypto_type: str,
    rate_feed: ExchangeRateFeed,
    provisioner: WalletProvisioner,
    plan_code: str | None = None,
    amount_usd: Decimal | None = None,
    discount_redemption_id: UUID | None = None,
    now_utc: datetime | None = None,
) -> CryptoPaymentRequestResult:
    now_utc = now_utc or datetime.now(timezone.utc)
    crypto_type = ensure_crypto_type(crypto_type)
    base_usd = resolve_base_amount(plan_code=plan_code, amount_usd=amount_usd)

    # Network calls happen before any row lock is taken.
    provisioned = await prepare_wallet(
        session,
        user_id=user_id,
        crypto_type=crypto_type,
        provisioner=provisioner,
    )
    rate_usd = await fetch_rate(rate_feed, crypto_type=crypto_type)

    user = await UsersRepo.get_by_id_for_update(session, user_id)
    if user is None:
        raise LedgerUserNotFoundError

    if discount_redemption_id is None:
        reusable = await CryptoPaymentsRepo.get_reusable_pending_request(
            session,
            user_id=user_id,
            crypto_type=crypto_type,
            plan_code=plan_code,
            amount_usd=base_usd,
            now_utc=now_utc,
        )
        if reusable is not None:
            wallet = await CryptoWalletsRepo.get_by_id(session, reusable.wallet_id)
            if wallet is not None and wallet.is_active:
                return _to_result(reusable, wallet_address=wallet.wallet_address, reused=True)

    wallet = await get_or_create_wallet(
        session,
        user_id=user_id,
        crypto_type=crypto_type,
        provisioned=provisioned,
        provisioner=provisioner,
        now_utc=now_utc,
    )

    redemption = None
    discount_usd = Decimal("0")
    if discount_redemption_id is not None:
        redemption, discount_usd = await lock_discount_for_payment(
            session,
            redemption_id=discount_redemption_id,
            user_id=user_id,
            base_usd=base_usd,
            now_utc=now_utc,
        )
    payable_usd = base_usd - discount_usd

    settings = get_settings()
    payment_request = await CryptoPaymentsRepo.create_request(
        session,
        payment_request=CryptoPaymentRequest(
            id=uuid4(),
            reference_id=secrets.token_hex(REFERENCE_ID_BYTES),
            user_id=user_id,
            wallet_id=wallet.id,
            crypto_type=crypto_type,
            plan_code=plan_code,
            amount_usd=payable_usd,
            discount_usd=discount_usd,
            credits_amount=usd_to_credits(base_usd),
            rate_usd=rate_usd,
            expected_amount_crypto=expected_crypto_amount(
                payable_usd,
                rate_usd=rate_usd,
                crypto_type=crypto_type,
            ),
            status="pending",
            expires_at=now_utc + timedelta(minutes=settings.crypto_payment_window_minutes),
            created_at=now_utc,
            updated_at=now_utc,
        ),
    )
    if redemption is not None:
        redemption.applied_payment_request_id = payment_request.id
        await session.flush()

    logger.info(
        "crypto_payment_request_created",
        user_id=user_id,
        request_id=str(payment_request.id),
        crypto_type=crypto_type,
        plan_code=plan_code,
        amount_usd=str(payable_usd),
        discount_usd=str(discount_usd),
    )
    return _to_result(payment_request, wallet_address=wallet.wallet_address, reused=False)


async def get_exchange_quote(
    rate_feed: ExchangeRateFeed,
    *,
    crypto_type: str,
    amount_usd: Decimal,
) -> ExchangeQuote:
    crypto_type = ensure_crypto_type(crypto_type)
    base_usd = resolve_base_amount(plan_code=None, amount_usd=amount_usd)
    rate_usd = await fetch_rate(rate_feed, crypto_type=crypto_type)
    return ExchangeQuote(
        crypto_type=crypto_type,
        amount_usd=base_usd,
        rate_usd=rate_usd,
        amount_crypto=expected_crypto_amount(base_usd, rate_usd=rate_usd, crypto_type=crypto_type),
        credits=usd_to_credits(base_usd),
    )
