from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.config import get_settings
from app.db.models.crypto_payment_requests import CryptoPaymentRequest
from app.db.models.crypto_transactions import CryptoTransaction
from app.db.repo.crypto_payments_repo import OPEN_REQUEST_STATUSES, CryptoPaymentsRepo
from app.db.repo.crypto_wallets_repo import CryptoWalletsRepo
from app.db.repo.users_repo import UsersRepo
from app.db.session import SessionLocal
from app.economy.crypto.catalog import get_plan
from app.economy.crypto.constants import (
    FAILURE_ADDRESS_MISMATCH,
    FAILURE_AMOUNT_OUT_OF_TOLERANCE,
    FAILURE_PARTIAL_PAYMENT,
    LEDGER_SOURCE_BY_CRYPTO_TYPE,
)
from app.economy.crypto.errors import (
    ChainQueryError,
    CryptoPaymentExpiredError,
    CryptoPaymentRequestNotFoundError,
    CryptoPaymentStateError,
    TransactionDoubleConfirmationError,
    TransactionHashReplayError,
)
from app.economy.crypto.matching import (
    AMOUNT_OK,
    AMOUNT_UNDERPAID,
    addresses_match,
    classify_amount,
    crypto_to_usd,
    ensure_crypto_type,
    normalize_transaction_hash,
    required_confirmations,
)
from app.economy.crypto.types import BoundSubmission, ChainQueryClient, ChainTransaction, VerificationResult
from app.economy.entitlements.service import EntitlementService
from app.economy.entitlements.subscriptions import activate_plan
from app.economy.ledger.service import LedgerService

logger = structlog.get_logger(__name__)

VERIFICATION_CONFIRMED = "confirmed"
VERIFICATION_PENDING = "pending"
VERIFICATION_NOT_FOUND = "not_found"
VERIFICATION_ADDRESS_MISMATCH = "address_mismatch"
VERIFICATION_PARTIAL_PAYMENT = "partial_payment"
VERIFICATION_MANUAL_REVIEW = "manual_review"


def is_past_deadline(payment_request: CryptoPaymentRequest, *, now_utc: datetime) -> bool:
    if payment_request.status == "pending":
        return payment_request.expires_at <= now_utc
    if payment_request.status == "awaiting_verification":
        deadline = payment_request.verification_deadline_at
        return deadline is not None and deadline <= now_utc
    return False


async def _replay_result(
    session: AsyncSession,
    *,
    user_id: int,
    transaction_hash: str,
) -> VerificationResult | None:
    existing = await CryptoPaymentsRepo.get_transaction_by_hash(session, transaction_hash)
    if existing is None or existing.status != "confirmed":
        return None

    payment_request = None
    if existing.payment_request_id is not None:
        payment_request = await CryptoPaymentsRepo.get_request_by_id(session, existing.payment_request_id)
    if payment_request is None or payment_request.user_id != user_id:
        raise TransactionHashReplayError

    user = await UsersRepo.get_by_id(session, user_id)
    resolution = await EntitlementService.resolve_tier(session, user_id=user_id)
    return VerificationResult(
        status=VERIFICATION_CONFIRMED,
        request_id=payment_request.id,
        transaction_hash=transaction_hash,
        confirmations=existing.confirmations,
        required_confirmations=required_confirmations(payment_request.crypto_type),
        credits_awarded=payment_request.credits_amount,
        balance=user.credit_balance if user is not None else None,
        tier=resolution.tier,
        received_amount=existing.amount,
        expected_amount=payment_request.expected_amount_crypto,
        idempotent_replay=True,
    )


async def bind_submission(
    session: AsyncSession,
    *,
    user_id: int,
    crypto_type: str,
    transaction_hash: str,
    reference_id: str | None = None,
    now_utc: datetime,
) -> BoundSubmission:
    crypto_type = ensure_crypto_type(crypto_type)
    transaction_hash = normalize_transaction_hash(transaction_hash, crypto_type=crypto_type)

    replay = await _replay_result(session, user_id=user_id, transaction_hash=transaction_hash)
    if replay is not None:
        return BoundSubmission(
            request_id=replay.request_id,
            crypto_type=crypto_type,
            transaction_hash=transaction_hash,
            replay_result=replay,
        )

    if reference_id is not None:
        payment_request = await CryptoPaymentsRepo.get_request_by_reference_for_update(
            session,
            user_id=user_id,
            reference_id=reference_id,
        )
        if payment_request is not None and payment_request.crypto_type != crypto_type:
            payment_request = None
    else:
        payment_request = await CryptoPaymentsRepo.get_latest_open_request_for_update(
            session,
            user_id=user_id,
            crypto_type=crypto_type,
        )
    if payment_request is None:
        raise CryptoPaymentRequestNotFoundError

    if payment_request.status == "expired" or is_past_deadline(payment_request, now_utc=now_utc):
        raise CryptoPaymentExpiredError(payment_request.id)
    if payment_request.status not in OPEN_REQUEST_STATUSES:
        raise CryptoPaymentStateError

    if payment_request.status == "pending":
        settings = get_settings()
        payment_request.status = "awaiting_verification"
        payment_request.submitted_at = now_utc
        payment_request.verification_deadline_at = now_utc + timedelta(
            hours=settings.crypto_confirmation_window_hours
        )
    payment_request.transaction_hash = transaction_hash
    payment_request.updated_at = now_utc
    await session.flush()

    return BoundSubmission(
        request_id=payment_request.id,
        crypto_type=crypto_type,
        transaction_hash=transaction_hash,
    )


async def lookup_chain_transaction(
    chain_client: ChainQueryClient,
    *,
    crypto_type: str,
    transaction_hash: str,
    timeout_seconds: float | None = None,
) -> ChainTransaction:
    timeout = timeout_seconds if timeout_seconds is not None else get_settings().external_call_timeout_seconds
    try:
        chain_tx = await asyncio.wait_for(
            chain_client.lookup(crypto_type=crypto_type, transaction_hash=transaction_hash),
            timeout=timeout,
        )
    except asyncio.TimeoutError as exc:
        logger.warning(
            "crypto_chain_lookup_timeout",
            crypto_type=crypto_type,
            transaction_hash=transaction_hash,
            timeout_seconds=timeout,
        )
        raise ChainQueryError from exc

    # A sighting without an amount cannot be classified yet; the recheck job retries it.
    if chain_tx.found and chain_tx.amount is None:
        logger.warning(
            "crypto_chain_lookup_missing_amount",
            crypto_type=crypto_type,
            transaction_hash=transaction_hash,
        )
        raise ChainQueryError("chain query reported a transaction without an amount")
    return chain_tx


async def settle_verification(
    session: AsyncSession,
    *,
    user_id: int,
    request_id: UUID,
    transaction_hash: str,
    chain_tx: ChainTransaction,
    now_utc: datetime,
) -> VerificationResult:
    payment_request = await CryptoPaymentsRepo.get_request_by_id_for_update(session, request_id)
    if payment_request is None or payment_request.user_id != user_id:
        raise CryptoPaymentRequestNotFoundError
    if payment_request.status == "confirmed" and payment_request.transaction_hash == transaction_hash:
        replay = await _replay_result(session, user_id=user_id, transaction_hash=transaction_hash)
        if replay is not None:
            return replay
    if payment_request.status != "awaiting_verification":
        raise CryptoPaymentStateError
    if payment_request.transaction_hash != transaction_hash:
        raise CryptoPaymentStateError

    crypto_type = payment_request.crypto_type
    required = required_confirmations(crypto_type)
    result = VerificationResult(
        status=VERIFICATION_NOT_FOUND,
        request_id=payment_request.id,
        transaction_hash=transaction_hash,
        confirmations=chain_tx.confirmations,
        required_confirmations=required,
        expected_amount=payment_request.expected_amount_crypto,
    )
    if not chain_tx.found:
        return result

    wallet = await CryptoWalletsRepo.get_by_id_for_update(session, payment_request.wallet_id)
    if wallet is None or not addresses_match(
        wallet.wallet_address,
        chain_tx.to_address,
        crypto_type=crypto_type,
    ):
        payment_request.status = "failed"
        payment_request.failure_reason = FAILURE_ADDRESS_MISMATCH
        payment_request.updated_at = now_utc
        await session.flush()
        logger.warning(
            "crypto_payment_address_mismatch",
            user_id=user_id,
            request_id=str(payment_request.id),
            transaction_hash=transaction_hash,
        )
        result.status = VERIFICATION_ADDRESS_MISMATCH
        return result

    existing_tx = await CryptoPaymentsRepo.get_transaction_by_hash_for_update(session, transaction_hash)
    if existing_tx is not None and existing_tx.payment_request_id != payment_request.id:
        raise TransactionHashReplayError
    if existing_tx is not None and existing_tx.status == "confirmed":
        logger.error(
            "crypto_transaction_double_confirmation",
            request_id=str(payment_request.id),
            transaction_hash=transaction_hash,
        )
        raise TransactionDoubleConfirmationError

    if chain_tx.amount is None:
        raise ChainQueryError("chain query reported a transaction without an amount")
    received = Decimal(chain_tx.amount)
    result.received_amount = received
    transaction = existing_tx
    if transaction is None:
        transaction = await CryptoPaymentsRepo.create_transaction(
            session,
            transaction=CryptoTransaction(
                transaction_hash=transaction_hash,
                wallet_id=wallet.id,
                payment_request_id=payment_request.id,
                amount=received,
                amount_usd=crypto_to_usd(received, rate_usd=payment_request.rate_usd),
                status="pending",
                confirmations=chain_tx.confirmations,
                block_height=chain_tx.block_height,
                raw_data=dict(chain_tx.raw),
                created_at=now_utc,
                updated_at=now_utc,
            ),
        )
    else:
        transaction.amount = received
        transaction.amount_usd = crypto_to_usd(received, rate_usd=payment_request.rate_usd)
        transaction.confirmations = chain_tx.confirmations
        transaction.block_height = chain_tx.block_height
        transaction.raw_data = dict(chain_tx.raw)
        transaction.updated_at = now_utc

    if chain_tx.confirmations < required:
        transaction.status = "confirming"
        await session.flush()
        result.status = VERIFICATION_PENDING
        return result

    verdict = classify_amount(
        received,
        expected=payment_request.expected_amount_crypto,
        tolerance=get_settings().crypto_amount_tolerance,
    )
    if verdict != AMOUNT_OK:
        transaction.status = "failed"
        payment_request.status = "failed"
        payment_request.failure_reason = (
            FAILURE_PARTIAL_PAYMENT if verdict == AMOUNT_UNDERPAID else FAILURE_AMOUNT_OUT_OF_TOLERANCE
        )
        payment_request.updated_at = now_utc
        await session.flush()
        logger.warning(
            "crypto_payment_manual_review_required",
            user_id=user_id,
            request_id=str(payment_request.id),
            transaction_hash=transaction_hash,
            received=str(received),
            expected=str(payment_request.expected_amount_crypto),
            verdict=verdict,
        )
        result.status = VERIFICATION_PARTIAL_PAYMENT if verdict == AMOUNT_UNDERPAID else VERIFICATION_MANUAL_REVIEW
        return result

    transaction.status = "confirmed"
    payment_request.status = "confirmed"
    payment_request.confirmed_at = now_utc
    payment_request.updated_at = now_utc
    wallet.balance = Decimal(wallet.balance) + received

    append_result = await LedgerService.append(
        session,
        user_id=user_id,
        entry_type="PURCHASE",
        amount=payment_request.credits_amount,
        source=LEDGER_SOURCE_BY_CRYPTO_TYPE[crypto_type],
        external_ref=transaction_hash,
        metadata={
            "payment_request_id": str(payment_request.id),
            "crypto_type": crypto_type,
            "amount_crypto": str(received),
            "amount_usd": str(payment_request.amount_usd),
        },
        now_utc=now_utc,
    )
    if append_result.idempotent_replay:
        logger.error(
            "crypto_transaction_double_confirmation",
            request_id=str(payment_request.id),
            transaction_hash=transaction_hash,
        )
        raise TransactionDoubleConfirmationError

    tier = append_result.tier
    plan = get_plan(payment_request.plan_code) if payment_request.plan_code else None
    if plan is not None:
        await activate_plan(
            session,
            user_id=user_id,
            plan_code=plan.plan_code,
            tier=plan.tier,
            period_days=plan.period_days,
            payment_request_id=payment_request.id,
            now_utc=now_utc,
        )
        resolution = await EntitlementService.resolve_tier(session, user_id=user_id, now_utc=now_utc)
        tier = resolution.tier

    logger.info(
        "crypto_payment_confirmed",
        user_id=user_id,
        request_id=str(payment_request.id),
        crypto_type=crypto_type,
        transaction_hash=transaction_hash,
        credits=payment_request.credits_amount,
    )
    result.status = VERIFICATION_CONFIRMED
    result.credits_awarded = payment_request.credits_amount
    result.balance = append_result.balance
    result.tier = tier
    return result


async def expire_request(
    *,
    request_id: UUID,
    now_utc: datetime,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
) -> bool:
    factory = session_factory or SessionLocal
    async with factory.begin() as session:
        payment_request = await CryptoPaymentsRepo.get_request_by_id_for_update(session, request_id)
        if payment_request is None or payment_request.status not in OPEN_REQUEST_STATUSES:
            return False
        payment_request.status = "expired"
        payment_request.updated_at = now_utc
    logger.info("crypto_payment_request_expired", request_id=str(request_id))
    return True


async def verify_payment(
    *,
    user_id: int,
    transaction_hash: str,
    crypto_type: str,
    chain_client: ChainQueryClient,
    reference_id: str | None = None,
    now_utc: datetime | None = None,
    timeout_seconds: float | None = None,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
) -> VerificationResult:
    """Verify a submitted hash without holding row locks across the chain lookup.

    The bind and settle phases each run in their own transaction. An expired
    request is persisted as expired before the error propagates.
    """
    now_utc = now_utc or datetime.now(timezone.utc)
    factory = session_factory or SessionLocal
    try:
        async with factory.begin() as session:
            submission = await bind_submission(
                session,
                user_id=user_id,
                crypto_type=crypto_type,
                transaction_hash=transaction_hash,
                reference_id=reference_id,
                now_utc=now_utc,
            )
    except CryptoPaymentExpiredError as exc:
        if exc.request_id is not None:
            await expire_request(request_id=exc.request_id, now_utc=now_utc, session_factory=factory)
        raise

    if submission.replay_result is not None:
        return submission.replay_result

    chain_tx = await lookup_chain_transaction(
        chain_client,
        crypto_type=submission.crypto_type,
        transaction_hash=submission.transaction_hash,
        timeout_seconds=timeout_seconds,
    )

    async with factory.begin() as session:
        return await settle_verification(
            session,
            user_id=user_id,
            request_id=submission.request_id,
            transaction_hash=submission.transaction_hash,
            chain_tx=chain_tx,
            now_utc=now_utc,
        )
