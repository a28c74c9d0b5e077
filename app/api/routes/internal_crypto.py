from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

import structlog
from fastapi import APIRouter, Query, Request
from pydantic import BaseModel, Field

from app.core.config import get_settings
from app.economy.errors import EconomyError

from .internal_helpers import assert_internal_access, get_engine, to_http_exception

router = APIRouter(tags=["internal", "crypto"])
logger = structlog.get_logger(__name__)


class CryptoRequestCreate(BaseModel):
    user_id: int = Field(ge=1)
    crypto_type: str = Field(min_length=1, max_length=16)
    plan_code: str | None = Field(default=None, min_length=1, max_length=32)
    amount_usd: Decimal | None = Field(default=None, gt=0)
    discount_redemption_id: UUID | None = None


class CryptoRequestResponse(BaseModel):
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


class CryptoVerifyRequest(BaseModel):
    user_id: int = Field(ge=1)
    crypto_type: str = Field(min_length=1, max_length=16)
    transaction_hash: str = Field(min_length=1, max_length=128)
    reference_id: str | None = Field(default=None, min_length=1, max_length=32)


class CryptoVerifyResponse(BaseModel):
    status: str
    request_id: UUID
    transaction_hash: str
    confirmations: int
    required_confirmations: int
    credits_awarded: int
    balance: int | None
    tier: str | None
    received_amount: Decimal | None
    expected_amount: Decimal | None
    idempotent_replay: bool


class ExchangeQuoteResponse(BaseModel):
    crypto_type: str
    amount_usd: Decimal
    rate_usd: Decimal
    amount_crypto: Decimal
    credits: int


@router.post("/internal/crypto/requests", response_model=CryptoRequestResponse)
async def create_crypto_request(payload: CryptoRequestCreate, request: Request) -> CryptoRequestResponse:
    assert_internal_access(request, settings=get_settings(), scope="crypto")
    try:
        result = await get_engine().create_crypto_payment_request(
            user_id=payload.user_id,
            crypto_type=payload.crypto_type,
            plan_code=payload.plan_code,
            amount_usd=payload.amount_usd,
            discount_redemption_id=payload.discount_redemption_id,
        )
    except EconomyError as exc:
        raise await to_http_exception(exc, operation="create_crypto_request") from exc

    return CryptoRequestResponse(
        request_id=result.request_id,
        reference_id=result.reference_id,
        crypto_type=result.crypto_type,
        wallet_address=result.wallet_address,
        plan_code=result.plan_code,
        amount_usd=result.amount_usd,
        discount_usd=result.discount_usd,
        credits_amount=result.credits_amount,
        rate_usd=result.rate_usd,
        expected_amount_crypto=result.expected_amount_crypto,
        status=result.status,
        expires_at=result.expires_at,
        reused=result.reused,
    )


@router.post("/internal/crypto/verify", response_model=CryptoVerifyResponse)
async def verify_crypto_payment(payload: CryptoVerifyRequest, request: Request) -> CryptoVerifyResponse:
    assert_internal_access(request, settings=get_settings(), scope="crypto")
    try:
        result = await get_engine().verify_crypto_payment(
            user_id=payload.user_id,
            transaction_hash=payload.transaction_hash,
            crypto_type=payload.crypto_type,
            reference_id=payload.reference_id,
        )
    except EconomyError as exc:
        logger.info("crypto_verify_rejected", user_id=payload.user_id, error_code=exc.code)
        raise await to_http_exception(exc, operation="verify_crypto_payment") from exc

    logger.info(
        "crypto_verify_completed",
        user_id=payload.user_id,
        request_id=str(result.request_id),
        status=result.status,
        idempotent_replay=result.idempotent_replay,
    )
    return CryptoVerifyResponse(
        status=result.status,
        request_id=result.request_id,
        transaction_hash=result.transaction_hash,
        confirmations=result.confirmations,
        required_confirmations=result.required_confirmations,
        credits_awarded=result.credits_awarded,
        balance=result.balance,
        tier=result.tier,
        received_amount=result.received_amount,
        expected_amount=result.expected_amount,
        idempotent_replay=result.idempotent_replay,
    )


@router.get("/internal/crypto/quote", response_model=ExchangeQuoteResponse)
async def get_exchange_quote(
    request: Request,
    crypto_type: str = Query(min_length=1, max_length=16),
    amount_usd: Decimal = Query(gt=0),
) -> ExchangeQuoteResponse:
    assert_internal_access(request, settings=get_settings(), scope="crypto")
    try:
        quote = await get_engine().get_exchange_quote(crypto_type=crypto_type, amount_usd=amount_usd)
    except EconomyError as exc:
        raise await to_http_exception(exc, operation="exchange_quote") from exc
    return ExchangeQuoteResponse(
        crypto_type=quote.crypto_type,
        amount_usd=quote.amount_usd,
        rate_usd=quote.rate_usd,
        amount_crypto=quote.amount_crypto,
        credits=quote.credits,
    )
