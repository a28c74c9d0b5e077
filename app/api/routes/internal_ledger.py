from __future__ import annotations

from datetime import datetime
from decimal import Decimal

import structlog
from fastapi import APIRouter, Query, Request
from pydantic import BaseModel, Field

from app.core.config import get_settings
from app.db.models.ledger_entries import LedgerEntry
from app.economy.errors import EconomyError
from app.economy.ledger.types import LedgerAppendResult, PaymentCaptureEvent

from .internal_helpers import assert_internal_access, get_engine, to_http_exception

router = APIRouter(tags=["internal", "ledger"])
logger = structlog.get_logger(__name__)


class LedgerEntryResponse(BaseModel):
    id: int
    user_id: int
    entry_type: str
    amount: int
    balance_after: int
    source: str
    external_ref: str | None
    metadata: dict[str, object]
    created_at: datetime


class LedgerAppendResponse(BaseModel):
    entry: LedgerEntryResponse
    balance: int
    tier: str
    idempotent_replay: bool


class BalanceResponse(BaseModel):
    user_id: int
    balance: int
    recomputed_balance: int
    is_consistent: bool
    credit_exempt: bool
    tier: str


class HistoryResponse(BaseModel):
    user_id: int
    entries: list[LedgerEntryResponse]


class LedgerAppendRequest(BaseModel):
    user_id: int = Field(ge=1)
    entry_type: str = Field(min_length=1, max_length=16)
    amount: int
    source: str = Field(min_length=1, max_length=32)
    external_ref: str | None = Field(default=None, min_length=1, max_length=128)
    metadata: dict[str, object] | None = None


class AdjustRequest(BaseModel):
    amount: int
    reason: str = Field(min_length=1, max_length=256)
    admin_id: str = Field(min_length=1, max_length=64)
    external_ref: str | None = Field(default=None, min_length=1, max_length=128)


class TierOverrideRequest(BaseModel):
    tier: str = Field(min_length=1, max_length=16)
    reason: str = Field(min_length=1, max_length=256)
    admin_id: str = Field(min_length=1, max_length=64)


class CreditExemptRequest(BaseModel):
    exempt: bool
    admin_id: str = Field(min_length=1, max_length=64)


class CreditExemptResponse(BaseModel):
    user_id: int
    credit_exempt: bool


class UsageChargeRequest(BaseModel):
    user_id: int = Field(ge=1)
    operation: str = Field(min_length=1, max_length=64)
    quantity: int = Field(default=1, ge=1, le=1000)
    external_ref: str | None = Field(default=None, min_length=1, max_length=128)


class PaymentCaptureRequest(BaseModel):
    user_id: int = Field(ge=1)
    amount: Decimal = Field(gt=0)
    currency: str = Field(min_length=3, max_length=3)
    gateway_transaction_id: str = Field(min_length=1, max_length=128)


def _entry_as_response(entry: LedgerEntry) -> LedgerEntryResponse:
    return LedgerEntryResponse(
        id=entry.id,
        user_id=entry.user_id,
        entry_type=entry.entry_type,
        amount=entry.amount,
        balance_after=entry.balance_after,
        source=entry.source,
        external_ref=entry.external_ref,
        metadata=dict(entry.metadata_ or {}),
        created_at=entry.created_at,
    )


def _append_as_response(result: LedgerAppendResult) -> LedgerAppendResponse:
    return LedgerAppendResponse(
        entry=_entry_as_response(result.entry),
        balance=result.balance,
        tier=result.tier,
        idempotent_replay=result.idempotent_replay,
    )


@router.get("/internal/ledger/users/{user_id}/balance", response_model=BalanceResponse)
async def get_balance(user_id: int, request: Request) -> BalanceResponse:
    assert_internal_access(request, settings=get_settings(), scope="ledger")
    engine = get_engine()
    try:
        snapshot = await engine.get_balance_snapshot(user_id)
        resolution = await engine.resolve_tier(user_id)
    except EconomyError as exc:
        raise await to_http_exception(exc, operation="get_balance") from exc

    return BalanceResponse(
        user_id=user_id,
        balance=snapshot.balance,
        recomputed_balance=snapshot.recomputed_balance,
        is_consistent=snapshot.is_consistent,
        credit_exempt=snapshot.credit_exempt,
        tier=resolution.tier,
    )


@router.get("/internal/ledger/users/{user_id}/history", response_model=HistoryResponse)
async def get_history(
    user_id: int,
    request: Request,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
) -> HistoryResponse:
    assert_internal_access(request, settings=get_settings(), scope="ledger")
    try:
        entries = await get_engine().get_history(user_id, limit=limit, offset=offset)
    except EconomyError as exc:
        raise await to_http_exception(exc, operation="get_history") from exc
    return HistoryResponse(user_id=user_id, entries=[_entry_as_response(entry) for entry in entries])


@router.post("/internal/ledger/append", response_model=LedgerAppendResponse)
async def append_entry(payload: LedgerAppendRequest, request: Request) -> LedgerAppendResponse:
    assert_internal_access(request, settings=get_settings(), scope="ledger")
    try:
        result = await get_engine().append(
            user_id=payload.user_id,
            entry_type=payload.entry_type,
            amount=payload.amount,
            source=payload.source,
            external_ref=payload.external_ref,
            metadata=payload.metadata,
        )
    except EconomyError as exc:
        raise await to_http_exception(exc, operation="append") from exc

    logger.info(
        "ledger_entry_appended",
        user_id=payload.user_id,
        entry_type=payload.entry_type,
        amount=payload.amount,
        source=payload.source,
        idempotent_replay=result.idempotent_replay,
    )
    return _append_as_response(result)


@router.post("/internal/ledger/users/{user_id}/adjust", response_model=LedgerAppendResponse)
async def adjust_credits(user_id: int, payload: AdjustRequest, request: Request) -> LedgerAppendResponse:
    assert_internal_access(request, settings=get_settings(), scope="ledger_admin")
    try:
        result = await get_engine().adjust_credits(
            user_id=user_id,
            amount=payload.amount,
            reason=payload.reason,
            admin_id=payload.admin_id,
            external_ref=payload.external_ref,
        )
    except EconomyError as exc:
        raise await to_http_exception(exc, operation="adjust_credits") from exc
    return _append_as_response(result)


@router.post("/internal/ledger/users/{user_id}/tier", response_model=LedgerAppendResponse)
async def override_tier(user_id: int, payload: TierOverrideRequest, request: Request) -> LedgerAppendResponse:
    assert_internal_access(request, settings=get_settings(), scope="ledger_admin")
    try:
        result = await get_engine().override_tier(
            user_id=user_id,
            tier=payload.tier,
            reason=payload.reason,
            admin_id=payload.admin_id,
        )
    except EconomyError as exc:
        raise await to_http_exception(exc, operation="override_tier") from exc
    return _append_as_response(result)


@router.post("/internal/ledger/users/{user_id}/credit-exempt", response_model=CreditExemptResponse)
async def set_credit_exempt(
    user_id: int,
    payload: CreditExemptRequest,
    request: Request,
) -> CreditExemptResponse:
    assert_internal_access(request, settings=get_settings(), scope="ledger_admin")
    try:
        exempt = await get_engine().set_credit_exempt(
            user_id=user_id,
            exempt=payload.exempt,
            admin_id=payload.admin_id,
        )
    except EconomyError as exc:
        raise await to_http_exception(exc, operation="set_credit_exempt") from exc
    return CreditExemptResponse(user_id=user_id, credit_exempt=exempt)


@router.post("/internal/ledger/usage", response_model=LedgerAppendResponse)
async def charge_usage(payload: UsageChargeRequest, request: Request) -> LedgerAppendResponse:
    assert_internal_access(request, settings=get_settings(), scope="ledger")
    try:
        result = await get_engine().charge_operation(
            user_id=payload.user_id,
            operation=payload.operation,
            quantity=payload.quantity,
            external_ref=payload.external_ref,
        )
    except EconomyError as exc:
        raise await to_http_exception(exc, operation="charge_usage") from exc
    return _append_as_response(result)


@router.post("/internal/payments/paypal/capture", response_model=LedgerAppendResponse)
async def capture_paypal_payment(payload: PaymentCaptureRequest, request: Request) -> LedgerAppendResponse:
    assert_internal_access(request, settings=get_settings(), scope="payments")
    try:
        result = await get_engine().apply_payment_capture(
            PaymentCaptureEvent(
                user_id=payload.user_id,
                amount=payload.amount,
                currency=payload.currency,
                gateway_transaction_id=payload.gateway_transaction_id,
            )
        )
    except EconomyError as exc:
        raise await to_http_exception(exc, operation="paypal_capture") from exc

    logger.info(
        "paypal_capture_applied",
        user_id=payload.user_id,
        gateway_transaction_id=payload.gateway_transaction_id,
        credits=result.entry.amount,
        idempotent_replay=result.idempotent_replay,
    )
    return _append_as_response(result)
