from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

import structlog
from fastapi import APIRouter, Query, Request
from pydantic import BaseModel, Field

from app.core.config import get_settings
from app.economy.errors import EconomyError
from app.economy.vouchers.codes import CLIENT_KEY_MAX_LENGTH
from app.economy.vouchers.types import VoucherRedeemResult, VoucherSummary

from .internal_helpers import assert_internal_access, get_engine, to_http_exception

router = APIRouter(tags=["internal", "vouchers"])
logger = structlog.get_logger(__name__)


class VoucherRedeemRequest(BaseModel):
    user_id: int = Field(ge=1)
    code: str = Field(min_length=1, max_length=64)
    idempotency_key: str | None = Field(default=None, min_length=1, max_length=CLIENT_KEY_MAX_LENGTH)


class DiscountResponse(BaseModel):
    value_type: str
    value: Decimal


class VoucherRedeemResponse(BaseModel):
    redemption_id: UUID
    voucher_code: str
    value_type: str
    idempotent_replay: bool
    credits_awarded: int
    discount: DiscountResponse | None
    balance: int | None
    tier: str | None
    referrer_user_id: int | None
    referrer_credits_awarded: int


class VoucherCreateRequest(BaseModel):
    code: str = Field(min_length=3, max_length=50)
    voucher_type: str = Field(min_length=1, max_length=16)
    value_type: str = Field(min_length=1, max_length=32)
    value_amount: Decimal = Field(gt=0)
    created_by: str = Field(min_length=1, max_length=64)
    max_uses: int | None = Field(default=None, ge=1)
    per_user_limit: int = Field(default=1, ge=1)
    expires_at: datetime | None = None
    tier_restriction: str | None = Field(default=None, min_length=1, max_length=16)
    referral_source_user_id: int | None = Field(default=None, ge=1)


class VoucherResponse(BaseModel):
    id: int
    code: str
    voucher_type: str
    value_type: str
    value_amount: Decimal
    max_uses: int | None
    per_user_limit: int
    total_uses: int
    is_active: bool
    tier_restriction: str | None
    referral_source_user_id: int | None


class VoucherListResponse(BaseModel):
    vouchers: list[VoucherResponse]


class VoucherStatusRequest(BaseModel):
    is_active: bool


def _redeem_as_response(result: VoucherRedeemResult) -> VoucherRedeemResponse:
    discount = None
    if result.discount is not None:
        discount = DiscountResponse(value_type=result.discount.value_type, value=result.discount.value)
    return VoucherRedeemResponse(
        redemption_id=result.redemption_id,
        voucher_code=result.voucher_code,
        value_type=result.value_type,
        idempotent_replay=result.idempotent_replay,
        credits_awarded=result.credits_awarded,
        discount=discount,
        balance=result.balance,
        tier=result.tier,
        referrer_user_id=result.referrer_user_id,
        referrer_credits_awarded=result.referrer_credits_awarded,
    )


def _voucher_as_response(summary: VoucherSummary) -> VoucherResponse:
    return VoucherResponse(
        id=summary.id,
        code=summary.code,
        voucher_type=summary.voucher_type,
        value_type=summary.value_type,
        value_amount=summary.value_amount,
        max_uses=summary.max_uses,
        per_user_limit=summary.per_user_limit,
        total_uses=summary.total_uses,
        is_active=summary.is_active,
        tier_restriction=summary.tier_restriction,
        referral_source_user_id=summary.referral_source_user_id,
    )


@router.post("/internal/vouchers/redeem", response_model=VoucherRedeemResponse)
async def redeem_voucher(payload: VoucherRedeemRequest, request: Request) -> VoucherRedeemResponse:
    assert_internal_access(request, settings=get_settings(), scope="vouchers")
    try:
        result = await get_engine().redeem_voucher(
            user_id=payload.user_id,
            code=payload.code,
            idempotency_key=payload.idempotency_key,
        )
    except EconomyError as exc:
        logger.info("voucher_redeem_rejected", user_id=payload.user_id, error_code=exc.code)
        raise await to_http_exception(exc, operation="redeem_voucher") from exc

    logger.info(
        "voucher_redeemed",
        user_id=payload.user_id,
        voucher_code=result.voucher_code,
        credits_awarded=result.credits_awarded,
        idempotent_replay=result.idempotent_replay,
    )
    return _redeem_as_response(result)


@router.post("/internal/vouchers", response_model=VoucherResponse)
async def create_voucher(payload: VoucherCreateRequest, request: Request) -> VoucherResponse:
    assert_internal_access(request, settings=get_settings(), scope="vouchers_admin")
    try:
        summary = await get_engine().create_voucher(
            code=payload.code,
            voucher_type=payload.voucher_type,
            value_type=payload.value_type,
            value_amount=payload.value_amount,
            created_by=payload.created_by,
            max_uses=payload.max_uses,
            per_user_limit=payload.per_user_limit,
            expires_at=payload.expires_at,
            tier_restriction=payload.tier_restriction,
            referral_source_user_id=payload.referral_source_user_id,
        )
    except EconomyError as exc:
        raise await to_http_exception(exc, operation="create_voucher") from exc

    logger.info("voucher_created", voucher_code=summary.code, created_by=payload.created_by)
    return _voucher_as_response(summary)


@router.get("/internal/vouchers", response_model=VoucherListResponse)
async def list_vouchers(
    request: Request,
    voucher_type: str | None = Query(default=None, min_length=1, max_length=16),
    is_active: bool | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=200),
) -> VoucherListResponse:
    assert_internal_access(request, settings=get_settings(), scope="vouchers_admin")
    try:
        summaries = await get_engine().list_vouchers(
            voucher_type=voucher_type,
            is_active=is_active,
            limit=limit,
        )
    except EconomyError as exc:
        raise await to_http_exception(exc, operation="list_vouchers") from exc
    return VoucherListResponse(vouchers=[_voucher_as_response(summary) for summary in summaries])


@router.post("/internal/vouchers/{voucher_id}/status", response_model=VoucherResponse)
async def set_voucher_status(
    voucher_id: int,
    payload: VoucherStatusRequest,
    request: Request,
) -> VoucherResponse:
    assert_internal_access(request, settings=get_settings(), scope="vouchers_admin")
    try:
        summary = await get_engine().set_voucher_active(voucher_id=voucher_id, is_active=payload.is_active)
    except EconomyError as exc:
        raise await to_http_exception(exc, operation="set_voucher_status") from exc

    logger.info("voucher_status_changed", voucher_id=voucher_id, is_active=payload.is_active)
    return _voucher_as_response(summary)
