from __future__ import annotations

from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from app.db.models.voucher_redemptions import VoucherRedemption
from app.db.session import SessionLocal
from app.economy.crypto.service import CryptoPaymentService
from app.economy.vouchers.errors import DiscountNotApplicableError
from tests.integration.ledger_fixtures import UTC, build_engine, create_user, create_voucher


@pytest.mark.asyncio
async def test_plain_request_does_not_reuse_discounted_request_with_same_price() -> None:
    engine = build_engine()
    user_id = await create_user("discount-then-plain")
    await create_voucher("TENOFF", value_type="dollar_discount", value_amount=Decimal("10"))
    redeemed = await engine.redeem_voucher(user_id=user_id, code="TENOFF")

    discounted = await engine.create_crypto_payment_request(
        user_id=user_id,
        crypto_type="bitcoin",
        amount_usd=Decimal("20.00"),
        discount_redemption_id=redeemed.redemption_id,
    )
    plain = await engine.create_crypto_payment_request(
        user_id=user_id,
        crypto_type="bitcoin",
        amount_usd=Decimal("10.00"),
    )

    assert discounted.amount_usd == Decimal("10.00")
    assert discounted.discount_usd == Decimal("10.00")
    assert plain.reused is False
    assert plain.request_id != discounted.request_id
    assert plain.discount_usd == Decimal("0")
    assert plain.credits_amount == 1000


@pytest.mark.asyncio
async def test_discount_is_released_when_its_request_expires() -> None:
    engine = build_engine()
    user_id = await create_user("discount-retry")
    await create_voucher("SPRING25", value_type="percentage_discount", value_amount=Decimal("25"))
    redeemed = await engine.redeem_voucher(user_id=user_id, code="SPRING25")

    first = await engine.create_crypto_payment_request(
        user_id=user_id,
        crypto_type="bitcoin",
        amount_usd=Decimal("20.00"),
        discount_redemption_id=redeemed.redemption_id,
    )
    with pytest.raises(DiscountNotApplicableError):
        await engine.create_crypto_payment_request(
            user_id=user_id,
            crypto_type="bitcoin",
            amount_usd=Decimal("20.00"),
            discount_redemption_id=redeemed.redemption_id,
        )

    expired = await CryptoPaymentService.expire_stale_requests(
        now_utc=datetime.now(UTC) + timedelta(hours=2),
        session_factory=SessionLocal,
    )
    assert expired == 1

    second = await engine.create_crypto_payment_request(
        user_id=user_id,
        crypto_type="bitcoin",
        amount_usd=Decimal("20.00"),
        discount_redemption_id=redeemed.redemption_id,
    )

    assert second.request_id != first.request_id
    assert second.discount_usd == Decimal("5.00")
    async with SessionLocal.begin() as session:
        redemption = await session.get(VoucherRedemption, redeemed.redemption_id)
    assert redemption is not None
    assert redemption.applied_payment_request_id == second.request_id
