from __future__ import annotations

import asyncio
from datetime import datetime, timedelta

import pytest
from sqlalchemy import func, select

from app.db.models.ledger_entries import LedgerEntry
from app.db.models.voucher_redemptions import VoucherRedemption
from app.db.models.vouchers import Voucher
from app.db.session import SessionLocal
from app.economy.vouchers.errors import (
    PerUserLimitReachedError,
    VoucherExhaustedError,
    VoucherExpiredError,
)
from tests.integration.ledger_fixtures import UTC, build_engine, create_user, create_voucher


@pytest.mark.asyncio
async def test_welcome_voucher_credits_once_per_user() -> None:
    engine = build_engine()
    user_id = await create_user("welcome-user")
    voucher_id = await create_voucher("WELCOME50")

    result = await engine.redeem_voucher(user_id=user_id, code=" welcome50 ")

    assert result.voucher_code == "WELCOME50"
    assert result.credits_awarded == 50
    assert result.balance == 50
    assert result.idempotent_replay is False

    with pytest.raises(PerUserLimitReachedError):
        await engine.redeem_voucher(user_id=user_id, code="WELCOME50")

    async with SessionLocal.begin() as session:
        voucher = await session.get(Voucher, voucher_id)
        entries = (
            await session.execute(select(LedgerEntry).where(LedgerEntry.user_id == user_id))
        ).scalars().all()

    assert voucher is not None and voucher.total_uses == 1
    assert [(entry.entry_type, entry.source, entry.amount) for entry in entries] == [("BONUS", "Voucher", 50)]
    assert await engine.get_balance(user_id) == 50


@pytest.mark.asyncio
async def test_redeem_with_same_idempotency_key_replays_without_second_credit() -> None:
    engine = build_engine()
    user_id = await create_user("idem-user")
    await create_voucher("RETRY25", value_amount=25, per_user_limit=3)

    first = await engine.redeem_voucher(user_id=user_id, code="RETRY25", idempotency_key="client-key-1")
    replay = await engine.redeem_voucher(user_id=user_id, code="RETRY25", idempotency_key="client-key-1")

    assert replay.idempotent_replay is True
    assert replay.redemption_id == first.redemption_id
    assert replay.credits_awarded == 25
    assert await engine.get_balance(user_id) == 25


@pytest.mark.asyncio
async def test_single_use_voucher_allows_exactly_one_concurrent_redeem() -> None:
    engine = build_engine()
    user_ids = [await create_user(f"race-user-{index}") for index in range(2)]
    voucher_id = await create_voucher("ONLYONE", max_uses=1)

    results = await asyncio.gather(
        *(engine.redeem_voucher(user_id=user_id, code="ONLYONE") for user_id in user_ids),
        return_exceptions=True,
    )

    successes = [item for item in results if not isinstance(item, Exception)]
    failures = [item for item in results if isinstance(item, Exception)]
    assert len(successes) == 1
    assert len(failures) == 1
    assert isinstance(failures[0], VoucherExhaustedError)

    async with SessionLocal.begin() as session:
        voucher = await session.get(Voucher, voucher_id)
        redemptions = await session.scalar(
            select(func.count(VoucherRedemption.id)).where(VoucherRedemption.voucher_id == voucher_id)
        )
    assert voucher is not None and voucher.total_uses == 1
    assert redemptions == 1


@pytest.mark.asyncio
async def test_expired_voucher_is_rejected_without_side_effects() -> None:
    engine = build_engine()
    user_id = await create_user("late-user")
    await create_voucher("GONE10", expires_at=datetime.now(UTC) - timedelta(minutes=1))

    with pytest.raises(VoucherExpiredError):
        await engine.redeem_voucher(user_id=user_id, code="GONE10")

    assert await engine.get_balance(user_id) == 0
