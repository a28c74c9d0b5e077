from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from types import SimpleNamespace
from uuid import uuid4

import pytest

from app.economy.crypto.errors import CryptoPaymentValidationError, ExchangeRateUnavailableError
from app.economy.crypto.service import requests as crypto_requests
from app.economy.crypto.service.requests import create_payment_request, get_exchange_quote, resolve_base_amount
from app.economy.ledger.errors import LedgerUserNotFoundError

NOW_UTC = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class _RateFeed:
    def __init__(self, rate: Decimal | None) -> None:
        self.rate = rate
        self.calls: list[str] = []

    async def rate_usd(self, crypto_type: str) -> Decimal | None:
        self.calls.append(crypto_type)
        return self.rate


class _FakeSession:
    async def flush(self) -> None:
        return None


def test_resolve_base_amount_requires_exactly_one_input() -> None:
    with pytest.raises(CryptoPaymentValidationError):
        resolve_base_amount(plan_code=None, amount_usd=None)
    with pytest.raises(CryptoPaymentValidationError):
        resolve_base_amount(plan_code="PRO_MONTHLY", amount_usd=Decimal("5"))


def test_resolve_base_amount_uses_plan_price() -> None:
    assert resolve_base_amount(plan_code="PRO_MONTHLY", amount_usd=None) == Decimal("19.99")
    with pytest.raises(CryptoPaymentValidationError):
        resolve_base_amount(plan_code="GOLD", amount_usd=None)


@pytest.mark.parametrize("amount", [Decimal("0.99"), Decimal("10000.01"), Decimal("5.001")])
def test_resolve_base_amount_rejects_out_of_range_or_sub_cent(amount: Decimal) -> None:
    with pytest.raises(CryptoPaymentValidationError):
        resolve_base_amount(plan_code=None, amount_usd=amount)


@pytest.mark.asyncio
async def test_exchange_quote_converts_usd() -> None:
    quote = await get_exchange_quote(_RateFeed(Decimal("50000")), crypto_type="bitcoin", amount_usd=Decimal("25"))

    assert quote.amount_crypto == Decimal("0.00050000")
    assert quote.credits == 2500
    assert quote.rate_usd == Decimal("50000")


@pytest.mark.asyncio
async def test_exchange_quote_fails_without_rate() -> None:
    with pytest.raises(ExchangeRateUnavailableError):
        await get_exchange_quote(_RateFeed(None), crypto_type="bitcoin", amount_usd=Decimal("25"))


@pytest.fixture
def fakes(monkeypatch) -> SimpleNamespace:
    state = SimpleNamespace(
        users={1: SimpleNamespace(id=1)},
        wallet=SimpleNamespace(id=7, wallet_address="bc1qledgerwallet", is_active=True),
        reusable=None,
        created=[],
        discount=None,
    )

    class _UsersRepo:
        @staticmethod
        async def get_by_id_for_update(session, user_id):  # noqa: ARG004
            return state.users.get(user_id)

    class _CryptoPaymentsRepo:
        @staticmethod
        async def get_reusable_pending_request(session, **kwargs):  # noqa: ARG004
            return state.reusable

        @staticmethod
        async def create_request(session, *, payment_request):  # noqa: ARG004
            state.created.append(payment_request)
            return payment_request

    class _CryptoWalletsRepo:
        @staticmethod
        async def get_by_id(session, wallet_id):  # noqa: ARG004
            return state.wallet

    async def _prepare_wallet(session, **kwargs):  # noqa: ARG001
        return None

    async def _get_or_create_wallet(session, **kwargs):  # noqa: ARG001
        return state.wallet

    async def _lock_discount(session, *, redemption_id, user_id, base_usd, now_utc):  # noqa: ARG001
        return state.discount, Decimal("2.00")

    monkeypatch.setattr(crypto_requests, "UsersRepo", _UsersRepo)
    monkeypatch.setattr(crypto_requests, "CryptoPaymentsRepo", _CryptoPaymentsRepo)
    monkeypatch.setattr(crypto_requests, "CryptoWalletsRepo", _CryptoWalletsRepo)
    monkeypatch.setattr(crypto_requests, "prepare_wallet", _prepare_wallet)
    monkeypatch.setattr(crypto_requests, "get_or_create_wallet", _get_or_create_wallet)
    monkeypatch.setattr(crypto_requests, "lock_discount_for_payment", _lock_discount)
    return state


@pytest.mark.asyncio
async def test_create_payment_request_for_plan(fakes: SimpleNamespace) -> None:
    result = await create_payment_request(
        _FakeSession(),
        user_id=1,
        crypto_type="bitcoin",
        rate_feed=_RateFeed(Decimal("50000")),
        provisioner=object(),
        plan_code="PRO_MONTHLY",
        now_utc=NOW_UTC,
    )

    assert result.reused is False
    assert result.wallet_address == "bc1qledgerwallet"
    assert result.amount_usd == Decimal("19.99")
    assert result.credits_amount == 1999
    assert result.expected_amount_crypto == Decimal("0.00039980")
    assert result.expires_at == NOW_UTC + timedelta(minutes=30)
    assert result.status == "pending"
    assert len(result.reference_id) == 24
    assert fakes.created[0].wallet_id == 7


@pytest.mark.asyncio
async def test_create_payment_request_reuses_open_pending_request(fakes: SimpleNamespace) -> None:
    fakes.reusable = SimpleNamespace(
        id=uuid4(),
        reference_id="ref-1",
        crypto_type="bitcoin",
        wallet_id=7,
        plan_code=None,
        amount_usd=Decimal("10.00"),
        discount_usd=Decimal("0"),
        credits_amount=1000,
        rate_usd=Decimal("50000"),
        expected_amount_crypto=Decimal("0.0002"),
        status="pending",
        expires_at=NOW_UTC + timedelta(minutes=10),
    )

    result = await create_payment_request(
        _FakeSession(),
        user_id=1,
        crypto_type="bitcoin",
        rate_feed=_RateFeed(Decimal("50000")),
        provisioner=object(),
        amount_usd=Decimal("10.00"),
        now_utc=NOW_UTC,
    )

    assert result.reused is True
    assert result.reference_id == "ref-1"
    assert fakes.created == []


@pytest.mark.asyncio
async def test_create_payment_request_applies_discount_but_credits_base_amount(fakes: SimpleNamespace) -> None:
    redemption = SimpleNamespace(applied_payment_request_id=None)
    fakes.discount = redemption

    result = await create_payment_request(
        _FakeSession(),
        user_id=1,
        crypto_type="usdt_trc20",
        rate_feed=_RateFeed(Decimal("1")),
        provisioner=object(),
        amount_usd=Decimal("10.00"),
        discount_redemption_id=uuid4(),
        now_utc=NOW_UTC,
    )

    assert result.amount_usd == Decimal("8.00")
    assert result.discount_usd == Decimal("2.00")
    assert result.credits_amount == 1000
    assert result.expected_amount_crypto == Decimal("8.000000")
    assert redemption.applied_payment_request_id == result.request_id


@pytest.mark.asyncio
async def test_create_payment_request_for_unknown_user(fakes: SimpleNamespace) -> None:
    fakes.users.clear()
    with pytest.raises(LedgerUserNotFoundError):
        await create_payment_request(
            _FakeSession(),
            user_id=1,
            crypto_type="bitcoin",
            rate_feed=_RateFeed(Decimal("50000")),
            provisioner=object(),
            amount_usd=Decimal("10.00"),
            now_utc=NOW_UTC,
        )
