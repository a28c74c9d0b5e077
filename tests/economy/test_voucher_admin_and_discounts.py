from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from types import SimpleNamespace
from uuid import uuid4

import pytest

from app.economy.entitlements import subscriptions as subscriptions_module
from app.economy.entitlements.subscriptions import activate_plan
from app.economy.vouchers import admin as voucher_admin
from app.economy.vouchers import discounts as discounts_module
from app.economy.vouchers.discounts import lock_discount_for_payment
from app.economy.vouchers.errors import (
    DiscountNotApplicableError,
    VoucherCodeTakenError,
    VoucherDefinitionError,
)

NOW_UTC = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class _FakeSession:
    async def flush(self) -> None:
        return None


@pytest.fixture
def voucher_store(monkeypatch) -> dict[str, object]:
    store: dict[str, object] = {}

    class _VouchersRepo:
        @staticmethod
        async def get_by_code(session, code):  # noqa: ARG004
            return store.get(code)

        @staticmethod
        async def create(session, *, voucher):  # noqa: ARG004
            voucher.id = len(store) + 1
            store[voucher.code] = voucher
            return voucher

    class _UsersRepo:
        @staticmethod
        async def get_by_id(session, user_id):  # noqa: ARG004
            return SimpleNamespace(id=user_id) if user_id == 10 else None

    monkeypatch.setattr(voucher_admin, "VouchersRepo", _VouchersRepo)
    monkeypatch.setattr(voucher_admin, "UsersRepo", _UsersRepo)
    return store


@pytest.mark.asyncio
async def test_create_voucher_normalizes_code(voucher_store: dict[str, object]) -> None:
    voucher = await voucher_admin.create_voucher(
        _FakeSession(),
        code=" welcome50 ",
        voucher_type="discount",
        value_type="credits",
        value_amount=Decimal("50"),
        created_by="ops-1",
        max_uses=100,
        now_utc=NOW_UTC,
    )

    assert voucher.code == "WELCOME50"
    assert voucher.total_uses == 0
    assert voucher.is_active is True
    summary = voucher_admin.to_summary(voucher)
    assert summary.max_uses == 100
    assert summary.value_amount == Decimal("50")


@pytest.mark.asyncio
async def test_create_voucher_rejects_duplicate_code(voucher_store: dict[str, object]) -> None:
    kwargs = {
        "code": "SPRING",
        "voucher_type": "discount",
        "value_type": "dollar_discount",
        "value_amount": Decimal("5"),
        "created_by": "ops-1",
    }
    await voucher_admin.create_voucher(_FakeSession(), **kwargs)
    with pytest.raises(VoucherCodeTakenError):
        await voucher_admin.create_voucher(_FakeSession(), **kwargs)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "overrides",
    [
        {"voucher_type": "gift"},
        {"value_type": "points"},
        {"value_amount": Decimal("0")},
        {"value_amount": Decimal("10.5")},
        {"value_type": "percentage_discount", "value_amount": Decimal("101")},
        {"max_uses": 0},
        {"per_user_limit": 0},
        {"tier_restriction": "gold"},
        {"voucher_type": "referral"},
        {"voucher_type": "referral", "referral_source_user_id": 10, "value_type": "dollar_discount"},
        {"voucher_type": "referral", "referral_source_user_id": 99},
    ],
)
async def test_create_voucher_rejects_bad_definitions(
    voucher_store: dict[str, object],  # noqa: ARG001
    overrides: dict[str, object],
) -> None:
    kwargs: dict[str, object] = {
        "code": "BADONE",
        "voucher_type": "discount",
        "value_type": "credits",
        "value_amount": Decimal("10"),
        "created_by": "ops-1",
    }
    kwargs.update(overrides)
    with pytest.raises(VoucherDefinitionError):
        await voucher_admin.create_voucher(_FakeSession(), **kwargs)


def _patch_redemption(
    monkeypatch,
    redemption: SimpleNamespace | None,
    *,
    attached_request: SimpleNamespace | None = None,
) -> None:
    class _VouchersRepo:
        @staticmethod
        async def get_redemption_by_id_for_update(session, redemption_id):  # noqa: ARG004
            return redemption

    class _CryptoPaymentsRepo:
        @staticmethod
        async def get_request_by_id(session, request_id):  # noqa: ARG004
            return attached_request

    monkeypatch.setattr(discounts_module, "VouchersRepo", _VouchersRepo)
    monkeypatch.setattr(discounts_module, "CryptoPaymentsRepo", _CryptoPaymentsRepo)


def _attached_redemption() -> SimpleNamespace:
    return SimpleNamespace(
        user_id=1,
        applied_payment_request_id=uuid4(),
        discount_type="dollar_discount",
        discount_value=Decimal("5"),
    )


@pytest.mark.asyncio
async def test_lock_discount_computes_amount(monkeypatch) -> None:
    redemption = SimpleNamespace(
        user_id=1,
        applied_payment_request_id=None,
        discount_type="percentage_discount",
        discount_value=Decimal("25"),
    )
    _patch_redemption(monkeypatch, redemption)

    locked, discount = await lock_discount_for_payment(
        _FakeSession(), redemption_id=uuid4(), user_id=1, base_usd=Decimal("19.99")
    )

    assert locked is redemption
    assert discount == Decimal("5.00")


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "redemption",
    [
        None,
        SimpleNamespace(
            user_id=2,
            applied_payment_request_id=None,
            discount_type="dollar_discount",
            discount_value=Decimal("5"),
        ),
        SimpleNamespace(user_id=1, applied_payment_request_id=None, discount_type=None, discount_value=None),
    ],
)
async def test_lock_discount_rejects_unusable_redemptions(monkeypatch, redemption) -> None:
    _patch_redemption(monkeypatch, redemption)
    with pytest.raises(DiscountNotApplicableError):
        await lock_discount_for_payment(_FakeSession(), redemption_id=uuid4(), user_id=1, base_usd=Decimal("10"))


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "attached_request",
    [
        SimpleNamespace(status="pending", expires_at=NOW_UTC + timedelta(minutes=5), verification_deadline_at=None),
        SimpleNamespace(
            status="awaiting_verification",
            expires_at=NOW_UTC - timedelta(minutes=5),
            verification_deadline_at=NOW_UTC + timedelta(hours=1),
        ),
        SimpleNamespace(status="confirmed", expires_at=NOW_UTC - timedelta(hours=2), verification_deadline_at=None),
    ],
)
async def test_lock_discount_rejects_redemption_held_by_live_request(monkeypatch, attached_request) -> None:
    _patch_redemption(monkeypatch, _attached_redemption(), attached_request=attached_request)

    with pytest.raises(DiscountNotApplicableError):
        await lock_discount_for_payment(
            _FakeSession(), redemption_id=uuid4(), user_id=1, base_usd=Decimal("10"), now_utc=NOW_UTC
        )


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "attached_request",
    [
        SimpleNamespace(status="expired", expires_at=NOW_UTC - timedelta(minutes=1), verification_deadline_at=None),
        SimpleNamespace(status="failed", expires_at=NOW_UTC - timedelta(minutes=1), verification_deadline_at=None),
        SimpleNamespace(status="pending", expires_at=NOW_UTC - timedelta(seconds=1), verification_deadline_at=None),
    ],
)
async def test_lock_discount_reclaims_redemption_from_dead_request(monkeypatch, attached_request) -> None:
    redemption = _attached_redemption()
    _patch_redemption(monkeypatch, redemption, attached_request=attached_request)

    locked, discount = await lock_discount_for_payment(
        _FakeSession(), redemption_id=uuid4(), user_id=1, base_usd=Decimal("10"), now_utc=NOW_UTC
    )

    assert locked is redemption
    assert discount == Decimal("5.00")


@pytest.mark.asyncio
async def test_activate_plan_creates_or_extends_subscription(monkeypatch) -> None:
    active: dict[str, object] = {}

    class _SubscriptionsRepo:
        @staticmethod
        async def get_active_for_update(session, *, user_id):  # noqa: ARG004
            return active.get("subscription")

        @staticmethod
        async def create(session, *, subscription):  # noqa: ARG004
            active["subscription"] = subscription
            return subscription

    monkeypatch.setattr(subscriptions_module, "SubscriptionsRepo", _SubscriptionsRepo)

    created = await activate_plan(
        _FakeSession(),
        user_id=1,
        plan_code="PRO_MONTHLY",
        tier="premium",
        period_days=30,
        payment_request_id=None,
        now_utc=NOW_UTC,
    )
    assert created.status == "active"
    assert created.current_period_end == NOW_UTC + timedelta(days=30)

    extended = await activate_plan(
        _FakeSession(),
        user_id=1,
        plan_code="PRO_YEARLY",
        tier="basic",
        period_days=365,
        payment_request_id=None,
        now_utc=NOW_UTC + timedelta(days=10),
    )
    assert extended is created
    assert extended.current_period_end == NOW_UTC + timedelta(days=30 + 365)
    assert extended.tier == "premium"
    assert extended.plan_code == "PRO_YEARLY"
