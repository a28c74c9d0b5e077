from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from types import SimpleNamespace

import pytest

from app.economy.ledger.errors import LedgerUserNotFoundError
from app.economy.referrals.service import codes as referral_codes
from app.economy.referrals.service import stats as referral_stats

NOW_UTC = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class _FakeSession:
    async def flush(self) -> None:
        return None


def _patch_code_repos(monkeypatch, *, users: dict[int, SimpleNamespace], taken: set[str]) -> list[object]:
    created: list[object] = []

    class _Users:
        @staticmethod
        async def get_by_id_for_update(session, user_id: int):
            return users.get(user_id)

        @staticmethod
        async def get_by_referral_code(session, code: str):
            return next((user for user in users.values() if user.referral_code == code), None)

    class _Vouchers:
        @staticmethod
        async def get_by_code(session, code: str):
            return SimpleNamespace(code=code) if code in taken else None

        @staticmethod
        async def create(session, *, voucher):
            created.append(voucher)
            return voucher

    monkeypatch.setattr(referral_codes, "UsersRepo", _Users)
    monkeypatch.setattr(referral_codes, "VouchersRepo", _Vouchers)
    monkeypatch.setattr(
        referral_codes,
        "get_settings",
        lambda: SimpleNamespace(referral_referee_credits=50),
    )
    return created


@pytest.mark.asyncio
async def test_referral_code_is_created_once_with_backing_voucher(monkeypatch) -> None:
    user = SimpleNamespace(id=11, referral_code=None)
    created = _patch_code_repos(monkeypatch, users={11: user}, taken=set())
    monkeypatch.setattr(referral_codes, "generate_referral_code", lambda: "REFABC234")

    code = await referral_codes.get_or_create_referral_code(_FakeSession(), user_id=11, now_utc=NOW_UTC)
    again = await referral_codes.get_or_create_referral_code(_FakeSession(), user_id=11, now_utc=NOW_UTC)

    assert code == "REFABC234"
    assert again == code
    assert user.referral_code == code
    assert len(created) == 1
    voucher = created[0]
    assert voucher.voucher_type == "referral"
    assert voucher.value_type == "credits"
    assert voucher.value_amount == Decimal(50)
    assert voucher.referral_source_user_id == 11
    assert voucher.max_uses is None
    assert voucher.per_user_limit == 1


@pytest.mark.asyncio
async def test_referral_code_skips_candidates_already_taken(monkeypatch) -> None:
    user = SimpleNamespace(id=12, referral_code=None)
    created = _patch_code_repos(monkeypatch, users={12: user}, taken={"REFTAKEN"})
    candidates = iter(["REFTAKEN", "REFFRESH9"])
    monkeypatch.setattr(referral_codes, "generate_referral_code", lambda: next(candidates))

    code = await referral_codes.get_or_create_referral_code(_FakeSession(), user_id=12, now_utc=NOW_UTC)

    assert code == "REFFRESH9"
    assert [voucher.code for voucher in created] == ["REFFRESH9"]


@pytest.mark.asyncio
async def test_referral_code_gives_up_after_max_attempts(monkeypatch) -> None:
    user = SimpleNamespace(id=13, referral_code=None)
    _patch_code_repos(monkeypatch, users={13: user}, taken={"REFSAME"})
    monkeypatch.setattr(referral_codes, "generate_referral_code", lambda: "REFSAME")

    with pytest.raises(RuntimeError):
        await referral_codes.get_or_create_referral_code(_FakeSession(), user_id=13, now_utc=NOW_UTC)
    assert user.referral_code is None


@pytest.mark.asyncio
async def test_referral_code_requires_existing_user(monkeypatch) -> None:
    _patch_code_repos(monkeypatch, users={}, taken=set())

    with pytest.raises(LedgerUserNotFoundError):
        await referral_codes.get_or_create_referral_code(_FakeSession(), user_id=404)


@pytest.mark.asyncio
async def test_referral_stats_are_derived_from_referral_ledger_entries(monkeypatch) -> None:
    entries = [
        SimpleNamespace(external_ref="21", amount=50, created_at=NOW_UTC),
        SimpleNamespace(external_ref="22", amount=50, created_at=NOW_UTC),
        SimpleNamespace(external_ref="legacy", amount=50, created_at=NOW_UTC),
    ]
    requested: dict[str, object] = {}

    async def _fake_code(session, *, user_id: int) -> str:
        return "REFABC234"

    class _Ledger:
        @staticmethod
        async def count_and_sum_by_source(session, *, user_id: int, source: str):
            requested["source"] = source
            return 3, 150

        @staticmethod
        async def list_recent_by_source(session, *, user_id: int, source: str, limit: int):
            requested["limit"] = limit
            return entries

    class _Users:
        @staticmethod
        async def list_by_ids(session, user_ids):
            requested["user_ids"] = list(user_ids)
            return [SimpleNamespace(id=21, username="anna")]

    monkeypatch.setattr(referral_stats, "get_or_create_referral_code", _fake_code)
    monkeypatch.setattr(referral_stats, "LedgerRepo", _Ledger)
    monkeypatch.setattr(referral_stats, "UsersRepo", _Users)

    stats = await referral_stats.get_referral_stats(_FakeSession(), user_id=20)

    assert requested == {"source": "Referral", "limit": 10, "user_ids": [21, 22]}
    assert stats.referral_code == "REFABC234"
    assert stats.total_referrals == 3
    assert stats.total_credits_earned == 150
    assert [(item.referee_user_id, item.referee_username) for item in stats.recent_referrals] == [
        (21, "anna"),
        (22, None),
    ]
    assert all(item.credits_earned == 50 for item in stats.recent_referrals)
