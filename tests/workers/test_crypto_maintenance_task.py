from __future__ import annotations

import pytest

from app.economy.crypto.service import RecheckSummary
from app.workers.tasks import crypto_maintenance


def test_expire_crypto_requests_task_wrapper(monkeypatch) -> None:
    async def fake_async() -> dict[str, int]:
        return {"expired_requests": 4}

    monkeypatch.setattr(crypto_maintenance, "expire_crypto_requests_async", fake_async)

    result = crypto_maintenance.expire_crypto_requests()
    assert result == {"expired_requests": 4}


def test_recheck_crypto_payments_task_wrapper(monkeypatch) -> None:
    async def fake_async(*, batch_size: int) -> dict[str, int]:
        return {"examined": batch_size, "chain_errors": 0, "failed": 0}

    monkeypatch.setattr(crypto_maintenance, "recheck_crypto_payments_async", fake_async)

    result = crypto_maintenance.recheck_crypto_payments(batch_size=25)
    assert result["examined"] == 25


@pytest.mark.asyncio
async def test_recheck_alerts_on_manual_review_and_chain_errors(monkeypatch) -> None:
    alerts: list[str] = []

    async def fake_recheck(*, chain_client, batch_size: int) -> RecheckSummary:  # noqa: ARG001
        return RecheckSummary(
            examined=20,
            chain_errors=12,
            failed=1,
            outcomes={"confirmed": 5, "partial_payment": 2},
        )

    async def fake_alert(*, event: str, payload: dict[str, object]) -> bool:  # noqa: ARG001
        alerts.append(event)
        return True

    monkeypatch.setattr(crypto_maintenance.CryptoPaymentService, "recheck_awaiting", fake_recheck)
    monkeypatch.setattr(crypto_maintenance, "send_ops_alert", fake_alert)
    monkeypatch.setattr(crypto_maintenance, "HttpChainQueryClient", lambda: object())

    result = await crypto_maintenance.recheck_crypto_payments_async(batch_size=20)

    assert result["examined"] == 20
    assert result["confirmed"] == 5
    assert result["partial_payment"] == 2
    assert alerts == ["crypto_recheck_chain_errors", "crypto_payment_manual_review_required"]


@pytest.mark.asyncio
async def test_recheck_stays_quiet_when_everything_confirms(monkeypatch) -> None:
    alerts: list[str] = []

    async def fake_recheck(*, chain_client, batch_size: int) -> RecheckSummary:  # noqa: ARG001
        return RecheckSummary(examined=3, outcomes={"confirmed": 3})

    async def fake_alert(*, event: str, payload: dict[str, object]) -> bool:  # noqa: ARG001
        alerts.append(event)
        return True

    monkeypatch.setattr(crypto_maintenance.CryptoPaymentService, "recheck_awaiting", fake_recheck)
    monkeypatch.setattr(crypto_maintenance, "send_ops_alert", fake_alert)
    monkeypatch.setattr(crypto_maintenance, "HttpChainQueryClient", lambda: object())

    await crypto_maintenance.recheck_crypto_payments_async(batch_size=3)
    assert alerts == []


def test_beat_schedule_registers_crypto_jobs() -> None:
    schedule = crypto_maintenance.celery_app.conf.beat_schedule
    assert schedule["expire-crypto-requests-every-minute"]["schedule"] == 60.0
    assert schedule["recheck-crypto-payments-every-2-minutes"]["options"]["queue"] == "q_high"
