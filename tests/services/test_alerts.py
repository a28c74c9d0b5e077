from __future__ import annotations

from datetime import datetime, timezone
from types import SimpleNamespace
from typing import Any

import httpx
import pytest

from app.services import alerts


class _Response:
    def raise_for_status(self) -> None:
        return None


class _Client:
    def __init__(self, calls: list[dict[str, Any]], *, fail: bool = False) -> None:
        self._calls = calls
        self._fail = fail

    async def __aenter__(self) -> "_Client":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:  # type: ignore[override]
        return None

    async def post(self, url: str, json: dict[str, object]) -> _Response:
        self._calls.append({"url": url, "json": json})
        if self._fail:
            raise httpx.ConnectError("delivery failed")
        return _Response()


def _settings(**overrides: object) -> SimpleNamespace:
    base = {"app_env": "test", "ops_alert_webhook_url": ""}
    base.update(overrides)
    return SimpleNamespace(**base)


def _patch_http_client(monkeypatch: pytest.MonkeyPatch, calls: list[dict[str, Any]], *, fail: bool = False) -> None:
    def factory(timeout: float) -> _Client:  # noqa: ARG001
        return _Client(calls, fail=fail)

    monkeypatch.setattr(alerts.httpx, "AsyncClient", factory)


@pytest.mark.asyncio
async def test_send_ops_alert_returns_false_when_no_webhook_configured(monkeypatch) -> None:
    monkeypatch.setattr(alerts, "get_settings", lambda: _settings())
    sent = await alerts.send_ops_alert(event="test_event", payload={"k": "v"})
    assert sent is False


@pytest.mark.asyncio
async def test_send_ops_alert_posts_to_webhook(monkeypatch) -> None:
    calls: list[dict[str, Any]] = []
    monkeypatch.setattr(
        alerts,
        "get_settings",
        lambda: _settings(ops_alert_webhook_url="https://ops.example.local/hook"),
    )
    _patch_http_client(monkeypatch, calls)

    sent = await alerts.send_ops_alert(event="ledger_balance_drift_detected", payload={"drift_count": 2})

    assert sent is True
    assert len(calls) == 1
    assert calls[0]["url"] == "https://ops.example.local/hook"
    body = calls[0]["json"]
    assert body["event"] == "ledger_balance_drift_detected"
    assert body["severity"] == "critical"
    assert body["environment"] == "test"
    assert body["payload"] == {"drift_count": 2}


@pytest.mark.asyncio
async def test_send_ops_alert_swallows_delivery_errors(monkeypatch) -> None:
    calls: list[dict[str, Any]] = []
    monkeypatch.setattr(
        alerts,
        "get_settings",
        lambda: _settings(ops_alert_webhook_url="https://ops.example.local/hook"),
    )
    _patch_http_client(monkeypatch, calls, fail=True)

    sent = await alerts.send_ops_alert(event="crypto_recheck_chain_errors", payload={})

    assert sent is False
    assert len(calls) == 1


def test_build_alert_body_defaults_unknown_events_to_warning() -> None:
    body = alerts.build_alert_body(
        event="something_new",
        payload={"a": 1},
        sent_at=datetime(2026, 3, 1, tzinfo=timezone.utc),
        app_env="prod",
    )
    assert body["severity"] == "warning"
    assert body["source"] == "credit-ledger/prod"
    assert body["sent_at"] == "2026-03-01T00:00:00+00:00"
