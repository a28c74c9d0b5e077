from __future__ import annotations

from types import SimpleNamespace

from fastapi.testclient import TestClient

from app.api.routes import internal_crypto, internal_entitlements, internal_ledger
from app.main import app


def _settings() -> SimpleNamespace:
    return SimpleNamespace(
        internal_api_token="internal-secret",
        internal_api_allowlist="127.0.0.1/32",
        internal_api_trusted_proxies="",
    )


def test_internal_ledger_append_rejects_missing_token(monkeypatch) -> None:
    monkeypatch.setattr(internal_ledger, "get_settings", _settings)

    client = TestClient(app, client=("127.0.0.1", 5210))
    response = client.post(
        "/internal/ledger/append",
        json={"user_id": 1, "entry_type": "credit", "amount": 10, "source": "admin"},
    )

    assert response.status_code == 403
    assert response.json() == {"detail": {"code": "E_FORBIDDEN"}}


def test_internal_ledger_balance_rejects_untrusted_forwarded_ip(monkeypatch) -> None:
    monkeypatch.setattr(internal_ledger, "get_settings", _settings)

    client = TestClient(app, client=("198.51.100.10", 5211))
    response = client.get(
        "/internal/ledger/users/1/balance",
        headers={"X-Internal-Token": "internal-secret", "X-Forwarded-For": "127.0.0.1"},
    )

    assert response.status_code == 403
    assert response.json() == {"detail": {"code": "E_FORBIDDEN"}}


def test_internal_crypto_verify_rejects_missing_token(monkeypatch) -> None:
    monkeypatch.setattr(internal_crypto, "get_settings", _settings)

    client = TestClient(app, client=("127.0.0.1", 5212))
    response = client.post(
        "/internal/crypto/verify",
        json={"user_id": 1, "transaction_hash": "a" * 64, "crypto_type": "bitcoin"},
    )

    assert response.status_code == 403
    assert response.json() == {"detail": {"code": "E_FORBIDDEN"}}


def test_internal_entitlements_rejects_missing_token(monkeypatch) -> None:
    monkeypatch.setattr(internal_entitlements, "get_settings", _settings)

    client = TestClient(app, client=("127.0.0.1", 5213))
    response = client.get("/internal/entitlements/users/1")

    assert response.status_code == 403
    assert response.json() == {"detail": {"code": "E_FORBIDDEN"}}
