from __future__ import annotations

from decimal import Decimal
from types import SimpleNamespace

import httpx
import pytest

from app.economy.crypto.errors import ChainQueryError
from app.services import chain_query
from app.services.chain_query import HttpChainQueryClient, parse_chain_payload

TX_HASH = "c" * 64


def _settings(**overrides: object) -> SimpleNamespace:
    base = {
        "chain_query_api_url": "https://chain.example.local/v1/",
        "chain_query_api_key": "key-1",
        "external_call_timeout_seconds": 1.0,
    }
    base.update(overrides)
    return SimpleNamespace(**base)


def _client(handler) -> HttpChainQueryClient:
    return HttpChainQueryClient(http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))


def test_parse_chain_payload_normalizes_fields() -> None:
    tx = parse_chain_payload(
        {
            "found": True,
            "confirmations": "4",
            "to_address": "TXabc",
            "amount": "10.5",
            "block_height": 123,
        }
    )
    assert tx.found is True
    assert tx.confirmations == 4
    assert tx.amount == Decimal("10.5")
    assert tx.block_height == 123


def test_parse_chain_payload_handles_missing_and_malformed() -> None:
    assert parse_chain_payload({"found": False}).found is False
    with pytest.raises(ChainQueryError):
        parse_chain_payload(["not", "a", "dict"])
    with pytest.raises(ChainQueryError):
        parse_chain_payload({"found": True, "amount": "abc"})


@pytest.mark.parametrize("amount_fields", [{}, {"amount": None}])
def test_parse_chain_payload_rejects_sighting_without_amount(amount_fields: dict[str, object]) -> None:
    with pytest.raises(ChainQueryError):
        parse_chain_payload({"found": True, "confirmations": 3, "to_address": "TXabc", **amount_fields})


@pytest.mark.asyncio
async def test_lookup_builds_network_url_and_token_asset(monkeypatch) -> None:
    monkeypatch.setattr(chain_query, "get_settings", lambda: _settings())
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            json={"found": True, "confirmations": 20, "to_address": "TXabc", "amount": "5"},
        )

    tx = await _client(handler).lookup(crypto_type="usdt_trc20", transaction_hash=TX_HASH)

    assert tx.found is True
    assert tx.confirmations == 20
    assert seen[0].url.path == f"/v1/tron/transactions/{TX_HASH}"
    assert seen[0].url.params["asset"] == "usdt"
    assert seen[0].headers["X-API-Key"] == "key-1"


@pytest.mark.asyncio
async def test_lookup_maps_404_to_not_found(monkeypatch) -> None:
    monkeypatch.setattr(chain_query, "get_settings", lambda: _settings())

    tx = await _client(lambda request: httpx.Response(404)).lookup(crypto_type="bitcoin", transaction_hash=TX_HASH)
    assert tx.found is False


@pytest.mark.asyncio
async def test_lookup_raises_on_server_error_and_missing_config(monkeypatch) -> None:
    monkeypatch.setattr(chain_query, "get_settings", lambda: _settings())
    with pytest.raises(ChainQueryError):
        await _client(lambda request: httpx.Response(502)).lookup(crypto_type="bitcoin", transaction_hash=TX_HASH)

    monkeypatch.setattr(chain_query, "get_settings", lambda: _settings(chain_query_api_url=""))
    with pytest.raises(ChainQueryError):
        await _client(lambda request: httpx.Response(200)).lookup(crypto_type="bitcoin", transaction_hash=TX_HASH)


@pytest.mark.asyncio
async def test_lookup_wraps_transport_errors(monkeypatch) -> None:
    monkeypatch.setattr(chain_query, "get_settings", lambda: _settings())

    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("boom", request=request)

    with pytest.raises(ChainQueryError):
        await _client(handler).lookup(crypto_type="solana", transaction_hash=TX_HASH)
