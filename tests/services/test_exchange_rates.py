from __future__ import annotations

from decimal import Decimal
from types import SimpleNamespace

import httpx
import pytest

from app.economy.crypto.errors import ExchangeRateUnavailableError
from app.services import exchange_rates
from app.services.exchange_rates import CoinGeckoRateFeed


class _FakeRedis:
    def __init__(self, values: dict[str, bytes] | None = None) -> None:
        self.values = dict(values or {})
        self.ttls: dict[str, int] = {}

    async def get(self, key: str) -> bytes | None:
        return self.values.get(key)

    async def set(self, key: str, value: str, ex: int) -> None:
        self.values[key] = value.encode("utf-8")
        self.ttls[key] = ex


def _settings() -> SimpleNamespace:
    return SimpleNamespace(
        exchange_rate_api_url="https://rates.example.local/simple/price",
        exchange_rate_cache_ttl_seconds=60,
        external_call_timeout_seconds=1.0,
        redis_url="redis://localhost:6379/0",
    )


def _http_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.fixture(autouse=True)
def _patch_settings(monkeypatch) -> None:
    monkeypatch.setattr(exchange_rates, "get_settings", _settings)


@pytest.mark.asyncio
async def test_rate_usd_returns_fresh_cache_without_http_call() -> None:
    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(500)

    redis = _FakeRedis({"credit_ledger:rate_usd:bitcoin": b"65000.5"})
    feed = CoinGeckoRateFeed(redis_client=redis, http_client=_http_client(handler))

    assert await feed.rate_usd("bitcoin") == Decimal("65000.5")
    assert calls == []


@pytest.mark.asyncio
async def test_rate_usd_fetches_and_caches_both_copies() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.params["ids"] == "tether"
        assert request.url.params["vs_currencies"] == "usd"
        return httpx.Response(200, json={"tether": {"usd": 1.0002}})

    redis = _FakeRedis()
    feed = CoinGeckoRateFeed(redis_client=redis, http_client=_http_client(handler))

    rate = await feed.rate_usd("usdt_trc20")

    assert rate == Decimal("1.0002")
    assert redis.ttls["credit_ledger:rate_usd:tether"] == 60
    assert redis.ttls["credit_ledger:rate_usd:tether:stale"] == 24 * 60 * 60


@pytest.mark.asyncio
async def test_rate_usd_falls_back_to_stale_copy_on_upstream_failure() -> None:
    def handler(request: httpx.Request) -> httpx.Response:  # noqa: ARG001
        return httpx.Response(503)

    redis = _FakeRedis({"credit_ledger:rate_usd:solana:stale": b"142.10"})
    feed = CoinGeckoRateFeed(redis_client=redis, http_client=_http_client(handler))

    assert await feed.rate_usd("solana") == Decimal("142.10")


@pytest.mark.asyncio
async def test_rate_usd_raises_without_any_rate() -> None:
    def handler(request: httpx.Request) -> httpx.Response:  # noqa: ARG001
        return httpx.Response(200, json={"bitcoin": {}})

    feed = CoinGeckoRateFeed(redis_client=_FakeRedis(), http_client=_http_client(handler))

    with pytest.raises(ExchangeRateUnavailableError):
        await feed.rate_usd("bitcoin")
