from __future__ import annotations

from decimal import Decimal, InvalidOperation

import httpx
import structlog
from redis.asyncio import Redis
from redis.exceptions import RedisError

from app.core.config import get_settings
from app.economy.crypto.constants import RATE_FEED_ASSET_IDS
from app.economy.crypto.errors import ExchangeRateUnavailableError
from app.economy.crypto.matching import ensure_crypto_type

logger = structlog.get_logger(__name__)

CACHE_KEY_PREFIX = "credit_ledger:rate_usd"
STALE_CACHE_TTL_SECONDS = 24 * 60 * 60


def _fresh_key(asset_id: str) -> str:
    return f"{CACHE_KEY_PREFIX}:{asset_id}"


def _stale_key(asset_id: str) -> str:
    return f"{CACHE_KEY_PREFIX}:{asset_id}:stale"


def _parse_rate(raw_value: object) -> Decimal | None:
    if raw_value is None:
        return None
    if isinstance(raw_value, bytes):
        raw_value = raw_value.decode("utf-8")
    try:
        rate = Decimal(str(raw_value))
    except InvalidOperation:
        return None
    return rate if rate > 0 else None


class CoinGeckoRateFeed:
    """USD rates from the CoinGecko simple-price endpoint, cached in Redis.

    A fresh copy lives for the configured TTL; a longer-lived stale copy is the
    fallback when the upstream call fails.
    """

    def __init__(
        self,
        *,
        redis_client: Redis | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._redis = redis_client
        self._http = http_client

    def _redis_client(self) -> Redis:
        if self._redis is None:
            self._redis = Redis.from_url(get_settings().redis_url)
        return self._redis

    async def _cache_get(self, key: str) -> Decimal | None:
        try:
            return _parse_rate(await self._redis_client().get(key))
        except RedisError:
            logger.warning("exchange_rate_cache_read_failed", cache_key=key)
            return None

    async def _cache_set(self, asset_id: str, rate: Decimal) -> None:
        settings = get_settings()
        try:
            client = self._redis_client()
            await client.set(_fresh_key(asset_id), str(rate), ex=settings.exchange_rate_cache_ttl_seconds)
            await client.set(_stale_key(asset_id), str(rate), ex=STALE_CACHE_TTL_SECONDS)
        except RedisError:
            logger.warning("exchange_rate_cache_write_failed", asset_id=asset_id)

    async def _fetch(self, asset_id: str) -> Decimal:
        settings = get_settings()
        params = {"ids": asset_id, "vs_currencies": "usd"}
        if self._http is not None:
            response = await self._http.get(settings.exchange_rate_api_url, params=params)
        else:
            async with httpx.AsyncClient(timeout=settings.external_call_timeout_seconds) as client:
                response = await client.get(settings.exchange_rate_api_url, params=params)
        response.raise_for_status()
        body = response.json()
        rate = _parse_rate((body.get(asset_id) or {}).get("usd")) if isinstance(body, dict) else None
        if rate is None:
            raise ExchangeRateUnavailableError
        return rate

    async def rate_usd(self, crypto_type: str) -> Decimal:
        asset_id = RATE_FEED_ASSET_IDS[ensure_crypto_type(crypto_type)]

        cached = await self._cache_get(_fresh_key(asset_id))
        if cached is not None:
            return cached

        try:
            rate = await self._fetch(asset_id)
        except (httpx.HTTPError, ValueError, ExchangeRateUnavailableError):
            stale = await self._cache_get(_stale_key(asset_id))
            if stale is None:
                logger.warning("exchange_rate_unavailable", asset_id=asset_id)
                raise ExchangeRateUnavailableError from None
            logger.warning("exchange_rate_stale_fallback", asset_id=asset_id, rate=str(stale))
            return stale

        await self._cache_set(asset_id, rate)
        return rate

    async def aclose(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None
