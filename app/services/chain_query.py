from __future__ import annotations

from decimal import Decimal, InvalidOperation

import httpx
import structlog

from app.core.config import get_settings
from app.economy.crypto.constants import CHAIN_NETWORKS
from app.economy.crypto.errors import ChainQueryError
from app.economy.crypto.matching import ensure_crypto_type
from app.economy.crypto.types import ChainTransaction

logger = structlog.get_logger(__name__)

TOKEN_ASSETS = {"usdt_erc20": "usdt", "usdt_trc20": "usdt"}


def parse_chain_payload(payload: object) -> ChainTransaction:
    if not isinstance(payload, dict):
        raise ChainQueryError("chain query returned a non-object payload")
    if not payload.get("found"):
        return ChainTransaction(found=False, raw=payload)

    if payload.get("amount") is None:
        raise ChainQueryError("chain query reported a transaction without an amount")
    try:
        amount = Decimal(str(payload["amount"]))
        confirmations = int(payload.get("confirmations") or 0)
        block_height = int(payload["block_height"]) if payload.get("block_height") is not None else None
    except (InvalidOperation, TypeError, ValueError) as exc:
        raise ChainQueryError("chain query returned malformed fields") from exc

    to_address = payload.get("to_address")
    return ChainTransaction(
        found=True,
        confirmations=max(confirmations, 0),
        to_address=str(to_address) if to_address is not None else None,
        amount=amount,
        block_height=block_height,
        raw=payload,
    )


class HttpChainQueryClient:
    def __init__(self, *, http_client: httpx.AsyncClient | None = None) -> None:
        self._http = http_client

    async def _get(self, url: str, *, params: dict[str, str], headers: dict[str, str]) -> httpx.Response:
        if self._http is not None:
            return await self._http.get(url, params=params, headers=headers)
        timeout = get_settings().external_call_timeout_seconds
        async with httpx.AsyncClient(timeout=timeout) as client:
            return await client.get(url, params=params, headers=headers)

    async def lookup(self, *, crypto_type: str, transaction_hash: str) -> ChainTransaction:
        settings = get_settings()
        base_url = settings.chain_query_api_url.rstrip("/")
        if not base_url:
            raise ChainQueryError("chain query endpoint is not configured")

        crypto_type = ensure_crypto_type(crypto_type)
        network = CHAIN_NETWORKS[crypto_type]
        params: dict[str, str] = {}
        if crypto_type in TOKEN_ASSETS:
            params["asset"] = TOKEN_ASSETS[crypto_type]
        headers = {"X-API-Key": settings.chain_query_api_key} if settings.chain_query_api_key else {}

        try:
            response = await self._get(
                f"{base_url}/{network}/transactions/{transaction_hash}",
                params=params,
                headers=headers,
            )
        except httpx.HTTPError as exc:
            logger.warning(
                "chain_query_transport_failed",
                crypto_type=crypto_type,
                transaction_hash=transaction_hash,
                error_type=type(exc).__name__,
            )
            raise ChainQueryError from exc

        if response.status_code == 404:
            return ChainTransaction(found=False)
        if response.status_code >= 400:
            logger.warning(
                "chain_query_http_error",
                crypto_type=crypto_type,
                transaction_hash=transaction_hash,
                status_code=response.status_code,
            )
            raise ChainQueryError

        try:
            payload = response.json()
        except ValueError as exc:
            raise ChainQueryError("chain query returned invalid json") from exc
        return parse_chain_payload(payload)
