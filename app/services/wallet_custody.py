from __future__ import annotations

import httpx
import structlog

from app.core.config import get_settings
from app.economy.crypto.errors import WalletProvisioningError
from app.economy.crypto.types import ProvisionedWallet

logger = structlog.get_logger(__name__)


class HttpWalletProvisioner:
    """Allocates deposit wallets through the custody service.

    Private keys are encrypted by the custody service and stored as-is.
    """

    def __init__(self, *, http_client: httpx.AsyncClient | None = None) -> None:
        self._http = http_client

    async def _post(self, url: str, *, body: dict[str, object], headers: dict[str, str]) -> httpx.Response:
        if self._http is not None:
            return await self._http.post(url, json=body, headers=headers)
        timeout = get_settings().external_call_timeout_seconds
        async with httpx.AsyncClient(timeout=timeout) as client:
            return await client.post(url, json=body, headers=headers)

    async def provision(self, *, user_id: int, crypto_type: str) -> ProvisionedWallet:
        settings = get_settings()
        base_url = settings.wallet_custody_api_url.rstrip("/")
        if not base_url:
            raise WalletProvisioningError("wallet custody endpoint is not configured")

        headers = {"Authorization": f"Bearer {settings.wallet_custody_api_token}"}
        try:
            response = await self._post(
                f"{base_url}/wallets",
                body={"user_id": user_id, "crypto_type": crypto_type},
                headers=headers,
            )
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning(
                "wallet_provisioning_failed",
                user_id=user_id,
                crypto_type=crypto_type,
                error_type=type(exc).__name__,
            )
            raise WalletProvisioningError from exc

        address = payload.get("address") if isinstance(payload, dict) else None
        encrypted_key = payload.get("encrypted_private_key") if isinstance(payload, dict) else None
        if not isinstance(address, str) or not address or not isinstance(encrypted_key, str):
            raise WalletProvisioningError("custody response is missing wallet fields")

        public_key = payload.get("public_key")
        return ProvisionedWallet(
            wallet_address=address,
            public_key=public_key if isinstance(public_key, str) else None,
            encrypted_private_key=encrypted_key,
        )
