from __future__ import annotations

from datetime import datetime
from decimal import Decimal

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.crypto_wallets import CryptoWallet
from app.db.repo.crypto_wallets_repo import CryptoWalletsRepo
from app.economy.crypto.types import ProvisionedWallet, WalletProvisioner

logger = structlog.get_logger(__name__)


async def prepare_wallet(
    session: AsyncSession,
    *,
    user_id: int,
    crypto_type: str,
    provisioner: WalletProvisioner,
) -> ProvisionedWallet | None:
    wallet = await CryptoWalletsRepo.get_active_for_user(
        session,
        user_id=user_id,
        crypto_type=crypto_type,
    )
    if wallet is not None:
        return None
    return await provisioner.provision(user_id=user_id, crypto_type=crypto_type)


async def get_or_create_wallet(
    session: AsyncSession,
    *,
    user_id: int,
    crypto_type: str,
    provisioned: ProvisionedWallet | None,
    provisioner: WalletProvisioner,
    now_utc: datetime,
) -> CryptoWallet:
    """Return the active wallet, storing a pre-provisioned one when the user has none.

    Must run under the user row lock so two requests cannot both insert a wallet.
    """
    wallet = await CryptoWalletsRepo.get_active_for_user(
        session,
        user_id=user_id,
        crypto_type=crypto_type,
    )
    if wallet is not None:
        if provisioned is not None:
            logger.info(
                "crypto_wallet_provisioned_unused",
                user_id=user_id,
                crypto_type=crypto_type,
                wallet_address=provisioned.wallet_address,
            )
        return wallet

    if provisioned is None:
        provisioned = await provisioner.provision(user_id=user_id, crypto_type=crypto_type)

    wallet = await CryptoWalletsRepo.create(
        session,
        wallet=CryptoWallet(
            user_id=user_id,
            crypto_type=crypto_type,
            wallet_address=provisioned.wallet_address,
            public_key=provisioned.public_key,
            encrypted_private_key=provisioned.encrypted_private_key,
            balance=Decimal("0"),
            is_active=True,
            created_at=now_utc,
        ),
    )
    logger.info(
        "crypto_wallet_created",
        user_id=user_id,
        crypto_type=crypto_type,
        wallet_id=wallet.id,
    )
    return wallet
