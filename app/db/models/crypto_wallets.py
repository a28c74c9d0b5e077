from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import BOOLEAN, BigInteger, CheckConstraint, DateTime, ForeignKey, Index, Numeric, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from app.db.models.base import Base


class CryptoWallet(Base):
    __tablename__ = "crypto_wallets"
    __table_args__ = (
        CheckConstraint(
            "crypto_type IN ('bitcoin','solana','usdt_erc20','usdt_trc20')",
            name="ck_crypto_wallets_crypto_type",
        ),
        CheckConstraint("balance >= 0", name="ck_crypto_wallets_balance_non_negative"),
        Index(
            "uq_crypto_wallets_active_user_type",
            "user_id",
            "crypto_type",
            unique=True,
            postgresql_where=text("is_active = true"),
        ),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.id"), nullable=False)
    crypto_type: Mapped[str] = mapped_column(String(16), nullable=False)
    wallet_address: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)
    public_key: Mapped[str | None] = mapped_column(Text, nullable=True)
    encrypted_private_key: Mapped[str] = mapped_column(Text, nullable=False)
    balance: Mapped[Decimal] = mapped_column(
        Numeric(30, 10),
        nullable=False,
        server_default=text("0"),
    )
    is_active: Mapped[bool] = mapped_column(BOOLEAN, nullable=False, server_default=text("true"))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
