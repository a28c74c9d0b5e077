from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import BigInteger, CheckConstraint, DateTime, ForeignKey, Index, Integer, Numeric, String, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.db.models.base import Base


class CryptoTransaction(Base):
    __tablename__ = "crypto_transactions"
    __table_args__ = (
        CheckConstraint(
            "status IN ('pending','confirming','confirmed','failed')",
            name="ck_crypto_transactions_status",
        ),
        CheckConstraint("confirmations >= 0", name="ck_crypto_transactions_confirmations_non_negative"),
        Index("idx_crypto_transactions_wallet", "wallet_id"),
        Index("idx_crypto_transactions_payment_request", "payment_request_id"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    transaction_hash: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)
    wallet_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("crypto_wallets.id"), nullable=False)
    payment_request_id: Mapped[UUID | None] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("crypto_payment_requests.id"),
        nullable=True,
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(30, 10), nullable=False)
    amount_usd: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    confirmations: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"))
    block_height: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    raw_data: Mapped[dict[str, object]] = mapped_column(
        JSONB,
        nullable=False,
        server_default=text("'{}'::jsonb"),
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
