from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import BigInteger, CheckConstraint, DateTime, ForeignKey, Index, Integer, Numeric, String
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.db.models.base import Base


class CryptoPaymentRequest(Base):
    __tablename__ = "crypto_payment_requests"
    __table_args__ = (
        CheckConstraint(
            "status IN ('pending','awaiting_verification','confirmed','expired','failed')",
            name="ck_crypto_payment_requests_status",
        ),
        CheckConstraint(
            "crypto_type IN ('bitcoin','solana','usdt_erc20','usdt_trc20')",
            name="ck_crypto_payment_requests_crypto_type",
        ),
        CheckConstraint("amount_usd > 0", name="ck_crypto_payment_requests_amount_usd_positive"),
        CheckConstraint(
            "expected_amount_crypto > 0",
            name="ck_crypto_payment_requests_expected_amount_positive",
        ),
        CheckConstraint("credits_amount > 0", name="ck_crypto_payment_requests_credits_positive"),
        CheckConstraint(
            "status <> 'awaiting_verification' OR transaction_hash IS NOT NULL",
            name="ck_crypto_payment_requests_awaiting_has_hash",
        ),
        Index("idx_crypto_payment_requests_user_status", "user_id", "status"),
        Index("idx_crypto_payment_requests_status_expires", "status", "expires_at"),
        Index("idx_crypto_payment_requests_transaction_hash", "transaction_hash"),
    )

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True)
    reference_id: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)
    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.id"), nullable=False)
    wallet_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("crypto_wallets.id"), nullable=False)
    crypto_type: Mapped[str] = mapped_column(String(16), nullable=False)
    plan_code: Mapped[str | None] = mapped_column(String(32), nullable=True)
    amount_usd: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    discount_usd: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    credits_amount: Mapped[int] = mapped_column(Integer, nullable=False)
    rate_usd: Mapped[Decimal] = mapped_column(Numeric(20, 8), nullable=False)
    expected_amount_crypto: Mapped[Decimal] = mapped_column(Numeric(30, 10), nullable=False)
    status: Mapped[str] = mapped_column(String(24), nullable=False)
    transaction_hash: Mapped[str | None] = mapped_column(String(128), nullable=True)
    failure_reason: Mapped[str | None] = mapped_column(String(32), nullable=True)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    submitted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    verification_deadline_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    confirmed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
