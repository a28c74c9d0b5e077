from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import BigInteger, DateTime, ForeignKey, Index, Integer, Numeric, String, text
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.db.models.base import Base


class VoucherRedemption(Base):
    __tablename__ = "voucher_redemptions"
    __table_args__ = (
        Index("idx_voucher_redemptions_voucher_user", "voucher_id", "user_id"),
        Index("idx_voucher_redemptions_user", "user_id"),
        Index(
            "uq_voucher_redemptions_applied_payment_request",
            "applied_payment_request_id",
            unique=True,
            postgresql_where=text("applied_payment_request_id IS NOT NULL"),
        ),
    )

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True)
    voucher_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("vouchers.id"), nullable=False)
    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.id"), nullable=False)
    idempotency_key: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)
    credits_awarded: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"))
    discount_type: Mapped[str | None] = mapped_column(String(32), nullable=True)
    discount_value: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    ledger_entry_id: Mapped[int | None] = mapped_column(
        BigInteger,
        ForeignKey("ledger_entries.id"),
        nullable=True,
    )
    referrer_user_id: Mapped[int | None] = mapped_column(
        BigInteger,
        ForeignKey("users.id"),
        nullable=True,
    )
    referrer_credits_awarded: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        server_default=text("0"),
    )
    applied_payment_request_id: Mapped[UUID | None] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("crypto_payment_requests.id"),
        nullable=True,
    )
    redeemed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
