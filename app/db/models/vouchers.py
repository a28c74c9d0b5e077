from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    BOOLEAN,
    BigInteger,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.db.models.base import Base


class Voucher(Base):
    __tablename__ = "vouchers"
    __table_args__ = (
        CheckConstraint("voucher_type IN ('discount','referral')", name="ck_vouchers_type"),
        CheckConstraint(
            "value_type IN ('credits','percentage_discount','dollar_discount')",
            name="ck_vouchers_value_type",
        ),
        CheckConstraint("value_amount > 0", name="ck_vouchers_value_amount_positive"),
        CheckConstraint(
            "value_type <> 'percentage_discount' OR value_amount <= 100",
            name="ck_vouchers_percentage_le_100",
        ),
        CheckConstraint("max_uses IS NULL OR max_uses > 0", name="ck_vouchers_max_uses_positive"),
        CheckConstraint("per_user_limit >= 1", name="ck_vouchers_per_user_limit_positive"),
        CheckConstraint("total_uses >= 0", name="ck_vouchers_total_uses_non_negative"),
        CheckConstraint(
            "max_uses IS NULL OR total_uses <= max_uses",
            name="ck_vouchers_total_uses_le_max",
        ),
        CheckConstraint(
            "voucher_type <> 'referral' OR referral_source_user_id IS NOT NULL",
            name="ck_vouchers_referral_source_present",
        ),
        Index("idx_vouchers_referral_source", "referral_source_user_id"),
        Index("idx_vouchers_created_at", "created_at"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    code: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    voucher_type: Mapped[str] = mapped_column(String(16), nullable=False)
    value_type: Mapped[str] = mapped_column(String(32), nullable=False)
    value_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    max_uses: Mapped[int | None] = mapped_column(Integer, nullable=True)
    per_user_limit: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("1"))
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    tier_restriction: Mapped[str | None] = mapped_column(String(16), nullable=True)
    referral_source_user_id: Mapped[int | None] = mapped_column(
        BigInteger,
        ForeignKey("users.id"),
        nullable=True,
    )
    is_active: Mapped[bool] = mapped_column(BOOLEAN, nullable=False, server_default=text("true"))
    total_uses: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"))
    created_by: Mapped[str] = mapped_column(String(64), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
