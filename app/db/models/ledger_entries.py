from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, CheckConstraint, DateTime, ForeignKey, Index, Integer, String, event, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, Session, mapped_column

from app.db.models.base import Base

APPEND_ONLY_ERROR = "ledger_entries is append-only"


class LedgerEntry(Base):
    __tablename__ = "ledger_entries"
    __table_args__ = (
        CheckConstraint(
            "entry_type IN ('PURCHASE','USAGE','BONUS','ADJUSTMENT','CONSUMPTION')",
            name="ck_ledger_entries_entry_type",
        ),
        CheckConstraint(
            "source IN ('PayPal','Bitcoin','Solana','USDT-ERC20','USDT-TRC20',"
            "'Voucher','Referral','Manual','System')",
            name="ck_ledger_entries_source",
        ),
        CheckConstraint(
            "(entry_type IN ('PURCHASE','BONUS') AND amount > 0) "
            "OR (entry_type IN ('USAGE','CONSUMPTION') AND amount < 0) "
            "OR entry_type = 'ADJUSTMENT'",
            name="ck_ledger_entries_amount_sign",
        ),
        Index("idx_ledger_user_created", "user_id", "created_at"),
        Index("idx_ledger_user_source", "user_id", "source"),
        Index("idx_ledger_type", "entry_type"),
        Index(
            "uq_ledger_entries_source_external_ref",
            "source",
            "external_ref",
            unique=True,
            postgresql_where=text("external_ref IS NOT NULL"),
        ),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.id"), nullable=False)
    entry_type: Mapped[str] = mapped_column(String(16), nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    balance_after: Mapped[int] = mapped_column(Integer, nullable=False)
    source: Mapped[str] = mapped_column(String(16), nullable=False)
    external_ref: Mapped[str | None] = mapped_column(String(128), nullable=True)
    metadata_: Mapped[dict[str, object]] = mapped_column(
        "metadata",
        JSONB,
        nullable=False,
        server_default=text("'{}'::jsonb"),
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


@event.listens_for(Session, "before_flush")
def _reject_ledger_mutations(session: Session, flush_context, instances) -> None:  # noqa: ARG001
    for obj in session.deleted:
        if isinstance(obj, LedgerEntry):
            raise ValueError(APPEND_ONLY_ERROR)
    for obj in session.dirty:
        if isinstance(obj, LedgerEntry) and session.is_modified(obj, include_collections=False):
            raise ValueError(APPEND_ONLY_ERROR)
