from __future__ import annotations

from datetime import datetime

from sqlalchemy import BOOLEAN, CheckConstraint, DateTime, String, text
from sqlalchemy.orm import Mapped, mapped_column

from app.db.models.base import Base


class FeatureFlag(Base):
    __tablename__ = "feature_flags"
    __table_args__ = (
        CheckConstraint(
            "min_tier IN ('free','basic','premium','enterprise')",
            name="ck_feature_flags_min_tier",
        ),
    )

    feature_name: Mapped[str] = mapped_column(String(64), primary_key=True)
    is_enabled: Mapped[bool] = mapped_column(BOOLEAN, nullable=False, server_default=text("true"))
    min_tier: Mapped[str] = mapped_column(String(16), nullable=False, server_default=text("'free'"))
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("now()"),
    )
