from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.feature_flags import FeatureFlag


class FeatureFlagsRepo:
    @staticmethod
    async def list_all(session: AsyncSession) -> list[FeatureFlag]:
        stmt = select(FeatureFlag).order_by(FeatureFlag.feature_name.asc())
        result = await session.execute(stmt)
        return list(result.scalars().all())
