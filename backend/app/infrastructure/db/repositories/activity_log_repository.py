"""
Activity Log Repository

Append-only audit trail of transitions and admin actions.
"""

from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.infrastructure.db.models.activity_log import ActivityLog, ActivityLogCreate
from app.infrastructure.db.repositories.base_repository import BaseRepository


class ActivityLogRepository(BaseRepository[ActivityLog, ActivityLogCreate]):

    def __init__(self, session: AsyncSession):
        super().__init__(ActivityLog, session)

    async def record(
        self,
        user_id: UUID,
        action: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> ActivityLog:
        return await self.create(
            ActivityLogCreate(user_id=user_id, action=action, details=details or {})
        )

    async def list_for_user(
        self,
        user_id: UUID,
        limit: int = 50,
    ) -> List[ActivityLog]:
        """Most recent entries first."""
        stmt = (
            select(ActivityLog)
            .where(ActivityLog.user_id == user_id)
            .order_by(ActivityLog.created_at.desc())
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
