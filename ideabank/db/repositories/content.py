"""Repository for derived content and the per-channel publish queue."""

from datetime import datetime
from typing import List, Optional

from sqlalchemy import and_, asc, desc, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ideabank.db.models import ContentLifecycle, DerivedContent
from ideabank.db.repositories.base import BaseRepository


class ContentRepository(BaseRepository[DerivedContent]):
    """Repository for channel drafts and queue state."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, DerivedContent)

    async def get_for_update(self, content_id: int) -> Optional[DerivedContent]:
        """Get a content entry, locking the row where supported."""
        stmt = select(DerivedContent).where(DerivedContent.id == content_id).with_for_update()
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_active_for_channel(
        self, idea_id: int, channel: str, exclude_id: Optional[int] = None
    ) -> Optional[DerivedContent]:
        """Non-failed entry for an (idea, channel) pair, if any."""
        stmt = select(DerivedContent).where(
            DerivedContent.idea_id == idea_id,
            DerivedContent.channel == channel,
            DerivedContent.lifecycle != ContentLifecycle.FAILED.value,
        )
        if exclude_id is not None:
            stmt = stmt.where(DerivedContent.id != exclude_id)
        result = await self.session.execute(stmt.limit(1))
        return result.scalar_one_or_none()

    async def get_by_idea(self, idea_id: int) -> List[DerivedContent]:
        """All entries of an idea, oldest first."""
        stmt = (
            select(DerivedContent)
            .where(DerivedContent.idea_id == idea_id)
            .order_by(asc(DerivedContent.id))
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_content(
        self,
        channel: Optional[str] = None,
        lifecycle: Optional[str] = None,
        limit: int = 100,
    ) -> List[DerivedContent]:
        """List entries, newest first, with optional filters."""
        stmt = select(DerivedContent).order_by(desc(DerivedContent.id)).limit(limit)
        if channel:
            stmt = stmt.where(DerivedContent.channel == channel)
        if lifecycle:
            stmt = stmt.where(DerivedContent.lifecycle == lifecycle)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def next_queued(self, channel: str, now: datetime) -> Optional[DerivedContent]:
        """FIFO head of a channel's queue among entries that are due."""
        stmt = (
            select(DerivedContent)
            .where(
                DerivedContent.channel == channel,
                DerivedContent.lifecycle == ContentLifecycle.QUEUED.value,
                DerivedContent.publish_started_at.is_(None),
                or_(
                    DerivedContent.scheduled_at.is_(None),
                    DerivedContent.scheduled_at <= now,
                ),
            )
            .order_by(asc(DerivedContent.enqueued_at), asc(DerivedContent.id))
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def last_dequeued_at(self, channel: str) -> Optional[datetime]:
        """Most recent dequeue time for a channel."""
        stmt = select(func.max(DerivedContent.publish_started_at)).where(
            DerivedContent.channel == channel
        )
        result = await self.session.execute(stmt)
        return result.scalar()

    async def count_dequeued_since(self, channel: str, since: datetime) -> int:
        """Dequeues for a channel since the given time."""
        stmt = select(func.count()).select_from(DerivedContent).where(
            and_(
                DerivedContent.channel == channel,
                DerivedContent.publish_started_at >= since,
            )
        )
        result = await self.session.execute(stmt)
        return result.scalar() or 0

    async def count_queued(self, channel: str) -> int:
        """Entries waiting in a channel's queue."""
        stmt = select(func.count()).select_from(DerivedContent).where(
            DerivedContent.channel == channel,
            DerivedContent.lifecycle == ContentLifecycle.QUEUED.value,
            DerivedContent.publish_started_at.is_(None),
        )
        result = await self.session.execute(stmt)
        return result.scalar() or 0

    async def get_in_flight(self) -> List[DerivedContent]:
        """Entries dequeued but never settled (publish interrupted)."""
        stmt = select(DerivedContent).where(
            DerivedContent.lifecycle == ContentLifecycle.QUEUED.value,
            DerivedContent.publish_started_at.is_not(None),
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
