"""Repository for ideas, tags, cross-references and chapters."""

from datetime import datetime
from typing import List, Optional

from sqlalchemy import asc, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ideabank.db.models import Chapter, ChapterAssignment, Idea, IdeaLink, IdeaTag
from ideabank.db.repositories.base import BaseRepository


class IdeaRepository(BaseRepository[Idea]):
    """Repository for idea lookups and index queries."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, Idea)

    async def get_for_update(self, idea_id: int) -> Optional[Idea]:
        """Get an idea, locking the row on backends that support it."""
        stmt = select(Idea).where(Idea.id == idea_id).with_for_update()
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_idempotency_key(self, key: str) -> Optional[Idea]:
        """Get the idea created by an earlier submission with this key."""
        stmt = select(Idea).where(Idea.idempotency_key == key)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_ideas(
        self,
        status: Optional[str] = None,
        tag: Optional[str] = None,
        chapter: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[Idea]:
        """List ideas in id order with optional filters."""
        stmt = select(Idea).order_by(asc(Idea.id))
        if status:
            stmt = stmt.where(Idea.status == status)
        if tag:
            stmt = stmt.join(IdeaTag).where(IdeaTag.tag == tag)
        if chapter:
            stmt = stmt.join(Chapter, Idea.chapter_id == Chapter.id).where(Chapter.name == chapter)
        stmt = stmt.limit(limit).offset(offset)
        result = await self.session.execute(stmt)
        return list(result.scalars().unique().all())

    async def get_by_tag(self, tag: str) -> List[Idea]:
        """Ideas carrying the given tag."""
        return await self.list_ideas(tag=tag, limit=10_000)

    async def get_by_status(self, status: str) -> List[Idea]:
        """Ideas currently in the given status."""
        return await self.list_ideas(status=status, limit=10_000)

    async def get_by_chapter_id(self, chapter_id: Optional[int]) -> List[Idea]:
        """Ideas currently assigned to a chapter (None = unassigned)."""
        stmt = select(Idea).order_by(asc(Idea.id))
        if chapter_id is None:
            stmt = stmt.where(Idea.chapter_id.is_(None))
        else:
            stmt = stmt.where(Idea.chapter_id == chapter_id)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_related(self, idea_id: int) -> List[Idea]:
        """Ideas that link to the given idea."""
        stmt = (
            select(Idea)
            .join(IdeaLink, IdeaLink.idea_id == Idea.id)
            .where(IdeaLink.target_id == idea_id)
            .order_by(asc(Idea.id))
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_existing_ids(self, ids: list[int]) -> set[int]:
        """Subset of ids that exist."""
        if not ids:
            return set()
        stmt = select(Idea.id).where(Idea.id.in_(ids))
        result = await self.session.execute(stmt)
        return set(result.scalars().all())

    async def count_by_status(self) -> dict[str, int]:
        """Number of ideas per status."""
        stmt = select(Idea.status, func.count()).group_by(Idea.status)
        result = await self.session.execute(stmt)
        return {status: count for status, count in result.all()}

    async def get_capture_dates(self, since: Optional[datetime] = None) -> List[datetime]:
        """Capture timestamps, optionally restricted to a window."""
        stmt = select(Idea.captured_at)
        if since is not None:
            stmt = stmt.where(Idea.captured_at >= since)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_all_tags(self) -> dict[str, int]:
        """Tag usage counts."""
        stmt = select(IdeaTag.tag, func.count()).group_by(IdeaTag.tag).order_by(IdeaTag.tag)
        result = await self.session.execute(stmt)
        return {tag: count for tag, count in result.all()}


class ChapterRepository(BaseRepository[Chapter]):
    """Repository for chapters and the reassignment history."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, Chapter)

    async def get_by_name(self, name: str) -> Optional[Chapter]:
        """Get chapter by name."""
        stmt = select(Chapter).where(Chapter.name == name)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_or_create(self, name: str, position: Optional[int] = None) -> Chapter:
        """Get chapter by name, creating it on first use."""
        chapter = await self.get_by_name(name)
        if chapter is None:
            chapter = await self.add(Chapter(name=name, position=position))
        return chapter

    async def list_chapters(self) -> List[Chapter]:
        """Chapters ordered by position, then name."""
        stmt = select(Chapter).order_by(
            Chapter.position.is_(None), asc(Chapter.position), asc(Chapter.name)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_history(self, idea_id: int) -> List[ChapterAssignment]:
        """All chapter assignments of an idea, oldest first."""
        stmt = (
            select(ChapterAssignment)
            .where(ChapterAssignment.idea_id == idea_id)
            .order_by(asc(ChapterAssignment.id))
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
