"""Repository for the append-only audit log and operator alerts."""

from datetime import datetime
from typing import List, Optional

from sqlalchemy import asc, desc, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ideabank.db.models import Alert, AuditEvent
from ideabank.db.repositories.base import BaseRepository


class AuditRepository(BaseRepository[AuditEvent]):
    """Append-only audit log. Rows are never updated or deleted."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, AuditEvent)

    async def record(
        self,
        event: str,
        idea_id: Optional[int] = None,
        content_id: Optional[int] = None,
        from_state: Optional[str] = None,
        to_state: Optional[str] = None,
        detail: Optional[dict] = None,
        at: Optional[datetime] = None,
    ) -> AuditEvent:
        """Append one event."""
        row = AuditEvent(
            event=event,
            idea_id=idea_id,
            content_id=content_id,
            from_state=from_state,
            to_state=to_state,
            detail=detail,
        )
        if at is not None:
            row.created_at = at
        self.session.add(row)
        return row

    async def for_idea(self, idea_id: int) -> List[AuditEvent]:
        """Events for an idea, oldest first."""
        stmt = select(AuditEvent).where(AuditEvent.idea_id == idea_id).order_by(asc(AuditEvent.id))
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def for_content(self, content_id: int) -> List[AuditEvent]:
        """Events for a content entry, oldest first."""
        stmt = (
            select(AuditEvent)
            .where(AuditEvent.content_id == content_id)
            .order_by(asc(AuditEvent.id))
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def status_walk(self, idea_id: int) -> List[str]:
        """Sequence of statuses an idea has been in, starting with the initial one."""
        events = await self.for_idea(idea_id)
        walk: list[str] = []
        for event in events:
            if event.event == "captured" and event.to_state:
                walk.append(event.to_state)
            elif event.event == "status" and event.to_state:
                walk.append(event.to_state)
        return walk


class AlertRepository(BaseRepository[Alert]):
    """Repository for the operator alert queue."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, Alert)

    async def list_alerts(self, unacknowledged_only: bool = False, limit: int = 50) -> List[Alert]:
        """Alerts, newest first."""
        stmt = select(Alert).order_by(desc(Alert.id)).limit(limit)
        if unacknowledged_only:
            stmt = stmt.where(Alert.acknowledged_at.is_(None))
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def acknowledge(self, alert_id: int, at: datetime) -> Optional[Alert]:
        """Mark one alert as seen."""
        alert = await self.get_by_id(alert_id)
        if alert is None:
            return None
        if alert.acknowledged_at is None:
            alert.acknowledged_at = at
        return alert

    async def acknowledge_all(self, at: datetime) -> int:
        """Mark every open alert as seen, returning how many changed."""
        stmt = (
            update(Alert)
            .where(Alert.acknowledged_at.is_(None))
            .values(acknowledged_at=at)
        )
        result = await self.session.execute(stmt)
        return result.rowcount or 0
