"""Single-writer coordinator for idea state.

Every mutation of an idea's core fields (tags, cross-references, chapter,
status) and of content lifecycle goes through one IdeaCoordinator. Writes
are serialized by one asyncio.Lock and each runs in exactly one database
transaction, so a rejected command leaves nothing behind.

Channel workers never touch rows directly; they call claim_next /
record_attempt / mark_posted / mark_failed and do their network I/O outside
the lock.

Usage:
    coordinator = IdeaCoordinator(session_factory, load_channel_configs())
    result = await coordinator.capture("Stop trying to get rid of ...")
    await coordinator.organize(result.idea_id, "Chapter 1")
"""

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable, Iterable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional, TypeVar

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ideabank.channels.base import ChannelConfig, PublishReceipt
from ideabank.db.models import (
    Alert,
    AuditEvent,
    CaptureSource,
    Chapter,
    ChapterAssignment,
    ContentLifecycle,
    DerivedContent,
    Idea,
    IdeaLink,
    IdeaStatus,
    IdeaTag,
    utcnow,
)
from ideabank.db.repositories import (
    AlertRepository,
    AuditRepository,
    ChapterRepository,
    ContentRepository,
    IdeaRepository,
)
from ideabank.exceptions import (
    ArchivedIdeaError,
    CrossReferenceError,
    DuplicateChannelPublishError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from ideabank.services.allocator import IdAllocator
from ideabank.services.lifecycle import all_settled, check_transition, parse_status

logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_TAG_LENGTH = 100
DRAFTABLE = (IdeaStatus.ORGANIZING, IdeaStatus.IN_CREATION)


@dataclass
class CaptureResult:
    """Outcome of a capture submission."""

    idea_id: int
    created: bool


def as_naive_utc(value: datetime) -> datetime:
    """Naive UTC, as stored. Naive input is taken to be UTC already."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def normalize_tag(raw: str) -> str:
    """Lowercase, trimmed, without a leading '#'."""
    tag = str(raw).strip().lstrip("#").strip().lower()
    if not tag:
        raise ValidationError("Tags must not be empty")
    if len(tag) > MAX_TAG_LENGTH:
        raise ValidationError(f"Tag too long (max {MAX_TAG_LENGTH} characters): {tag[:20]}...")
    return tag


def normalize_tags(tags: Iterable[str]) -> list[str]:
    """Normalize and deduplicate preserving order."""
    return list(dict.fromkeys(normalize_tag(t) for t in tags))


class IdeaCoordinator:
    """Owns all writes to ideas, content entries, alerts and the audit log."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        channels: dict[str, ChannelConfig],
        allocator: Optional[IdAllocator] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._session_factory = session_factory
        self.channels = channels
        self.allocator = allocator or IdAllocator(session_factory)
        self.clock = clock
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[AsyncSession]:
        async with self._session_factory() as session:
            async with session.begin():
                yield session

    async def _write(self, operation: Callable[[AsyncSession], Awaitable[T]]) -> T:
        """Run one write command serialized and in one transaction."""
        async with self._lock:
            async with self._transaction() as session:
                return await operation(session)

    async def read(self, operation: Callable[[AsyncSession], Awaitable[T]]) -> T:
        """Run a query in its own session (no lock)."""
        async with self._session_factory() as session:
            return await operation(session)

    def channel_config(self, channel: str) -> ChannelConfig:
        """Configuration of a known channel."""
        config = self.channels.get(channel.strip().lower())
        if config is None:
            raise ValidationError(
                f"Unknown channel '{channel}'. Known: {', '.join(sorted(self.channels))}"
            )
        return config

    async def _load_idea(self, session: AsyncSession, idea_id: int, mutable: bool = True) -> Idea:
        idea = await IdeaRepository(session).get_for_update(idea_id)
        if idea is None:
            raise NotFoundError(f"Idea {idea_id} not found")
        if mutable and idea.is_archived:
            raise ArchivedIdeaError(idea_id)
        return idea

    async def _load_content(self, session: AsyncSession, content_id: int) -> DerivedContent:
        content = await ContentRepository(session).get_for_update(content_id)
        if content is None:
            raise NotFoundError(f"Content {content_id} not found")
        return content

    async def _audit(self, session: AsyncSession, event: str, **kwargs: Any) -> AuditEvent:
        return await AuditRepository(session).record(event, at=self.clock(), **kwargs)

    async def _set_status(
        self, session: AsyncSession, idea: Idea, target: IdeaStatus, **detail: Any
    ) -> None:
        current = check_transition(idea, target)
        now = self.clock()
        idea.status = target.value
        idea.updated_at = now
        if target == IdeaStatus.ARCHIVED:
            idea.archived_at = now
        await self._audit(
            session,
            "status",
            idea_id=idea.id,
            from_state=current.value,
            to_state=target.value,
            detail=detail or None,
        )
        logger.info(f"Idea {idea.id}: {current.value} -> {target.value}")

    async def _maybe_complete(self, session: AsyncSession, idea: Idea) -> None:
        """Move an idea to Used once every entry is posted or waived."""
        if idea.status == IdeaStatus.IN_CREATION.value and idea.contents and all_settled(idea):
            await self._set_status(session, idea, IdeaStatus.USED, reason="all content settled")

    # ------------------------------------------------------------------
    # Capture
    # ------------------------------------------------------------------

    async def capture(
        self,
        quote: str,
        source: CaptureSource | str = CaptureSource.HUMAN,
        captured_at: Optional[datetime] = None,
        tags: Optional[Iterable[str]] = None,
        idempotency_key: Optional[str] = None,
    ) -> CaptureResult:
        """Record a raw thought and allocate its id.

        A submission repeating an earlier idempotency key returns the
        existing id and changes nothing.
        """
        quote = (quote or "").strip()
        if not quote:
            raise ValidationError("Quote must not be empty")
        try:
            source = CaptureSource(source)
        except ValueError:
            raise ValidationError(f"Unknown capture source: {source}") from None
        if captured_at is not None:
            captured_at = as_naive_utc(captured_at)
        normalized_tags = normalize_tags(tags or [])
        key = idempotency_key.strip() if idempotency_key else None

        async with self._lock:
            if key:
                existing = await self.read(
                    lambda session: IdeaRepository(session).get_by_idempotency_key(key)
                )
                if existing is not None:
                    logger.info(f"Capture replay for key '{key}', returning idea {existing.id}")
                    return CaptureResult(idea_id=existing.id, created=False)

            idea_id = await self.allocator.allocate()
            now = self.clock()
            try:
                async with self._transaction() as session:
                    idea = Idea(
                        id=idea_id,
                        quote=quote,
                        source=source.value,
                        captured_at=captured_at or now,
                        status=IdeaStatus.NEW.value,
                        idempotency_key=key,
                        created_at=now,
                        updated_at=now,
                    )
                    idea.tag_rows = [IdeaTag(tag=t) for t in normalized_tags]
                    session.add(idea)
                    await self._audit(
                        session,
                        "captured",
                        idea_id=idea_id,
                        to_state=IdeaStatus.NEW.value,
                        detail={"source": source.value, "tags": normalized_tags},
                    )
            except IntegrityError:
                if not key:
                    raise
                # Another process stored the same key first
                existing = await self.read(
                    lambda session: IdeaRepository(session).get_by_idempotency_key(key)
                )
                if existing is None:
                    raise
                return CaptureResult(idea_id=existing.id, created=False)

        logger.info(f"Captured idea {idea_id} ({source.value})")
        return CaptureResult(idea_id=idea_id, created=True)

    async def refine(self, idea_id: int, text: str) -> Idea:
        """Store a refined wording next to the original quote."""
        text = (text or "").strip()
        if not text:
            raise ValidationError("Refined quote must not be empty")

        async def op(session: AsyncSession) -> Idea:
            idea = await self._load_idea(session, idea_id)
            previous = idea.refined_quote
            idea.refined_quote = text
            idea.updated_at = self.clock()
            await self._audit(session, "refined", idea_id=idea_id, detail={"previous": previous})
            return idea

        return await self._write(op)

    # ------------------------------------------------------------------
    # Tags / cross-references
    # ------------------------------------------------------------------

    async def attach_tags(self, idea_id: int, tags: Iterable[str]) -> list[str]:
        """Union tags into an idea's tag set; returns the resulting set."""
        normalized = normalize_tags(tags)

        async def op(session: AsyncSession) -> list[str]:
            idea = await self._load_idea(session, idea_id)
            existing = {row.tag for row in idea.tag_rows}
            added = [t for t in normalized if t not in existing]
            for tag in added:
                idea.tag_rows.append(IdeaTag(tag=tag))
            if added:
                idea.updated_at = self.clock()
                await self._audit(session, "tags", idea_id=idea_id, detail={"added": added})
            return idea.tags

        return await self._write(op)

    async def link(self, a: int, b: int) -> list[int]:
        """Link two ideas in both directions; returns a's cross-references."""
        if a == b:
            raise ValidationError(f"Idea {a} cannot reference itself")

        async def op(session: AsyncSession) -> list[int]:
            existing = await IdeaRepository(session).get_existing_ids([a, b])
            missing = sorted({a, b} - existing)
            if missing:
                raise CrossReferenceError(f"Cannot link {a} <-> {b}: unknown idea id(s) {missing}")

            idea_a = await self._load_idea(session, a)
            idea_b = await self._load_idea(session, b)
            changed = False
            if b not in {row.target_id for row in idea_a.link_rows}:
                idea_a.link_rows.append(IdeaLink(target_id=b, created_at=self.clock()))
                changed = True
            if a not in {row.target_id for row in idea_b.link_rows}:
                idea_b.link_rows.append(IdeaLink(target_id=a, created_at=self.clock()))
                changed = True
            if changed:
                await self._audit(session, "link", idea_id=a, detail={"target": b})
                await self._audit(session, "link", idea_id=b, detail={"target": a})
                logger.info(f"Linked ideas {a} <-> {b}")
            return idea_a.cross_refs

        return await self._write(op)

    # ------------------------------------------------------------------
    # Chapters
    # ------------------------------------------------------------------

    async def _assign(
        self, session: AsyncSession, idea: Idea, chapter: str, position: Optional[int] = None
    ) -> None:
        name = (chapter or "").strip()
        if not name:
            raise ValidationError("Chapter name must not be empty")

        target = await ChapterRepository(session).get_or_create(name, position)
        if idea.chapter_id == target.id:
            return

        previous_id = idea.chapter_id
        previous_name = idea.chapter
        now = self.clock()
        idea.chapter_ref = target
        idea.chapter_id = target.id
        idea.updated_at = now
        session.add(
            ChapterAssignment(
                idea_id=idea.id,
                chapter_id=target.id,
                previous_chapter_id=previous_id,
                assigned_at=now,
            )
        )
        await self._audit(
            session, "chapter", idea_id=idea.id, from_state=previous_name, to_state=name
        )

    async def assign_chapter(self, idea_id: int, chapter: str, position: Optional[int] = None) -> Idea:
        """Point an idea at a chapter; the previous pointer goes to history."""

        async def op(session: AsyncSession) -> Idea:
            idea = await self._load_idea(session, idea_id)
            await self._assign(session, idea, chapter, position)
            return idea

        return await self._write(op)

    # ------------------------------------------------------------------
    # Status commands
    # ------------------------------------------------------------------

    async def organize(self, idea_id: int, chapter: Optional[str] = None) -> Idea:
        """Assign a chapter (optional if one is set) and move to Organizing."""

        async def op(session: AsyncSession) -> Idea:
            idea = await self._load_idea(session, idea_id)
            if chapter:
                await self._assign(session, idea, chapter)
            await self._set_status(session, idea, IdeaStatus.ORGANIZING)
            return idea

        return await self._write(op)

    async def hold(self, idea_id: int, reason: Optional[str] = None) -> Idea:
        """Park an idea that needs clarification."""

        async def op(session: AsyncSession) -> Idea:
            idea = await self._load_idea(session, idea_id)
            await self._set_status(session, idea, IdeaStatus.ON_HOLD, reason=reason)
            idea.hold_reason = reason
            return idea

        return await self._write(op)

    async def release(self, idea_id: int) -> Idea:
        """Return an on-hold idea to New."""

        async def op(session: AsyncSession) -> Idea:
            idea = await self._load_idea(session, idea_id)
            await self._set_status(session, idea, IdeaStatus.NEW)
            idea.hold_reason = None
            return idea

        return await self._write(op)

    async def reject(self, idea_id: int, reason: Optional[str] = None) -> Idea:
        """Send an idea in creation back to Organizing (content rejected).

        Drafted entries and queued entries whose publish has not begun are
        withdrawn: failed and waived, so the channel slot frees up for a new
        draft and they no longer hold the idea back from Used. An entry
        already being published is left to settle on its own.
        """

        async def op(session: AsyncSession) -> Idea:
            idea = await self._load_idea(session, idea_id)
            await self._set_status(session, idea, IdeaStatus.ORGANIZING, reason=reason)
            for content in idea.contents:
                if content.lifecycle == ContentLifecycle.DRAFTED.value or (
                    content.lifecycle == ContentLifecycle.QUEUED.value
                    and content.publish_started_at is None
                ):
                    await self._withdraw(session, content, reason)
            return idea

        return await self._write(op)

    async def _withdraw(
        self, session: AsyncSession, content: DerivedContent, reason: Optional[str]
    ) -> None:
        previous = content.lifecycle
        content.lifecycle = ContentLifecycle.FAILED.value
        content.waived = True
        content.last_error = f"withdrawn: {reason}" if reason else "withdrawn: content rejected"
        await self._audit(
            session,
            "withdrawn",
            idea_id=content.idea_id,
            content_id=content.id,
            from_state=previous,
            to_state=ContentLifecycle.FAILED.value,
            detail={"channel": content.channel, "reason": reason},
        )

    async def seal(self, idea_id: int) -> Idea:
        """Archive a used idea, freezing it."""

        async def op(session: AsyncSession) -> Idea:
            idea = await self._load_idea(session, idea_id)
            await self._set_status(session, idea, IdeaStatus.ARCHIVED)
            return idea

        return await self._write(op)

    # ------------------------------------------------------------------
    # Drafts
    # ------------------------------------------------------------------

    async def _add_draft(
        self,
        session: AsyncSession,
        idea: Idea,
        config: ChannelConfig,
        body: str,
        retry_of_id: Optional[int] = None,
    ) -> DerivedContent:
        status = IdeaStatus(idea.status)
        if status not in DRAFTABLE:
            raise InvalidTransitionError(
                f"Idea {idea.id} is {status.value}; drafts need an organizing idea",
                current=status.value,
                target=IdeaStatus.IN_CREATION.value,
            )
        active = await ContentRepository(session).get_active_for_channel(idea.id, config.name)
        if active is not None:
            raise DuplicateChannelPublishError(idea.id, config.name)

        content = DerivedContent(
            channel=config.name,
            body=body,
            lifecycle=ContentLifecycle.DRAFTED.value,
            waived=False,
            attempts=0,
            retry_of_id=retry_of_id,
            created_at=self.clock(),
        )
        idea.contents.append(content)
        await session.flush()
        await self._audit(
            session,
            "draft",
            idea_id=idea.id,
            content_id=content.id,
            to_state=ContentLifecycle.DRAFTED.value,
            detail={"channel": config.name, "retry_of": retry_of_id},
        )
        if status == IdeaStatus.ORGANIZING:
            await self._set_status(session, idea, IdeaStatus.IN_CREATION, content_id=content.id)
        return content

    async def draft(self, idea_id: int, channel: str, body: str) -> DerivedContent:
        """Record a channel draft produced for an idea."""
        config = self.channel_config(channel)
        body = (body or "").strip()
        if not body:
            raise ValidationError("Draft body must not be empty")
        if config.char_limit and len(body) > config.char_limit:
            raise ValidationError(
                f"Draft for {config.name} is {len(body)} characters (limit {config.char_limit})"
            )

        async def op(session: AsyncSession) -> DerivedContent:
            idea = await self._load_idea(session, idea_id)
            return await self._add_draft(session, idea, config, body)

        return await self._write(op)

    async def redraft(self, content_id: int) -> DerivedContent:
        """Create a fresh attempt from a failed entry; history is untouched."""

        async def op(session: AsyncSession) -> DerivedContent:
            failed = await self._load_content(session, content_id)
            if failed.lifecycle != ContentLifecycle.FAILED.value:
                raise InvalidTransitionError(
                    f"Content {content_id} is {failed.lifecycle}; only failed entries can be redrafted",
                    current=failed.lifecycle,
                    target=ContentLifecycle.DRAFTED.value,
                )
            idea = await self._load_idea(session, failed.idea_id)
            config = self.channel_config(failed.channel)
            return await self._add_draft(session, idea, config, failed.body, retry_of_id=failed.id)

        return await self._write(op)

    async def waive(self, content_id: int, reason: Optional[str] = None) -> DerivedContent:
        """Decide not to publish a drafted or failed entry."""

        async def op(session: AsyncSession) -> DerivedContent:
            content = await self._load_content(session, content_id)
            if content.lifecycle not in (ContentLifecycle.DRAFTED.value, ContentLifecycle.FAILED.value):
                raise InvalidTransitionError(
                    f"Content {content_id} is {content.lifecycle}; only drafted or failed entries can be waived",
                    current=content.lifecycle,
                )
            idea = await self._load_idea(session, content.idea_id)
            if content.waived:
                return content
            content.waived = True
            await self._audit(
                session,
                "waived",
                idea_id=idea.id,
                content_id=content.id,
                from_state=content.lifecycle,
                detail={"reason": reason},
            )
            await self._maybe_complete(session, idea)
            return content

        return await self._write(op)

    # ------------------------------------------------------------------
    # Queue (called by the publisher)
    # ------------------------------------------------------------------

    async def enqueue(self, content_id: int, at: Optional[datetime] = None) -> DerivedContent:
        """Put a drafted entry on its channel's queue.

        Raises:
            DuplicateChannelPublishError: the entry, or another non-failed
                entry for the same (idea, channel), is already queued or posted.
        """

        async def op(session: AsyncSession) -> DerivedContent:
            content = await self._load_content(session, content_id)
            if content.lifecycle in (ContentLifecycle.QUEUED.value, ContentLifecycle.POSTED.value):
                raise DuplicateChannelPublishError(content.idea_id, content.channel)
            if content.lifecycle == ContentLifecycle.FAILED.value:
                raise InvalidTransitionError(
                    f"Content {content_id} failed; create a new attempt with redraft",
                    current=content.lifecycle,
                    target=ContentLifecycle.QUEUED.value,
                )
            if content.waived:
                raise InvalidTransitionError(
                    f"Content {content_id} was waived", current=content.lifecycle
                )
            other = await ContentRepository(session).get_active_for_channel(
                content.idea_id, content.channel, exclude_id=content.id
            )
            if other is not None:
                raise DuplicateChannelPublishError(content.idea_id, content.channel)

            idea = await self._load_idea(session, content.idea_id)
            if idea.status != IdeaStatus.IN_CREATION.value:
                raise InvalidTransitionError(
                    f"Idea {idea.id} is {idea.status}; only ideas in creation can publish",
                    current=idea.status,
                )

            now = self.clock()
            content.lifecycle = ContentLifecycle.QUEUED.value
            content.enqueued_at = now
            content.scheduled_at = as_naive_utc(at) if at else None
            await self._audit(
                session,
                "enqueued",
                idea_id=content.idea_id,
                content_id=content.id,
                from_state=ContentLifecycle.DRAFTED.value,
                to_state=ContentLifecycle.QUEUED.value,
                detail={"scheduled_at": at.isoformat() if at else None},
            )
            return content

        return await self._write(op)

    async def cancel(self, content_id: int) -> DerivedContent:
        """Take a queued entry off the queue before its publish begins."""

        async def op(session: AsyncSession) -> DerivedContent:
            content = await self._load_content(session, content_id)
            if content.lifecycle != ContentLifecycle.QUEUED.value:
                raise InvalidTransitionError(
                    f"Content {content_id} is {content.lifecycle}, not queued",
                    current=content.lifecycle,
                    target=ContentLifecycle.DRAFTED.value,
                )
            if content.publish_started_at is not None:
                raise InvalidTransitionError(
                    f"Content {content_id} is already being published and cannot be canceled",
                    current=content.lifecycle,
                    target=ContentLifecycle.DRAFTED.value,
                )
            content.lifecycle = ContentLifecycle.DRAFTED.value
            content.enqueued_at = None
            content.scheduled_at = None
            await self._audit(
                session,
                "canceled",
                idea_id=content.idea_id,
                content_id=content.id,
                from_state=ContentLifecycle.QUEUED.value,
                to_state=ContentLifecycle.DRAFTED.value,
            )
            return content

        return await self._write(op)

    async def claim_next(self, channel: str, now: Optional[datetime] = None) -> Optional[DerivedContent]:
        """Dequeue the channel's FIFO head if the rate limits allow it.

        After this returns an entry it can no longer be canceled.
        """
        config = self.channel_config(channel)

        async def op(session: AsyncSession) -> Optional[DerivedContent]:
            current = now or self.clock()
            repo = ContentRepository(session)

            last = await repo.last_dequeued_at(config.name)
            if last is not None and config.window_minutes > 0 and current - last < config.window:
                return None
            if config.daily_cap is not None:
                day_start = current.replace(hour=0, minute=0, second=0, microsecond=0)
                if await repo.count_dequeued_since(config.name, day_start) >= config.daily_cap:
                    return None

            content = await repo.next_queued(config.name, current)
            if content is None:
                return None
            content.publish_started_at = current
            await self._audit(
                session,
                "dequeued",
                idea_id=content.idea_id,
                content_id=content.id,
                from_state=ContentLifecycle.QUEUED.value,
                to_state=ContentLifecycle.QUEUED.value,
                detail={"channel": config.name, "publish_started_at": current.isoformat()},
            )
            return content

        return await self._write(op)

    async def record_attempt(self, content_id: int, attempt: int, error: str) -> None:
        """Log one failed publish attempt."""

        async def op(session: AsyncSession) -> None:
            content = await self._load_content(session, content_id)
            content.attempts = attempt
            content.last_error = error
            await self._audit(
                session,
                "attempt",
                idea_id=content.idea_id,
                content_id=content.id,
                detail={"attempt": attempt, "error": error},
            )

        await self._write(op)

    async def mark_posted(
        self, content_id: int, receipt: Optional[PublishReceipt] = None, attempts: int = 1
    ) -> DerivedContent:
        """Settle an entry as posted; completes the idea when nothing is pending."""
        receipt = receipt or PublishReceipt()

        async def op(session: AsyncSession) -> DerivedContent:
            content = await self._load_content(session, content_id)
            if content.lifecycle != ContentLifecycle.QUEUED.value:
                raise InvalidTransitionError(
                    f"Content {content_id} is {content.lifecycle}, not queued",
                    current=content.lifecycle,
                    target=ContentLifecycle.POSTED.value,
                )
            content.lifecycle = ContentLifecycle.POSTED.value
            content.posted_at = self.clock()
            content.attempts = attempts
            content.external_ref = receipt.external_ref
            content.last_error = None
            await self._audit(
                session,
                "posted",
                idea_id=content.idea_id,
                content_id=content.id,
                from_state=ContentLifecycle.QUEUED.value,
                to_state=ContentLifecycle.POSTED.value,
                detail={"attempts": attempts, "external_ref": receipt.external_ref, "url": receipt.url},
            )
            idea = await self._load_idea(session, content.idea_id, mutable=False)
            await self._maybe_complete(session, idea)
            return content

        return await self._write(op)

    async def mark_failed(self, content_id: int, error: str, attempts: int) -> Alert:
        """Settle an entry as failed and raise an operator alert."""

        async def op(session: AsyncSession) -> Alert:
            content = await self._load_content(session, content_id)
            if content.lifecycle != ContentLifecycle.QUEUED.value:
                raise InvalidTransitionError(
                    f"Content {content_id} is {content.lifecycle}, not queued",
                    current=content.lifecycle,
                    target=ContentLifecycle.FAILED.value,
                )
            content.lifecycle = ContentLifecycle.FAILED.value
            content.attempts = attempts
            content.last_error = error
            await self._audit(
                session,
                "failed",
                idea_id=content.idea_id,
                content_id=content.id,
                from_state=ContentLifecycle.QUEUED.value,
                to_state=ContentLifecycle.FAILED.value,
                detail={"attempts": attempts, "error": error},
            )
            alert = Alert(
                idea_id=content.idea_id,
                content_id=content.id,
                channel=content.channel,
                message=(
                    f"Publishing content {content.id} (idea {content.idea_id}) to "
                    f"{content.channel} failed after {attempts} attempt(s): {error}"
                ),
                created_at=self.clock(),
            )
            await AlertRepository(session).add(alert)
            logger.error(alert.message)
            return alert

        return await self._write(op)

    async def recover_interrupted(self) -> list[Alert]:
        """Fail entries whose publish started but never settled (process died).

        They are not retried automatically: the post may have gone out.
        """
        stuck = await self.read(lambda session: ContentRepository(session).get_in_flight())
        alerts = []
        for content in stuck:
            alerts.append(
                await self.mark_failed(
                    content.id,
                    "publish interrupted before a result was recorded; verify on the channel",
                    attempts=max(content.attempts, 1),
                )
            )
        return alerts

    # ------------------------------------------------------------------
    # Archive
    # ------------------------------------------------------------------

    async def archive_sweep(self) -> list[int]:
        """Seal every Used idea whose entries are all posted or waived."""

        async def op(session: AsyncSession) -> list[int]:
            sealed = []
            for idea in await IdeaRepository(session).get_by_status(IdeaStatus.USED.value):
                if all_settled(idea):
                    await self._set_status(session, idea, IdeaStatus.ARCHIVED, reason="archive sweep")
                    sealed.append(idea.id)
            return sealed

        sealed = await self._write(op)
        if sealed:
            logger.info(f"Archive sweep sealed {len(sealed)} ideas: {sealed}")
        return sealed

    # ------------------------------------------------------------------
    # Alerts
    # ------------------------------------------------------------------

    async def acknowledge_alert(self, alert_id: int) -> Alert:
        async def op(session: AsyncSession) -> Alert:
            alert = await AlertRepository(session).acknowledge(alert_id, self.clock())
            if alert is None:
                raise NotFoundError(f"Alert {alert_id} not found")
            return alert

        return await self._write(op)

    async def acknowledge_all_alerts(self) -> int:
        return await self._write(lambda session: AlertRepository(session).acknowledge_all(self.clock()))

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_idea(self, idea_id: int) -> Idea:
        async def op(session: AsyncSession) -> Idea:
            idea = await IdeaRepository(session).get_by_id(idea_id)
            if idea is None:
                raise NotFoundError(f"Idea {idea_id} not found")
            return idea

        return await self.read(op)

    async def list_ideas(
        self,
        status: Optional[str] = None,
        tag: Optional[str] = None,
        chapter: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[Idea]:
        tag = normalize_tag(tag) if tag else None
        if status:
            try:
                status = parse_status(status).value
            except ValueError as e:
                raise ValidationError(str(e)) from None
        return await self.read(
            lambda session: IdeaRepository(session).list_ideas(
                status=status, tag=tag, chapter=chapter, limit=limit, offset=offset
            )
        )

    async def query_by_tag(self, tag: str) -> list[Idea]:
        normalized = normalize_tag(tag)
        return await self.read(lambda session: IdeaRepository(session).get_by_tag(normalized))

    async def query_related(self, idea_id: int) -> list[Idea]:
        """Ideas that link to idea_id."""

        async def op(session: AsyncSession) -> list[Idea]:
            repo = IdeaRepository(session)
            if not await repo.exists(idea_id):
                raise NotFoundError(f"Idea {idea_id} not found")
            return await repo.get_related(idea_id)

        return await self.read(op)

    async def ideas_by_status(self, status: IdeaStatus | str) -> list[Idea]:
        value = status.value if isinstance(status, IdeaStatus) else parse_status(status).value
        return await self.read(lambda session: IdeaRepository(session).get_by_status(value))

    async def ideas_for_chapter(self, chapter: str) -> list[Idea]:
        """Ideas currently assigned to a chapter (history is ignored)."""

        async def op(session: AsyncSession) -> list[Idea]:
            found = await ChapterRepository(session).get_by_name(chapter.strip())
            if found is None:
                return []
            return await IdeaRepository(session).get_by_chapter_id(found.id)

        return await self.read(op)

    async def list_chapters(self) -> list[Chapter]:
        return await self.read(lambda session: ChapterRepository(session).list_chapters())

    async def chapter_history(self, idea_id: int) -> list[ChapterAssignment]:
        return await self.read(lambda session: ChapterRepository(session).get_history(idea_id))

    async def audit_log(self, idea_id: int) -> list[AuditEvent]:
        return await self.read(lambda session: AuditRepository(session).for_idea(idea_id))

    async def status_walk(self, idea_id: int) -> list[str]:
        return await self.read(lambda session: AuditRepository(session).status_walk(idea_id))

    async def get_content(self, content_id: int) -> DerivedContent:
        async def op(session: AsyncSession) -> DerivedContent:
            content = await ContentRepository(session).get_by_id(content_id)
            if content is None:
                raise NotFoundError(f"Content {content_id} not found")
            return content

        return await self.read(op)

    async def list_content(
        self, channel: Optional[str] = None, lifecycle: Optional[str] = None, limit: int = 100
    ) -> list[DerivedContent]:
        return await self.read(
            lambda session: ContentRepository(session).list_content(channel, lifecycle, limit)
        )

    async def list_alerts(self, unacknowledged_only: bool = False, limit: int = 50) -> list[Alert]:
        return await self.read(
            lambda session: AlertRepository(session).list_alerts(unacknowledged_only, limit)
        )

    async def queue_overview(self, now: Optional[datetime] = None) -> list[dict]:
        """Per-channel queue depth, today's dequeues and whether it may post now."""

        async def op(session: AsyncSession) -> list[dict]:
            current = now or self.clock()
            day_start = current.replace(hour=0, minute=0, second=0, microsecond=0)
            repo = ContentRepository(session)
            rows = []
            for name, config in sorted(self.channels.items()):
                last = await repo.last_dequeued_at(name)
                today = await repo.count_dequeued_since(name, day_start)
                next_allowed = last + config.window if last and config.window_minutes > 0 else None
                can_post = (next_allowed is None or current >= next_allowed) and (
                    config.daily_cap is None or today < config.daily_cap
                )
                rows.append({
                    "channel": name,
                    "queued": await repo.count_queued(name),
                    "dequeued_today": today,
                    "daily_cap": config.daily_cap,
                    "window_minutes": config.window_minutes,
                    "last_dequeued_at": last.isoformat() if last else None,
                    "next_allowed_at": next_allowed.isoformat() if next_allowed else None,
                    "can_post": can_post,
                })
            return rows

        return await self.read(op)
