"""SQLAlchemy ORM models for Idea Bank."""

import enum
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def utcnow() -> datetime:
    """Naive UTC timestamp (stored without tz on every backend)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class IdeaStatus(str, enum.Enum):
    """Idea lifecycle state."""
    NEW = "new"
    ON_HOLD = "on_hold"
    ORGANIZING = "organizing"
    IN_CREATION = "in_creation"
    USED = "used"
    ARCHIVED = "archived"


class ContentLifecycle(str, enum.Enum):
    """Lifecycle of a single channel draft."""
    DRAFTED = "drafted"
    QUEUED = "queued"
    POSTED = "posted"
    FAILED = "failed"


class CaptureSource(str, enum.Enum):
    """Where a captured thought came from."""
    HUMAN = "human"
    IMPORT = "import"
    AUTOMATED_TRANSCRIPT = "automated-transcript"


JsonType = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


class IdCounter(Base):
    """Durable high-water mark for an id sequence."""
    __tablename__ = "id_counters"

    name: Mapped[str] = mapped_column(String(50), primary_key=True)
    value: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


# =============================================================================
# Ideas
# =============================================================================


class Chapter(Base):
    """Book location an idea can be assigned to."""
    __tablename__ = "chapters"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(200), unique=True, nullable=False)
    position: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


class Idea(Base):
    """Captured thought moving through the lifecycle."""
    __tablename__ = "ideas"

    # Allocated by IdAllocator, never by the database
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    quote: Mapped[str] = mapped_column(Text, nullable=False)
    refined_quote: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    source: Mapped[str] = mapped_column(
        String(30), nullable=False, default=CaptureSource.HUMAN.value
    )  # human, import, automated-transcript
    captured_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=IdeaStatus.NEW.value
    )
    chapter_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("chapters.id"), nullable=True
    )
    idempotency_key: Mapped[Optional[str]] = mapped_column(
        String(200), unique=True, nullable=True
    )
    hold_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)
    archived_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    # Relationships (eager, so detached snapshots stay readable)
    chapter_ref: Mapped[Optional["Chapter"]] = relationship(lazy="selectin")
    tag_rows: Mapped[List["IdeaTag"]] = relationship(
        back_populates="idea", cascade="all, delete-orphan", lazy="selectin"
    )
    link_rows: Mapped[List["IdeaLink"]] = relationship(
        back_populates="idea",
        cascade="all, delete-orphan",
        lazy="selectin",
        foreign_keys="IdeaLink.idea_id",
    )
    contents: Mapped[List["DerivedContent"]] = relationship(
        back_populates="idea", lazy="selectin", order_by="DerivedContent.id"
    )

    __table_args__ = (
        Index("ix_ideas_status", "status"),
        Index("ix_ideas_chapter_id", "chapter_id"),
        Index("ix_ideas_captured_at", "captured_at"),
    )

    @property
    def tags(self) -> list[str]:
        return sorted(row.tag for row in self.tag_rows)

    @property
    def cross_refs(self) -> list[int]:
        return sorted(row.target_id for row in self.link_rows)

    @property
    def chapter(self) -> Optional[str]:
        return self.chapter_ref.name if self.chapter_ref else None

    @property
    def is_archived(self) -> bool:
        return self.status == IdeaStatus.ARCHIVED.value

    @property
    def display_quote(self) -> str:
        return self.refined_quote or self.quote


class IdeaTag(Base):
    """Tag membership; the table itself is the tag -> ideas index."""
    __tablename__ = "idea_tags"

    idea_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("ideas.id"), primary_key=True
    )
    tag: Mapped[str] = mapped_column(String(100), primary_key=True)

    idea: Mapped["Idea"] = relationship(back_populates="tag_rows")

    __table_args__ = (Index("ix_idea_tags_tag", "tag"),)


class IdeaLink(Base):
    """One direction of a symmetric cross-reference. Both rows always exist."""
    __tablename__ = "idea_links"

    idea_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("ideas.id"), primary_key=True
    )
    target_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("ideas.id"), primary_key=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    idea: Mapped["Idea"] = relationship(back_populates="link_rows", foreign_keys=[idea_id])

    __table_args__ = (
        CheckConstraint("idea_id <> target_id", name="ck_idea_links_no_self"),
        Index("ix_idea_links_target_id", "target_id"),
    )


class ChapterAssignment(Base):
    """Chapter reassignment history, never pruned."""
    __tablename__ = "chapter_assignments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    idea_id: Mapped[int] = mapped_column(Integer, ForeignKey("ideas.id"), nullable=False)
    chapter_id: Mapped[int] = mapped_column(Integer, ForeignKey("chapters.id"), nullable=False)
    previous_chapter_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("chapters.id"), nullable=True
    )
    assigned_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    __table_args__ = (Index("ix_chapter_assignments_idea_id", "idea_id"),)


# =============================================================================
# Derived content / publishing
# =============================================================================


class DerivedContent(Base):
    """Channel-specific draft derived from one idea."""
    __tablename__ = "derived_content"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    idea_id: Mapped[int] = mapped_column(Integer, ForeignKey("ideas.id"), nullable=False)
    channel: Mapped[str] = mapped_column(String(50), nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    lifecycle: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ContentLifecycle.DRAFTED.value
    )
    waived: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    retry_of_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("derived_content.id"), nullable=True
    )

    # Queue bookkeeping
    enqueued_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    scheduled_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    publish_started_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    posted_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    external_ref: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    idea: Mapped["Idea"] = relationship(back_populates="contents", lazy="raise")

    __table_args__ = (
        # At most one non-failed entry per (idea, channel)
        Index(
            "uq_derived_content_active_channel",
            "idea_id",
            "channel",
            unique=True,
            sqlite_where=text("lifecycle <> 'failed'"),
            postgresql_where=text("lifecycle <> 'failed'"),
        ),
        Index("ix_derived_content_channel_lifecycle", "channel", "lifecycle"),
    )

    @property
    def is_settled(self) -> bool:
        """Posted, or explicitly waived."""
        return self.lifecycle == ContentLifecycle.POSTED.value or self.waived


# =============================================================================
# Audit log / alerts
# =============================================================================


class AuditEvent(Base):
    """Append-only record of every transition and publish attempt."""
    __tablename__ = "audit_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    idea_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    content_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    event: Mapped[str] = mapped_column(
        String(40), nullable=False
    )  # captured, status, tags, link, chapter, draft, enqueued, dequeued, attempt, posted, failed, ...
    from_state: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    to_state: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    detail: Mapped[Optional[dict]] = mapped_column(JsonType, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    __table_args__ = (
        Index("ix_audit_events_idea_id", "idea_id"),
        Index("ix_audit_events_content_id", "content_id"),
    )


class Alert(Base):
    """Operator-visible alert raised when a publish exhausts its retries."""
    __tablename__ = "alerts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    idea_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    content_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    channel: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    acknowledged_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    __table_args__ = (Index("ix_alerts_acknowledged_at", "acknowledged_at"),)
