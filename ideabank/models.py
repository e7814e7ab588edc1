"""Pydantic response models shared by the API routers."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class ContentResponse(BaseModel):
    """One channel draft and its publish state."""

    id: int
    idea_id: int
    channel: str
    body: str
    lifecycle: str = Field(..., description="drafted, queued, posted or failed")
    waived: bool = False
    retry_of_id: Optional[int] = Field(None, description="Failed entry this attempt replaces")
    enqueued_at: Optional[datetime] = None
    scheduled_at: Optional[datetime] = None
    publish_started_at: Optional[datetime] = None
    posted_at: Optional[datetime] = None
    attempts: int = 0
    last_error: Optional[str] = None
    external_ref: Optional[str] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class IdeaResponse(BaseModel):
    """Idea with its tags, cross-references, chapter and drafts."""

    id: int
    quote: str = Field(..., description="Raw captured text, never modified")
    refined_quote: Optional[str] = None
    source: str
    captured_at: datetime
    status: str
    chapter: Optional[str] = None
    tags: list[str] = Field(default_factory=list)
    cross_refs: list[int] = Field(default_factory=list)
    hold_reason: Optional[str] = None
    contents: list[ContentResponse] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime
    archived_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class IdeaSummary(BaseModel):
    """Idea without drafts, for list views."""

    id: int
    quote: str
    refined_quote: Optional[str] = None
    status: str
    chapter: Optional[str] = None
    tags: list[str] = Field(default_factory=list)
    cross_refs: list[int] = Field(default_factory=list)
    captured_at: datetime

    model_config = {"from_attributes": True}


class AlertResponse(BaseModel):
    id: int
    idea_id: Optional[int] = None
    content_id: Optional[int] = None
    channel: Optional[str] = None
    message: str
    created_at: datetime
    acknowledged_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class AuditEventResponse(BaseModel):
    id: int
    event: str
    content_id: Optional[int] = None
    from_state: Optional[str] = None
    to_state: Optional[str] = None
    detail: Optional[dict] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class ChapterMoveResponse(BaseModel):
    chapter_id: int
    previous_chapter_id: Optional[int] = None
    assigned_at: datetime

    model_config = {"from_attributes": True}
