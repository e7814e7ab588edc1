"""REST API for capturing and organizing ideas."""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Request
from pydantic import BaseModel, Field

from ideabank.db.models import CaptureSource
from ideabank.dependencies import CoordinatorDep
from ideabank.exceptions import ValidationError
from ideabank.models import (
    AuditEventResponse,
    ChapterMoveResponse,
    ContentResponse,
    IdeaResponse,
    IdeaSummary,
)
from ideabank.services.derivation import derive_drafts
from ideabank.services.importer import import_ideas_bank
from ideabank.services.stats import load_idea_stats

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ideas", tags=["Ideas"])


class CaptureRequest(BaseModel):
    quote: str
    captured_at: Optional[datetime] = None
    source: CaptureSource = CaptureSource.HUMAN
    tags: list[str] = Field(default_factory=list)
    idempotency_key: Optional[str] = None


class TagsRequest(BaseModel):
    tags: list[str]


class RefineRequest(BaseModel):
    text: str


class ChapterRequest(BaseModel):
    chapter: str
    position: Optional[int] = None


class OrganizeRequest(BaseModel):
    chapter: Optional[str] = None


class ReasonRequest(BaseModel):
    reason: Optional[str] = None


class DraftRequest(BaseModel):
    channel: str
    body: str


class DeriveRequest(BaseModel):
    channels: Optional[list[str]] = None


@router.post("", status_code=201)
async def capture_idea(request: CaptureRequest, coordinator: CoordinatorDep):
    """Capture a raw thought. Repeating an idempotency key returns the same id."""
    result = await coordinator.capture(
        request.quote,
        source=request.source,
        captured_at=request.captured_at,
        tags=request.tags,
        idempotency_key=request.idempotency_key,
    )
    return {"id": result.idea_id, "created": result.created}


@router.get("")
async def list_ideas(
    coordinator: CoordinatorDep,
    tag: Optional[str] = None,
    status: Optional[str] = None,
    chapter: Optional[str] = None,
    limit: int = 100,
    offset: int = 0,
):
    """List ideas in id order, filtered by tag, status or chapter."""
    ideas = await coordinator.list_ideas(
        status=status, tag=tag, chapter=chapter, limit=limit, offset=offset
    )
    return {
        "ideas": [IdeaSummary.model_validate(i).model_dump(mode="json") for i in ideas],
        "count": len(ideas),
    }


@router.get("/stats")
async def idea_stats(coordinator: CoordinatorDep):
    """Capture counts per period, weekly goal progress and streak."""
    return await coordinator.read(load_idea_stats)


@router.post("/import")
async def import_ideas(request: Request, coordinator: CoordinatorDep):
    """Seed ideas from an ideas-bank markdown file (re-import is a no-op).

    The request body is the raw markdown.
    """
    try:
        markdown = (await request.body()).decode("utf-8")
    except UnicodeDecodeError as e:
        raise ValidationError(f"Import body must be UTF-8 markdown: {e}") from None
    result = await import_ideas_bank(coordinator, markdown)
    return {
        "created": result.created,
        "existing": result.existing,
        "held": result.held,
        "organized": result.organized,
        "links": result.links,
        "errors": result.errors,
    }


@router.get("/{idea_id}", response_model=IdeaResponse)
async def get_idea(idea_id: int, coordinator: CoordinatorDep):
    return await coordinator.get_idea(idea_id)


@router.get("/{idea_id}/related")
async def related_ideas(idea_id: int, coordinator: CoordinatorDep):
    """Ideas that cross-reference this one."""
    ideas = await coordinator.query_related(idea_id)
    return {"ideas": [IdeaSummary.model_validate(i).model_dump(mode="json") for i in ideas]}


@router.get("/{idea_id}/history")
async def idea_history(idea_id: int, coordinator: CoordinatorDep):
    """Audit log, status walk and chapter moves for one idea."""
    idea = await coordinator.get_idea(idea_id)
    events = await coordinator.audit_log(idea.id)
    chapters = await coordinator.chapter_history(idea.id)
    return {
        "id": idea.id,
        "status_walk": await coordinator.status_walk(idea.id),
        "events": [AuditEventResponse.model_validate(e).model_dump(mode="json") for e in events],
        "chapters": [ChapterMoveResponse.model_validate(c).model_dump(mode="json") for c in chapters],
    }


@router.post("/{idea_id}/tags")
async def attach_tags(idea_id: int, request: TagsRequest, coordinator: CoordinatorDep):
    tags = await coordinator.attach_tags(idea_id, request.tags)
    return {"id": idea_id, "tags": tags}


@router.post("/{idea_id}/links/{other_id}")
async def link_ideas(idea_id: int, other_id: int, coordinator: CoordinatorDep):
    """Cross-reference two ideas (both directions)."""
    refs = await coordinator.link(idea_id, other_id)
    return {"id": idea_id, "cross_refs": refs}


@router.post("/{idea_id}/refine", response_model=IdeaResponse)
async def refine_idea(idea_id: int, request: RefineRequest, coordinator: CoordinatorDep):
    return await coordinator.refine(idea_id, request.text)


@router.post("/{idea_id}/chapter", response_model=IdeaResponse)
async def assign_chapter(idea_id: int, request: ChapterRequest, coordinator: CoordinatorDep):
    return await coordinator.assign_chapter(idea_id, request.chapter, request.position)


@router.post("/{idea_id}/organize", response_model=IdeaResponse)
async def organize_idea(idea_id: int, coordinator: CoordinatorDep, request: Optional[OrganizeRequest] = None):
    return await coordinator.organize(idea_id, request.chapter if request else None)


@router.post("/{idea_id}/hold", response_model=IdeaResponse)
async def hold_idea(idea_id: int, coordinator: CoordinatorDep, request: Optional[ReasonRequest] = None):
    return await coordinator.hold(idea_id, request.reason if request else None)


@router.post("/{idea_id}/release", response_model=IdeaResponse)
async def release_idea(idea_id: int, coordinator: CoordinatorDep):
    return await coordinator.release(idea_id)


@router.post("/{idea_id}/reject", response_model=IdeaResponse)
async def reject_idea(idea_id: int, coordinator: CoordinatorDep, request: Optional[ReasonRequest] = None):
    """Send an idea in creation back to organizing."""
    return await coordinator.reject(idea_id, request.reason if request else None)


@router.post("/{idea_id}/seal", response_model=IdeaResponse)
async def seal_idea(idea_id: int, coordinator: CoordinatorDep):
    return await coordinator.seal(idea_id)


@router.post("/{idea_id}/drafts", response_model=ContentResponse, status_code=201)
async def add_draft(idea_id: int, request: DraftRequest, coordinator: CoordinatorDep):
    """Record a draft produced outside the service."""
    return await coordinator.draft(idea_id, request.channel, request.body)


@router.post("/{idea_id}/derive")
async def derive(idea_id: int, coordinator: CoordinatorDep, request: Optional[DeriveRequest] = None):
    """Draft the idea for the given channels with the built-in derivers."""
    drafts = await derive_drafts(coordinator, idea_id, request.channels if request else None)
    return {
        "id": idea_id,
        "drafts": [ContentResponse.model_validate(d).model_dump(mode="json") for d in drafts],
    }
