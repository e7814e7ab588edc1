"""REST API for derived content and the publish queue."""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter
from pydantic import BaseModel

from ideabank.dependencies import CoordinatorDep, PublisherDep
from ideabank.models import ContentResponse
from ideabank.services.coordinator import as_naive_utc

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/content", tags=["Content"])


class ScheduleRequest(BaseModel):
    at: datetime


class WaiveRequest(BaseModel):
    reason: Optional[str] = None


@router.get("")
async def list_content(
    coordinator: CoordinatorDep,
    channel: Optional[str] = None,
    lifecycle: Optional[str] = None,
    limit: int = 100,
):
    """Drafts and publish records, optionally filtered."""
    items = await coordinator.list_content(channel=channel, lifecycle=lifecycle, limit=limit)
    return {
        "content": [ContentResponse.model_validate(c).model_dump(mode="json") for c in items],
        "count": len(items),
    }


@router.get("/queue")
async def queue_overview(coordinator: CoordinatorDep):
    """Per-channel queue depth and whether each channel may post now."""
    return {"channels": await coordinator.queue_overview()}


@router.get("/{content_id}", response_model=ContentResponse)
async def get_content(content_id: int, coordinator: CoordinatorDep):
    return await coordinator.get_content(content_id)


@router.post("/{content_id}/schedule", response_model=ContentResponse)
async def schedule_content(
    content_id: int,
    request: ScheduleRequest,
    coordinator: CoordinatorDep,
    publisher: PublisherDep,
):
    """Queue a draft to become due at the given time."""
    at = as_naive_utc(request.at)
    if publisher is not None:
        return await publisher.schedule(content_id, at)
    return await coordinator.enqueue(content_id, at=at)


@router.post("/{content_id}/publish", response_model=ContentResponse)
async def publish_content(content_id: int, coordinator: CoordinatorDep, publisher: PublisherDep):
    """Queue a draft for immediate publishing (FIFO and rate limits still apply)."""
    if publisher is not None:
        return await publisher.publish_now(content_id)
    return await coordinator.enqueue(content_id)


@router.post("/{content_id}/cancel", response_model=ContentResponse)
async def cancel_content(content_id: int, coordinator: CoordinatorDep):
    """Take a queued entry back to drafted; fails once publishing started."""
    return await coordinator.cancel(content_id)


@router.post("/{content_id}/waive", response_model=ContentResponse)
async def waive_content(
    content_id: int, coordinator: CoordinatorDep, request: Optional[WaiveRequest] = None
):
    return await coordinator.waive(content_id, request.reason if request else None)


@router.post("/{content_id}/redraft", response_model=ContentResponse, status_code=201)
async def redraft_content(content_id: int, coordinator: CoordinatorDep):
    """New drafted attempt for a failed entry."""
    return await coordinator.redraft(content_id)
