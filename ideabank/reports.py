"""Reports: chapter tracker and the archive sweep."""

import logging

from fastapi import APIRouter
from fastapi.responses import PlainTextResponse

from ideabank.dependencies import CoordinatorDep
from ideabank.writers.report import build_chapter_report, render_markdown, write_chapter_report

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/reports", tags=["reports"])


@router.get("/chapters")
async def get_chapter_report(coordinator: CoordinatorDep):
    """
    Get the chapter report.

    Returns, per chapter:
    - Ideas with id, status and quote excerpt
    - Counts per status
    plus the unassigned ideas and overall totals.
    """
    return await coordinator.read(build_chapter_report)


@router.get("/chapters.md", response_class=PlainTextResponse)
async def get_chapter_report_markdown(coordinator: CoordinatorDep, save: bool = False):
    """Chapter report as markdown; save=true also writes it into the vault."""
    report = await coordinator.read(build_chapter_report)
    if save:
        write_chapter_report(report)
    return render_markdown(report)


@router.post("/archive-sweep")
async def archive_sweep(coordinator: CoordinatorDep):
    """Seal every used idea whose content is all posted or waived."""
    sealed = await coordinator.archive_sweep()
    return {"sealed": sealed, "count": len(sealed)}
