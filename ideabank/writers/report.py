"""Chapter report: which ideas sit in which chapter and how far along they are."""

import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

import yaml
from sqlalchemy.ext.asyncio import AsyncSession

from ideabank.config import settings
from ideabank.db.models import Idea, IdeaStatus, utcnow
from ideabank.db.repositories import ChapterRepository, IdeaRepository
from ideabank.services.lifecycle import STATUS_EMOJI, STATUS_LABELS

logger = logging.getLogger(__name__)

EXCERPT_LENGTH = 80
UNASSIGNED = "Unassigned"


def _excerpt(text: str, length: int = EXCERPT_LENGTH) -> str:
    text = " ".join(text.split())
    return text if len(text) <= length else text[: length - 1].rstrip() + "…"


def _section(name: str, position: Optional[int], ideas: list[Idea]) -> dict:
    counts = {status.value: 0 for status in IdeaStatus}
    for idea in ideas:
        counts[idea.status] += 1
    return {
        "name": name,
        "position": position,
        "counts": counts,
        "ideas": [
            {
                "id": idea.id,
                "status": idea.status,
                "quote": _excerpt(idea.display_quote),
                "tags": idea.tags,
            }
            for idea in sorted(ideas, key=lambda i: i.id)
        ],
    }


async def build_chapter_report(session: AsyncSession, generated_at: Optional[datetime] = None) -> dict:
    """Collect per-chapter idea lists, status counts and the unassigned pool."""
    ideas_repo = IdeaRepository(session)
    chapters = await ChapterRepository(session).list_chapters()

    sections = []
    for chapter in chapters:
        ideas = await ideas_repo.get_by_chapter_id(chapter.id)
        sections.append(_section(chapter.name, chapter.position, ideas))

    unassigned = _section(UNASSIGNED, None, await ideas_repo.get_by_chapter_id(None))
    totals = {status.value: 0 for status in IdeaStatus}
    for section in sections + [unassigned]:
        for status, count in section["counts"].items():
            totals[status] += count

    return {
        "generated_at": (generated_at or utcnow()).isoformat(timespec="seconds"),
        "chapters": sections,
        "unassigned": unassigned,
        "totals": totals,
    }


def _status_cell(status: str) -> str:
    value = IdeaStatus(status)
    return f"{STATUS_EMOJI[value]} {STATUS_LABELS[value]}"


def render_markdown(report: dict) -> str:
    """Markdown tracker: one table per chapter plus an Unassigned section."""
    frontmatter = {
        "type": "chapter-report",
        "generated": report["generated_at"],
        "totals": report["totals"],
    }
    lines = [
        "---",
        yaml.dump(frontmatter, allow_unicode=True, default_flow_style=False, sort_keys=False).strip(),
        "---",
        "",
        "# Chapter report",
        "",
    ]

    for section in report["chapters"] + [report["unassigned"]]:
        lines.append(f"## {section['name']}")
        lines.append("")
        if not section["ideas"]:
            lines += ["_No ideas._", ""]
            continue
        lines.append("| Idea | Status | Quote |")
        lines.append("|------|--------|-------|")
        for idea in section["ideas"]:
            quote = idea["quote"].replace("|", "\\|")
            lines.append(f"| #{idea['id']:03d} | {_status_cell(idea['status'])} | {quote} |")
        lines.append("")
        counts = ", ".join(
            f"{STATUS_LABELS[IdeaStatus(s)]}: {n}" for s, n in section["counts"].items() if n
        )
        lines += [f"**Counts:** {counts}", ""]

    return "\n".join(lines)


def render_text(report: dict) -> str:
    """Plain text for terminals."""
    lines = [f"Chapter report ({report['generated_at']})", ""]
    for section in report["chapters"] + [report["unassigned"]]:
        total = len(section["ideas"])
        lines.append(f"{section['name']} ({total} ideas)")
        for idea in section["ideas"]:
            lines.append(f"  #{idea['id']:03d} [{idea['status']}] {idea['quote']}")
        lines.append("")
    totals = "  ".join(f"{status}={count}" for status, count in report["totals"].items())
    lines.append(f"Totals: {totals}")
    return "\n".join(lines)


def write_chapter_report(report: dict, output_path: Optional[Path] = None) -> Path:
    """Write the markdown report into the vault (or output_path)."""
    if output_path is None:
        settings.ensure_directories()
        stamp = report["generated_at"][:10]
        output_path = settings.REPORTS_DIR / f"chapter-report_{stamp}.md"

    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w", encoding="utf-8") as f:
        f.write(render_markdown(report))

    logger.info(f"Wrote chapter report to {output_path}")
    return output_path
