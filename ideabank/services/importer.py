"""Import of a hand-kept ideas-bank markdown file.

Expected layout::

    ## 2026-02-02

    ### #001 - 06:42 AM PST
    **Quote (original):** "..."
    **Quote (refined):** "..."
    **Tags:** #stoicism #change
    **Chapter:** Book 1 - Chapter 3
    **Status:** 🟡 Organizing
    **Connection to other ideas:** builds on #004

The file is a one-way seed: every idea is captured with the idempotency key
``ideas-bank:NNN`` so importing the same file again changes nothing. Ids
are allocated by the allocator, not taken from the file.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Optional

from ideabank.db.models import CaptureSource
from ideabank.exceptions import IdeaBankError
from ideabank.services.coordinator import IdeaCoordinator

logger = logging.getLogger(__name__)

DATE_RE = re.compile(r"^##\s+(\d{4}-\d{2}-\d{2})")
HEADER_RE = re.compile(r"^###?\s+#?(\d+)\s+[-|]\s+(.+)")
QUOTE_ORIGINAL_RE = re.compile(r"\*\*Quote \(original\):\*\*\s+(.+)")
QUOTE_REFINED_RE = re.compile(r"\*\*Quote \(refined\):\*\*\s+(.+)")
QUOTE_RE = re.compile(r"\*\*Quote:\*\*\s+(.+)")
TAGS_RE = re.compile(r"\*\*Tags:\*\*\s+(.+)")
CHAPTER_RE = re.compile(r"\*\*Chapter:\*\*\s+(.+)")
STATUS_RE = re.compile(r"\*\*Status:\*\*\s+(.+)")
CONNECTION_RE = re.compile(r"^\*\*(Connection|Related)[^*]*:\*\*\s*(.*)", re.IGNORECASE)
SECTION_RE = re.compile(r"^\*\*[^*]+:\*\*")
REFERENCE_RE = re.compile(r"#(\d{3})\b")
TIME_RE = re.compile(r"(\d{1,2}:\d{2}\s*[AP]M)", re.IGNORECASE)

HOLD_WORDS = ("hold", "clarif", "ambiguous")
ORGANIZED_MARKERS = (
    "🟡", "🟠", "🟢",
    "organizing", "assigned", "creating", "drafted", "used", "shipped", "posted",
)
IMPORT_KEY_PREFIX = "ideas-bank:"


@dataclass
class ParsedIdea:
    """One idea block from the markdown file."""

    number: int
    captured_label: str
    day: Optional[date] = None
    quote: str = ""
    original: str = ""
    refined: str = ""
    tags: list[str] = field(default_factory=list)
    chapter: str = ""
    status_label: str = ""
    references: list[int] = field(default_factory=list)

    @property
    def captured_at(self) -> Optional[datetime]:
        """Header date + clock time. Timezone labels are ignored."""
        if self.day is None:
            return None
        match = TIME_RE.search(self.captured_label)
        if not match:
            return datetime.combine(self.day, datetime.min.time())
        try:
            clock = datetime.strptime(match.group(1).replace(" ", "").upper(), "%I:%M%p").time()
        except ValueError:
            return datetime.combine(self.day, datetime.min.time())
        return datetime.combine(self.day, clock)

    @property
    def raw_quote(self) -> str:
        return self.original or self.quote or self.refined

    @property
    def wants_hold(self) -> bool:
        label = self.status_label.lower()
        return any(word in label for word in HOLD_WORDS)

    @property
    def wants_organize(self) -> bool:
        label = self.status_label.lower()
        return bool(self.chapter) and any(marker in label for marker in ORGANIZED_MARKERS)


@dataclass
class ImportResult:
    created: list[int] = field(default_factory=list)
    existing: list[int] = field(default_factory=list)
    held: list[int] = field(default_factory=list)
    organized: list[int] = field(default_factory=list)
    links: int = 0
    errors: list[str] = field(default_factory=list)


def _strip_quotes(text: str) -> str:
    return text.strip().strip('"').strip("“”").strip()


def parse_ideas_bank(text: str) -> list[ParsedIdea]:
    """Parse every idea block in the file, in file order."""
    ideas: list[ParsedIdea] = []
    current: Optional[ParsedIdea] = None
    current_day: Optional[date] = None
    in_connections = False

    for line in text.splitlines():
        date_match = DATE_RE.match(line)
        if date_match:
            current_day = date.fromisoformat(date_match.group(1))
            in_connections = False
            continue

        header = HEADER_RE.match(line)
        if header:
            current = ParsedIdea(
                number=int(header.group(1)),
                captured_label=header.group(2).strip(),
                day=current_day,
            )
            ideas.append(current)
            in_connections = False
            continue

        if current is None:
            continue

        if match := QUOTE_ORIGINAL_RE.search(line):
            current.original = _strip_quotes(match.group(1))
        elif match := QUOTE_REFINED_RE.search(line):
            current.refined = _strip_quotes(match.group(1))
        elif match := QUOTE_RE.search(line):
            current.quote = _strip_quotes(match.group(1))
        elif match := TAGS_RE.search(line):
            current.tags = [t[1:] for t in match.group(1).split() if t.startswith("#") and len(t) > 1]
        elif match := CHAPTER_RE.search(line):
            current.chapter = match.group(1).strip()
        elif match := STATUS_RE.search(line):
            current.status_label = match.group(1).strip()
        elif match := CONNECTION_RE.match(line):
            in_connections = True
            current.references += [int(n) for n in REFERENCE_RE.findall(match.group(2))]
            continue
        elif in_connections and not SECTION_RE.match(line):
            current.references += [int(n) for n in REFERENCE_RE.findall(line)]
            continue
        in_connections = False

    return ideas


async def import_ideas_bank(coordinator: IdeaCoordinator, text: str) -> ImportResult:
    """Capture every parsed idea, then apply status hints and links.

    Per-idea failures (empty quote, illegal status) are collected in
    ImportResult.errors; the remaining ideas are still imported.
    """
    result = ImportResult()
    ids: dict[int, int] = {}
    parsed_ideas = parse_ideas_bank(text)

    for parsed in parsed_ideas:
        if not parsed.raw_quote:
            result.errors.append(f"#{parsed.number:03d}: no quote")
            continue
        try:
            capture = await coordinator.capture(
                parsed.raw_quote,
                source=CaptureSource.IMPORT,
                captured_at=parsed.captured_at,
                tags=parsed.tags,
                idempotency_key=f"{IMPORT_KEY_PREFIX}{parsed.number:03d}",
            )
            ids[parsed.number] = capture.idea_id
            if not capture.created:
                result.existing.append(capture.idea_id)
                continue
            result.created.append(capture.idea_id)

            if parsed.refined and parsed.refined != parsed.raw_quote:
                await coordinator.refine(capture.idea_id, parsed.refined)
            if parsed.wants_hold:
                await coordinator.hold(capture.idea_id, reason=parsed.status_label)
                result.held.append(capture.idea_id)
            elif parsed.wants_organize:
                await coordinator.organize(capture.idea_id, parsed.chapter)
                result.organized.append(capture.idea_id)
            elif parsed.chapter:
                await coordinator.assign_chapter(capture.idea_id, parsed.chapter)
        except IdeaBankError as e:
            logger.warning(f"Import of #{parsed.number:03d} failed: {e}")
            result.errors.append(f"#{parsed.number:03d}: {e}")

    for parsed in parsed_ideas:
        source_id = ids.get(parsed.number)
        if source_id is None or source_id not in result.created:
            continue
        for ref in parsed.references:
            target_id = ids.get(ref)
            if target_id is None or target_id == source_id:
                continue
            try:
                await coordinator.link(source_id, target_id)
                result.links += 1
            except IdeaBankError as e:
                result.errors.append(f"#{parsed.number:03d} -> #{ref:03d}: {e}")

    logger.info(
        f"Ideas-bank import: {len(result.created)} created, {len(result.existing)} existing, "
        f"{len(result.errors)} errors"
    )
    return result
