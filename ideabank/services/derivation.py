"""Content derivation: turn an idea into channel drafts.

Derivers advertise a capability ("short-form drafting", "long-form
drafting", ...). Each channel names the capability it needs and the router
hands the work to whichever deriver advertises it. External engines plug
in by registering another Deriver.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Optional

from ideabank.channels import LONG_FORM, SHORT_FORM, ChannelConfig
from ideabank.db.models import DerivedContent, Idea
from ideabank.exceptions import DuplicateChannelPublishError, ValidationError
from ideabank.services.coordinator import IdeaCoordinator

logger = logging.getLogger(__name__)

ELLIPSIS = "…"


def _trim(text: str, limit: Optional[int]) -> str:
    """Cut text at a word boundary so that it fits limit characters."""
    if not limit or len(text) <= limit:
        return text
    cut = text[: limit - len(ELLIPSIS)]
    if " " in cut:
        cut = cut.rsplit(" ", 1)[0]
    return cut.rstrip(" ,;:.-") + ELLIPSIS


class Deriver(ABC):
    """Produces a draft body for one channel, or None to skip it."""

    capabilities: frozenset[str] = frozenset()

    @abstractmethod
    def derive(self, idea: Idea, config: ChannelConfig) -> Optional[str]:
        ...


class QuoteDeriver(Deriver):
    """Short-form post: the refined (or original) quote plus hashtags."""

    capabilities = frozenset({SHORT_FORM})

    def derive(self, idea: Idea, config: ChannelConfig) -> Optional[str]:
        text = idea.display_quote.strip()
        if not text:
            return None
        hashtags = " ".join(f"#{tag.replace(' ', '')}" for tag in idea.tags[:3])
        with_tags = f"{text}\n\n{hashtags}" if hashtags else text
        if not config.char_limit or len(with_tags) <= config.char_limit:
            return with_tags
        return _trim(text, config.char_limit)


class SectionDeriver(Deriver):
    """Long-form skeleton: chapter heading, the quote and its related ideas."""

    capabilities = frozenset({LONG_FORM})

    def derive(self, idea: Idea, config: ChannelConfig) -> Optional[str]:
        lines = []
        if idea.chapter:
            lines += [f"## {idea.chapter}", ""]
        lines.append(f"> {idea.quote}")
        if idea.refined_quote:
            lines += ["", idea.refined_quote]
        if idea.cross_refs:
            refs = ", ".join(f"#{ref:03d}" for ref in idea.cross_refs)
            lines += ["", f"Related ideas: {refs}"]
        return _trim("\n".join(lines), config.char_limit)


@dataclass
class CapabilityRouter:
    """Capability -> deriver registry. Later registrations win."""

    derivers: list[Deriver] = field(default_factory=list)

    def register(self, deriver: Deriver) -> None:
        self.derivers.insert(0, deriver)

    def for_capability(self, capability: str) -> Deriver:
        for deriver in self.derivers:
            if capability in deriver.capabilities:
                return deriver
        raise ValidationError(f"No deriver offers '{capability}'")


def default_router() -> CapabilityRouter:
    return CapabilityRouter([QuoteDeriver(), SectionDeriver()])


async def derive_drafts(
    coordinator: IdeaCoordinator,
    idea_id: int,
    channels: Optional[Iterable[str]] = None,
    router: Optional[CapabilityRouter] = None,
) -> list[DerivedContent]:
    """Draft an idea for the given channels (all known channels by default).

    Channels that already hold a live entry for this idea are skipped. A
    deriver may return None to produce nothing for a channel.
    """
    router = router or default_router()
    idea = await coordinator.get_idea(idea_id)
    names = list(channels) if channels is not None else sorted(coordinator.channels)
    drafts = []

    for name in names:
        config = coordinator.channel_config(name)
        body = router.for_capability(config.capability).derive(idea, config)
        if not body:
            logger.debug(f"Idea {idea_id}: nothing derived for {config.name}")
            continue
        try:
            drafts.append(await coordinator.draft(idea_id, config.name, body))
        except DuplicateChannelPublishError:
            logger.info(f"Idea {idea_id}: {config.name} already has a live entry, skipping")

    logger.info(f"Idea {idea_id}: derived {len(drafts)} drafts")
    return drafts
