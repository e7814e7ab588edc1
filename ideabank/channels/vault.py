"""Vault channel client: publishes entries as markdown files.

Used for the book-section channel and for any channel that is posted by
hand from the vault (the manual posting queue).
"""

import logging
import re
from pathlib import Path
from typing import Optional

from ideabank.channels.base import ChannelClient, ChannelConfig, PublishReceipt
from ideabank.config import settings
from ideabank.db.models import DerivedContent, utcnow
from ideabank.exceptions import ChannelPublishError

logger = logging.getLogger(__name__)


def _sanitize_filename(name: str) -> str:
    """Sanitize a channel name for use in a filename."""
    sanitized = re.sub(r'[<>:"/\\|?*]', "", name)
    sanitized = re.sub(r"\s+", "_", sanitized)
    return sanitized.strip("_")[:50]


class VaultChannelClient(ChannelClient):
    """Writes one markdown file per published entry."""

    def __init__(self, config: ChannelConfig, output_dir: Optional[Path] = None):
        super().__init__(config)
        self.output_dir = output_dir or settings.PUBLISHED_DIR

    async def publish(self, content: DerivedContent) -> PublishReceipt:
        channel_dir = self.output_dir / _sanitize_filename(self.config.name)
        file_path = channel_dir / f"idea-{content.idea_id:04d}_content-{content.id}.md"

        frontmatter = [
            "---",
            f"idea: {content.idea_id}",
            f"content: {content.id}",
            f"channel: {self.config.name}",
            f"published: {utcnow().isoformat(timespec='seconds')}",
            "---",
            "",
        ]
        try:
            channel_dir.mkdir(parents=True, exist_ok=True)
            file_path.write_text("\n".join(frontmatter) + content.body + "\n", encoding="utf-8")
        except OSError as e:
            raise ChannelPublishError(self.config.name, f"could not write {file_path}: {e}") from e

        logger.info(f"Wrote content {content.id} to {file_path}")
        return PublishReceipt(external_ref=file_path.name, url=str(file_path))
