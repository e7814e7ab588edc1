"""Channel configuration and the client interface publishers call."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Optional

from ideabank.db.models import DerivedContent

SHORT_FORM = "short-form drafting"
LONG_FORM = "long-form drafting"


@dataclass
class ChannelConfig:
    """Publishing rules for one channel."""

    name: str
    window_minutes: int = 360  # one post per day-part
    daily_cap: Optional[int] = None
    max_attempts: int = 3
    backoff_seconds: float = 30.0
    timeout_seconds: float = 30.0
    char_limit: Optional[int] = None
    capability: str = SHORT_FORM
    client: str = "vault"  # vault, webhook
    webhook_url: Optional[str] = None
    headers: dict[str, str] = field(default_factory=dict)

    @property
    def window(self) -> timedelta:
        return timedelta(minutes=self.window_minutes)

    def backoff_for(self, attempt: int) -> float:
        """Delay after the given failed attempt (1-based)."""
        return self.backoff_seconds * (2 ** (attempt - 1))


@dataclass
class PublishReceipt:
    """What a channel returns for a successful post."""

    external_ref: Optional[str] = None
    url: Optional[str] = None


class ChannelClient(ABC):
    """External channel API.

    Implementations raise ChannelPublishError for any failure the publisher
    should count as an attempt.
    """

    def __init__(self, config: ChannelConfig):
        self.config = config

    @abstractmethod
    async def publish(self, content: DerivedContent) -> PublishReceipt:
        """Post one entry."""

    async def close(self) -> None:
        """Release resources (HTTP clients etc.)."""
