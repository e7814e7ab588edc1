"""
Shared fixtures for the idea bank tests.

Every test gets its own SQLite database file, a controllable clock and
in-memory channel clients, so the publisher can be driven step by step
without network access or real sleeps.
"""

import asyncio
from datetime import datetime, timedelta

import pytest

from ideabank.channels import LONG_FORM, ChannelClient, ChannelConfig, PublishReceipt
from ideabank.db.connection import create_schema, make_engine, make_session_factory
from ideabank.exceptions import ChannelPublishError
from ideabank.services.coordinator import IdeaCoordinator
from ideabank.services.publisher import PublishScheduler


# =============================================================================
# TEST DOUBLES
# =============================================================================

class FakeClock:
    """Naive-UTC clock that only moves when told to."""

    def __init__(self, start: datetime = datetime(2026, 3, 2, 9, 0)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeChannelClient(ChannelClient):
    """
    Scripted channel.

    Each publish pops the next outcome: "ok" succeeds, "hang" never returns
    (so the publisher's timeout fires), "crash" raises a RuntimeError as a
    buggy client would, anything else raises ChannelPublishError with that
    message. An empty script means "ok".
    """

    def __init__(self, config: ChannelConfig, outcomes=None):
        super().__init__(config)
        self.outcomes = list(outcomes or [])
        self.calls: list[int] = []
        self.closed = False

    def script(self, *outcomes: str) -> None:
        self.outcomes = list(outcomes)

    async def publish(self, content):
        self.calls.append(content.id)
        outcome = self.outcomes.pop(0) if self.outcomes else "ok"
        if outcome == "ok":
            return PublishReceipt(external_ref=f"{self.config.name}-{content.id}")
        if outcome == "hang":
            await asyncio.sleep(3600)
        if outcome == "crash":
            raise RuntimeError("client bug")
        raise ChannelPublishError(self.config.name, outcome)

    async def close(self) -> None:
        self.closed = True


class RecordingSleep:
    """Stands in for asyncio.sleep; records backoff delays."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class RecordingNotifier:
    def __init__(self):
        self.alerts = []

    async def __call__(self, alert) -> None:
        self.alerts.append(alert)


# =============================================================================
# DATABASE FIXTURES
# =============================================================================

@pytest.fixture
async def engine(tmp_path):
    """Fresh SQLite database with the full schema."""
    engine = make_engine(f"sqlite+aiosqlite:///{tmp_path / 'ideabank.db'}")
    await create_schema(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


# =============================================================================
# DOMAIN FIXTURES
# =============================================================================

@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def channels():
    """
    Small channel set with fast timeouts.

    twitter: one post per 6h, 3 per day, 3 attempts
    threads: no window, 2 per day
    substack: long form, one per day
    book-section: long form, no limits
    """
    return {
        "twitter": ChannelConfig(
            "twitter", window_minutes=360, daily_cap=3, max_attempts=3,
            backoff_seconds=30.0, timeout_seconds=0.05, char_limit=280,
        ),
        "threads": ChannelConfig(
            "threads", window_minutes=0, daily_cap=2, max_attempts=2,
            backoff_seconds=10.0, timeout_seconds=0.05, char_limit=500,
        ),
        "substack": ChannelConfig(
            "substack", window_minutes=1440, daily_cap=1, timeout_seconds=0.05,
            capability=LONG_FORM,
        ),
        "book-section": ChannelConfig(
            "book-section", window_minutes=0, timeout_seconds=0.05, capability=LONG_FORM,
        ),
    }


@pytest.fixture
def coordinator(session_factory, channels, clock):
    return IdeaCoordinator(session_factory, channels, clock=clock)


@pytest.fixture
def clients(channels):
    return {name: FakeChannelClient(config) for name, config in channels.items()}


@pytest.fixture
def sleeper():
    return RecordingSleep()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def publisher(coordinator, clients, sleeper, notifier):
    return PublishScheduler(coordinator, clients, sleep=sleeper, notifier=notifier)


@pytest.fixture
def drafted_idea(coordinator):
    """
    Factory: capture an idea, organize it and draft it for the given channels.

    Returns (idea_id, [content, ...]) with the idea in in_creation.
    """

    async def make(quote="Stop trying to get rid of the tension.", channels=("twitter",),
                   chapter="Chapter 1", tags=("tension",)):
        result = await coordinator.capture(quote, tags=list(tags))
        await coordinator.organize(result.idea_id, chapter)
        contents = []
        for channel in channels:
            contents.append(
                await coordinator.draft(result.idea_id, channel, f"{quote} ({channel})")
            )
        return result.idea_id, contents

    return make
