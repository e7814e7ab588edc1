"""
End-to-end walks through the idea lifecycle and the publisher.
"""

import asyncio

import pytest

from ideabank.channels import ChannelConfig
from ideabank.exceptions import DuplicateChannelPublishError


@pytest.fixture
def channels(channels):
    """Test channels plus bluesky."""
    return {
        **channels,
        "bluesky": ChannelConfig(
            "bluesky", window_minutes=360, daily_cap=3, timeout_seconds=0.05, char_limit=300
        ),
    }


class TestFullLifecycle:

    async def test_capture_to_archive(self, coordinator, publisher, clients):
        """
        HAPPY PATH: capture -> organize -> draft -> publish -> Used ->
        archive sweep -> Archived.
        """
        quote = "Stop trying to get rid of inconsistent principles..."
        result = await coordinator.capture(quote)
        idea_id = result.idea_id

        idea = await coordinator.organize(idea_id, "Chapter 1")
        assert idea.status == "organizing"

        content = await coordinator.draft(idea_id, "bluesky", quote)
        assert (await coordinator.get_idea(idea_id)).status == "in_creation"

        await publisher.enqueue(content.id)
        outcome = await publisher.dispatch("bluesky")
        assert outcome.posted
        assert (await coordinator.get_idea(idea_id)).status == "used"

        assert await coordinator.archive_sweep() == [idea_id]
        assert (await coordinator.get_idea(idea_id)).status == "archived"
        assert await coordinator.status_walk(idea_id) == [
            "new", "organizing", "in_creation", "used", "archived",
        ]


class TestConcurrentLinks:

    async def test_concurrent_links_converge(self, coordinator):
        """CRITICAL: concurrent link(A, B) calls leave exactly one edge each way."""
        a = (await coordinator.capture("a")).idea_id
        b = (await coordinator.capture("b")).idea_id

        await asyncio.gather(
            coordinator.link(a, b),
            coordinator.link(a, b),
            coordinator.link(b, a),
        )

        assert (await coordinator.get_idea(a)).cross_refs == [b]
        assert (await coordinator.get_idea(b)).cross_refs == [a]

    async def test_concurrent_captures_get_distinct_ids(self, coordinator):
        results = await asyncio.gather(*(coordinator.capture(f"idea {i}") for i in range(10)))
        assert sorted(r.idea_id for r in results) == list(range(1, 11))


class TestPublishOnce:

    async def test_second_enqueue_after_post_rejected(self, publisher, clients, drafted_idea):
        idea_id, (content,) = await drafted_idea(channels=("twitter", "threads"))
        await publisher.enqueue(content.id)
        assert (await publisher.dispatch("twitter")).posted

        with pytest.raises(DuplicateChannelPublishError) as exc_info:
            await publisher.enqueue(content.id)
        assert exc_info.value.idea_id == idea_id
        assert exc_info.value.channel == "twitter"
        assert clients["twitter"].calls == [content.id]


class TestTimeoutExhaustion:

    async def test_three_timeouts_fail_without_completing_idea(
        self, coordinator, publisher, clients, drafted_idea
    ):
        """
        CRITICAL: a channel timing out on every attempt leaves the entry
        Failed with an alert, and the idea stays InCreation.
        """
        idea_id, (content,) = await drafted_idea()
        clients["twitter"].script("hang", "hang", "hang")
        await publisher.enqueue(content.id)

        outcome = await publisher.dispatch("twitter")
        assert not outcome.posted
        assert outcome.attempts == 3
        assert "timed out" in outcome.error

        assert (await coordinator.get_content(content.id)).lifecycle == "failed"
        assert len(await coordinator.list_alerts()) == 1
        assert (await coordinator.get_idea(idea_id)).status == "in_creation"
