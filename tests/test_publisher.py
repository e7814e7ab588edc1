"""
Publish queue tests: dedup, FIFO, windows, daily caps, retries and alerts.

Clients are scripted fakes and backoff sleeps are recorded, so every test
drives the workers step by step with dispatch().
"""

from datetime import timedelta

import pytest

from ideabank.exceptions import DuplicateChannelPublishError, InvalidTransitionError


# =============================================================================
# DEDUPLICATION
# =============================================================================

class TestDeduplication:

    async def test_second_enqueue_rejected(self, publisher, drafted_idea):
        """CRITICAL: an idea never has two live posts on one channel."""
        _, (content,) = await drafted_idea()
        await publisher.enqueue(content.id)
        with pytest.raises(DuplicateChannelPublishError):
            await publisher.enqueue(content.id)

    async def test_enqueue_after_posted_rejected(self, publisher, clients, drafted_idea):
        _, (content,) = await drafted_idea(channels=("twitter", "threads"))
        await publisher.enqueue(content.id)
        await publisher.dispatch("twitter")
        with pytest.raises(DuplicateChannelPublishError):
            await publisher.enqueue(content.id)
        assert clients["twitter"].calls == [content.id]

    async def test_same_channel_different_ideas_allowed(self, publisher, drafted_idea):
        _, (first,) = await drafted_idea(quote="one")
        _, (second,) = await drafted_idea(quote="two")
        await publisher.enqueue(first.id)
        queued = await publisher.enqueue(second.id)
        assert queued.lifecycle == "queued"

    async def test_failed_entry_needs_redraft(self, publisher, coordinator, clients, drafted_idea):
        _, (content,) = await drafted_idea(channels=("threads",))
        clients["threads"].script("boom", "boom")
        await publisher.enqueue(content.id)
        await publisher.dispatch("threads")

        with pytest.raises(InvalidTransitionError):
            await publisher.enqueue(content.id)

        retry = await coordinator.redraft(content.id)
        assert retry.retry_of_id == content.id
        assert (await publisher.enqueue(retry.id)).lifecycle == "queued"

    async def test_redraft_only_from_failed(self, coordinator, drafted_idea):
        _, (content,) = await drafted_idea()
        with pytest.raises(InvalidTransitionError):
            await coordinator.redraft(content.id)

    async def test_enqueue_waived_rejected(self, coordinator, publisher, drafted_idea):
        _, (content, other) = await drafted_idea(channels=("twitter", "threads"))
        await coordinator.waive(content.id)
        with pytest.raises(InvalidTransitionError):
            await publisher.enqueue(content.id)


# =============================================================================
# ORDERING AND SCHEDULING
# =============================================================================

class TestQueueOrder:

    async def test_fifo_per_channel(self, publisher, clients, clock, drafted_idea):
        ids = []
        for quote in ("first", "second"):
            _, (content,) = await drafted_idea(quote=quote, channels=("threads",))
            await publisher.enqueue(content.id)
            ids.append(content.id)
            clock.advance(seconds=1)

        await publisher.dispatch("threads")
        await publisher.dispatch("threads")
        assert clients["threads"].calls == ids

    async def test_scheduled_entry_waits_until_due(self, publisher, clients, clock, drafted_idea):
        _, (content,) = await drafted_idea(channels=("threads",))
        await publisher.schedule(content.id, clock.now + timedelta(hours=2))

        assert await publisher.dispatch("threads") is None
        clock.advance(hours=2)
        outcome = await publisher.dispatch("threads")
        assert outcome.posted
        assert clients["threads"].calls == [content.id]

    async def test_scheduled_entry_does_not_block_due_ones(self, publisher, clients, clock, drafted_idea):
        _, (later,) = await drafted_idea(quote="later", channels=("threads",))
        _, (now,) = await drafted_idea(quote="now", channels=("threads",))
        await publisher.schedule(later.id, clock.now + timedelta(days=1))
        await publisher.publish_now(now.id)

        await publisher.dispatch("threads")
        assert clients["threads"].calls == [now.id]

    async def test_cancel_before_dequeue(self, publisher, clients, drafted_idea):
        _, (content,) = await drafted_idea()
        await publisher.enqueue(content.id)
        canceled = await publisher.cancel(content.id)

        assert canceled.lifecycle == "drafted"
        assert await publisher.dispatch("twitter") is None
        assert clients["twitter"].calls == []

    async def test_cancel_after_dequeue_rejected(self, coordinator, publisher, drafted_idea):
        """Once dequeued, an entry is committed to its publish attempt."""
        _, (content,) = await drafted_idea()
        await publisher.enqueue(content.id)
        await coordinator.claim_next("twitter")
        with pytest.raises(InvalidTransitionError):
            await publisher.cancel(content.id)

    async def test_dequeue_is_audited(self, coordinator, publisher, clock, drafted_idea):
        _, (content,) = await drafted_idea()
        await publisher.enqueue(content.id)
        await coordinator.claim_next("twitter")

        (event,) = [e for e in await coordinator.audit_log(content.idea_id) if e.event == "dequeued"]
        assert (event.from_state, event.to_state) == ("queued", "queued")
        assert event.detail["publish_started_at"] == clock.now.isoformat()


# =============================================================================
# RATE LIMITS
# =============================================================================

class TestRateLimits:

    async def test_window_blocks_second_post(self, publisher, clients, clock, drafted_idea):
        """
        CRITICAL: twitter allows one dequeue per 6h window; the second entry
        waits until the window has passed.
        """
        _, (first,) = await drafted_idea(quote="one")
        _, (second,) = await drafted_idea(quote="two")
        await publisher.enqueue(first.id)
        await publisher.enqueue(second.id)

        assert (await publisher.dispatch("twitter")).content_id == first.id
        assert await publisher.dispatch("twitter") is None

        clock.advance(hours=5, minutes=59)
        assert await publisher.dispatch("twitter") is None

        clock.advance(minutes=1)
        assert (await publisher.dispatch("twitter")).content_id == second.id
        assert clients["twitter"].calls == [first.id, second.id]

    async def test_daily_cap(self, publisher, clients, clock, drafted_idea):
        """threads has no window but a cap of 2 per UTC day."""
        ids = []
        for quote in ("a", "b", "c"):
            _, (content,) = await drafted_idea(quote=quote, channels=("threads",))
            await publisher.enqueue(content.id)
            ids.append(content.id)

        outcomes = await publisher.dispatch_all()
        assert [o.content_id for o in outcomes] == ids[:2]
        assert await publisher.dispatch("threads") is None

        clock.advance(days=1)
        assert (await publisher.dispatch("threads")).content_id == ids[2]

    async def test_failed_publish_counts_against_window(self, publisher, clients, clock, drafted_idea):
        _, (first,) = await drafted_idea(quote="one")
        _, (second,) = await drafted_idea(quote="two")
        clients["twitter"].script("down", "down", "down")
        await publisher.enqueue(first.id)
        await publisher.enqueue(second.id)

        outcome = await publisher.dispatch("twitter")
        assert not outcome.posted
        assert await publisher.dispatch("twitter") is None

    async def test_channels_are_independent(self, publisher, drafted_idea):
        _, (tw, th) = await drafted_idea(channels=("twitter", "threads"))
        await publisher.enqueue(tw.id)
        await publisher.enqueue(th.id)

        outcomes = await publisher.dispatch_all()
        assert sorted((o.channel, o.posted) for o in outcomes) == [
            ("threads", True),
            ("twitter", True),
        ]

    async def test_queue_overview(self, coordinator, publisher, clock, drafted_idea):
        _, (first,) = await drafted_idea(quote="one")
        _, (second,) = await drafted_idea(quote="two")
        await publisher.enqueue(first.id)
        await publisher.enqueue(second.id)
        await publisher.dispatch("twitter")

        overview = {row["channel"]: row for row in await coordinator.queue_overview()}
        twitter = overview["twitter"]
        assert twitter["queued"] == 1
        assert twitter["dequeued_today"] == 1
        assert twitter["can_post"] is False
        assert twitter["next_allowed_at"] == (clock.now + timedelta(hours=6)).isoformat()
        assert overview["threads"]["can_post"] is True


# =============================================================================
# RETRIES AND ALERTS
# =============================================================================

class TestRetries:

    async def test_retry_then_success(self, coordinator, publisher, clients, sleeper, drafted_idea):
        _, (content,) = await drafted_idea()
        clients["twitter"].script("503", "503", "ok")
        await publisher.enqueue(content.id)

        outcome = await publisher.dispatch("twitter")
        assert outcome.posted
        assert outcome.attempts == 3
        assert sleeper.delays == [30.0, 60.0]

        stored = await coordinator.get_content(content.id)
        assert stored.lifecycle == "posted"
        assert stored.attempts == 3
        assert stored.external_ref == f"twitter-{content.id}"

    async def test_timeout_counts_as_attempt(self, coordinator, publisher, clients, drafted_idea):
        _, (content,) = await drafted_idea()
        clients["twitter"].script("hang", "ok")
        await publisher.enqueue(content.id)

        outcome = await publisher.dispatch("twitter")
        assert outcome.posted
        assert outcome.attempts == 2
        events = [e.event for e in await coordinator.audit_log(content.idea_id)]
        assert events.count("attempt") == 1

    async def test_exhausted_retries_fail_with_alert(
        self, coordinator, publisher, clients, sleeper, notifier, drafted_idea
    ):
        """
        CRITICAL: after max attempts the entry is failed, an alert exists
        and the notifier hears about it.
        """
        idea_id, (content,) = await drafted_idea()
        clients["twitter"].script("500", "500", "500")
        await publisher.enqueue(content.id)

        outcome = await publisher.dispatch("twitter")
        assert not outcome.posted
        assert outcome.attempts == 3
        assert sleeper.delays == [30.0, 60.0]

        stored = await coordinator.get_content(content.id)
        assert stored.lifecycle == "failed"
        assert stored.attempts == 3

        alerts = await coordinator.list_alerts(unacknowledged_only=True)
        assert [a.content_id for a in alerts] == [content.id]
        assert outcome.alert_id == alerts[0].id
        assert [a.id for a in notifier.alerts] == [alerts[0].id]

        idea = await coordinator.get_idea(idea_id)
        assert idea.status == "in_creation"

    async def test_unexpected_client_error_counts_as_attempt(
        self, coordinator, publisher, clients, drafted_idea
    ):
        """CRITICAL: a client bug still settles the entry instead of leaving it in flight."""
        _, (content,) = await drafted_idea(channels=("threads",))
        clients["threads"].script("crash", "crash")
        await publisher.enqueue(content.id)

        outcome = await publisher.dispatch("threads")
        assert not outcome.posted
        assert outcome.error == "RuntimeError: client bug"

        stored = await coordinator.get_content(content.id)
        assert stored.lifecycle == "failed"
        assert stored.attempts == 2
        assert [a.content_id for a in await coordinator.list_alerts()] == [content.id]

    async def test_client_error_then_success(self, coordinator, publisher, clients, drafted_idea):
        _, (content,) = await drafted_idea(channels=("threads",))
        clients["threads"].script("crash", "ok")
        await publisher.enqueue(content.id)
        assert (await publisher.dispatch("threads")).posted

    async def test_notifier_error_does_not_break_worker(
        self, coordinator, publisher, clients, notifier, drafted_idea
    ):
        async def broken(alert):
            raise RuntimeError("telegram down")

        for worker in publisher.workers.values():
            worker._notifier = broken

        _, (content,) = await drafted_idea(channels=("threads",))
        clients["threads"].script("x", "x")
        await publisher.enqueue(content.id)
        outcome = await publisher.dispatch("threads")
        assert outcome.alert_id is not None

    async def test_acknowledge_alerts(self, coordinator, publisher, clients, drafted_idea):
        _, (content,) = await drafted_idea(channels=("threads",))
        clients["threads"].script("x", "x")
        await publisher.enqueue(content.id)
        outcome = await publisher.dispatch("threads")

        acked = await coordinator.acknowledge_alert(outcome.alert_id)
        assert acked.acknowledged_at is not None
        assert await coordinator.list_alerts(unacknowledged_only=True) == []
        assert await coordinator.acknowledge_all_alerts() == 0


# =============================================================================
# COMPLETION AND RECOVERY
# =============================================================================

class TestCompletion:

    async def test_all_posted_moves_idea_to_used(self, coordinator, publisher, drafted_idea):
        idea_id, contents = await drafted_idea(channels=("twitter", "threads"))
        for content in contents:
            await publisher.enqueue(content.id)

        await publisher.dispatch("twitter")
        assert (await coordinator.get_idea(idea_id)).status == "in_creation"
        await publisher.dispatch("threads")
        assert (await coordinator.get_idea(idea_id)).status == "used"

    async def test_posted_plus_waived_moves_idea_to_used(self, coordinator, publisher, drafted_idea):
        idea_id, (tw, th) = await drafted_idea(channels=("twitter", "threads"))
        await publisher.enqueue(tw.id)
        await publisher.dispatch("twitter")
        await coordinator.waive(th.id, "not for threads")
        assert (await coordinator.get_idea(idea_id)).status == "used"

    async def test_redrafted_failure_moves_idea_to_used(
        self, coordinator, publisher, clients, drafted_idea
    ):
        """Once a redraft posts, the failed attempt it replaced no longer blocks Used."""
        idea_id, (content,) = await drafted_idea(channels=("threads",))
        clients["threads"].script("x", "x")
        await publisher.enqueue(content.id)
        await publisher.dispatch("threads")

        retry = await coordinator.redraft(content.id)
        await publisher.enqueue(retry.id)
        assert (await publisher.dispatch("threads")).posted
        assert (await coordinator.get_idea(idea_id)).status == "used"

    async def test_recover_interrupted(self, coordinator, publisher, clients, drafted_idea):
        """A dequeue with no recorded outcome is failed and not retried."""
        _, (content,) = await drafted_idea()
        await publisher.enqueue(content.id)
        await coordinator.claim_next("twitter")

        alerts = await coordinator.recover_interrupted()
        assert [a.content_id for a in alerts] == [content.id]
        assert (await coordinator.get_content(content.id)).lifecycle == "failed"
        assert clients["twitter"].calls == []

    async def test_start_and_stop(self, publisher, clients):
        await publisher.start(poll_seconds=60)
        assert len(publisher._tasks) == len(clients)
        await publisher.stop()
        assert publisher._tasks == []
        assert all(client.closed for client in clients.values())
