"""Publish scheduler: one worker per channel draining its FIFO queue.

Workers claim entries through the coordinator (which enforces the channel
window and daily cap), call the channel client outside any lock and report
the result back. Failed calls and timeouts are retried with exponential
backoff; when the attempts run out the entry is marked failed and an alert
is raised.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from ideabank.channels import ChannelClient, ChannelConfig, build_client
from ideabank.db.models import Alert, DerivedContent
from ideabank.exceptions import ChannelPublishError
from ideabank.services.coordinator import IdeaCoordinator

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]
AlertNotifier = Callable[[Alert], Awaitable[None]]


@dataclass
class PublishOutcome:
    """Result of publishing one dequeued entry."""

    content_id: int
    channel: str
    posted: bool
    attempts: int
    external_ref: Optional[str] = None
    error: Optional[str] = None
    alert_id: Optional[int] = None


class ChannelWorker:
    """Publishes one channel's queue, one entry at a time."""

    def __init__(
        self,
        coordinator: IdeaCoordinator,
        config: ChannelConfig,
        client: ChannelClient,
        sleep: Sleep = asyncio.sleep,
        notifier: Optional[AlertNotifier] = None,
    ):
        self.coordinator = coordinator
        self.config = config
        self.client = client
        self._sleep = sleep
        self._notifier = notifier
        self._wake = asyncio.Event()

    def wake(self) -> None:
        self._wake.set()

    async def run_once(self) -> Optional[PublishOutcome]:
        """Claim and publish the queue head, if the channel may post now."""
        content = await self.coordinator.claim_next(self.config.name)
        if content is None:
            return None
        return await self.publish(content)

    async def publish(self, content: DerivedContent) -> PublishOutcome:
        """Call the channel with retries and settle the entry."""
        max_attempts = max(self.config.max_attempts, 1)
        error = ""

        for attempt in range(1, max_attempts + 1):
            try:
                receipt = await asyncio.wait_for(
                    self.client.publish(content), timeout=self.config.timeout_seconds
                )
            except asyncio.TimeoutError:
                error = f"timed out after {self.config.timeout_seconds:g}s"
            except ChannelPublishError as e:
                error = str(e)
            except Exception as e:
                logger.exception(f"{self.config.name}: client error publishing content {content.id}")
                error = f"{type(e).__name__}: {e}"
            else:
                await self.coordinator.mark_posted(content.id, receipt, attempts=attempt)
                logger.info(
                    f"{self.config.name}: posted content {content.id} "
                    f"(idea {content.idea_id}) on attempt {attempt}"
                )
                return PublishOutcome(
                    content_id=content.id,
                    channel=self.config.name,
                    posted=True,
                    attempts=attempt,
                    external_ref=receipt.external_ref,
                )

            logger.warning(
                f"{self.config.name}: attempt {attempt}/{max_attempts} for content "
                f"{content.id} failed: {error}"
            )
            await self.coordinator.record_attempt(content.id, attempt, error)
            if attempt < max_attempts:
                await self._sleep(self.config.backoff_for(attempt))

        alert = await self.coordinator.mark_failed(content.id, error, attempts=max_attempts)
        if self._notifier is not None:
            try:
                await self._notifier(alert)
            except Exception as e:
                logger.error(f"Failed to deliver alert {alert.id}: {e}")

        return PublishOutcome(
            content_id=content.id,
            channel=self.config.name,
            posted=False,
            attempts=max_attempts,
            error=error,
            alert_id=alert.id,
        )

    async def drain(self) -> list[PublishOutcome]:
        """Publish until the queue is empty or the channel is rate limited."""
        outcomes = []
        while (outcome := await self.run_once()) is not None:
            outcomes.append(outcome)
        return outcomes

    async def run_forever(self, poll_seconds: float) -> None:
        """Worker loop: drain, then wait for a wake-up or the next poll."""
        logger.info(f"{self.config.name}: publish worker started")
        while True:
            self._wake.clear()
            try:
                await self.drain()
            except Exception as e:
                logger.error(f"{self.config.name}: publish worker error: {e}", exc_info=True)
            try:
                await asyncio.wait_for(self._wake.wait(), timeout=poll_seconds)
            except asyncio.TimeoutError:
                pass


class PublishScheduler:
    """Queue commands plus the set of channel workers."""

    def __init__(
        self,
        coordinator: IdeaCoordinator,
        clients: Optional[dict[str, ChannelClient]] = None,
        sleep: Sleep = asyncio.sleep,
        notifier: Optional[AlertNotifier] = None,
    ):
        self.coordinator = coordinator
        clients = clients or {}
        self.workers: dict[str, ChannelWorker] = {
            name: ChannelWorker(
                coordinator,
                config,
                clients.get(name) or build_client(config),
                sleep=sleep,
                notifier=notifier,
            )
            for name, config in coordinator.channels.items()
        }
        self._tasks: list[asyncio.Task] = []

    def _worker(self, channel: str) -> ChannelWorker:
        return self.workers[self.coordinator.channel_config(channel).name]

    async def enqueue(self, content_id: int, at: Optional[datetime] = None) -> DerivedContent:
        content = await self.coordinator.enqueue(content_id, at=at)
        self._worker(content.channel).wake()
        return content

    async def schedule(self, content_id: int, at: datetime) -> DerivedContent:
        """Queue an entry that becomes due at the given time (UTC)."""
        return await self.enqueue(content_id, at=at)

    async def publish_now(self, content_id: int) -> DerivedContent:
        """Queue an entry with no delay. Still FIFO and rate limited."""
        return await self.enqueue(content_id)

    async def cancel(self, content_id: int) -> DerivedContent:
        return await self.coordinator.cancel(content_id)

    async def dispatch(self, channel: str) -> Optional[PublishOutcome]:
        """Run one step of a channel's worker."""
        return await self._worker(channel).run_once()

    async def dispatch_all(self) -> list[PublishOutcome]:
        """Drain every channel; channels run concurrently."""
        results = await asyncio.gather(*(w.drain() for w in self.workers.values()))
        return [outcome for outcomes in results for outcome in outcomes]

    async def start(self, poll_seconds: float) -> None:
        """Fail interrupted publishes, then start one task per channel."""
        if self._tasks:
            return
        interrupted = await self.coordinator.recover_interrupted()
        if interrupted:
            logger.warning(f"Marked {len(interrupted)} interrupted publishes as failed")
        self._tasks = [
            asyncio.create_task(worker.run_forever(poll_seconds), name=f"publisher-{name}")
            for name, worker in self.workers.items()
        ]
        logger.info(f"Publish scheduler started ({len(self._tasks)} channels)")

    async def stop(self) -> None:
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        for worker in self.workers.values():
            await worker.client.close()
        logger.info("Publish scheduler stopped")
