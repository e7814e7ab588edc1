"""Scheduled jobs and Telegram alerts.

- Archive sweep every ARCHIVE_SWEEP_INTERVAL_MINUTES
- Daily digest of unacknowledged publish alerts
- Immediate alert when a publish exhausts its retries
"""

import logging
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from telegram import Bot

from ideabank.config import settings
from ideabank.db.models import Alert
from ideabank.services.coordinator import IdeaCoordinator
from ideabank.telegram.formatters import format_alert, format_alert_digest

logger = logging.getLogger(__name__)

# Global scheduler instance
scheduler: Optional[AsyncIOScheduler] = None


class TelegramAlertNotifier:
    """Sends failed-publish alerts to the operator chat."""

    def __init__(self, bot: Bot, chat_id: int):
        self.bot = bot
        self.chat_id = chat_id

    async def __call__(self, alert: Alert) -> None:
        await self.bot.send_message(
            chat_id=self.chat_id,
            text=format_alert(alert),
            parse_mode="HTML",
        )
        logger.info(f"Alert {alert.id} sent to chat {self.chat_id}")


def create_notifier() -> Optional[TelegramAlertNotifier]:
    """Notifier from settings, or None when alerts are not configured."""
    if not settings.ALERTS_ENABLED or not settings.TELEGRAM_BOT_TOKEN or not settings.TELEGRAM_CHAT_ID:
        logger.info("Telegram alerts disabled (no token or chat ID)")
        return None
    return TelegramAlertNotifier(Bot(token=settings.TELEGRAM_BOT_TOKEN), settings.TELEGRAM_CHAT_ID)


async def run_archive_sweep(coordinator: IdeaCoordinator) -> list[int]:
    """Scheduled archive sweep."""
    try:
        return await coordinator.archive_sweep()
    except Exception as e:
        logger.error(f"Archive sweep failed: {e}", exc_info=True)
        return []


async def send_daily_alert_digest(coordinator: IdeaCoordinator, notifier: TelegramAlertNotifier) -> None:
    """Remind the operator of alerts nobody acknowledged."""
    alerts = await coordinator.list_alerts(unacknowledged_only=True)
    if not alerts:
        logger.info("Alert digest: nothing to report")
        return

    try:
        await notifier.bot.send_message(
            chat_id=notifier.chat_id,
            text=format_alert_digest(alerts),
            parse_mode="HTML",
        )
        logger.info(f"Alert digest sent to chat {notifier.chat_id}")
    except Exception as e:
        logger.error(f"Failed to send alert digest: {e}")


def start_scheduler(
    coordinator: IdeaCoordinator, notifier: Optional[TelegramAlertNotifier] = None
) -> AsyncIOScheduler:
    """Start the background scheduler.

    The archive sweep always runs; the alert digest only when Telegram is
    configured.
    """
    global scheduler

    scheduler = AsyncIOScheduler()

    scheduler.add_job(
        run_archive_sweep,
        'interval',
        minutes=settings.ARCHIVE_SWEEP_INTERVAL_MINUTES,
        args=[coordinator],
        id='archive_sweep',
        replace_existing=True,
    )

    if notifier is not None:
        scheduler.add_job(
            send_daily_alert_digest,
            'cron',
            hour=settings.ALERT_DIGEST_HOUR,
            minute=0,
            args=[coordinator, notifier],
            id='alert_digest',
            replace_existing=True,
        )

    scheduler.start()
    logger.info(
        f"Scheduler started (archive sweep every {settings.ARCHIVE_SWEEP_INTERVAL_MINUTES} min)"
    )
    return scheduler


def stop_scheduler() -> None:
    """Stop the background scheduler."""
    global scheduler

    if scheduler and scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")
    scheduler = None
