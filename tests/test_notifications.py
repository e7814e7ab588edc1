"""
Telegram alert formatting and scheduled job tests.
"""

from datetime import datetime

from ideabank.db.models import Alert
from ideabank.telegram.formatters import escape_html, format_alert, format_alert_digest
from ideabank.telegram.notifications import (
    TelegramAlertNotifier,
    run_archive_sweep,
    send_daily_alert_digest,
)


class FakeBot:
    def __init__(self):
        self.messages = []

    async def send_message(self, chat_id, text, parse_mode=None):
        self.messages.append({"chat_id": chat_id, "text": text, "parse_mode": parse_mode})


def make_alert(alert_id=1, channel="twitter", message="boom <500>"):
    return Alert(
        id=alert_id,
        idea_id=5,
        content_id=9,
        channel=channel,
        message=message,
        created_at=datetime(2026, 3, 2, 9, 30),
    )


class TestFormatters:

    def test_escape_html(self):
        assert escape_html("a < b & c > d") == "a &lt; b &amp; c &gt; d"
        assert escape_html("") == ""

    def test_alert(self):
        text = format_alert(make_alert())
        assert "🐦 twitter" in text
        assert "#005" in text
        assert "boom &lt;500&gt;" in text

    def test_digest_is_capped(self):
        alerts = [make_alert(i, channel="threads") for i in range(12)]
        text = format_alert_digest(alerts)
        assert "Open publish alerts: 12" in text
        assert text.count("🧵") == 10
        assert "...and 2 more" in text


class TestNotifier:

    async def test_sends_html(self):
        bot = FakeBot()
        await TelegramAlertNotifier(bot, chat_id=42)(make_alert())
        assert bot.messages[0]["chat_id"] == 42
        assert bot.messages[0]["parse_mode"] == "HTML"

    async def test_digest_skips_when_nothing_open(self, coordinator):
        bot = FakeBot()
        await send_daily_alert_digest(coordinator, TelegramAlertNotifier(bot, chat_id=1))
        assert bot.messages == []

    async def test_digest_lists_open_alerts(self, coordinator, publisher, clients, drafted_idea):
        _, (content,) = await drafted_idea(channels=("threads",))
        clients["threads"].script("x", "x")
        await publisher.enqueue(content.id)
        await publisher.dispatch("threads")

        bot = FakeBot()
        await send_daily_alert_digest(coordinator, TelegramAlertNotifier(bot, chat_id=1))
        assert "Open publish alerts: 1" in bot.messages[0]["text"]


class TestScheduledSweep:

    async def test_runs_sweep(self, coordinator, drafted_idea):
        idea_id, (content,) = await drafted_idea()
        await coordinator.waive(content.id)
        assert await run_archive_sweep(coordinator) == [idea_id]
