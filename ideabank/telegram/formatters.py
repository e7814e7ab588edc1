"""Message formatters for Telegram alerts."""

from ideabank.db.models import Alert

CHANNEL_EMOJI = {
    "twitter": "🐦",
    "bluesky": "🦋",
    "threads": "🧵",
    "reddit": "👽",
    "substack": "📰",
    "book-section": "📖",
}


def get_channel_emoji(channel: str) -> str:
    return CHANNEL_EMOJI.get(channel.lower(), "📣")


def escape_html(text: str) -> str:
    """Escape HTML special characters for Telegram HTML mode."""
    if not text:
        return ""
    return (
        text.replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
    )


def format_alert(alert: Alert) -> str:
    """Single failed-publish alert."""
    emoji = get_channel_emoji(alert.channel or "")
    lines = [
        f"<b>⚠️ Publish failed</b> {emoji} {escape_html(alert.channel or '?')}",
        f"Idea <b>#{alert.idea_id or 0:03d}</b>, content {alert.content_id}",
        "",
        escape_html(alert.message),
    ]
    return "\n".join(lines)


def format_alert_digest(alerts: list[Alert]) -> str:
    """Open alerts, newest first, at most ten listed."""
    lines = [f"<b>🔔 Open publish alerts: {len(alerts)}</b>", ""]
    for alert in alerts[:10]:
        when = alert.created_at.strftime("%Y-%m-%d %H:%M")
        lines.append(
            f"  • {get_channel_emoji(alert.channel or '')} #{alert.idea_id or 0:03d} "
            f"{escape_html(alert.channel or '?')} - <i>{when}</i>"
        )
    if len(alerts) > 10:
        lines.append(f"  <i>...and {len(alerts) - 10} more</i>")
    return "\n".join(lines)
