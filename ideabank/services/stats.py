"""Capture statistics: how many ideas per day/week/month and the weekly goal streak."""

import logging
from collections import Counter
from datetime import date, datetime, timedelta
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from ideabank.config import settings
from ideabank.db.models import IdeaStatus, utcnow
from ideabank.db.repositories import IdeaRepository

logger = logging.getLogger(__name__)


def week_start(day: date) -> date:
    """Sunday that starts the week containing day."""
    return day - timedelta(days=(day.weekday() + 1) % 7)


def compute_idea_stats(
    capture_dates: list[datetime],
    by_status: dict[str, int],
    today: date,
    weekly_goal: int,
) -> dict:
    """Aggregate capture timestamps into period counts.

    Weeks start on Sunday and are keyed by that Sunday's ISO date. The
    streak counts consecutive weeks meeting the goal, ending with the
    current week if it already meets the goal, otherwise with last week.
    """
    days = [d.date() for d in capture_dates]
    this_week = week_start(today)
    month_start = today.replace(day=1)
    year_start = today.replace(month=1, day=1)
    since_30 = today - timedelta(days=30)

    daily = Counter(d.isoformat() for d in days if d >= since_30)
    weekly = Counter(week_start(d).isoformat() for d in days)
    monthly = Counter(d.strftime("%Y-%m") for d in days)

    progress = weekly.get(this_week.isoformat(), 0)
    cursor = this_week if progress >= weekly_goal else this_week - timedelta(days=7)
    streak = 0
    while weekly_goal > 0 and weekly.get(cursor.isoformat(), 0) >= weekly_goal:
        streak += 1
        cursor -= timedelta(days=7)

    return {
        "total": len(days),
        "today": sum(1 for d in days if d == today),
        "this_week": progress,
        "this_month": sum(1 for d in days if d >= month_start),
        "this_year": sum(1 for d in days if d >= year_start),
        "weekly_goal": weekly_goal,
        "weekly_progress": progress,
        "needs_more_ideas": progress < weekly_goal,
        "streak": streak,
        "daily_counts": dict(sorted(daily.items())),
        "weekly_counts": dict(sorted(weekly.items())),
        "monthly_counts": dict(sorted(monthly.items())),
        "by_status": {status.value: by_status.get(status.value, 0) for status in IdeaStatus},
    }


async def load_idea_stats(
    session: AsyncSession,
    today: Optional[date] = None,
    weekly_goal: Optional[int] = None,
) -> dict:
    """Stats for every captured idea."""
    repo = IdeaRepository(session)
    dates = await repo.get_capture_dates()
    by_status = await repo.count_by_status()
    return compute_idea_stats(
        dates,
        by_status,
        today or utcnow().date(),
        weekly_goal if weekly_goal is not None else settings.IDEAS_WEEKLY_GOAL,
    )
