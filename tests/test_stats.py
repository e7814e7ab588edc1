"""
Capture statistics tests.
"""

from datetime import date, datetime

from ideabank.services.stats import compute_idea_stats, load_idea_stats, week_start

# Wednesday
TODAY = date(2026, 3, 4)


def at(day: str, hour: int = 9) -> datetime:
    return datetime.fromisoformat(f"{day}T{hour:02d}:00:00")


class TestWeekStart:

    def test_sunday_starts_the_week(self):
        assert week_start(date(2026, 3, 1)) == date(2026, 3, 1)
        assert week_start(date(2026, 3, 4)) == date(2026, 3, 1)
        assert week_start(date(2026, 3, 7)) == date(2026, 3, 1)
        assert week_start(date(2026, 3, 8)) == date(2026, 3, 8)


class TestComputeStats:

    def test_period_counts(self):
        dates = [at("2026-03-04"), at("2026-03-04", 18), at("2026-03-02"), at("2026-02-20"), at("2025-12-31")]
        stats = compute_idea_stats(dates, {"new": 4, "used": 1}, TODAY, weekly_goal=4)

        assert stats["total"] == 5
        assert stats["today"] == 2
        assert stats["this_week"] == 3
        assert stats["this_month"] == 3
        assert stats["this_year"] == 4
        assert stats["needs_more_ideas"] is True
        assert stats["monthly_counts"] == {"2025-12": 1, "2026-02": 1, "2026-03": 3}
        assert stats["by_status"]["new"] == 4
        assert stats["by_status"]["archived"] == 0

    def test_streak_counts_from_last_week_until_goal_is_met(self):
        # Weeks starting 2026-02-15 and 2026-02-22 each have two ideas
        dates = [at("2026-02-16"), at("2026-02-17"), at("2026-02-23"), at("2026-02-24"), at("2026-03-02")]
        stats = compute_idea_stats(dates, {}, TODAY, weekly_goal=2)
        assert stats["weekly_progress"] == 1
        assert stats["streak"] == 2

    def test_streak_includes_current_week_once_met(self):
        dates = [at("2026-02-23"), at("2026-02-24"), at("2026-03-02"), at("2026-03-03")]
        stats = compute_idea_stats(dates, {}, TODAY, weekly_goal=2)
        assert stats["needs_more_ideas"] is False
        assert stats["streak"] == 2

    def test_gap_breaks_streak(self):
        dates = [at("2026-02-09"), at("2026-02-10"), at("2026-02-23"), at("2026-02-24")]
        stats = compute_idea_stats(dates, {}, TODAY, weekly_goal=2)
        assert stats["streak"] == 1

    def test_zero_goal(self):
        stats = compute_idea_stats([], {}, TODAY, weekly_goal=0)
        assert stats["streak"] == 0
        assert stats["needs_more_ideas"] is False


class TestLoadStats:

    async def test_reads_captured_ideas(self, coordinator, clock):
        await coordinator.capture("one")
        await coordinator.capture("two", captured_at=datetime(2026, 1, 5, 8, 0))
        await coordinator.hold((await coordinator.capture("three")).idea_id, "later")

        stats = await coordinator.read(
            lambda session: load_idea_stats(session, today=clock.now.date(), weekly_goal=2)
        )
        assert stats["total"] == 3
        assert stats["today"] == 2
        assert stats["by_status"]["new"] == 2
        assert stats["by_status"]["on_hold"] == 1
