"""Daily progress accounting based on graduation events."""

from datetime import UTC, date, datetime, time, timedelta, tzinfo

from wordloop.core.models import DailyGoalProgress, DailyStats, Direction, utcnow
from wordloop.core.storage import ProgressDatabase


def day_window(day: date, tz: tzinfo = UTC) -> tuple[datetime, datetime]:
    """Half-open ``[start, end)`` window covering a calendar day in ``tz``."""
    start = datetime.combine(day, time.min, tzinfo=tz)
    return start, start + timedelta(days=1)


class DailyProgressAccountant:
    """Computes daily progress from the response log.

    A word counts as completed only when it leaves the learning queue for
    spaced review. Plain review answers and learning-phase taps do not
    move the daily goal.
    """

    def __init__(self, db: ProgressDatabase, daily_goal: int = 20, tz: tzinfo = UTC):
        self.db = db
        self.daily_goal = daily_goal
        self.tz = tz

    def today(self, now: datetime | None = None) -> date:
        now = now or utcnow()
        return now.astimezone(self.tz).date()

    def graduated_today(self, direction: Direction, day_start: datetime, day_end: datetime) -> int:
        """Concepts that graduated from learning to review within the window."""
        return self.db.count_graduations(direction, day_start, day_end)

    def studied_today(self, direction: Direction, day_start: datetime, day_end: datetime) -> int:
        """Concepts answered at least once within the window."""
        return self.db.count_studied(direction, day_start, day_end)

    def accuracy(self, direction: Direction, day_start: datetime, day_end: datetime) -> float:
        """Share of answers in the window rated MEDIUM or EASY, 0.0 if none."""
        counts = self.db.count_answers(direction, day_start, day_end)
        if counts["total"] == 0:
            return 0.0
        return counts["correct"] / counts["total"]

    def streak(self, day: date | None = None) -> int:
        """Consecutive days with at least one graduation, ending at ``day``.

        A day without graduations does not break the streak until it is
        over, so counting starts from the previous day in that case.
        """
        day = day or self.today()
        _, end = day_window(day, self.tz)
        active = {t.astimezone(self.tz).date() for t in self.db.graduation_times(end)}

        if day not in active:
            day -= timedelta(days=1)
        count = 0
        while day in active:
            count += 1
            day -= timedelta(days=1)
        return count

    def daily_goal_progress(self, day: date | None = None) -> DailyGoalProgress:
        """Graduations across both directions for ``day`` against the goal."""
        start, end = day_window(day or self.today(), self.tz)
        graduated = sum(self.graduated_today(d, start, end) for d in Direction)
        return DailyGoalProgress(graduated=graduated, daily_goal=self.daily_goal)

    def daily_stats(self, direction: Direction, day: date | None = None) -> DailyStats:
        day = day or self.today()
        start, end = day_window(day, self.tz)
        answers = self.db.count_answers(direction, start, end)
        return DailyStats(
            direction=direction,
            studied_today=self.studied_today(direction, start, end),
            graduated_today=self.graduated_today(direction, start, end),
            total_answers=answers["total"],
            correct_answers=answers["correct"],
            streak_days=self.streak(day),
            daily_goal=self.daily_goal,
        )

    def learning_velocity(self, window_days: int = 7, now: datetime | None = None) -> float:
        """Graduations per week over the trailing window, both directions."""
        if window_days <= 0:
            return 0.0
        end = now or utcnow()
        start = end - timedelta(days=window_days)
        count = sum(self.db.count_graduations(d, start, end) for d in Direction)
        return count / (window_days / 7.0)

    def mastery_percentage(self) -> float:
        """Fraction of selected records flagged as mastered.

        Returns 0.0 if there are no records.
        """
        stats = self.db.get_stats()
        if stats["total_records"] == 0:
            return 0.0
        return stats["mastered"] / stats["total_records"]
