"""End-of-day spoken summary, fired at most once per calendar date."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Awaitable, Callable

import structlog

from ambient_health.models import DayStats
from ambient_health.scheduler.periodic import PeriodicService
from ambient_health.services.clients import DailyStatsProvider

if TYPE_CHECKING:
    from ambient_health.voice.playback import SpeechQueue

logger = structlog.get_logger(__name__)

SummaryCallback = Callable[[str], Awaitable[None]]

_MIDNIGHT_RESET_MINUTES = 2


def _plural(count: int, word: str) -> str:
    return f"{count} {word}{'' if count == 1 else 's'}"


def compose_summary(stats: DayStats) -> str:
    """Render *stats* as a short spoken paragraph."""
    parts = ["Here is your daily report."]

    if stats.adherence_percent >= 90:
        parts.append(f"Excellent adherence: {stats.adherence_percent}%.")
    elif stats.adherence_percent >= 70:
        parts.append(f"Good adherence: {stats.adherence_percent}%.")
    else:
        parts.append(f"Adherence needs improvement: {stats.adherence_percent}%.")

    parts.append(f"You took {_plural(stats.breaks_taken, 'break')} today.")

    if stats.avg_posture_score >= 80:
        parts.append(f"Great average posture: {stats.avg_posture_score} out of 100.")
    elif stats.avg_posture_score >= 60:
        parts.append(
            f"Fair average posture: {stats.avg_posture_score} out of 100. "
            "Try to keep your back straight tomorrow."
        )
    else:
        parts.append(
            f"Low average posture: {stats.avg_posture_score} out of 100. "
            "Give it extra attention tomorrow."
        )

    hours, minutes = divmod(stats.focus_minutes, 60)
    focus = f"{hours}h {minutes}min" if minutes else f"{hours}h"
    parts.append(f"Total focus time: {focus}.")

    if stats.voice_commands > 0:
        parts.append(f"You used {_plural(stats.voice_commands, 'voice command')}.")

    parts.append("Rest well. See you tomorrow.")
    return " ".join(parts)


class DailySummaryScheduler(PeriodicService):
    """Check the wall clock every minute and speak the summary once a day.

    The summary fires during the first ``window_minutes`` of
    ``target_hour``.  The last fired date blocks repeats; a separate
    fired-today flag is cleared shortly after midnight.
    """

    log_name = "daily_summary"

    def __init__(
        self,
        stats_provider: DailyStatsProvider,
        speech: SpeechQueue | None = None,
        *,
        on_summary: SummaryCallback | None = None,
        target_hour: int = 22,
        window_minutes: int = 5,
        interval: float = 60.0,
        now: Callable[[], datetime] = datetime.now,
    ) -> None:
        super().__init__(interval)
        self._stats = stats_provider
        self._speech = speech
        self._on_summary = on_summary
        self._target_hour = target_hour
        self._window_minutes = window_minutes
        self._now = now
        self._fired_today = False
        self._last_fired_date: str | None = None
        self.last_summary: str | None = None

    @property
    def last_fired_date(self) -> str | None:
        return self._last_fired_date

    async def tick(self) -> None:
        await self.check()

    async def check(self, now: datetime | None = None) -> str | None:
        """Fire the summary if *now* falls in today's window.  Return it when fired."""
        now = self._now() if now is None else now

        if now.hour == 0 and now.minute < _MIDNIGHT_RESET_MINUTES:
            self._fired_today = False

        if self._fired_today:
            return None
        if now.hour != self._target_hour or now.minute >= self._window_minutes:
            return None

        today = now.date().isoformat()
        if self._last_fired_date == today:
            return None
        self._fired_today = True
        self._last_fired_date = today

        try:
            stats = await self._stats.get_daily_stats()
        except Exception as exc:
            logger.error("daily_summary.stats_failed", error=str(exc))
            return None

        summary = compose_summary(stats)
        self.last_summary = summary
        logger.info("daily_summary.fired", date=today, chars=len(summary))

        if self._speech is not None:
            self._speech.speak(summary, label="daily_summary")
        if self._on_summary is not None:
            await self._on_summary(summary)
        return summary
