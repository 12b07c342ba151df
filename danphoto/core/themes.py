from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Callable, Dict, Optional, Tuple
from zoneinfo import ZoneInfo

logger = logging.getLogger("danphoto.themes")

Clock = Callable[[], datetime]

PERIOD_FORMATS: Dict[str, str] = {
    "day": "%Y-%m-%d",
    "week": "%G-W%V",
    "month": "%Y-%m",
}

DEFAULT_FALLBACK_ID = "undated"


def system_clock() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Theme:
    id: str
    starts_at: Optional[datetime]
    ends_at: Optional[datetime]
    fallback: bool = False

    def contains(self, moment: datetime) -> bool:
        if self.starts_at is None or self.ends_at is None:
            return False
        return self.starts_at <= moment < self.ends_at

    def to_dict(self) -> Dict[str, object]:
        return {
            "id": self.id,
            "starts_at": self.starts_at.isoformat() if self.starts_at else None,
            "ends_at": self.ends_at.isoformat() if self.ends_at else None,
            "fallback": self.fallback,
        }


class ThemeResolver:
    """Derives the active theme from a clock.

    The theme id is the start of the current period formatted in the
    configured time zone, so every period gets exactly one stable id.
    """

    def __init__(
        self,
        clock: Optional[Clock] = None,
        *,
        period: str = "day",
        timezone_name: str = "UTC",
        fallback_id: str = DEFAULT_FALLBACK_ID,
    ) -> None:
        if period not in PERIOD_FORMATS:
            raise ValueError(f"Unknown theme period {period!r}; expected one of {sorted(PERIOD_FORMATS)}")
        self.clock = clock or system_clock
        self.period = period
        self.tz: tzinfo = ZoneInfo(timezone_name)
        self.fallback_id = fallback_id

    def current_theme(self) -> Theme:
        try:
            now = self.clock()
        except Exception as exc:
            logger.warning("Clock unavailable, using fallback theme %s: %s", self.fallback_id, exc)
            return Theme(id=self.fallback_id, starts_at=None, ends_at=None, fallback=True)
        return self.theme_for(now)

    def theme_for(self, moment: datetime) -> Theme:
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=timezone.utc)
        local = moment.astimezone(self.tz)
        start, end = self._window(local.date())
        return Theme(
            id=start.strftime(PERIOD_FORMATS[self.period]),
            starts_at=start,
            ends_at=end,
        )

    def _window(self, day: date) -> Tuple[datetime, datetime]:
        if self.period == "week":
            first = day - timedelta(days=day.weekday())
            last = first + timedelta(days=7)
        elif self.period == "month":
            first = day.replace(day=1)
            last = (first + timedelta(days=32)).replace(day=1)
        else:
            first = day
            last = day + timedelta(days=1)
        return (
            datetime.combine(first, time.min, tzinfo=self.tz),
            datetime.combine(last, time.min, tzinfo=self.tz),
        )
