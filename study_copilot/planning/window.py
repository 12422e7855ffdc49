"""
Strict parser for reschedule windows such as "2026-02-01 14:00-16:00".

The result is tagged: blank input means "no window", a well-formed window is
returned as RescheduleWindow, anything else carries a reason. Malformed input
is never treated as absent.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Optional

from study_copilot.planner import Interval

_WINDOW_RE = re.compile(
    r"^(?P<day>\d{4}-\d{2}-\d{2})\s+"
    r"(?P<sh>\d{1,2})(?::(?P<sm>\d{2}))?\s*-\s*"
    r"(?P<eh>\d{1,2})(?::(?P<em>\d{2}))?$"
)

USAGE = "Use a window like /reschedule 2026-02-01 14:00-16:00"


@dataclass(frozen=True)
class RescheduleWindow:
    day: date
    start: time
    end: time

    def interval(self, tz) -> Interval:
        return Interval(
            start=datetime.combine(self.day, self.start, tzinfo=tz),
            end=datetime.combine(self.day, self.end, tzinfo=tz),
        )

    def describe(self) -> str:
        return f"{self.day.isoformat()} {self.start:%H:%M}-{self.end:%H:%M}"


@dataclass(frozen=True)
class WindowParse:
    window: Optional[RescheduleWindow] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.window is not None

    @property
    def absent(self) -> bool:
        return self.window is None and self.error is None


def _clock(hour: str, minute: Optional[str]) -> Optional[time]:
    h, m = int(hour), int(minute or 0)
    if not (0 <= h <= 23 and 0 <= m <= 59):
        return None
    return time(h, m)


def parse_window(raw: Optional[str]) -> WindowParse:
    text = (raw or "").strip()
    if not text:
        return WindowParse()

    match = _WINDOW_RE.match(text)
    if not match:
        return WindowParse(error=f"Could not read the window {text!r}. {USAGE}")

    try:
        day = date.fromisoformat(match["day"])
    except ValueError:
        return WindowParse(error=f"{match['day']} is not a valid date. {USAGE}")

    start = _clock(match["sh"], match["sm"])
    end = _clock(match["eh"], match["em"])
    if start is None or end is None:
        return WindowParse(error=f"Hours must be 0-23 and minutes 0-59. {USAGE}")
    if end <= start:
        return WindowParse(error=f"The window must end after it starts. {USAGE}")

    return WindowParse(window=RescheduleWindow(day=day, start=start, end=end))
