# study_copilot/planner.py
"""
Planning logic: turn busy intervals into candidate study slots, then pick a spread of them.

This module is deterministic and testable (no database, no clock):
- merge_busy_from_freebusy: merges busy intervals from a Google FreeBusy response
- normalize_intervals_tz: converts intervals into a single timezone
- planning_horizon_days: how many days ahead to plan, clamped to [min, max]
- generate_slots: fixed-length candidate slots inside working hours, minus busy time
- select_spread_blocks: round-robin across days, then chronological backfill

Intervals are half-open: [start, end). Two intervals that only touch do not overlap.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Any, Dict, Iterable, List, Optional

from study_copilot.planning.preferences import Spread


@dataclass(frozen=True)
class Interval:
    """
    Simple time interval.
    """
    start: datetime
    end: datetime

    def minutes(self) -> int:
        """
        Return the length of the interval in whole minutes.
        """
        return int((self.end - self.start).total_seconds() // 60)

    def overlaps(self, other: "Interval") -> bool:
        return self.start < other.end and other.start < self.end


@dataclass(frozen=True)
class Slot(Interval):
    """
    A candidate block of free time, wholly inside one day's working hours.
    """
    duration_minutes: int = 60


@dataclass(frozen=True)
class PlannerSettings:
    """
    Fixed planning constants. Built from config.Settings in the running app,
    constructed directly in tests.
    """
    working_start_hour: int = 8
    working_end_hour: int = 22
    slot_minutes: int = 60
    min_planning_days: int = 7
    max_planning_days: int = 84
    max_total_blocks: int = 30
    reschedule_days: int = 7
    max_alternatives: int = 5
    min_alternatives: int = 2


DEFAULT_SETTINGS = PlannerSettings()


@dataclass(frozen=True)
class PlanningWindow:
    """
    Days [today, today + horizon_days) that a single planning call looks at.
    """
    today: date
    horizon_days: int

    def start(self, tz) -> datetime:
        return datetime.combine(self.today, time(0, 0), tzinfo=tz)

    def end(self, tz) -> datetime:
        return self.start(tz) + timedelta(days=self.horizon_days)


def parse_rfc3339(dt_str: str) -> datetime:
    """
    Parse an RFC3339 / ISO-8601 datetime string into a datetime.

    Google returns a trailing 'Z' for UTC; fromisoformat wants '+00:00'.
    """
    return datetime.fromisoformat(dt_str.replace("Z", "+00:00"))


def to_rfc3339(dt: datetime) -> str:
    return dt.isoformat()


def normalize_intervals_tz(intervals: List[Interval], tz) -> List[Interval]:
    """
    Convert all interval start/end datetimes to a single timezone.

    FreeBusy answers in UTC while slots are built in local time. Comparisons
    between aware datetimes are correct either way; this keeps printing and
    day boundaries readable.
    """
    return [Interval(start=it.start.astimezone(tz), end=it.end.astimezone(tz)) for it in intervals]


def merge_busy_from_freebusy(calendars_busy: Dict[str, Any]) -> List[Interval]:
    """
    Merge busy blocks from a FreeBusy response into one consolidated busy list.

    Args:
        calendars_busy: Output from freebusy.query, typically:
            {
              "calId": {"busy": [{"start": "...", "end": "..."}, ...]},
              ...
            }

    Returns:
        A merged list of non-overlapping busy intervals (timezone-aware datetimes).
    """
    all_busy: List[Interval] = []

    for _, data in calendars_busy.items():
        for b in data.get("busy", []):
            start = parse_rfc3339(b["start"])
            end = parse_rfc3339(b["end"])
            if end > start:
                all_busy.append(Interval(start=start, end=end))

    all_busy.sort(key=lambda x: x.start)

    merged: List[Interval] = []
    for it in all_busy:
        if not merged or it.start > merged[-1].end:
            merged.append(it)
        else:
            last = merged[-1]
            merged[-1] = Interval(start=last.start, end=max(last.end, it.end))

    return merged


def planning_horizon_days(
    today: date,
    due_dates: Iterable[Optional[date]],
    settings: PlannerSettings = DEFAULT_SETTINGS,
) -> int:
    """
    Number of days to plan ahead.

    - No due dates at all: the minimum horizon.
    - Otherwise: days until the furthest due date, clamped to
      [min_planning_days, max_planning_days].
    """
    dated = [d for d in due_dates if d is not None]
    if not dated:
        return settings.min_planning_days

    raw = (max(dated) - today).days
    return max(settings.min_planning_days, min(settings.max_planning_days, raw))


def planning_window(
    today: date,
    due_dates: Iterable[Optional[date]],
    settings: PlannerSettings = DEFAULT_SETTINGS,
) -> PlanningWindow:
    return PlanningWindow(today=today, horizon_days=planning_horizon_days(today, due_dates, settings))


def _overlaps_any(candidate: Interval, others: Iterable[Interval]) -> bool:
    return any(candidate.overlaps(o) for o in others)


def day_slots(day: date, tz, settings: PlannerSettings = DEFAULT_SETTINGS) -> List[Slot]:
    """
    All candidate slots of one day on whole-hour starts, before any filtering.
    """
    length = timedelta(minutes=settings.slot_minutes)
    day_open = datetime.combine(day, time(settings.working_start_hour, 0), tzinfo=tz)
    day_close = datetime.combine(day, time(0, 0), tzinfo=tz) + timedelta(hours=settings.working_end_hour)
    starts = [day_open + timedelta(hours=h) for h in range(settings.working_end_hour - settings.working_start_hour)]

    return [
        Slot(start=s, end=s + length, duration_minutes=settings.slot_minutes)
        for s in starts
        if s + length <= day_close
    ]


def generate_slots(
    now: datetime,
    busy: List[Interval],
    days: int,
    settings: PlannerSettings = DEFAULT_SETTINGS,
) -> List[Slot]:
    """
    Enumerate free candidate slots for days [now.date(), now.date() + days).

    A slot is kept when it has not started yet and overlaps no busy interval.
    Busy intervals may overlap each other; nothing here assumes they are merged.
    Result is in chronological order and depends only on the arguments.
    """
    tz = now.tzinfo
    today = now.date()
    out: List[Slot] = []

    for offset in range(days):
        for slot in day_slots(today + timedelta(days=offset), tz, settings):
            if slot.start < now:
                continue
            if _overlaps_any(slot, busy):
                continue
            out.append(slot)

    return out


def target_block_count(spread: Spread, horizon_days: int, settings: PlannerSettings = DEFAULT_SETTINGS) -> int:
    weeks = math.ceil(horizon_days / 7)
    return min(spread.blocks_per_week * weeks, settings.max_total_blocks)


def select_spread_blocks(slots: List[Slot], target: int) -> List[Slot]:
    """
    Pick up to `target` non-overlapping slots, spread across days.

    Phase 1 walks the days in ascending order, taking the earliest usable slot of
    each day in turn. Every pass over the days either picks something or finds a day
    exhausted, so the walk is capped at 2 x number-of-days steps; past that the days
    have run dry and phase 1 stops even if the target is not met.

    Phase 2 backfills chronologically from whatever is left.

    Returns the chosen slots sorted by start.
    """
    if target <= 0 or not slots:
        return []

    by_day: Dict[date, List[Slot]] = {}
    for slot in sorted(slots, key=lambda s: s.start):
        by_day.setdefault(slot.start.date(), []).append(slot)
    days = sorted(by_day)

    chosen: List[Slot] = []
    used = set()

    def _take_from(day: date) -> bool:
        for slot in by_day[day]:
            if slot in used or _overlaps_any(slot, chosen):
                continue
            chosen.append(slot)
            used.add(slot)
            return True
        return False

    max_steps = 2 * len(days)
    step = 0
    while len(chosen) < target and step < max_steps:
        _take_from(days[step % len(days)])
        step += 1

    for slot in sorted(slots, key=lambda s: s.start):
        if len(chosen) >= target:
            break
        if slot in used or _overlaps_any(slot, chosen):
            continue
        chosen.append(slot)
        used.add(slot)

    chosen.sort(key=lambda s: s.start)
    return chosen
