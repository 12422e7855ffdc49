# study_copilot/allocator.py
"""
Study-block allocation: the two calls the copilot makes into the planner.

- plan_study_blocks: spread study blocks across the planning horizon
- reschedule_alternatives: a handful of alternatives to one window or block

Both are pure. They take a snapshot (now, obligations, busy intervals) and return
an AllocationResult; writing suggestions is the caller's job. A result without
proposals is a soft failure whose reply explains why.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Dict, List, Optional

from study_copilot.planner import (
    DEFAULT_SETTINGS,
    Interval,
    PlannerSettings,
    Slot,
    generate_slots,
    planning_window,
    select_spread_blocks,
    target_block_count,
    to_rfc3339,
)
from study_copilot.planning.preferences import PlanningPreferences
from study_copilot.planning.window import USAGE, RescheduleWindow

logger = logging.getLogger(__name__)

GENERAL_TOPIC = "General review"


@dataclass(frozen=True)
class Obligation:
    id: str
    title: str
    due_date: Optional[date] = None


@dataclass(frozen=True)
class TargetBlock:
    """
    An existing study event the user wants to move.
    """
    title: str
    interval: Interval


@dataclass(frozen=True)
class StudyBlockProposal:
    title: str
    start: datetime
    end: datetime
    label: str

    def to_payload(self) -> Dict[str, str]:
        return {"title": self.title, "start": to_rfc3339(self.start), "end": to_rfc3339(self.end)}


@dataclass
class AllocationResult:
    reply: str
    proposals: List[StudyBlockProposal] = field(default_factory=list)
    horizon_days: Optional[int] = None

    @property
    def ok(self) -> bool:
        return bool(self.proposals)


def _not_enough_time(days: int, spread_name: str, settings: PlannerSettings) -> str:
    hours = f"{settings.working_start_hour:02d}:00-{settings.working_end_hour:02d}:00"
    return (
        f"Not enough free time in the next {days} days ({hours}) "
        f"for a {spread_name} study plan. Free up some time, try a lighter spread, "
        f"or plan again later."
    )


def plan_study_blocks(
    now: datetime,
    obligations: List[Obligation],
    busy: List[Interval],
    preferences: Optional[PlanningPreferences] = None,
    settings: PlannerSettings = DEFAULT_SETTINGS,
) -> AllocationResult:
    """
    Propose study blocks across the planning horizon.

    Horizon comes from the furthest due date, target count from the spread tier,
    and slots are picked round-robin across days. Below the tier's minimum nothing
    is proposed at all: a partial plan would misstate how much time is covered.

    Blocks are labeled by cycling through `obligations` in the given order
    (callers pass them due-soonest first).
    """
    prefs = preferences or PlanningPreferences()
    window = planning_window(now.date(), [o.due_date for o in obligations], settings)
    days = window.horizon_days

    slots = generate_slots(now, busy, days, settings)
    if not slots:
        logger.info("plan: no free slots in %d-day horizon", days)
        return AllocationResult(reply=_not_enough_time(days, prefs.spread.value, settings), horizon_days=days)

    target = target_block_count(prefs.spread, days, settings)
    chosen = select_spread_blocks(slots, target)

    if len(chosen) < prefs.spread.min_blocks:
        logger.info(
            "plan: only %d of %d required blocks fit (spread=%s, horizon=%d)",
            len(chosen), prefs.spread.min_blocks, prefs.spread.value, days,
        )
        return AllocationResult(reply=_not_enough_time(days, prefs.spread.value, settings), horizon_days=days)

    proposals = []
    for i, slot in enumerate(chosen):
        if prefs.topic:
            topic = prefs.topic
        elif obligations:
            topic = obligations[i % len(obligations)].title
        else:
            topic = GENERAL_TOPIC
        proposals.append(
            StudyBlockProposal(
                title=f"Study: {topic}",
                start=slot.start,
                end=slot.end,
                label=f"Study block {i + 1}: {slot.duration_minutes} min - {topic}",
            )
        )

    distinct_days = len({p.start.date() for p in proposals})
    reply = (
        f"Suggested {len(proposals)} study block(s) across {distinct_days} day(s) "
        f"over the next {days} days ({prefs.spread.value} spread, no overlap with your events). "
        f"Use Accept to add them to your calendar."
    )
    logger.info("plan: %d blocks over %d days (target %d)", len(proposals), days, target)
    return AllocationResult(reply=reply, proposals=proposals, horizon_days=days)


def _window_slots(now: datetime, busy: List[Interval], window: Interval, settings: PlannerSettings) -> List[Slot]:
    """
    Slots strictly inside an explicit window, stepping from its start.

    The window replaces working hours here: the user picked the time.
    """
    length = timedelta(minutes=settings.slot_minutes)
    out = []
    cursor = window.start
    while cursor + length <= window.end:
        slot = Slot(start=cursor, end=cursor + length, duration_minutes=settings.slot_minutes)
        cursor += length
        if slot.start < now or any(slot.overlaps(b) for b in busy):
            continue
        out.append(slot)
    return out


def reschedule_alternatives(
    now: datetime,
    busy: List[Interval],
    window: Optional[RescheduleWindow] = None,
    target: Optional[TargetBlock] = None,
    settings: PlannerSettings = DEFAULT_SETTINGS,
) -> AllocationResult:
    """
    Alternatives to one window or one existing block.

    With a window: sub-slots inside the window first, then slots from the lookahead
    that avoid the window. With a target block: lookahead slots that avoid it.
    No day spreading; candidates are taken in chronological order.
    """
    if window is None and target is None:
        return AllocationResult(reply=f"No upcoming study block found. {USAGE}")

    if window is not None:
        original = window.interval(now.tzinfo)
        title_base = f"Study: {window.describe()}"
        if original.end <= now:
            return AllocationResult(reply=f"The window {window.describe()} is in the past. Pick a future window.")
        preferred = _window_slots(now, busy, original, settings)
    else:
        original = target.interval
        title_base = target.title or "Study: block"
        preferred = []

    lookahead = generate_slots(now, busy, settings.reschedule_days, settings)

    chosen: List[Slot] = []
    for slot in preferred:
        if len(chosen) >= settings.max_alternatives:
            break
        if any(slot.overlaps(c) for c in chosen):
            continue
        chosen.append(slot)

    for slot in lookahead:
        if len(chosen) >= settings.max_alternatives:
            break
        if slot.overlaps(original) or any(slot.overlaps(c) for c in chosen):
            continue
        chosen.append(slot)

    if len(chosen) < settings.min_alternatives:
        logger.info("reschedule: only %d alternative(s) found", len(chosen))
        return AllocationResult(
            reply=(
                f"Not enough free {settings.slot_minutes}-min slots in the next "
                f"{settings.reschedule_days} days to suggest alternatives. "
                f"Try freeing time or a different window."
            )
        )

    proposals = [
        StudyBlockProposal(
            title=title_base if i == 0 else f"{title_base} (option {i + 1})",
            start=slot.start,
            end=slot.end,
            label=f"Reschedule: study block option {i + 1}",
        )
        for i, slot in enumerate(chosen)
    ]
    reply = f"Suggested {len(proposals)} alternative study block(s). The original is unchanged."
    logger.info("reschedule: %d alternatives", len(proposals))
    return AllocationResult(reply=reply, proposals=proposals, horizon_days=settings.reschedule_days)
