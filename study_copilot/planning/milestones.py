"""
Milestone tasks leading up to a deadline (used by /deadline).
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, timedelta
from typing import List

MILESTONE_TITLES = [
    "Outline / plan",
    "Draft / first pass",
    "Revise / polish",
    "Final review / submission check",
]


@dataclass(frozen=True)
class Milestone:
    title: str
    due_date: date


def _milestone_dates(today: date, deadline: date) -> List[date]:
    days_away = max(0, (deadline - today).days)

    if days_away == 0:
        return [deadline]
    if days_away == 1:
        return [today, deadline]
    if days_away == 2:
        return [today + timedelta(days=1), deadline]

    n = min(4, days_away)
    dates = []
    for i in range(1, n + 1):
        # round half up
        offset = math.floor(days_away * i / (n + 1) + 0.5) - 1
        dates.append(today + timedelta(days=max(0, offset)))
    dates.append(today + timedelta(days=days_away - 1))
    return sorted(set(dates))[-5:]


def plan_milestones(today: date, deadline: date) -> List[Milestone]:
    """
    Three or four milestones, evenly spaced between today and the deadline.

    Dates run out before titles do for short runways; the remaining milestones
    fall due on the deadline itself.
    """
    dates = _milestone_dates(today, deadline)
    count = min(max(3, len(dates)), len(MILESTONE_TITLES))
    return [
        Milestone(
            title=f"Milestone: {MILESTONE_TITLES[i]}",
            due_date=dates[i] if i < len(dates) else deadline,
        )
        for i in range(count)
    ]
