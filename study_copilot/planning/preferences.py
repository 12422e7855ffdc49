"""
Planning preferences (soft constraints).

Spread controls how dense a plan is (blocks per week), never the block length.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class Spread(str, Enum):
    LIGHT = "light"
    BALANCED = "balanced"
    INTENSIVE = "intensive"

    @property
    def blocks_per_week(self) -> int:
        return _BLOCKS_PER_WEEK[self]

    @property
    def min_blocks(self) -> int:
        """
        Fewest blocks worth proposing. A shorter plan is reported as
        "not enough free time" instead of being returned.
        """
        return 2 if self is Spread.LIGHT else 4

    @classmethod
    def parse(cls, token: str) -> Optional["Spread"]:
        try:
            return cls(token.strip().lower())
        except ValueError:
            return None


_BLOCKS_PER_WEEK = {
    Spread.LIGHT: 2,
    Spread.BALANCED: 4,
    Spread.INTENSIVE: 6,
}


@dataclass(frozen=True)
class PlanningPreferences:
    """
    Soft constraints shaping a plan.

    topic:
    - If set, every block is labeled with it.
    - Otherwise blocks cycle through the caller's obligations in order.
    """
    spread: Spread = Spread.BALANCED
    topic: Optional[str] = None
