from __future__ import annotations

from dataclasses import dataclass, field
from typing import List


@dataclass(frozen=True)
class ActivityEntry:
    """One accepted submission: the value reported and when it was recorded."""

    value: int
    timestamp: int


@dataclass
class ActivityRecord:
    """
    Per-account daily counters. Day-level, UTC only, `last_day_reset` is a day
    index (`timestamp // ONE_DAY`). Counters are stored uncapped.

    The histories keep the newest submissions only, oldest first.
    """

    daily_steps: int = 0
    daily_mets: int = 0
    last_updated: int = 0
    last_day_reset: int = 0
    last_meal_claim: int = 0
    steps_history: List[ActivityEntry] = field(default_factory=list)
    mets_history: List[ActivityEntry] = field(default_factory=list)


@dataclass(frozen=True)
class ActivityReward:
    steps_reward: int = 0
    mets_reward: int = 0

    @property
    def total(self) -> int:
        return self.steps_reward + self.mets_reward
