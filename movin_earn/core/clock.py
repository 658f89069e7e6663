"""Time source for the engine. All timestamps are integer unix seconds, UTC."""

from __future__ import annotations

import time
from typing import Protocol


class Clock(Protocol):
    def now(self) -> int:
        ...


class SystemClock:
    def now(self) -> int:
        return int(time.time())


class FixedClock:
    """Manually advanced clock for tests and replays."""

    def __init__(self, start: int = 1_700_000_000):
        self._now = int(start)

    def now(self) -> int:
        return self._now

    def advance(self, seconds: int) -> int:
        if seconds < 0:
            raise ValueError("clock cannot move backwards")
        self._now += int(seconds)
        return self._now

    def set(self, moment: int) -> None:
        if moment < self._now:
            raise ValueError("clock cannot move backwards")
        self._now = int(moment)
