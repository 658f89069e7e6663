from __future__ import annotations

from dataclasses import dataclass


@dataclass
class Stake:
    """
    A locked principal deposit. `stake_id` is stable for the stake's lifetime;
    the list index used by callers is not, since removal compacts the list.
    """

    stake_id: int
    amount: int
    start_time: int
    lock_duration: int
    last_claimed: int
    lock_months: int

    @property
    def unlock_time(self) -> int:
        return self.start_time + self.lock_duration

    def is_unlocked(self, now: int) -> bool:
        return now >= self.unlock_time
