from __future__ import annotations

from dataclasses import dataclass


@dataclass
class RateState:
    """Global activity reward rates, base units per reward unit."""

    base_steps_rate: int
    base_mets_rate: int
    last_decay_timestamp: int


@dataclass(frozen=True)
class Rates:
    steps_rate: int
    mets_rate: int
    decay_days: int = 0
