from __future__ import annotations

import logging
from typing import Tuple

from movin_earn.core.config import ONE_DAY, EngineConfig
from movin_earn.models.rate import Rates, RateState

logger = logging.getLogger(__name__)

BPS_DENOMINATOR = 10_000


class RateSchedule:
    """Base activity rates with lazy, compounding, once-per-whole-day decay.

    Decay is a pure function of (stored state, now); `apply` persists it so the
    next reader starts from the decayed values. Rates never increase.
    """

    def __init__(self, config: EngineConfig):
        self._config = config

    def initial_state(self, now: int) -> RateState:
        return RateState(
            base_steps_rate=self._config.base_steps_rate,
            base_mets_rate=self._config.base_mets_rate,
            last_decay_timestamp=now,
        )

    def current(self, state: RateState, now: int) -> Rates:
        """Effective rates at `now` without touching stored state."""
        days = self._elapsed_days(state, now)
        steps_rate, mets_rate = self._decayed(state.base_steps_rate, state.base_mets_rate, days)
        return Rates(steps_rate=steps_rate, mets_rate=mets_rate, decay_days=days)

    def apply(self, state: RateState, now: int) -> Rates:
        """Persist any pending decay into `state` and return the current rates."""
        rates = self.current(state, now)
        if rates.decay_days:
            state.base_steps_rate = rates.steps_rate
            state.base_mets_rate = rates.mets_rate
            # Advance by whole days only so partial-day progress is kept.
            state.last_decay_timestamp += rates.decay_days * ONE_DAY
            logger.debug(
                "rates.decayed",
                extra={"days": rates.decay_days, "steps_rate": rates.steps_rate, "mets_rate": rates.mets_rate},
            )
        return rates

    @staticmethod
    def _elapsed_days(state: RateState, now: int) -> int:
        if now <= state.last_decay_timestamp:
            return 0
        return (now - state.last_decay_timestamp) // ONE_DAY

    def _decayed(self, steps_rate: int, mets_rate: int, days: int) -> Tuple[int, int]:
        keep = BPS_DENOMINATOR - self._config.rate_decay_bps
        for _ in range(days):
            if steps_rate == 0 and mets_rate == 0:
                break
            steps_rate = steps_rate * keep // BPS_DENOMINATOR
            mets_rate = mets_rate * keep // BPS_DENOMINATOR
        return steps_rate, mets_rate
