from __future__ import annotations

import logging
from typing import NamedTuple, Optional, Tuple

from movin_earn.core.config import ONE_DAY, EngineConfig
from movin_earn.core.errors import InvalidActivityInput, InvalidMealScore, MealClaimTooSoon
from movin_earn.features.premium.registry import PremiumRegistry
from movin_earn.features.rates.schedule import RateSchedule
from movin_earn.features.referrals.graph import ReferralGraph
from movin_earn.features.tokens.ledger import TokenCollaborator
from movin_earn.models.activity import ActivityEntry, ActivityRecord, ActivityReward
from movin_earn.models.rate import Rates
from movin_earn.models.state import AccountState, EarnState

logger = logging.getLogger(__name__)

MIN_MEAL_SCORE = 1
MAX_MEAL_SCORE = 100


class ActivityOutcome(NamedTuple):
    reward: ActivityReward
    daily_steps: int
    daily_mets: int
    referrer: Optional[str]
    referral_bonus: int


def day_index(now: int) -> int:
    return now // ONE_DAY


def marginal_reward(previous: int, current: int, cap: int, rate: int, unit: int) -> int:
    """Reward for the units newly crossed between two daily totals.

    Totals above `cap` are stored but earn nothing. Summing the marginal
    rewards of a day never exceeds the reward of the day's capped total.
    """
    return rate * min(current, cap) // unit - rate * min(previous, cap) // unit


class ActivityTracker:
    """Daily steps/METs counters, rate limiting and activity payouts."""

    def __init__(
        self,
        config: EngineConfig,
        rates: RateSchedule,
        premium: PremiumRegistry,
        referrals: ReferralGraph,
        token: TokenCollaborator,
    ):
        self._config = config
        self._rates = rates
        self._premium = premium
        self._referrals = referrals
        self._token = token

    # Reads -----------------------------------------------------------------
    @staticmethod
    def today_totals(activity: ActivityRecord, now: int) -> Tuple[int, int]:
        """Counters as they stand for the current day (zero once the day rolled)."""
        if activity.last_day_reset < day_index(now):
            return 0, 0
        return activity.daily_steps, activity.daily_mets

    def preview(self, state: EarnState, account: str, steps: int, mets: int, now: int) -> ActivityReward:
        """What `record` would pay for this submission, without recording it.

        The rate limit is not evaluated here; a preview never fails on timing.
        """
        self._validate_amounts(steps, mets)
        record = state.peek(account)
        rates = self._rates.current(state.rates, now)
        prev_steps, prev_mets = self.today_totals(record.activity, now)
        return self._reward(record, rates, prev_steps, prev_mets, prev_steps + steps, prev_mets + mets, now)

    # Mutations -------------------------------------------------------------
    def record(self, state: EarnState, account: str, steps: int, mets: int, now: int) -> ActivityOutcome:
        self._validate_amounts(steps, mets)
        self._check_rate_limit(state.peek(account).activity, steps, mets, now)

        record = state.account(account)
        activity = record.activity
        rates = self._rates.apply(state.rates, now)

        today = day_index(now)
        if activity.last_day_reset < today:
            activity.daily_steps = 0
            activity.daily_mets = 0
            activity.last_day_reset = today

        prev_steps, prev_mets = activity.daily_steps, activity.daily_mets
        activity.daily_steps += steps
        activity.daily_mets += mets
        activity.last_updated = now
        self._append_history(activity, steps, mets, now)

        reward = self._reward(record, rates, prev_steps, prev_mets, activity.daily_steps, activity.daily_mets, now)
        referrer, bonus = None, 0
        if reward.total > 0:
            self._token.mint(account, reward.total)
            referrer, bonus = self._referrals.route_bonus(state, account, reward.total)

        return ActivityOutcome(
            reward=reward,
            daily_steps=activity.daily_steps,
            daily_mets=activity.daily_mets,
            referrer=referrer,
            referral_bonus=bonus,
        )

    def claim_meal(self, state: EarnState, account: str, score: int, now: int) -> int:
        if not MIN_MEAL_SCORE <= score <= MAX_MEAL_SCORE:
            raise InvalidMealScore(f"Meal score must be between {MIN_MEAL_SCORE} and {MAX_MEAL_SCORE}, got {score}")
        last = state.peek(account).activity.last_meal_claim
        if last and now - last < self._config.meal_cooldown_seconds:
            raise MealClaimTooSoon(f"Next meal claim allowed at {last + self._config.meal_cooldown_seconds}")

        reward = score * self._config.meal_reward_per_point
        state.account(account).activity.last_meal_claim = now
        self._token.mint(account, reward)
        return reward

    # Internal helpers ------------------------------------------------------
    def _append_history(self, activity: ActivityRecord, steps: int, mets: int, now: int) -> None:
        limit = self._config.activity_history_limit
        if steps > 0:
            activity.steps_history.append(ActivityEntry(value=steps, timestamp=now))
            del activity.steps_history[:-limit]
        if mets > 0:
            activity.mets_history.append(ActivityEntry(value=mets, timestamp=now))
            del activity.mets_history[:-limit]

    @staticmethod
    def _validate_amounts(steps: int, mets: int) -> None:
        if steps < 0 or mets < 0:
            raise InvalidActivityInput("Steps and METs cannot be negative")

    def _check_rate_limit(self, activity: ActivityRecord, steps: int, mets: int, now: int) -> None:
        if not activity.last_updated:
            return
        elapsed = now - activity.last_updated
        if elapsed < self._config.activity_interval_seconds:
            raise InvalidActivityInput(
                f"Activity can be recorded once every {self._config.activity_interval_seconds}s"
            )
        minutes = elapsed // 60
        if steps > self._config.max_steps_per_minute * minutes:
            raise InvalidActivityInput(f"{steps} steps exceed the limit for {minutes} minute(s)")
        if mets > self._config.max_mets_per_minute * minutes:
            raise InvalidActivityInput(f"{mets} METs exceed the limit for {minutes} minute(s)")

    def _reward(
        self,
        record: AccountState,
        rates: Rates,
        prev_steps: int,
        prev_mets: int,
        new_steps: int,
        new_mets: int,
        now: int,
    ) -> ActivityReward:
        steps_reward = marginal_reward(
            prev_steps, new_steps, self._config.max_daily_steps, rates.steps_rate, self._config.steps_unit
        )
        mets_reward = 0
        if self._premium.is_premium(record, now):
            mets_reward = marginal_reward(
                prev_mets, new_mets, self._config.max_daily_mets, rates.mets_rate, self._config.mets_unit
            )
        return ActivityReward(steps_reward=steps_reward, mets_reward=mets_reward)
