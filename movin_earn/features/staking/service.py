from __future__ import annotations

import logging
from typing import List, NamedTuple

from movin_earn.core.config import ONE_DAY, ONE_YEAR, PREMIUM_ONLY_LOCK_MONTHS, EngineConfig
from movin_earn.core.errors import (
    InvalidStakeIndex,
    LockPeriodActive,
    NoRewardsAvailable,
    UnauthorizedAccess,
    ZeroAmountNotAllowed,
)
from movin_earn.features.admin.gate import AdminGate
from movin_earn.features.premium.registry import PremiumRegistry
from movin_earn.features.tokens.ledger import TokenCollaborator
from movin_earn.models.stake import Stake
from movin_earn.models.state import AccountState, AdminState

logger = logging.getLogger(__name__)

REWARD_DENOMINATOR = 100 * ONE_YEAR


def rewardable_duration(elapsed: int) -> int:
    """Seconds of a claim window that earn staking rewards.

    Anything older than the most recent day boundary since the last claim is
    forfeited: a window longer than one day only pays its remainder modulo one
    day. Rewards therefore cannot be hoarded across days.
    """
    if elapsed <= 0:
        return 0
    if elapsed > ONE_DAY:
        return elapsed % ONE_DAY
    return elapsed


def staking_reward(amount: int, multiplier: int, elapsed: int) -> int:
    return amount * multiplier * rewardable_duration(elapsed) // REWARD_DENOMINATOR


class UnstakeResult(NamedTuple):
    stake: Stake
    returned: int
    burned: int


class RestakeResult(NamedTuple):
    stake: Stake
    settled_reward: int


class StakeBook:
    """Per-account stake lists: creation, reward accrual, claims and exits."""

    def __init__(self, config: EngineConfig, gate: AdminGate, premium: PremiumRegistry, token: TokenCollaborator):
        self._config = config
        self._gate = gate
        self._premium = premium
        self._token = token

    # Reads -----------------------------------------------------------------
    def get(self, record: AccountState, index: int) -> Stake:
        if index < 0 or index >= len(record.stakes):
            raise InvalidStakeIndex(f"No stake at index {index}")
        return record.stakes[index]

    def reward_for(self, admin: AdminState, item: Stake, now: int) -> int:
        multiplier = self._gate.multiplier(admin, item.lock_months)
        return staking_reward(item.amount, multiplier, now - item.last_claimed)

    def calculate_reward(self, record: AccountState, admin: AdminState, index: int, now: int) -> int:
        return self.reward_for(admin, self.get(record, index), now)

    def calculate_total(self, record: AccountState, admin: AdminState, now: int) -> int:
        return sum(self.reward_for(admin, item, now) for item in record.stakes)

    # Mutations -------------------------------------------------------------
    def stake(self, record: AccountState, admin: AdminState, amount: int, lock_months: int, now: int) -> Stake:
        if amount <= 0:
            raise ZeroAmountNotAllowed()
        self._check_lock_option(record, lock_months, now)

        custody = self._config.custody_account
        self._token.transfer_from(record.account, custody, amount, spender=custody)

        item = Stake(
            stake_id=record.next_stake_id,
            amount=amount,
            start_time=now,
            lock_duration=self._gate.lock_duration(lock_months),
            last_claimed=now,
            lock_months=lock_months,
        )
        record.next_stake_id += 1
        record.stakes.append(item)
        return item

    def claim(self, record: AccountState, admin: AdminState, index: int, now: int) -> int:
        item = self.get(record, index)
        reward = self.reward_for(admin, item, now)
        item.last_claimed = now
        if reward > 0:
            self._token.mint(record.account, reward)
        return reward

    def claim_all(self, record: AccountState, admin: AdminState, now: int) -> int:
        total = self.calculate_total(record, admin, now)
        if total < self._config.stake_dust_threshold:
            raise NoRewardsAvailable(
                f"Claimable staking rewards {total} are below the minimum of {self._config.stake_dust_threshold}"
            )
        for item in record.stakes:
            item.last_claimed = now
        self._token.mint(record.account, total)
        return total

    def unstake(self, record: AccountState, index: int, now: int) -> UnstakeResult:
        item = self.get(record, index)
        self._require_unlocked(item, now)

        burned = item.amount * self._config.unstake_burn_fee_bps // 10_000
        returned = item.amount - burned
        custody = self._config.custody_account
        if returned > 0:
            self._token.transfer(custody, record.account, returned)
        if burned > 0:
            self._token.burn(custody, burned)

        del record.stakes[index]
        return UnstakeResult(stake=item, returned=returned, burned=burned)

    def restake(self, record: AccountState, admin: AdminState, index: int, new_lock_months: int, now: int) -> RestakeResult:
        item = self.get(record, index)
        self._require_unlocked(item, now)
        self._check_lock_option(record, new_lock_months, now)

        settled = self.reward_for(admin, item, now)
        if settled > 0:
            self._token.mint(record.account, settled)

        replacement = Stake(
            stake_id=record.next_stake_id,
            amount=item.amount,
            start_time=now,
            lock_duration=self._gate.lock_duration(new_lock_months),
            last_claimed=now,
            lock_months=new_lock_months,
        )
        record.next_stake_id += 1
        del record.stakes[index]
        record.stakes.append(replacement)
        return RestakeResult(stake=replacement, settled_reward=settled)

    # Internal helpers ------------------------------------------------------
    def _check_lock_option(self, record: AccountState, lock_months: int, now: int) -> None:
        self._gate.validate_lock_months(lock_months)
        if lock_months == PREMIUM_ONLY_LOCK_MONTHS and not self._premium.is_premium(record, now):
            raise UnauthorizedAccess(f"{PREMIUM_ONLY_LOCK_MONTHS}-month lock requires premium status")

    @staticmethod
    def _require_unlocked(item: Stake, now: int) -> None:
        if not item.is_unlocked(now):
            raise LockPeriodActive(f"Stake {item.stake_id} is locked until {item.unlock_time}")


def stake_to_dict(index: int, item: Stake) -> dict:
    return {
        "index": index,
        "stakeId": item.stake_id,
        "amount": str(item.amount),
        "startTime": item.start_time,
        "lockDuration": item.lock_duration,
        "lockMonths": item.lock_months,
        "lastClaimed": item.last_claimed,
        "unlockTime": item.unlock_time,
    }


def stakes_snapshot(stakes: List[Stake]) -> List[dict]:
    return [stake_to_dict(index, item) for index, item in enumerate(stakes)]
