"""
MOVIN Earn engine facade.

Wires the components around one EarnState and one token collaborator and
exposes every caller-facing operation. Each mutating operation:
- reads the clock once and hands that `now` to every component
- checks the pause gate (account-holder operations) or admin rights
- runs inside `_transaction`, which restores the touched records and the
  token on any failure, so a rejected call leaves no trace
"""
from __future__ import annotations

import copy
import logging
import threading
from contextlib import contextmanager
from dataclasses import replace
from typing import Dict, Iterable, Iterator, List, Optional, Protocol, Tuple

from movin_earn.core.clock import Clock, SystemClock
from movin_earn.core.config import TOKEN, EngineConfig, settings
from movin_earn.core.database import init_engine
from movin_earn.core.errors import AppError, ValidationError
from movin_earn.core.logging import log_event
from movin_earn.core.metrics import earn_operations_total, earn_paused, earn_rejections_total, earn_rewards_minted_total
from movin_earn.features.activity.tracker import ActivityOutcome, ActivityTracker
from movin_earn.features.admin.gate import AdminGate
from movin_earn.features.migration.adapter import BulkMigrationResult, MigrationAdapter, MigrationReport
from movin_earn.features.persistence.repository import SqlStateStore
from movin_earn.features.premium.registry import PremiumRegistry
from movin_earn.features.rates.schedule import RateSchedule
from movin_earn.features.referrals.graph import ReferralGraph
from movin_earn.features.staking.service import RestakeResult, StakeBook, UnstakeResult
from movin_earn.features.tokens.ledger import InMemoryToken, TokenBalance, TokenCollaborator
from movin_earn.models.activity import ActivityEntry, ActivityReward
from movin_earn.models.premium import PremiumStatus
from movin_earn.models.rate import Rates, RateState
from movin_earn.models.referral import ReferralInfo
from movin_earn.models.stake import Stake
from movin_earn.models.state import EarnState

logger = logging.getLogger(__name__)


class StateStore(Protocol):
    def save(self, state: EarnState, accounts: Iterable[str], token: TokenCollaborator) -> None: ...


class EarnEngine:
    """Reward and staking accounting engine."""

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        token: Optional[TokenCollaborator] = None,
        clock: Optional[Clock] = None,
        state: Optional[EarnState] = None,
        store: Optional[StateStore] = None,
    ):
        self.config = config or EngineConfig.from_settings()
        self.token = token if token is not None else InMemoryToken()
        self.clock = clock or SystemClock()

        self.gate = AdminGate(self.config)
        self.rate_schedule = RateSchedule(self.config)
        self.premium = PremiumRegistry(self.config)
        self.referrals = ReferralGraph(self.config, self.token)
        self.stake_book = StakeBook(self.config, self.gate, self.premium, self.token)
        self.activity = ActivityTracker(self.config, self.rate_schedule, self.premium, self.referrals, self.token)
        self.migration = MigrationAdapter(self.config)

        self.state = state or EarnState(rates=self.rate_schedule.initial_state(self.clock.now()))
        self._store = store
        self._lock = threading.RLock()
        earn_paused.set(1 if self.state.admin.paused else 0)

    # Transactions ----------------------------------------------------------
    @contextmanager
    def _read(self) -> Iterator[int]:
        with self._lock:
            yield self.clock.now()

    @contextmanager
    def _transaction(self, operation: str, *accounts: Optional[str]) -> Iterator[int]:
        """Serialize one operation and make it all-or-nothing.

        `accounts` lists every account whose records the operation may touch.
        """
        touched = [a for a in dict.fromkeys(accounts) if a]
        with self._lock:
            now = self.clock.now()
            saved_accounts = {a: copy.deepcopy(self.state.accounts.get(a)) for a in touched}
            saved_rates = replace(self.state.rates)
            saved_admin = copy.deepcopy(self.state.admin)
            token_snapshot = self.token.snapshot()
            try:
                yield now
                if self._store is not None:
                    self._store.save(self.state, touched, self.token)
            except AppError as exc:
                self._rollback(saved_accounts, saved_rates, saved_admin, token_snapshot)
                earn_rejections_total.inc({"operation": operation, "code": exc.code})
                log_event(
                    "warning",
                    f"earn.{operation}.rejected",
                    account=touched[0] if touched else None,
                    operation=operation,
                    error_code=exc.code,
                )
                raise
            except Exception:
                self._rollback(saved_accounts, saved_rates, saved_admin, token_snapshot)
                logger.error("earn.operation_failed", exc_info=True, extra={"operation": operation})
                raise
            earn_operations_total.inc({"operation": operation})
            log_event("info", f"earn.{operation}", account=touched[0] if touched else None, operation=operation)

    def _rollback(self, saved_accounts, saved_rates, saved_admin, token_snapshot) -> None:
        for account, record in saved_accounts.items():
            if record is None:
                self.state.accounts.pop(account, None)
            else:
                self.state.accounts[account] = record
        self.state.rates = saved_rates
        self.state.admin = saved_admin
        self.token.restore(token_snapshot)

    def _require_active(self) -> None:
        self.gate.require_active(self.state.admin, self.token)

    @staticmethod
    def _minted(source: str, amount: int) -> None:
        if amount > 0:
            earn_rewards_minted_total.inc({"source": source}, amount / TOKEN)

    # Staking ---------------------------------------------------------------
    def stake(self, account: str, amount: int, lock_months: int) -> Stake:
        with self._transaction("stake", account) as now:
            self._require_active()
            item = self.stake_book.stake(self.state.account(account), self.state.admin, amount, lock_months, now)
            return replace(item)

    def claim_staking_rewards(self, account: str, index: int) -> int:
        with self._transaction("claim_staking_rewards", account) as now:
            self._require_active()
            reward = self.stake_book.claim(self.state.account(account), self.state.admin, index, now)
            self._minted("staking", reward)
            return reward

    def claim_all_staking_rewards(self, account: str) -> int:
        with self._transaction("claim_all_staking_rewards", account) as now:
            self._require_active()
            reward = self.stake_book.claim_all(self.state.account(account), self.state.admin, now)
            self._minted("staking", reward)
            return reward

    def unstake(self, account: str, index: int) -> UnstakeResult:
        with self._transaction("unstake", account) as now:
            self._require_active()
            return self.stake_book.unstake(self.state.account(account), index, now)

    def restake(self, account: str, index: int, new_lock_months: int) -> RestakeResult:
        with self._transaction("restake", account) as now:
            self._require_active()
            result = self.stake_book.restake(self.state.account(account), self.state.admin, index, new_lock_months, now)
            self._minted("staking", result.settled_reward)
            return RestakeResult(stake=replace(result.stake), settled_reward=result.settled_reward)

    def calculate_staking_reward(self, account: str, index: int) -> int:
        with self._read() as now:
            return self.stake_book.calculate_reward(self.state.peek(account), self.state.admin, index, now)

    def get_user_stake(self, account: str, index: int) -> Stake:
        with self._read():
            return replace(self.stake_book.get(self.state.peek(account), index))

    def get_user_stakes(self, account: str) -> List[Stake]:
        with self._read():
            return [replace(item) for item in self.state.peek(account).stakes]

    def get_user_stake_count(self, account: str) -> int:
        with self._read():
            return len(self.state.peek(account).stakes)

    # Activity --------------------------------------------------------------
    def record_activity(self, account: str, steps: int, mets: int) -> ActivityOutcome:
        with self._lock:
            referrer = self.state.peek(account).referral.referrer
            with self._transaction("record_activity", account, referrer) as now:
                self._require_active()
                outcome = self.activity.record(self.state, account, steps, mets, now)
                self._minted("activity", outcome.reward.total)
                self._minted("referral", outcome.referral_bonus)
                return outcome

    def get_today_user_activity(self, account: str) -> Tuple[int, int]:
        with self._read() as now:
            return self.activity.today_totals(self.state.peek(account).activity, now)

    def calculate_activity_rewards(self, account: str, steps: int, mets: int) -> ActivityReward:
        with self._read() as now:
            return self.activity.preview(self.state, account, steps, mets, now)

    def get_user_steps_history(self, account: str) -> List[ActivityEntry]:
        with self._read():
            return list(self.state.peek(account).activity.steps_history)

    def get_user_mets_history(self, account: str) -> List[ActivityEntry]:
        with self._read():
            return list(self.state.peek(account).activity.mets_history)

    def claim_meal_rewards(self, caller: str, account: str, score: int) -> int:
        with self._transaction("claim_meal_rewards", account) as now:
            self.gate.require_admin(caller)
            self._require_active()
            reward = self.activity.claim_meal(self.state, account, score, now)
            self._minted("meal", reward)
            return reward

    def get_rates(self) -> Rates:
        with self._read() as now:
            return self.rate_schedule.current(self.state.rates, now)

    # Referrals -------------------------------------------------------------
    def register_referral(self, account: str, referrer: str) -> int:
        with self._transaction("register_referral", account, referrer):
            self._require_active()
            bonus = self.referrals.register(self.state, account, referrer)
            self._minted("referral_signup", 2 * bonus)
            return bonus

    def get_referral_info(self, account: str) -> ReferralInfo:
        with self._read():
            return self.referrals.info(self.state, account)

    def get_user_referrals(self, account: str) -> List[str]:
        with self._read():
            return self.referrals.referrals(self.state, account)

    # Premium ---------------------------------------------------------------
    def set_premium_status(self, caller: str, account: str, is_premium: bool, amount_paid: int = 0) -> PremiumStatus:
        with self._transaction("set_premium_status", account) as now:
            self.gate.require_admin(caller)
            status = self.premium.set_status(self.state.account(account), is_premium, amount_paid, now)
            return replace(status)

    def get_premium_status(self, account: str) -> bool:
        with self._read() as now:
            return self.premium.is_premium(self.state.peek(account), now)

    def get_premium_details(self, account: str) -> PremiumStatus:
        with self._read():
            return replace(self.state.peek(account).premium)

    # Token funding ---------------------------------------------------------
    def mint_tokens(self, caller: str, account: str, amount: int) -> int:
        """Admin issuance to an account; the token's own pause still applies."""
        with self._transaction("mint_tokens", account):
            self.gate.require_admin(caller)
            if not account:
                raise ValidationError("Account id is required")
            self.token.mint(account, amount)
            self._minted("admin", amount)
            return self.token.balance_of(account)

    def approve_custody(self, account: str, amount: int) -> int:
        """Set how much the engine may pull from `account` when it stakes."""
        with self._transaction("approve_custody", account):
            self.token.approve(account, self.config.custody_account, amount)
            return self.token.allowance(account, self.config.custody_account)

    def get_token_balance(self, account: str) -> TokenBalance:
        with self._read():
            return TokenBalance(
                balance=self.token.balance_of(account),
                custody_allowance=self.token.allowance(account, self.config.custody_account),
            )

    # Administration --------------------------------------------------------
    def emergency_pause(self, caller: str) -> None:
        with self._transaction("emergency_pause"):
            self.gate.require_admin(caller)
            self.gate.pause(self.state.admin)
        earn_paused.set(1)

    def emergency_unpause(self, caller: str) -> None:
        with self._transaction("emergency_unpause"):
            self.gate.require_admin(caller)
            self.gate.unpause(self.state.admin)
        earn_paused.set(0)

    def is_paused(self) -> bool:
        with self._read():
            return self.gate.is_paused(self.state.admin, self.token)

    def set_lock_period_multiplier(self, caller: str, months: int, multiplier: int) -> None:
        with self._transaction("set_lock_period_multiplier"):
            self.gate.require_admin(caller)
            self.gate.set_multiplier(self.state.admin, months, multiplier)

    def get_lock_period_multipliers(self) -> Dict[int, int]:
        with self._read():
            return self.gate.multipliers(self.state.admin)

    # Migration -------------------------------------------------------------
    def migrate_user_data(self, caller: str, account: str) -> MigrationReport:
        self.gate.require_admin(caller)
        return self._migrate_one(account)

    def bulk_migrate_user_data(self, caller: str, accounts: Iterable[str]) -> BulkMigrationResult:
        self.gate.require_admin(caller)
        result = self.migration.bulk(accounts, self._migrate_one)
        log_event(
            "info",
            "earn.bulk_migrate_user_data",
            operation="bulk_migrate_user_data",
            success_count=result.success_count,
            failure_count=result.failure_count,
        )
        return result

    def migrate_base_rates(self, caller: str, steps_rate: int, mets_rate: int, timestamp: int) -> RateState:
        with self._transaction("migrate_base_rates") as now:
            self.gate.require_admin(caller)
            return replace(self.migration.migrate_base_rates(self.state, steps_rate, mets_rate, timestamp, now))

    def _migrate_one(self, account: str) -> MigrationReport:
        with self._transaction("migrate_user_data", account) as now:
            return self.migration.migrate(self.state, account, now)


def build_engine(settings_obj=None, clock: Optional[Clock] = None) -> EarnEngine:
    """Engine wired from settings; state is loaded from and saved to DATABASE_URL when set."""
    cfg = settings_obj or settings
    config = EngineConfig.from_settings(cfg)
    store = None
    state = None
    token = None
    if cfg.DATABASE_URL:
        init_engine(cfg.DATABASE_URL)
        store = SqlStateStore()
        state = store.load()
        token = store.load_token()
    return EarnEngine(config=config, token=token, clock=clock, state=state, store=store)


_earn_engine: Optional[EarnEngine] = None


def get_earn_engine() -> EarnEngine:
    """Process-wide engine, built on first use."""
    global _earn_engine
    if _earn_engine is None:
        _earn_engine = build_engine()
    return _earn_engine
