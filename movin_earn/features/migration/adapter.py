"""
Idempotent repair pass for records written by an older schema.

Each rule only fires while a record is out of shape (missing timestamps,
counters from a past day, drifted counts), so rerunning it over an account
that was just migrated changes nothing.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List

from movin_earn.core.config import ONE_DAY, ONE_MONTH, VALID_LOCK_MONTHS, EngineConfig
from movin_earn.core.errors import AppError, ValidationError
from movin_earn.models.rate import RateState
from movin_earn.models.state import AccountState, EarnState

logger = logging.getLogger(__name__)


@dataclass
class MigrationReport:
    account: str
    repairs: List[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.repairs)


@dataclass
class BulkMigrationResult:
    success_count: int = 0
    failure_count: int = 0
    failures: Dict[str, str] = field(default_factory=dict)
    reports: List[MigrationReport] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.success_count + self.failure_count


class MigrationAdapter:
    def __init__(self, config: EngineConfig):
        self._config = config

    def migrate(self, state: EarnState, account: str, now: int) -> MigrationReport:
        if not account or not account.strip():
            raise ValidationError("Account id is required for migration")

        report = MigrationReport(account=account)
        record = state.accounts.get(account)
        if record is None:
            return report

        self._repair_activity(record, now, report)
        self._repair_stakes(record, now, report)
        self._repair_referrals(record, report)
        self._repair_premium(record, now, report)

        if report.changed:
            logger.info("migration.repaired", extra={"account": account, "repairs": report.repairs})
        return report

    def migrate_base_rates(self, state: EarnState, steps_rate: int, mets_rate: int, timestamp: int, now: int) -> RateState:
        """Overwrite corrupted global rates.

        Rates are bounded by the configured base rates; the decay anchor
        cannot lie in the future.
        """
        if not 0 < steps_rate <= self._config.base_steps_rate:
            raise ValidationError(f"Steps rate must be within (0, {self._config.base_steps_rate}]")
        if not 0 < mets_rate <= self._config.base_mets_rate:
            raise ValidationError(f"METs rate must be within (0, {self._config.base_mets_rate}]")
        if not 0 < timestamp <= now:
            raise ValidationError("Decay timestamp must be positive and not in the future")

        rates = state.rates
        rates.base_steps_rate = steps_rate
        rates.base_mets_rate = mets_rate
        rates.last_decay_timestamp = timestamp
        logger.info(
            "migration.base_rates_repaired",
            extra={"steps_rate": steps_rate, "mets_rate": mets_rate, "last_decay_timestamp": timestamp},
        )
        return rates

    def bulk(self, accounts: Iterable[str], migrate_one: Callable[[str], MigrationReport]) -> BulkMigrationResult:
        """Run `migrate_one` per account; one account's failure never stops the batch."""
        result = BulkMigrationResult()
        for account in accounts:
            try:
                report = migrate_one(account)
            except AppError as exc:
                result.failure_count += 1
                result.failures[account] = exc.code
                logger.warning("migration.failed", extra={"account": account, "error_code": exc.code})
                continue
            except Exception as exc:
                result.failure_count += 1
                result.failures[account] = type(exc).__name__
                logger.error("migration.failed", exc_info=True, extra={"account": account})
                continue
            result.success_count += 1
            result.reports.append(report)
        return result

    # Repairs ---------------------------------------------------------------
    @staticmethod
    def _repair_activity(record: AccountState, now: int, report: MigrationReport) -> None:
        activity = record.activity
        today = now // ONE_DAY
        if not (activity.last_updated or activity.daily_steps or activity.daily_mets):
            return

        if not activity.last_updated:
            stored_day = activity.last_day_reset if 0 < activity.last_day_reset <= today else today
            activity.last_updated = stored_day * ONE_DAY
            report.repairs.append("activity.last_updated_backfilled")
        elif activity.last_updated > now:
            activity.last_updated = now
            report.repairs.append("activity.last_updated_clamped")

        if activity.last_day_reset != today:
            if activity.last_day_reset < today and (activity.daily_steps or activity.daily_mets):
                activity.daily_steps = 0
                activity.daily_mets = 0
                report.repairs.append("activity.stale_counters_reset")
            activity.last_day_reset = today
            report.repairs.append("activity.day_reset_rederived")

    @staticmethod
    def _repair_stakes(record: AccountState, now: int, report: MigrationReport) -> None:
        highest = max((item.stake_id for item in record.stakes), default=0)
        next_id = max(record.next_stake_id, highest + 1)
        seen_ids = set()
        for item in record.stakes:
            if not item.start_time:
                item.start_time = now
                report.repairs.append(f"stake.{item.stake_id}.start_time_backfilled")
            if item.last_claimed < item.start_time:
                item.last_claimed = item.start_time
                report.repairs.append(f"stake.{item.stake_id}.last_claimed_backfilled")
            elif item.last_claimed > now:
                item.last_claimed = now
                report.repairs.append(f"stake.{item.stake_id}.last_claimed_clamped")
            if item.lock_months not in VALID_LOCK_MONTHS:
                inferred = item.lock_duration // ONE_MONTH
                if inferred in VALID_LOCK_MONTHS:
                    item.lock_months = inferred
                    report.repairs.append(f"stake.{item.stake_id}.lock_months_inferred")
            if item.stake_id <= 0 or item.stake_id in seen_ids:
                item.stake_id = next_id
                next_id += 1
                report.repairs.append(f"stake.{item.stake_id}.id_reassigned")
            seen_ids.add(item.stake_id)

        if record.next_stake_id < next_id:
            record.next_stake_id = next_id
            report.repairs.append("stake.next_id_repaired")

    @staticmethod
    def _repair_referrals(record: AccountState, report: MigrationReport) -> None:
        edge = record.referral
        if edge.referred_count != len(edge.referrals):
            edge.referred_count = len(edge.referrals)
            report.repairs.append("referral.count_recomputed")

    def _repair_premium(self, record: AccountState, now: int, report: MigrationReport) -> None:
        premium = record.premium
        if premium.is_premium and not premium.expires_at:
            # Legacy flag-only premium: treat as a fresh monthly period.
            premium.amount_paid = self._config.premium_monthly_price
            premium.expires_at = now + self._config.premium_monthly_duration
            report.repairs.append("premium.expiry_backfilled")
