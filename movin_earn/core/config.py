import logging
from dataclasses import dataclass

from pydantic_settings import BaseSettings
from pydantic import ConfigDict
from typing import FrozenSet, Optional

TOKEN = 10**18  # base units per MOVIN


class Settings(BaseSettings):
    # Environment
    ENV: str = "development"
    CONFIG_STRICT: bool = False

    # Database
    DATABASE_URL: Optional[str] = None
    TEST_DATABASE_URL: Optional[str] = None

    # Admin access: comma-separated account ids allowed to run admin operations
    ADMIN_ACCOUNTS: str = "owner"
    CUSTODY_ACCOUNT: str = "movin-earn"

    # Staking
    MOVIN_STAKE_DUST_THRESHOLD: int = TOKEN // 1000  # 0.001 MOVIN
    MOVIN_UNSTAKE_BURN_FEE_BPS: int = 0

    # Activity reward rates
    MOVIN_BASE_STEPS_RATE: int = TOKEN
    MOVIN_BASE_METS_RATE: int = TOKEN
    MOVIN_STEPS_UNIT: int = 1000
    MOVIN_METS_UNIT: int = 5
    MOVIN_RATE_DECAY_BPS: int = 100  # 1% per whole day, compounding

    # Activity limits
    MOVIN_MAX_DAILY_STEPS: int = 25_000
    MOVIN_MAX_DAILY_METS: int = 50
    MOVIN_MAX_STEPS_PER_MINUTE: int = 200
    MOVIN_MAX_METS_PER_MINUTE: int = 1
    MOVIN_ACTIVITY_INTERVAL_SECONDS: int = 60
    MOVIN_ACTIVITY_HISTORY_LIMIT: int = 100  # newest submissions kept per account

    # Referrals
    MOVIN_REFERRAL_BONUS_BPS: int = 100  # 1% of the referee's activity reward
    MOVIN_REFERRAL_SIGNUP_BONUS: int = TOKEN

    # Premium
    MOVIN_PREMIUM_MONTHLY_PRICE: int = 10 * TOKEN
    MOVIN_PREMIUM_YEARLY_PRICE: int = 100 * TOKEN

    # Meals
    MOVIN_MEAL_REWARD_PER_POINT: int = TOKEN // 100  # 0.01 MOVIN per score point
    MOVIN_MEAL_COOLDOWN_SECONDS: int = 2 * 60 * 60

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )
settings = Settings()


def validate_config(strict: Optional[bool] = None, settings_obj: Optional[Settings] = None, logger: Optional[logging.Logger] = None) -> bool:
    """Validate engine configuration.

    In strict mode raise RuntimeError; otherwise emit warnings only.
    """
    cfg = settings_obj or settings
    log = logger or logging.getLogger("movin_earn")
    strict_mode = strict if strict is not None else getattr(cfg, "CONFIG_STRICT", False)

    problems = []
    if not [a for a in cfg.ADMIN_ACCOUNTS.split(",") if a.strip()]:
        problems.append("ADMIN_ACCOUNTS is empty")
    if cfg.MOVIN_STEPS_UNIT <= 0 or cfg.MOVIN_METS_UNIT <= 0:
        problems.append("activity units must be positive")
    if not 0 <= cfg.MOVIN_RATE_DECAY_BPS < 10_000:
        problems.append("MOVIN_RATE_DECAY_BPS must be within [0, 10000)")
    if not 0 <= cfg.MOVIN_UNSTAKE_BURN_FEE_BPS <= 10_000:
        problems.append("MOVIN_UNSTAKE_BURN_FEE_BPS must be within [0, 10000]")
    if cfg.MOVIN_ACTIVITY_HISTORY_LIMIT < 1:
        problems.append("MOVIN_ACTIVITY_HISTORY_LIMIT must be at least 1")
    if cfg.MOVIN_PREMIUM_MONTHLY_PRICE == cfg.MOVIN_PREMIUM_YEARLY_PRICE:
        problems.append("premium monthly and yearly prices must differ")
    if not cfg.DATABASE_URL:
        log.info("DATABASE_URL not set; engine state is kept in memory only")

    if problems:
        message = f"Invalid configuration: {'; '.join(problems)}"
        if strict_mode:
            raise RuntimeError(message)
        log.warning(message)

    return True


ONE_DAY = 24 * 60 * 60
ONE_MONTH = 30 * ONE_DAY
ONE_YEAR = 365 * ONE_DAY
VALID_LOCK_MONTHS = (1, 3, 6, 12, 24)
PREMIUM_ONLY_LOCK_MONTHS = 24


@dataclass(frozen=True)
class EngineConfig:
    """Immutable constant table handed to every engine component."""

    admin_accounts: FrozenSet[str] = frozenset({"owner"})
    custody_account: str = "movin-earn"

    stake_dust_threshold: int = TOKEN // 1000
    unstake_burn_fee_bps: int = 0

    base_steps_rate: int = TOKEN
    base_mets_rate: int = TOKEN
    steps_unit: int = 1000
    mets_unit: int = 5
    rate_decay_bps: int = 100

    max_daily_steps: int = 25_000
    max_daily_mets: int = 50
    max_steps_per_minute: int = 200
    max_mets_per_minute: int = 1
    activity_interval_seconds: int = 60
    activity_history_limit: int = 100

    referral_bonus_bps: int = 100
    referral_signup_bonus: int = TOKEN

    premium_monthly_price: int = 10 * TOKEN
    premium_yearly_price: int = 100 * TOKEN
    premium_monthly_duration: int = 30 * ONE_DAY
    premium_yearly_duration: int = ONE_YEAR

    meal_reward_per_point: int = TOKEN // 100
    meal_cooldown_seconds: int = 2 * 60 * 60

    @classmethod
    def from_settings(cls, settings_obj: Optional[Settings] = None) -> "EngineConfig":
        cfg = settings_obj or settings
        admins = frozenset(a.strip() for a in cfg.ADMIN_ACCOUNTS.split(",") if a.strip())
        return cls(
            admin_accounts=admins,
            custody_account=cfg.CUSTODY_ACCOUNT,
            stake_dust_threshold=cfg.MOVIN_STAKE_DUST_THRESHOLD,
            unstake_burn_fee_bps=cfg.MOVIN_UNSTAKE_BURN_FEE_BPS,
            base_steps_rate=cfg.MOVIN_BASE_STEPS_RATE,
            base_mets_rate=cfg.MOVIN_BASE_METS_RATE,
            steps_unit=cfg.MOVIN_STEPS_UNIT,
            mets_unit=cfg.MOVIN_METS_UNIT,
            rate_decay_bps=cfg.MOVIN_RATE_DECAY_BPS,
            max_daily_steps=cfg.MOVIN_MAX_DAILY_STEPS,
            max_daily_mets=cfg.MOVIN_MAX_DAILY_METS,
            max_steps_per_minute=cfg.MOVIN_MAX_STEPS_PER_MINUTE,
            max_mets_per_minute=cfg.MOVIN_MAX_METS_PER_MINUTE,
            activity_interval_seconds=cfg.MOVIN_ACTIVITY_INTERVAL_SECONDS,
            activity_history_limit=cfg.MOVIN_ACTIVITY_HISTORY_LIMIT,
            referral_bonus_bps=cfg.MOVIN_REFERRAL_BONUS_BPS,
            referral_signup_bonus=cfg.MOVIN_REFERRAL_SIGNUP_BONUS,
            premium_monthly_price=cfg.MOVIN_PREMIUM_MONTHLY_PRICE,
            premium_yearly_price=cfg.MOVIN_PREMIUM_YEARLY_PRICE,
            meal_reward_per_point=cfg.MOVIN_MEAL_REWARD_PER_POINT,
            meal_cooldown_seconds=cfg.MOVIN_MEAL_COOLDOWN_SECONDS,
        )
