"""
MOVIN Earn API Endpoints

Caller identity comes from the X-User-Id header; admin routes authorize that
caller against ADMIN_ACCOUNTS. Token amounts travel as strings of base units.
"""
from typing import Annotated, Dict, List, Optional, Union

from fastapi import APIRouter, Depends, Header
from pydantic import BaseModel, field_validator

from movin_earn.core.errors import ValidationError
from movin_earn.features.engine.service import EarnEngine, get_earn_engine
from movin_earn.features.staking.service import stake_to_dict, stakes_snapshot

router = APIRouter(prefix="/v1/earn", tags=["earn"])


def caller_id(x_user_id: Annotated[str, Header(alias="X-User-Id")]) -> str:
    """Caller account id, trimmed once here so every route sees the same id."""
    value = x_user_id.strip()
    if not value:
        raise ValidationError("X-User-Id header cannot be blank")
    return value


Caller = Annotated[str, Depends(caller_id)]
Engine = Annotated[EarnEngine, Depends(get_earn_engine)]


def _parse_base_units(value: Union[str, int]) -> int:
    if isinstance(value, bool):
        raise ValueError("amount must be an integer number of base units")
    if isinstance(value, int):
        if value < 0:
            raise ValueError("amount cannot be negative")
        return value
    text = str(value).strip()
    if not text.isdigit():
        raise ValueError("amount must be an integer number of base units")
    return int(text)


class StakeRequest(BaseModel):
    amount: int
    lock_months: int

    @field_validator("amount", mode="before")
    @classmethod
    def _amount(cls, value):
        return _parse_base_units(value)


class RestakeRequest(BaseModel):
    lock_months: int


class ActivityRequest(BaseModel):
    steps: int = 0
    mets: int = 0


class MealRequest(BaseModel):
    account: str
    score: int

    @field_validator("account")
    @classmethod
    def _trim(cls, value: str) -> str:
        return value.strip()


class ReferralRequest(BaseModel):
    referrer: str

    @field_validator("referrer")
    @classmethod
    def _trim(cls, value: str) -> str:
        return value.strip()


class PremiumRequest(BaseModel):
    account: str
    is_premium: bool
    amount_paid: int = 0

    @field_validator("amount_paid", mode="before")
    @classmethod
    def _amount(cls, value):
        return _parse_base_units(value)


class MultiplierRequest(BaseModel):
    months: int
    multiplier: int


class MigrateRequest(BaseModel):
    account: str


class BulkMigrateRequest(BaseModel):
    accounts: List[str]


class BaseRatesRequest(BaseModel):
    steps_rate: int
    mets_rate: int
    timestamp: int

    @field_validator("steps_rate", "mets_rate", mode="before")
    @classmethod
    def _rate(cls, value):
        return _parse_base_units(value)


class ApproveRequest(BaseModel):
    amount: int

    @field_validator("amount", mode="before")
    @classmethod
    def _amount(cls, value):
        return _parse_base_units(value)


class MintRequest(BaseModel):
    account: str
    amount: int

    @field_validator("account")
    @classmethod
    def _trim(cls, value: str) -> str:
        return value.strip()

    @field_validator("amount", mode="before")
    @classmethod
    def _amount(cls, value):
        return _parse_base_units(value)


# Staking -------------------------------------------------------------------
@router.post("/stakes")
def create_stake(body: StakeRequest, user_id: Caller, engine: Engine) -> Dict:
    """Lock `amount` base units for `lock_months` months."""
    item = engine.stake(user_id, body.amount, body.lock_months)
    index = engine.get_user_stake_count(user_id) - 1
    return {"userId": user_id, "stake": stake_to_dict(index, item)}


@router.get("/stakes")
def list_stakes(user_id: Caller, engine: Engine) -> Dict:
    stakes = engine.get_user_stakes(user_id)
    return {"userId": user_id, "stakes": stakes_snapshot(stakes), "count": len(stakes)}


@router.post("/stakes/claim-all")
def claim_all(user_id: Caller, engine: Engine) -> Dict:
    reward = engine.claim_all_staking_rewards(user_id)
    return {"userId": user_id, "reward": str(reward)}


@router.get("/stakes/{index}")
def get_stake(index: int, user_id: Caller, engine: Engine) -> Dict:
    return {"userId": user_id, "stake": stake_to_dict(index, engine.get_user_stake(user_id, index))}


@router.get("/stakes/{index}/reward")
def preview_stake_reward(index: int, user_id: Caller, engine: Engine) -> Dict:
    return {"userId": user_id, "index": index, "reward": str(engine.calculate_staking_reward(user_id, index))}


@router.post("/stakes/{index}/claim")
def claim_stake(index: int, user_id: Caller, engine: Engine) -> Dict:
    reward = engine.claim_staking_rewards(user_id, index)
    return {"userId": user_id, "index": index, "reward": str(reward)}


@router.post("/stakes/{index}/unstake")
def unstake(index: int, user_id: Caller, engine: Engine) -> Dict:
    result = engine.unstake(user_id, index)
    return {
        "userId": user_id,
        "stakeId": result.stake.stake_id,
        "returned": str(result.returned),
        "burned": str(result.burned),
    }


@router.post("/stakes/{index}/restake")
def restake(index: int, body: RestakeRequest, user_id: Caller, engine: Engine) -> Dict:
    result = engine.restake(user_id, index, body.lock_months)
    new_index = engine.get_user_stake_count(user_id) - 1
    return {
        "userId": user_id,
        "stake": stake_to_dict(new_index, result.stake),
        "settledReward": str(result.settled_reward),
    }


# Activity ------------------------------------------------------------------
@router.post("/activity")
def record_activity(body: ActivityRequest, user_id: Caller, engine: Engine) -> Dict:
    outcome = engine.record_activity(user_id, body.steps, body.mets)
    return {
        "userId": user_id,
        "stepsReward": str(outcome.reward.steps_reward),
        "metsReward": str(outcome.reward.mets_reward),
        "totalReward": str(outcome.reward.total),
        "dailySteps": outcome.daily_steps,
        "dailyMets": outcome.daily_mets,
        "referrer": outcome.referrer,
        "referralBonus": str(outcome.referral_bonus),
    }


@router.post("/activity/preview")
def preview_activity(body: ActivityRequest, user_id: Caller, engine: Engine) -> Dict:
    reward = engine.calculate_activity_rewards(user_id, body.steps, body.mets)
    return {
        "userId": user_id,
        "stepsReward": str(reward.steps_reward),
        "metsReward": str(reward.mets_reward),
        "totalReward": str(reward.total),
    }


@router.get("/activity/today")
def today_activity(user_id: Caller, engine: Engine) -> Dict:
    steps, mets = engine.get_today_user_activity(user_id)
    return {"userId": user_id, "steps": steps, "mets": mets}


@router.get("/activity/history")
def activity_history(user_id: Caller, engine: Engine) -> Dict:
    """Newest accepted submissions, oldest first."""
    return {
        "userId": user_id,
        "steps": [{"value": e.value, "timestamp": e.timestamp} for e in engine.get_user_steps_history(user_id)],
        "mets": [{"value": e.value, "timestamp": e.timestamp} for e in engine.get_user_mets_history(user_id)],
    }


@router.post("/meals")
def claim_meal(body: MealRequest, user_id: Caller, engine: Engine) -> Dict:
    """Meal score rewards are submitted by an admin on the account's behalf."""
    reward = engine.claim_meal_rewards(user_id, body.account, body.score)
    return {"userId": body.account, "reward": str(reward)}


@router.get("/rates")
def get_rates(engine: Engine) -> Dict:
    rates = engine.get_rates()
    return {"stepsRate": str(rates.steps_rate), "metsRate": str(rates.mets_rate), "decayDays": rates.decay_days}


# Referrals -----------------------------------------------------------------
@router.post("/referrals")
def register_referral(body: ReferralRequest, user_id: Caller, engine: Engine) -> Dict:
    bonus = engine.register_referral(user_id, body.referrer)
    return {"userId": user_id, "referrer": body.referrer, "signupBonus": str(bonus)}


@router.get("/referrals")
def get_referrals(user_id: Caller, engine: Engine) -> Dict:
    info = engine.get_referral_info(user_id)
    return {
        "userId": user_id,
        "referrer": info.referrer,
        "earnedBonus": str(info.earned_bonus),
        "referredCount": info.referred_count,
        "referrals": engine.get_user_referrals(user_id),
    }


# Premium -------------------------------------------------------------------
@router.post("/premium")
def set_premium(body: PremiumRequest, user_id: Caller, engine: Engine) -> Dict:
    status = engine.set_premium_status(user_id, body.account, body.is_premium, body.amount_paid)
    return {
        "userId": body.account,
        "isPremium": status.is_premium,
        "amountPaid": str(status.amount_paid),
        "expiresAt": status.expires_at,
    }


@router.get("/premium")
def get_premium(user_id: Caller, engine: Engine, account: Optional[str] = None) -> Dict:
    target = account or user_id
    details = engine.get_premium_details(target)
    return {
        "userId": target,
        "isPremium": engine.get_premium_status(target),
        "amountPaid": str(details.amount_paid),
        "expiresAt": details.expires_at,
    }


# Token funding -------------------------------------------------------------
@router.get("/token/balance")
def token_balance(user_id: Caller, engine: Engine) -> Dict:
    balance = engine.get_token_balance(user_id)
    return {"userId": user_id, "balance": str(balance.balance), "custodyAllowance": str(balance.custody_allowance)}


@router.post("/token/approve")
def approve_custody(body: ApproveRequest, user_id: Caller, engine: Engine) -> Dict:
    """Allow the engine to pull up to `amount` base units when the caller stakes."""
    allowance = engine.approve_custody(user_id, body.amount)
    return {"userId": user_id, "custodyAllowance": str(allowance)}


@router.post("/admin/mint")
def mint_tokens(body: MintRequest, user_id: Caller, engine: Engine) -> Dict:
    balance = engine.mint_tokens(user_id, body.account, body.amount)
    return {"userId": body.account, "minted": str(body.amount), "balance": str(balance)}


# Administration ------------------------------------------------------------
@router.get("/status")
def get_status(engine: Engine) -> Dict:
    return {"paused": engine.is_paused(), "lockMultipliers": engine.get_lock_period_multipliers()}


@router.post("/admin/pause")
def pause(user_id: Caller, engine: Engine) -> Dict:
    engine.emergency_pause(user_id)
    return {"paused": True}


@router.post("/admin/unpause")
def unpause(user_id: Caller, engine: Engine) -> Dict:
    engine.emergency_unpause(user_id)
    return {"paused": engine.is_paused()}


@router.post("/admin/multipliers")
def set_multiplier(body: MultiplierRequest, user_id: Caller, engine: Engine) -> Dict:
    engine.set_lock_period_multiplier(user_id, body.months, body.multiplier)
    return {"lockMultipliers": engine.get_lock_period_multipliers()}


@router.post("/admin/migrate")
def migrate(body: MigrateRequest, user_id: Caller, engine: Engine) -> Dict:
    report = engine.migrate_user_data(user_id, body.account)
    return {"account": report.account, "changed": report.changed, "repairs": report.repairs}


@router.post("/admin/migrate/bulk")
def bulk_migrate(body: BulkMigrateRequest, user_id: Caller, engine: Engine) -> Dict:
    result = engine.bulk_migrate_user_data(user_id, body.accounts)
    return {
        "successCount": result.success_count,
        "failureCount": result.failure_count,
        "failures": result.failures,
    }


@router.post("/admin/base-rates")
def migrate_base_rates(body: BaseRatesRequest, user_id: Caller, engine: Engine) -> Dict:
    rates = engine.migrate_base_rates(user_id, body.steps_rate, body.mets_rate, body.timestamp)
    return {
        "baseStepsRate": str(rates.base_steps_rate),
        "baseMetsRate": str(rates.base_mets_rate),
        "lastDecayTimestamp": rates.last_decay_timestamp,
    }
