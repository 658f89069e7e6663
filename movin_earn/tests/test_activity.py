import pytest

from movin_earn.conftest import ADMIN, CUSTODY
from movin_earn.core.config import ONE_DAY, TOKEN, EngineConfig
from movin_earn.core.errors import (
    ContractPaused,
    InvalidActivityInput,
    InvalidMealScore,
    MealClaimTooSoon,
    UnauthorizedAccess,
)
from movin_earn.features.activity.tracker import marginal_reward
from movin_earn.features.engine.service import EarnEngine
from movin_earn.models.activity import ActivityEntry


def _make_premium(engine, account):
    engine.set_premium_status(ADMIN, account, True, 10 * TOKEN)


def test_thousand_steps_pay_one_token_then_early_call_fails(engine, token, clock):
    outcome = engine.record_activity("alice", 1000, 0)

    assert outcome.reward.steps_reward == TOKEN
    assert token.balance_of("alice") == TOKEN

    clock.advance(30)
    with pytest.raises(InvalidActivityInput):
        engine.record_activity("alice", 10, 0)
    assert token.balance_of("alice") == TOKEN
    assert engine.get_today_user_activity("alice") == (1000, 0)


def test_recording_after_interval_succeeds_within_per_minute_bounds(engine, clock):
    engine.record_activity("alice", 100, 0)
    clock.advance(60)
    engine.record_activity("alice", 200, 0)
    clock.advance(120)
    engine.record_activity("alice", 400, 0)

    assert engine.get_today_user_activity("alice") == (700, 0)


def test_per_minute_limit_scales_with_elapsed_minutes(engine, clock):
    engine.record_activity("alice", 100, 0)
    clock.advance(60)
    with pytest.raises(InvalidActivityInput):
        engine.record_activity("alice", 201, 0)

    clock.advance(60)
    engine.record_activity("alice", 400, 0)
    assert engine.get_today_user_activity("alice") == (500, 0)


def test_mets_limit_per_minute(engine, clock):
    _make_premium(engine, "alice")
    engine.record_activity("alice", 0, 1)
    clock.advance(60)
    with pytest.raises(InvalidActivityInput):
        engine.record_activity("alice", 0, 2)


def test_negative_amounts_rejected(engine):
    with pytest.raises(InvalidActivityInput):
        engine.record_activity("alice", -1, 0)
    with pytest.raises(InvalidActivityInput):
        engine.calculate_activity_rewards("alice", 0, -1)


def test_mets_only_pay_while_premium(engine, token, clock):
    engine.record_activity("bob", 0, 5)
    assert token.balance_of("bob") == 0
    assert engine.get_today_user_activity("bob") == (0, 5)

    _make_premium(engine, "alice")
    outcome = engine.record_activity("alice", 0, 5)
    assert outcome.reward.mets_reward == TOKEN
    assert token.balance_of("alice") == TOKEN


def test_partial_units_pay_proportionally(engine, token):
    engine.record_activity("alice", 1200, 0)
    assert token.balance_of("alice") == 12 * TOKEN // 10


def test_daily_cap_stores_excess_but_pays_nothing_more(engine, token, clock):
    outcome = engine.record_activity("alice", 30_000, 0)
    assert outcome.reward.steps_reward == 25 * TOKEN
    assert outcome.daily_steps == 30_000

    clock.advance(3600)
    outcome = engine.record_activity("alice", 200, 0)
    assert outcome.reward.total == 0
    assert token.balance_of("alice") == 25 * TOKEN
    assert engine.get_today_user_activity("alice") == (30_200, 0)


def test_marginal_reward_never_exceeds_capped_total():
    rate, unit, cap = TOKEN, 1000, 25_000
    totals = [0, 333, 999, 1000, 24_999, 26_000, 40_000]
    paid = sum(marginal_reward(prev, cur, cap, rate, unit) for prev, cur in zip(totals, totals[1:]))
    assert paid == rate * cap // unit


def test_counters_reset_at_day_boundary_only(engine, clock):
    engine.record_activity("alice", 1000, 0)

    # 23:00 on the same day
    clock.advance(22 * 3600)
    engine.record_activity("alice", 200, 0)
    assert engine.get_today_user_activity("alice") == (1200, 0)

    clock.advance(2 * 3600)
    assert engine.get_today_user_activity("alice") == (0, 0)

    engine.record_activity("alice", 300, 0)
    assert engine.get_today_user_activity("alice") == (300, 0)


def test_reward_uses_decayed_rate_on_later_days(engine, token, clock):
    clock.advance(ONE_DAY)
    engine.record_activity("alice", 1000, 0)

    assert token.balance_of("alice") == TOKEN * 99 // 100
    rates = engine.get_rates()
    assert rates.steps_rate == TOKEN * 99 // 100
    assert rates.decay_days == 0


def test_preview_is_pure_and_ignores_rate_limit(engine, token, clock):
    engine.record_activity("alice", 1000, 0)
    clock.advance(10)

    preview = engine.calculate_activity_rewards("alice", 500, 0)

    assert preview.steps_reward == TOKEN // 2
    assert engine.get_today_user_activity("alice") == (1000, 0)
    assert token.balance_of("alice") == TOKEN


def test_preview_for_unknown_account_creates_nothing(engine):
    reward = engine.calculate_activity_rewards("ghost", 2000, 10)

    assert reward.steps_reward == 2 * TOKEN
    assert reward.mets_reward == 0
    assert "ghost" not in engine.state.accounts


def test_activity_blocked_while_paused(engine):
    engine.emergency_pause(ADMIN)
    with pytest.raises(ContractPaused):
        engine.record_activity("alice", 100, 0)
    assert engine.get_today_user_activity("alice") == (0, 0)


def test_token_pause_also_blocks_activity(engine, token):
    token.pause()
    assert engine.is_paused()
    with pytest.raises(ContractPaused):
        engine.record_activity("alice", 100, 0)


def test_meal_rewards_are_admin_only_and_rate_limited(engine, token, clock):
    with pytest.raises(UnauthorizedAccess):
        engine.claim_meal_rewards("alice", "alice", 50)

    paid = engine.claim_meal_rewards(ADMIN, "alice", 50)
    assert paid == TOKEN // 2
    assert token.balance_of("alice") == TOKEN // 2

    clock.advance(2 * 3600 - 1)
    with pytest.raises(MealClaimTooSoon):
        engine.claim_meal_rewards(ADMIN, "alice", 10)

    clock.advance(1)
    engine.claim_meal_rewards(ADMIN, "alice", 100)
    assert token.balance_of("alice") == TOKEN // 2 + TOKEN


@pytest.mark.parametrize("score", [0, 101, -3])
def test_meal_score_out_of_range(engine, score):
    with pytest.raises(InvalidMealScore):
        engine.claim_meal_rewards(ADMIN, "alice", score)


def test_history_keeps_nonzero_submissions_oldest_first(engine, clock):
    first = clock.now()
    engine.record_activity("alice", 800, 0)
    clock.advance(120)
    engine.record_activity("alice", 0, 1)
    clock.advance(120)
    engine.record_activity("alice", 150, 2)

    assert engine.get_user_steps_history("alice") == [
        ActivityEntry(value=800, timestamp=first),
        ActivityEntry(value=150, timestamp=first + 240),
    ]
    assert engine.get_user_mets_history("alice") == [
        ActivityEntry(value=1, timestamp=first + 120),
        ActivityEntry(value=2, timestamp=first + 240),
    ]
    assert engine.get_user_steps_history("nobody") == []


def test_history_is_bounded(token, clock):
    config = EngineConfig(admin_accounts=frozenset({ADMIN}), custody_account=CUSTODY, activity_history_limit=3)
    engine = EarnEngine(config=config, token=token, clock=clock)
    for steps in (100, 200, 300, 400, 500):
        engine.record_activity("alice", steps, 0)
        clock.advance(180)

    assert [e.value for e in engine.get_user_steps_history("alice")] == [300, 400, 500]


def test_rejected_submission_is_not_recorded(engine, clock):
    engine.record_activity("alice", 100, 0)
    clock.advance(10)
    with pytest.raises(InvalidActivityInput):
        engine.record_activity("alice", 100, 0)

    assert len(engine.get_user_steps_history("alice")) == 1


def test_returned_history_is_a_copy(engine):
    engine.record_activity("alice", 100, 0)
    engine.get_user_steps_history("alice").clear()

    assert len(engine.get_user_steps_history("alice")) == 1
