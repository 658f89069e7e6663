import pytest

from movin_earn.conftest import ADMIN
from movin_earn.core.config import ONE_DAY, ONE_YEAR, TOKEN
from movin_earn.core.errors import InvalidPremiumAmount, UnauthorizedAccess


def test_monthly_payment_grants_thirty_days(engine, clock):
    status = engine.set_premium_status(ADMIN, "alice", True, 10 * TOKEN)

    assert status.is_premium
    assert status.amount_paid == 10 * TOKEN
    assert status.expires_at == clock.now() + 30 * ONE_DAY
    assert engine.get_premium_status("alice")


def test_yearly_payment_grants_a_year(engine, clock):
    status = engine.set_premium_status(ADMIN, "alice", True, 100 * TOKEN)
    assert status.expires_at == clock.now() + ONE_YEAR


@pytest.mark.parametrize("amount", [0, 1, 10 * TOKEN - 1, 50 * TOKEN, 100 * TOKEN + 1])
def test_other_amounts_rejected(engine, amount):
    with pytest.raises(InvalidPremiumAmount):
        engine.set_premium_status(ADMIN, "alice", True, amount)
    assert not engine.get_premium_status("alice")
    assert "alice" not in engine.state.accounts


def test_expiry_is_lazy(engine, clock):
    engine.set_premium_status(ADMIN, "alice", True, 10 * TOKEN)

    clock.advance(30 * ONE_DAY - 1)
    assert engine.get_premium_status("alice")

    clock.advance(1)
    assert not engine.get_premium_status("alice")
    # The stored flag is not cleared by reading.
    assert engine.get_premium_details("alice").is_premium


def test_downgrade_clears_record_eagerly(engine):
    engine.set_premium_status(ADMIN, "alice", True, 100 * TOKEN)
    status = engine.set_premium_status(ADMIN, "alice", False, 0)

    assert not status.is_premium
    assert status.amount_paid == 0
    assert status.expires_at == 0
    assert not engine.get_premium_status("alice")


def test_expired_premium_stops_mets_rewards(engine, token, clock):
    engine.set_premium_status(ADMIN, "alice", True, 10 * TOKEN)
    clock.advance(30 * ONE_DAY)

    outcome = engine.record_activity("alice", 0, 5)
    assert outcome.reward.mets_reward == 0


def test_only_admin_sets_premium(engine):
    with pytest.raises(UnauthorizedAccess):
        engine.set_premium_status("alice", "alice", True, 10 * TOKEN)
    assert not engine.get_premium_status("alice")
