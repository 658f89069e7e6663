"""Round trips of engine state through the SQL tables (SQLite in memory)."""

import pytest

from movin_earn.conftest import ADMIN, CUSTODY
from movin_earn.core.config import ONE_MONTH, TOKEN, Settings
from movin_earn.core.errors import LockPeriodActive
from movin_earn.core.database import create_all_tables, get_db_session, init_engine
from movin_earn.features.engine.service import EarnEngine, build_engine
from movin_earn.features.persistence.repository import SqlStateStore, load_state, load_token, save_state, save_token
from movin_earn.features.tokens.ledger import InMemoryToken


@pytest.fixture
def sqlite_db():
    init_engine("sqlite://")
    create_all_tables()
    yield


@pytest.fixture
def stored_engine(sqlite_db, config, token, clock):
    return EarnEngine(config=config, token=token, clock=clock, store=SqlStateStore())


def test_empty_database_loads_nothing(sqlite_db):
    with get_db_session() as session:
        assert load_state(session) is None


def test_engine_state_survives_restart(tmp_path, clock):
    cfg = Settings(DATABASE_URL=f"sqlite:///{tmp_path / 'earn.db'}", ADMIN_ACCOUNTS=ADMIN, CUSTODY_ACCOUNT=CUSTODY)
    first = build_engine(cfg, clock=clock)
    first.mint_tokens(ADMIN, "alice", 1000 * TOKEN)
    first.approve_custody("alice", 1000 * TOKEN)
    first.set_premium_status(ADMIN, "alice", True, 100 * TOKEN)
    first.stake("alice", 400 * TOKEN, 24)
    first.stake("alice", 600 * TOKEN, 3)
    first.register_referral("alice", "bob")
    first.register_referral("carol", "bob")
    first.record_activity("alice", 1500, 4)
    first.set_lock_period_multiplier(ADMIN, 3, 5)
    first.emergency_pause(ADMIN)

    second = build_engine(cfg, clock=clock)

    assert second.state == first.state
    assert second.state.accounts["bob"].referral.referrals == ["alice", "carol"]
    assert second.is_paused()
    assert second.get_premium_status("alice")
    assert second.get_lock_period_multipliers()[3] == 5
    assert second.get_user_steps_history("alice") == first.get_user_steps_history("alice")
    for account in ("alice", "bob", "carol", CUSTODY):
        assert second.token.balance_of(account) == first.token.balance_of(account)
    assert second.token.balance_of(CUSTODY) == 1000 * TOKEN
    assert second.token.total_supply == first.token.total_supply
    assert second.token.ledger(limit=100) == first.token.ledger(limit=100)

    second.emergency_unpause(ADMIN)
    clock.advance(3 * ONE_MONTH + 60)
    result = second.unstake("alice", 1)
    assert result.returned == 600 * TOKEN

    third = build_engine(cfg, clock=clock)
    assert third.token.balance_of(CUSTODY) == 400 * TOKEN
    assert third.get_user_stake_count("alice") == 1
    assert third.token.balance_of("alice") == second.token.balance_of("alice")


def test_rejected_operation_is_not_persisted(stored_engine, fund):
    fund("alice", 10)
    stored_engine.stake("alice", TOKEN, 1)

    with pytest.raises(LockPeriodActive):
        stored_engine.unstake("alice", 0)

    restored = SqlStateStore(create_tables=False).load()
    assert len(restored.accounts["alice"].stakes) == 1


def test_unstake_removes_rows(stored_engine, clock, fund):
    fund("alice", 10)
    stored_engine.stake("alice", TOKEN, 1)
    stored_engine.stake("alice", TOKEN, 1)
    clock.advance(31 * 24 * 3600)

    stored_engine.unstake("alice", 0)

    restored = SqlStateStore(create_tables=False).load()
    assert [s.stake_id for s in restored.accounts["alice"].stakes] == [2]


def test_full_snapshot_replaces_previous_rows(sqlite_db, engine):
    engine.register_referral("alice", "bob")
    with get_db_session() as session:
        save_state(session, engine.state)

    engine.state.accounts.pop("alice")
    with get_db_session() as session:
        save_state(session, engine.state)

    with get_db_session() as session:
        restored = load_state(session)
    assert set(restored.accounts) == {"bob"}


def test_large_amounts_keep_precision(sqlite_db, engine, fund):
    fund("whale", 10**12)
    engine.stake("whale", 10**12 * TOKEN - 1, 12)
    with get_db_session() as session:
        save_state(session, engine.state)

    with get_db_session() as session:
        restored = load_state(session)
    assert restored.accounts["whale"].stakes[0].amount == 10**12 * TOKEN - 1


def test_token_round_trip(sqlite_db):
    token = InMemoryToken()
    token.mint("alice", 50 * TOKEN)
    token.approve("alice", CUSTODY, 20 * TOKEN)
    token.transfer_from("alice", CUSTODY, 5 * TOKEN, spender=CUSTODY)
    token.burn(CUSTODY, TOKEN)

    with get_db_session() as session:
        assert load_token(session) is None
        assert save_token(session, token) == token.ledger_length

    with get_db_session() as session:
        restored = load_token(session)
    assert restored.balance_of("alice") == 45 * TOKEN
    assert restored.balance_of(CUSTODY) == 4 * TOKEN
    assert restored.allowance("alice", CUSTODY) == 15 * TOKEN
    assert restored.total_supply == 49 * TOKEN
    assert restored.ledger_length == token.ledger_length
    assert restored.ledger(limit=10) == token.ledger(limit=10)


def test_token_save_only_appends_new_entries(sqlite_db):
    token = InMemoryToken()
    token.mint("alice", 10 * TOKEN)
    with get_db_session() as session:
        position = save_token(session, token)

    token.mint("bob", 3 * TOKEN)
    token.transfer("alice", "bob", 2 * TOKEN)
    with get_db_session() as session:
        assert save_token(session, token, position) == 3

    with get_db_session() as session:
        restored = load_token(session)
    assert [e["eventType"] for e in restored.ledger(limit=10)] == ["TRANSFER", "MINT", "MINT"]
    assert restored.balance_of("alice") == 8 * TOKEN
    assert restored.balance_of("bob") == 5 * TOKEN


def test_store_cursor_follows_loaded_token(sqlite_db, config, clock):
    first = EarnEngine(config=config, clock=clock, store=SqlStateStore())
    first.mint_tokens(ADMIN, "alice", 10 * TOKEN)

    store = SqlStateStore(create_tables=False)
    token = store.load_token()
    second = EarnEngine(config=config, token=token, clock=clock, state=store.load(), store=store)
    second.approve_custody("alice", 4 * TOKEN)

    with get_db_session() as session:
        restored = load_token(session)
    assert restored.ledger_length == 2
    assert restored.allowance("alice", CUSTODY) == 4 * TOKEN
    assert restored.balance_of("alice") == 10 * TOKEN


def test_activity_history_round_trip(sqlite_db, engine, clock):
    engine.record_activity("alice", 1200, 0)
    clock.advance(3600)
    engine.record_activity("alice", 300, 2)
    with get_db_session() as session:
        save_state(session, engine.state)

    with get_db_session() as session:
        restored = load_state(session)
    assert restored.accounts["alice"].activity.steps_history == engine.get_user_steps_history("alice")
    assert restored.accounts["alice"].activity.mets_history == engine.get_user_mets_history("alice")
    assert len(restored.accounts["alice"].activity.steps_history) == 2
