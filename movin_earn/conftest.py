# movin_earn/conftest.py
import pytest
from fastapi.testclient import TestClient

from movin_earn.core.clock import FixedClock
from movin_earn.core.config import ONE_DAY, TOKEN, EngineConfig
from movin_earn.core.metrics import METRICS
from movin_earn.features.engine.service import EarnEngine, get_earn_engine
from movin_earn.features.tokens.ledger import InMemoryToken

# 01:00 UTC, so an hour-scale test never crosses a day boundary by accident
START = 19_676 * ONE_DAY + 3600
ADMIN = "owner"
CUSTODY = "movin-earn"


@pytest.fixture(autouse=True)
def reset_metrics():
    """Metrics are process-wide; start every test from zero."""
    METRICS.reset()
    yield


@pytest.fixture
def clock():
    return FixedClock(start=START)


@pytest.fixture
def token():
    return InMemoryToken()


@pytest.fixture
def config():
    return EngineConfig(admin_accounts=frozenset({ADMIN}), custody_account=CUSTODY)


@pytest.fixture
def engine(config, token, clock):
    return EarnEngine(config=config, token=token, clock=clock)


@pytest.fixture
def fund(token):
    """Mint `tokens` whole tokens to `account` and approve the custody account to pull them."""

    def _fund(account: str, tokens: int = 1000) -> int:
        amount = tokens * TOKEN
        token.mint(account, amount)
        token.approve(account, CUSTODY, token.allowance(account, CUSTODY) + amount)
        return amount

    return _fund


@pytest.fixture
def client(engine):
    from movin_earn.main import app

    app.dependency_overrides[get_earn_engine] = lambda: engine
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
