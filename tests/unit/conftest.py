"""Unit test fixtures: cache reset, temp store, and sample principals."""

import pytest

from tutor_market_service.config import clear_settings_cache
from tutor_market_service.core.state import reset_app_state
from tutor_market_service.models import Principal, Role
from tutor_market_service.services.market_store import MarketStore
from tutor_market_service.services.workflow_engine import WorkflowEngine


@pytest.fixture(autouse=True)
def _clear_caches():
    """Clear settings cache and app state between tests."""
    clear_settings_cache()
    reset_app_state()
    yield
    clear_settings_cache()
    reset_app_state()


# ---------------------------------------------------------------------------
# Service-layer fixtures
# ---------------------------------------------------------------------------
@pytest.fixture
def store(tmp_path):
    """A fresh market store in a temp database."""
    market_store = MarketStore(db_path=str(tmp_path / "market.db"))
    yield market_store
    market_store.close()


@pytest.fixture
def workflow(store):
    """Workflow engine over the temp store."""
    return WorkflowEngine(store)


@pytest.fixture
def alice():
    """A student."""
    return Principal(id="u-alice", name="Alice", role=Role.STUDENT)


@pytest.fixture
def dave():
    """Another student."""
    return Principal(id="u-dave", name="Dave", role=Role.STUDENT)


@pytest.fixture
def bob():
    """A tutor."""
    return Principal(id="u-bob", name="Bob", role=Role.TUTOR)


@pytest.fixture
def carol():
    """Another tutor."""
    return Principal(id="u-carol", name="Carol", role=Role.TUTOR)
