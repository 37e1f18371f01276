# tutor/conftest.py
import os
import sys
from pathlib import Path

import pytest

# Add repo root to PYTHONPATH
REPO_ROOT = Path(__file__).resolve().parent.parent
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

# Must be set before tutor.core.config builds its Settings
os.environ.setdefault("TEST_DATABASE_URL", "sqlite://")
os.environ.setdefault("JWT_SECRET", "test-secret-for-pytest-only-0123456789")
os.environ.setdefault("REALTIME_ENABLED", "false")
os.environ.setdefault("ENV", "test")

from tutor.core import database  # noqa: E402
from tutor.core.metrics import METRICS  # noqa: E402
from tutor.tests.fakes import FakeProducer, FakeRedis  # noqa: E402


@pytest.fixture(scope="function", autouse=True)
def sqlite_db():
    """
    Fresh in-memory SQLite database per test.

    StaticPool keeps one connection alive, so the schema created here is
    the one every session in the test sees.
    """
    database.dispose_engine()
    database.init_engine("sqlite://")
    database.create_all_tables()
    yield
    database.dispose_engine()


@pytest.fixture(scope="function", autouse=True)
def reset_metrics():
    METRICS.reset()
    yield


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def realtime_store(fake_redis):
    from tutor.features.content.stores import RealtimeStore

    return RealtimeStore(client=fake_redis)


@pytest.fixture
def producer():
    return FakeProducer()


@pytest.fixture
def services(producer, realtime_store):
    from tutor.api.deps import build_services
    from tutor.features.settings.service import SettingsHub

    return build_services(
        producer=producer,
        realtime_store=realtime_store,
        settings_hub=SettingsHub(),
        realtime_enabled=True,
    )


@pytest.fixture
def client(services):
    from fastapi.testclient import TestClient

    from tutor.api.deps import set_services
    from tutor.main import app

    set_services(services)
    try:
        yield TestClient(app)
    finally:
        set_services(None)
