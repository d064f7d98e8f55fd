"""
Pytest configuration and shared fixtures.

The environment is pinned to a throwaway SQLite file before any app import,
because the engine and settings are built when their modules load.
"""

import os
import tempfile

_TEST_DIR = tempfile.mkdtemp(prefix="medialinks-tests-")
os.environ["DATABASE_URL"] = "sqlite:///" + os.path.join(_TEST_DIR, "test.db")
os.environ["LOG_LEVEL"] = "WARNING"

import pytest
from fastapi.testclient import TestClient

# Clear settings cache before any app imports to ensure test env vars are used
from medialinks.config import get_settings
get_settings.cache_clear()

from medialinks.main import app
from medialinks.models import Record  # noqa: F401
from medialinks.services import build_services
from medialinks.storage import Base, engine

from tests.fakes import FakeClock, MemoryStore, StaticResolver


@pytest.fixture(scope="function")
def client():
    """Create test client with fresh database for each test."""
    Base.metadata.create_all(bind=engine)

    with TestClient(app) as test_client:
        # Never hit real DNS from tests
        test_client.app.state.services.media.resolver = StaticResolver()
        yield test_client

    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def resolver():
    return StaticResolver()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def services(store, resolver, clock):
    """Managers wired to the in-memory store, static resolver and fake clock."""
    return build_services(store=store, resolver=resolver, settings=get_settings(), clock=clock)
