"""Shared test fixtures."""

import os

# Keep the module-level engine off the real data directory
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("CONNECTIVITY_PROBE_ENABLED", "false")

import pytest

from gatesync.database.database import init_db, make_engine, make_session_factory
from gatesync.services.record_store import RecordStore


@pytest.fixture
def engine():
    """Fresh in-memory database with all tables."""
    engine = make_engine("sqlite://")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    """Session factory bound to the in-memory database."""
    return make_session_factory(engine)


@pytest.fixture
def record_store(session_factory):
    """Record store over the in-memory database."""
    return RecordStore(session_factory)
