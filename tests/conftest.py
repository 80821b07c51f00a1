"""
Shared fixtures.

Every test gets its own in-memory SQLite database with all tables
created, and a network row to partition data by.
"""

from datetime import datetime, timezone

import pytest

from core.clock import MockClock
from storage.database import Database
from storage.repositories.registry import NetworkRepository
from tests.fakes import FakeChainOracle


@pytest.fixture
def database():
    db = Database("sqlite:///:memory:")
    db.create_all()
    yield db
    db.dispose()


@pytest.fixture
def session(database):
    session = database.new_session()
    yield session
    session.close()


@pytest.fixture
def network_id(database):
    with database.session_scope() as session:
        return NetworkRepository(session).get_or_create("testnet").id


@pytest.fixture
def oracle():
    return FakeChainOracle()


@pytest.fixture
def clock():
    return MockClock(datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc))
