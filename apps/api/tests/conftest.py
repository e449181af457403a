"""
Pytest configuration and fixtures

Analytics logic is tested against literal records (tests.record_factories).
Tests that need the ORM run against a throwaway in-memory SQLite database,
so the suite never touches the Supabase Postgres instance.
"""
import pytest
import sys
import os
from unittest.mock import patch

# Add the parent directory to the path so we can import from services
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from core.database import Base
import models  # noqa: F401  (registers the tables on Base.metadata)


@pytest.fixture(scope="function")
def sqlite_engine():
    """In-memory SQLite engine with the analytics tables created."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture(scope="function")
def db_session(sqlite_engine):
    """Session bound to the in-memory database. Everything is discarded after the test."""
    session = sessionmaker(bind=sqlite_engine, autoflush=False)()
    yield session
    session.close()


class FakeRedis:
    """Minimal in-memory Redis mock for unit tests."""

    def __init__(self):
        self._store: dict = {}
        self._ttls: dict = {}

    def get(self, key):
        return self._store.get(key)

    def setex(self, key, ttl, value):
        self._store[key] = value
        self._ttls[key] = ttl

    def ping(self):
        return True


@pytest.fixture
def fake_redis():
    """Provide a FakeRedis and patch get_redis_client to return it."""
    r = FakeRedis()
    with patch("core.cache.get_redis_client", return_value=r):
        yield r


@pytest.fixture
def no_redis():
    """Simulate Redis being unavailable."""
    with patch("core.cache.get_redis_client", return_value=None):
        yield
