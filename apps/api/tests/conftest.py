"""Pytest configuration and fixtures for integration tests."""

import os

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from modtrail_api.db.base import Base
from modtrail_api.ledger.service import LedgerService
from modtrail_api.models import ModerationAuditLog  # noqa: F401

# Use test database URL from environment or default to a SQLite file per test
TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL")


class FakeRedis:
    """Just enough of redis-py for the report cache."""

    def __init__(self):
        self.values = {}
        self.ttls = {}
        self.fail = False

    def get(self, key):
        if self.fail:
            raise ConnectionError("redis is down")
        return self.values.get(key)

    def setex(self, key, ttl, value):
        if self.fail:
            raise ConnectionError("redis is down")
        self.values[key] = value
        self.ttls[key] = ttl
        return True

    def ping(self):
        return not self.fail


class RecordingAlertSink:
    """Alert sink that keeps what it was sent."""

    def __init__(self):
        self.integrity_alerts = []
        self.job_failures = []

    def integrity_violation(self, alert):
        self.integrity_alerts.append(alert)

    def job_failed(self, alert):
        self.job_failures.append(alert)


@pytest.fixture(scope="function")
def engine(tmp_path):
    """
    Create a test database engine.

    A SQLite file is used rather than ``:memory:`` so that the report store,
    the alert sink and concurrent writers each get their own connection.
    Set TEST_DATABASE_URL to run against PostgreSQL instead.
    """
    if TEST_DATABASE_URL:
        engine = create_engine(TEST_DATABASE_URL)
    else:
        engine = create_engine(
            f"sqlite:///{tmp_path / 'modtrail_test.db'}",
            connect_args={"check_same_thread": False},
        )

    Base.metadata.create_all(engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(engine)
        engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory) -> Session:
    """Create a test database session."""
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def ledger(db: Session) -> LedgerService:
    return LedgerService(db)


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def alert_sink() -> RecordingAlertSink:
    return RecordingAlertSink()


@pytest.fixture
def append_reports(ledger: LedgerService):
    """Append ``n`` report submissions and return the entries."""

    def _append(n: int):
        return [
            ledger.append(
                event_type="report_submitted",
                actor_type="user",
                actor_id=100 + i,
                target_type="Report",
                target_id=i,
                action="create",
                new_values={"reportable_type": "Post", "reportable_id": 500 + i},
                metadata={"ip_address": "10.0.0.1"},
            )
            for i in range(1, n + 1)
        ]

    return _append
