"""
Pytest configuration and fixtures for backend tests.
"""

import json
from decimal import Decimal

import fakeredis
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from shared.config.constants import queue_for_job
from shared.infrastructure.db import get_db
from costing.jobs import RedisJobQueue
from costing.jobs.types import Job, JobOptions, dedupe_key
from costing.jobs.processor import CostJobProcessor
from costing.models import Base, Branch, CompanySettings, Organization
from rest_api.main import app
from rest_api.routers._common import get_queue


# SQLite in-memory database for testing
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class RecordingQueue:
    """
    In-memory stand-in for RedisJobQueue's producer side.

    Records every job and coalesces an identical job that is still pending,
    like the Redis queue does with its dedupe keys.
    """

    def __init__(self):
        self.jobs: list[Job] = []
        self.pending: list[Job] = []
        self._seq = 0

    def enqueue(self, job_name, payload, options=None):
        return self.enqueue_many(job_name, [payload], options)[0]

    def enqueue_many(self, job_name, payloads, options=None):
        options = options or JobOptions()
        ids = []
        for payload in payloads:
            key = dedupe_key(job_name, payload)
            existing = next(
                (j for j in self.pending if dedupe_key(j.name, j.data) == key),
                None,
            )
            if existing is not None:
                ids.append(existing.id)
                continue
            self._seq += 1
            job = Job(
                id=str(self._seq),
                queue_name=queue_for_job(job_name),
                name=job_name,
                data=json.loads(json.dumps(payload)),
                priority=options.priority,
                max_attempts=options.attempts,
                backoff_delay_ms=options.backoff_delay_ms,
            )
            self.jobs.append(job)
            self.pending.append(job)
            ids.append(job.id)
        return ids

    def names(self) -> list[str]:
        return [job.name for job in self.jobs]

    def clear(self) -> None:
        self.jobs.clear()
        self.pending.clear()


@pytest.fixture(scope="function")
def db_session():
    """
    Create a fresh database session for each test.
    Uses SQLite in-memory for isolation.
    """
    Base.metadata.create_all(bind=engine)

    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def session_factory(db_session):
    """Opens extra sessions on the test database, for code that manages its own."""
    return TestingSessionLocal


@pytest.fixture
def queue():
    return RecordingQueue()


@pytest.fixture
def processor(queue):
    """Job processor running stages on their own sessions, like the worker does."""
    return CostJobProcessor(queue=queue, session_factory=TestingSessionLocal)


@pytest.fixture
def drain(db_session, queue, processor):
    """
    Run pending jobs in FIFO order until the cascade settles.

    Returns the processed jobs with their results.
    """

    def _drain(max_jobs: int = 500) -> list[tuple[Job, dict]]:
        processed = []
        while queue.pending:
            if len(processed) >= max_jobs:
                raise AssertionError("Cascade did not settle")
            job = queue.pending.pop(0)
            processed.append((job, processor.process(job)))
        db_session.expire_all()
        return processed

    return _drain


@pytest.fixture(scope="function")
def client(db_session, queue):
    """
    Test client with database session and queue overrides.
    The lifespan is not run, so no PostgreSQL or Redis is needed.
    """
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_queue] = lambda: queue

    yield TestClient(app)

    app.dependency_overrides.clear()


@pytest.fixture
def seed_organization(db_session):
    """Organization with a 0.50 margin target and auto-propagation on."""
    organization = Organization(name="Test Restaurant", slug="test")
    db_session.add(organization)
    db_session.flush()
    db_session.add(
        CompanySettings(
            organization_id=organization.id,
            target_margin_threshold=Decimal("0.50"),
            auto_propagate_approved_menus=True,
        )
    )
    db_session.commit()
    return organization


@pytest.fixture
def other_organization(db_session):
    organization = Organization(name="Other Restaurant", slug="other")
    db_session.add(organization)
    db_session.commit()
    return organization


@pytest.fixture
def seed_branches(db_session, seed_organization):
    """Two active branches and one closed branch."""
    branches = [
        Branch(organization_id=seed_organization.id, name="Centro"),
        Branch(organization_id=seed_organization.id, name="Norte"),
        Branch(organization_id=seed_organization.id, name="Cerrada", is_active=False),
    ]
    db_session.add_all(branches)
    db_session.commit()
    return branches


class FakeClock:
    """Wall clock the Redis queue reads, moved forward by hand."""

    def __init__(self, now_ms: int = 1_000_000):
        self.now_ms = now_ms

    def __call__(self) -> float:
        return self.now_ms / 1000

    def advance(self, ms: int) -> None:
        self.now_ms += ms


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def redis_queue(clock):
    """RedisJobQueue on an in-process Redis that runs the real Lua scripts."""
    client = fakeredis.FakeRedis(server=fakeredis.FakeServer(), decode_responses=True)
    return RedisJobQueue(redis_client=client, prefix="test", lock_duration_ms=30000, clock=clock)
