"""
Test Configuration — Fixtures for async DB, in-memory usage data and alert capture.

Every test that touches the database gets its own in-memory SQLite
database (StaticPool keeps the single connection alive), so the alert
store can commit and roll back freely without leaking state.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from amu.usage import APPROVED, DateRange, DrugUsage, FarmProfile, UsageDataReader
from core.config import Settings
from db.session import Base

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# Fixed "as of" instant so every window boundary is deterministic.
NOW = datetime(2026, 10, 1, 12, 0, 0)


@pytest.fixture
async def test_engine():
    """Fresh in-memory database with all tables."""
    engine = create_async_engine(TEST_DATABASE_URL, echo=False, poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def test_db(test_engine):
    session_factory = async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session


@pytest.fixture
def settings():
    return Settings(app_env="test", weather_request_pause_seconds=0)


# ── Seed helpers ──────────────────────────────────────────────────────────


async def seed_farm(db, **overrides):
    from db.models import Farm

    values = {
        "farm_id": uuid.uuid4(),
        "name": "Test Dairy",
        "species": "cattle",
        "herd_size": 40,
        "latitude": 18.52,
        "longitude": 73.85,
        "status": "Active",
        "created_at": NOW - timedelta(days=400),
    }
    values.update(overrides)
    farm = Farm(**values)
    db.add(farm)
    await db.commit()
    return farm


async def seed_events(db, farm_id, count, created_at, **overrides):
    from db.models import UsageEvent

    for _ in range(count):
        values = {
            "event_id": uuid.uuid4(),
            "farm_id": farm_id,
            "drug_name": "Amoxicillin",
            "event_type": "treatment",
            "status": APPROVED,
            "created_at": created_at,
        }
        values.update(overrides)
        db.add(UsageEvent(**values))
    await db.commit()


# ── In-memory collaborators ───────────────────────────────────────────────


@dataclass
class Event:
    farm_id: uuid.UUID
    created_at: datetime
    drug_name: str = "Amoxicillin"
    drug_class: str | None = None
    event_type: str = "treatment"
    status: str = APPROVED


class InMemoryUsageReader(UsageDataReader):
    """UsageDataReader over plain lists, for detector and job tests."""

    def __init__(self, farms=None, events=None):
        self.farms: list[FarmProfile] = list(farms or [])
        self.events: list[Event] = list(events or [])

    def add_events(self, farm_id, count, created_at, **overrides):
        self.events.extend(Event(farm_id=farm_id, created_at=created_at, **overrides) for _ in range(count))

    def _matching(self, farm_id, status, date_range: DateRange):
        return [
            e
            for e in self.events
            if (farm_id is None or e.farm_id == farm_id)
            and (status is None or e.status == status)
            and date_range.contains(e.created_at)
        ]

    async def list_farms(self, *, require_peer_profile=False, require_location=False):
        farms = self.farms
        if require_peer_profile:
            farms = [f for f in farms if f.has_peer_profile]
        if require_location:
            farms = [f for f in farms if f.latitude is not None and f.longitude is not None]
        return list(farms)

    async def count_usage_events(self, farm_id, status, date_range):
        return len(self._matching(farm_id, status, date_range))

    async def usage_counts_by_farm(self, status, date_range):
        counts: dict[uuid.UUID, int] = {}
        for event in self._matching(None, status, date_range):
            counts[event.farm_id] = counts.get(event.farm_id, 0) + 1
        return counts

    async def count_usage_by_drug(self, farm_id, status, date_range):
        counts: dict[tuple, int] = {}
        for event in self._matching(farm_id, status, date_range):
            key = (event.drug_name, event.drug_class)
            counts[key] = counts.get(key, 0) + 1
        return [DrugUsage(drug_name=name, drug_class=cls, count=n) for (name, cls), n in counts.items()]

    async def count_usage_by_event_type(self, farm_id, status, date_range):
        counts: dict[str, int] = {}
        for event in self._matching(farm_id, status, date_range):
            counts[event.event_type] = counts.get(event.event_type, 0) + 1
        return counts


class RecordingAlertStore:
    """Alert store stand-in that keeps open alerts in memory with the same dedup keys."""

    def __init__(self):
        self.alerts = []
        self.disease_alerts = []
        self.discarded = 0

    async def record_candidate(self, candidate):
        if any(a.farm_id == candidate.farm_id and a.alert_type == candidate.alert_type for a in self.alerts):
            return None
        self.alerts.append(candidate)
        return candidate

    async def record_disease_risk(self, farm_id, risk):
        if any(f == farm_id and r.disease_name == risk.disease_name for f, r in self.disease_alerts):
            return None
        self.disease_alerts.append((farm_id, risk))
        return risk

    async def discard_pending(self):
        self.discarded += 1


def make_farm(**overrides) -> FarmProfile:
    values = {
        "farm_id": uuid.uuid4(),
        "name": "Test Farm",
        "species": "cattle",
        "herd_size": 40,
        "latitude": 18.52,
        "longitude": 73.85,
    }
    values.update(overrides)
    return FarmProfile(**values)


@pytest.fixture
def reader():
    return InMemoryUsageReader()


@pytest.fixture
def store():
    return RecordingAlertStore()
