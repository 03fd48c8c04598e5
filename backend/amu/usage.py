"""
Usage Data Reader — storage-agnostic access to farms and AMU events.

Detectors depend on the ``UsageDataReader`` interface only, so the same
detection logic runs against PostgreSQL in production and against
in-memory fixtures in tests. ``SqlUsageDataReader`` is the SQLAlchemy
implementation used by the workers.
"""

import uuid
from abc import ABC, abstractmethod
from collections.abc import Callable, Hashable
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import Farm, UsageEvent

APPROVED = "Approved"

# Fixed-length calendar approximations used by every detector window.
WEEK = timedelta(days=7)
MONTH = timedelta(days=30)
SIX_MONTHS = timedelta(days=182)


# ── Value types ────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class DateRange:
    """Half-open time window ``[start, end)``."""

    start: datetime
    end: datetime

    def __post_init__(self):
        if self.end < self.start:
            raise ValueError(f"DateRange end {self.end} precedes start {self.start}")

    @classmethod
    def ending_at(cls, end: datetime, length: timedelta) -> "DateRange":
        return cls(start=end - length, end=end)

    def contains(self, moment: datetime) -> bool:
        return self.start <= moment < self.end


@dataclass(frozen=True)
class FarmProfile:
    """Read-only snapshot of the farm fields the detectors need."""

    farm_id: uuid.UUID
    name: str = ""
    species: str | None = None
    herd_size: int | None = None
    latitude: float | None = None
    longitude: float | None = None

    @property
    def has_peer_profile(self) -> bool:
        return bool(self.species and self.species.strip()) and self.herd_size is not None and self.herd_size > 0

    @property
    def has_valid_location(self) -> bool:
        if self.latitude is None or self.longitude is None:
            return False
        return -90 <= self.latitude <= 90 and -180 <= self.longitude <= 180


@dataclass(frozen=True)
class GroupUsage:
    count: int
    farm_count: int


@dataclass(frozen=True)
class DrugUsage:
    drug_name: str
    drug_class: str | None
    count: int


# ── Interface ──────────────────────────────────────────────────────────────


class UsageDataReader(ABC):
    """Query interface over farms and their usage events."""

    @abstractmethod
    async def list_farms(
        self,
        *,
        require_peer_profile: bool = False,
        require_location: bool = False,
    ) -> list[FarmProfile]:
        """Active farms, optionally limited to those with species+herd size or coordinates."""

    @abstractmethod
    async def count_usage_events(self, farm_id: uuid.UUID, status: str | None, date_range: DateRange) -> int:
        """Number of events for one farm in the window (``status=None`` counts all)."""

    @abstractmethod
    async def usage_counts_by_farm(self, status: str | None, date_range: DateRange) -> dict[uuid.UUID, int]:
        """Event counts per farm in the window; farms without events may be absent."""

    @abstractmethod
    async def count_usage_by_drug(
        self, farm_id: uuid.UUID, status: str | None, date_range: DateRange
    ) -> list[DrugUsage]:
        """Event counts per (drug name, recorded drug class) for one farm."""

    @abstractmethod
    async def count_usage_by_event_type(
        self, farm_id: uuid.UUID, status: str | None, date_range: DateRange
    ) -> dict[str, int]:
        """Event counts per event type (treatment / feed) for one farm."""

    async def aggregate_usage_by_group(
        self,
        group_key_fn: Callable[[FarmProfile], Hashable | None],
        date_range: DateRange,
        status: str | None = APPROVED,
    ) -> dict[Hashable, GroupUsage]:
        """
        Sum usage and count farms per group key.

        Farms for which ``group_key_fn`` returns None are left out entirely.
        Farms with no events still count toward ``farm_count``.
        """
        farms = await self.list_farms()
        counts = await self.usage_counts_by_farm(status, date_range)

        totals: dict[Hashable, list[int]] = {}
        for farm in farms:
            key = group_key_fn(farm)
            if key is None:
                continue
            bucket = totals.setdefault(key, [0, 0])
            bucket[0] += counts.get(farm.farm_id, 0)
            bucket[1] += 1

        return {key: GroupUsage(count=c, farm_count=n) for key, (c, n) in totals.items()}


# ── SQLAlchemy implementation ─────────────────────────────────────────────


def _profile(farm: Farm) -> FarmProfile:
    return FarmProfile(
        farm_id=farm.farm_id,
        name=farm.name,
        species=farm.species,
        herd_size=farm.herd_size,
        latitude=farm.latitude,
        longitude=farm.longitude,
    )


class SqlUsageDataReader(UsageDataReader):
    """UsageDataReader backed by the farms / usage_events tables."""

    def __init__(self, db: AsyncSession):
        self.db = db

    def _event_filters(self, status: str | None, date_range: DateRange) -> list:
        filters = [
            UsageEvent.created_at >= date_range.start,
            UsageEvent.created_at < date_range.end,
        ]
        if status is not None:
            filters.append(UsageEvent.status == status)
        return filters

    async def list_farms(
        self,
        *,
        require_peer_profile: bool = False,
        require_location: bool = False,
    ) -> list[FarmProfile]:
        query = select(Farm).where(Farm.status == "Active").order_by(Farm.created_at)
        if require_peer_profile:
            query = query.where(
                Farm.species.is_not(None),
                func.trim(Farm.species) != "",
                Farm.herd_size.is_not(None),
                Farm.herd_size > 0,
            )
        if require_location:
            query = query.where(Farm.latitude.is_not(None), Farm.longitude.is_not(None))
        result = await self.db.execute(query)
        return [_profile(farm) for farm in result.scalars().all()]

    async def count_usage_events(self, farm_id: uuid.UUID, status: str | None, date_range: DateRange) -> int:
        result = await self.db.execute(
            select(func.count(UsageEvent.event_id)).where(
                UsageEvent.farm_id == farm_id,
                *self._event_filters(status, date_range),
            )
        )
        return int(result.scalar_one() or 0)

    async def usage_counts_by_farm(self, status: str | None, date_range: DateRange) -> dict[uuid.UUID, int]:
        result = await self.db.execute(
            select(UsageEvent.farm_id, func.count(UsageEvent.event_id).label("event_count"))
            .where(*self._event_filters(status, date_range))
            .group_by(UsageEvent.farm_id)
        )
        return {row.farm_id: int(row.event_count) for row in result.all()}

    async def count_usage_by_drug(
        self, farm_id: uuid.UUID, status: str | None, date_range: DateRange
    ) -> list[DrugUsage]:
        result = await self.db.execute(
            select(
                UsageEvent.drug_name,
                UsageEvent.drug_class,
                func.count(UsageEvent.event_id).label("event_count"),
            )
            .where(UsageEvent.farm_id == farm_id, *self._event_filters(status, date_range))
            .group_by(UsageEvent.drug_name, UsageEvent.drug_class)
        )
        return [
            DrugUsage(drug_name=row.drug_name, drug_class=row.drug_class, count=int(row.event_count))
            for row in result.all()
        ]

    async def count_usage_by_event_type(
        self, farm_id: uuid.UUID, status: str | None, date_range: DateRange
    ) -> dict[str, int]:
        result = await self.db.execute(
            select(UsageEvent.event_type, func.count(UsageEvent.event_id).label("event_count"))
            .where(UsageEvent.farm_id == farm_id, *self._event_filters(status, date_range))
            .group_by(UsageEvent.event_type)
        )
        return {row.event_type: int(row.event_count) for row in result.all()}
