"""
Peer Group Aggregator — species x herd-size baselines.

Farms are bucketed by (species, herd size tier) and each bucket's mean
usage over the reference window becomes the comparison baseline for the
peer-comparison detector. Stats are recomputed on every run and never
persisted.
"""

from dataclasses import dataclass
from enum import Enum

import structlog

from amu.usage import APPROVED, DateRange, FarmProfile, UsageDataReader

logger = structlog.get_logger()


class HerdSizeBucket(str, Enum):
    SMALL = "Small"  # <= 50 animals
    MEDIUM = "Medium"  # <= 200 animals
    LARGE = "Large"  # > 200 animals


SMALL_HERD_MAX = 50
MEDIUM_HERD_MAX = 200


@dataclass(frozen=True)
class PeerGroupKey:
    species: str
    herd_size_bucket: HerdSizeBucket

    def label(self) -> str:
        return f"{self.herd_size_bucket.value.lower()} {self.species} operations"


@dataclass(frozen=True)
class PeerGroupStat:
    average_usage: float
    total_usage: int
    farm_count: int


def herd_size_bucket(herd_size: int) -> HerdSizeBucket:
    if herd_size <= SMALL_HERD_MAX:
        return HerdSizeBucket.SMALL
    if herd_size <= MEDIUM_HERD_MAX:
        return HerdSizeBucket.MEDIUM
    return HerdSizeBucket.LARGE


def peer_group_key(farm: FarmProfile) -> PeerGroupKey | None:
    """Group key for a farm, or None when it cannot be peer-compared."""
    if not farm.has_peer_profile:
        return None
    return PeerGroupKey(species=farm.species.strip().lower(), herd_size_bucket=herd_size_bucket(farm.herd_size))


async def compute_peer_group_stats(
    reader: UsageDataReader,
    date_range: DateRange,
    status: str | None = APPROVED,
) -> dict[PeerGroupKey, PeerGroupStat]:
    """Average usage-event count per farm for every peer group in the window."""
    groups = await reader.aggregate_usage_by_group(peer_group_key, date_range, status=status)

    stats = {
        key: PeerGroupStat(
            average_usage=usage.count / usage.farm_count,
            total_usage=usage.count,
            farm_count=usage.farm_count,
        )
        for key, usage in groups.items()
        if usage.farm_count > 0
    }
    logger.info("amu.peer_groups.computed", group_count=len(stats), window_start=date_range.start.isoformat())
    return stats
