from datetime import timedelta

import pytest
from conftest import NOW, make_farm

from amu.peer_groups import HerdSizeBucket, PeerGroupKey, compute_peer_group_stats, herd_size_bucket, peer_group_key
from amu.usage import MONTH, DateRange


@pytest.mark.parametrize(
    "herd_size, expected",
    [
        (1, HerdSizeBucket.SMALL),
        (50, HerdSizeBucket.SMALL),
        (51, HerdSizeBucket.MEDIUM),
        (200, HerdSizeBucket.MEDIUM),
        (201, HerdSizeBucket.LARGE),
    ],
)
def test_herd_size_buckets(herd_size, expected):
    assert herd_size_bucket(herd_size) is expected


def test_species_is_case_insensitive():
    assert peer_group_key(make_farm(species=" Cattle ", herd_size=80)) == PeerGroupKey("cattle", HerdSizeBucket.MEDIUM)


def test_incomplete_profile_has_no_group():
    assert peer_group_key(make_farm(species=None)) is None
    assert peer_group_key(make_farm(herd_size=None)) is None
    assert peer_group_key(make_farm(herd_size=0)) is None


def test_blank_species_has_no_group():
    farm = make_farm(species="   ", herd_size=80)

    assert not farm.has_peer_profile
    assert peer_group_key(farm) is None


def test_label():
    assert PeerGroupKey("poultry", HerdSizeBucket.LARGE).label() == "large poultry operations"


@pytest.mark.asyncio
async def test_group_average_includes_idle_farms(reader):
    busy = make_farm(species="poultry", herd_size=500)
    idle = make_farm(species="poultry", herd_size=900)
    small = make_farm(species="poultry", herd_size=20)
    reader.farms = [busy, idle, small, make_farm(species=None)]
    reader.add_events(busy.farm_id, 12, NOW - timedelta(days=3))
    reader.add_events(small.farm_id, 3, NOW - timedelta(days=3))
    reader.add_events(busy.farm_id, 7, NOW - timedelta(days=3), status="Rejected")

    stats = await compute_peer_group_stats(reader, DateRange.ending_at(NOW, MONTH))

    large = stats[PeerGroupKey("poultry", HerdSizeBucket.LARGE)]
    assert large.farm_count == 2
    assert large.total_usage == 12
    assert large.average_usage == 6.0
    assert stats[PeerGroupKey("poultry", HerdSizeBucket.SMALL)].farm_count == 1
    assert len(stats) == 2
