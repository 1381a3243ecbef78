import pytest

from derby_sim.engine.region import Region, RegionList
from derby_sim.engine.rng import RaceRng
from derby_sim.engine.sample_policy import RANDOM_TRIGGER_WINDOW, ImmediatePolicy, RandomPolicy


def test_region_intersect_and_contains():
    a = Region(0, 100)
    assert a.intersect(Region(50, 150)) == Region(50, 100)
    assert a.intersect(Region(100, 200)).empty
    assert a.contains(0)
    assert not a.contains(100)


def test_rmap_drops_empty_results():
    regions = RegionList([Region(0, 100), Region(200, 300), Region(400, 500)])
    bounds = Region(250, 450)
    assert regions.rmap(lambda r: r.intersect(bounds)) == [Region(250, 300), Region(400, 450)]


def test_union_merges_overlapping_regions():
    merged = RegionList([Region(200, 300), Region(0, 100)]).union([Region(50, 150), Region(300, 350)])
    assert merged == [Region(0, 150), Region(200, 350)]


def test_rng_copy_and_restore_replay_the_stream():
    rng = RaceRng(1234)
    rng.int32()
    snapshot = rng.copy()
    first = [rng.int32(), rng.random(), rng.uniform(10)]
    rng.restore(snapshot)
    assert [rng.int32(), rng.random(), rng.uniform(10)] == first


def test_rng_child_streams_are_reproducible():
    a = RaceRng(42).child()
    b = RaceRng(42).child()
    assert [a.random() for _ in range(5)] == [b.random() for _ in range(5)]


def test_rng_ranges():
    rng = RaceRng(7)
    for _ in range(200):
        assert 0 <= rng.int32() < 2 ** 32
        assert 0.0 <= rng.random() < 1.0
        assert 0 <= rng.uniform(3) < 3


def test_immediate_policy_returns_earliest_region():
    regions = RegionList([Region(100, 200), Region(500, 600)])
    assert ImmediatePolicy.sample(regions, 20, RaceRng(1)) == [Region(100, 200)]


def test_random_policy_samples_inside_regions():
    regions = RegionList([Region(100, 200), Region(500, 560)])
    samples = RandomPolicy.sample(regions, 300, RaceRng(99))
    assert len(samples) == 300
    for trigger in samples:
        assert trigger.end - trigger.start == pytest.approx(RANDOM_TRIGGER_WINDOW)
        assert any(r.start <= trigger.start and trigger.end <= r.end + 1e-9 for r in regions)
    assert any(t.start >= 500 for t in samples)
    assert any(t.start < 200 for t in samples)


def test_random_policy_is_deterministic_for_a_seed():
    regions = RegionList([Region(0, 1000)])
    assert RandomPolicy.sample(regions, 10, RaceRng(5)) == RandomPolicy.sample(regions, 10, RaceRng(5))


def test_random_policy_falls_back_to_immediate_for_short_regions():
    regions = RegionList([Region(100, 105)])
    assert RandomPolicy.sample(regions, 3, RaceRng(5)) == [Region(100, 105)]
