"""
Unit tests for the subscriber registry and bounds aggregation.
"""

from backend.bounds import aggregate_bounds
from backend.registry import SubscriberRegistry
from contracts.validation import GeographicBounds


def bounds(south, west, north, east):
    return GeographicBounds(south=south, west=west, north=north, east=east)


def encloses(outer, inner):
    return (
        outer.south <= inner.south
        and outer.west <= inner.west
        and outer.north >= inner.north
        and outer.east >= inner.east
    )


class TestAggregateBounds:
    def test_no_regions_means_unfiltered(self):
        assert aggregate_bounds([]) is None

    def test_single_region_returned_unchanged(self):
        region = bounds(45, 5, 47, 10)
        assert aggregate_bounds([region]) is region

    def test_envelope_of_two_regions(self):
        result = aggregate_bounds([bounds(45, 5, 47, 10), bounds(40, 0, 50, 15)])
        assert result == bounds(40, 0, 50, 15)

    def test_disjoint_regions(self):
        result = aggregate_bounds([bounds(10, -20, 20, -10), bounds(30, 5, 35, 8)])
        assert result == bounds(10, -20, 35, 8)

    def test_envelope_contains_every_input(self):
        regions = [
            bounds(45, 5, 47, 10),
            bounds(-10, 100, 5, 120),
            bounds(60, -30, 70, -20),
            bounds(0, 0, 0, 0),
        ]
        result = aggregate_bounds(regions)
        assert all(encloses(result, r) for r in regions)
        assert result == bounds(-10, -30, 70, 120)

    def test_accepts_any_iterable(self):
        result = aggregate_bounds(iter([bounds(1, 1, 2, 2), bounds(3, 3, 4, 4)]))
        assert result == bounds(1, 1, 4, 4)


class TestSubscriberRegistry:
    def test_add_and_count(self):
        registry = SubscriberRegistry()
        registry.add("a")
        registry.add("b")
        assert registry.count() == 2
        assert "a" in registry
        assert registry.all_bounds() == []

    def test_add_twice_keeps_bounds(self):
        registry = SubscriberRegistry()
        registry.add("a")
        registry.set_bounds("a", bounds(1, 1, 2, 2))
        registry.add("a")
        assert registry.count() == 1
        assert registry.all_bounds() == [bounds(1, 1, 2, 2)]

    def test_set_bounds_replaces(self):
        registry = SubscriberRegistry()
        registry.add("a")
        assert registry.set_bounds("a", bounds(1, 1, 2, 2))
        assert registry.set_bounds("a", bounds(3, 3, 4, 4))
        assert registry.all_bounds() == [bounds(3, 3, 4, 4)]

    def test_all_bounds_skips_undeclared(self):
        registry = SubscriberRegistry()
        registry.add("a")
        registry.add("b")
        registry.set_bounds("b", bounds(1, 1, 2, 2))
        assert registry.all_bounds() == [bounds(1, 1, 2, 2)]

    def test_remove_clears_bounds(self):
        registry = SubscriberRegistry()
        registry.add("a")
        registry.set_bounds("a", bounds(1, 1, 2, 2))
        registry.remove("a")
        assert registry.count() == 0
        assert registry.all_bounds() == []
        assert "a" not in registry

    def test_unknown_ids_are_noops(self):
        registry = SubscriberRegistry()
        registry.add("a")
        registry.remove("ghost")
        assert not registry.set_bounds("ghost", bounds(1, 1, 2, 2))
        assert registry.count() == 1
        assert registry.all_bounds() == []

    def test_ids_is_a_copy(self):
        registry = SubscriberRegistry()
        registry.add("a")
        registry.add("b")
        ids = registry.ids()
        registry.remove("a")
        assert ids == ["a", "b"]
        assert registry.ids() == ["b"]
