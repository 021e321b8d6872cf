"""
Aggregation of per-subscriber regions into a single upstream query region.
"""

from typing import Iterable, Optional

from contracts.validation import GeographicBounds


def aggregate_bounds(bounds_list: Iterable[GeographicBounds]) -> Optional[GeographicBounds]:
    """
    Smallest rectangle enclosing every region.

    Returns None (fetch unfiltered) when no region is declared, and a
    lone region unchanged.
    """
    regions = list(bounds_list)
    if not regions:
        return None
    if len(regions) == 1:
        return regions[0]

    return GeographicBounds(
        south=min(b.south for b in regions),
        west=min(b.west for b in regions),
        north=max(b.north for b in regions),
        east=max(b.east for b in regions),
    )
