"""
Viewport culling and render prioritization.
"""

from typing import List, Mapping, Optional

from shapely.geometry import Point, box
from shapely.prepared import prep

from contracts.constants import MAX_RENDERED_FLIGHTS
from contracts.validation import FlightRecord, GeographicBounds


def _priority(flight: FlightRecord) -> float:
    altitude = flight.position.altitude if flight.position else 0
    return altitude + flight.velocity.speed


def select_visible(
    flights: Mapping[str, FlightRecord],
    region: Optional[GeographicBounds] = None,
    cap: int = MAX_RENDERED_FLIGHTS,
) -> List[FlightRecord]:
    """
    Flights to render, highest (altitude + speed) first, at most `cap`.

    With a region, only flights whose position lies inside it (edges
    included) are kept; without one every flight passes. Ties keep the
    map's iteration order.
    """
    candidates = list(flights.values())

    if region is not None:
        area = prep(box(region.west, region.south, region.east, region.north))
        candidates = [
            f for f in candidates
            if f.position is not None
            and area.covers(Point(f.position.longitude, f.position.latitude))
        ]

    candidates.sort(key=_priority, reverse=True)
    return candidates[:cap]
