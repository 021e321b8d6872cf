"""
Record normalization - raw OpenSky snapshot to canonical FlightRecords.

OpenSky state vector format (array indices):
0: icao24          - ICAO24 hex address
1: callsign        - Callsign (8 chars max)
2: origin_country  - Country of registration
3: time_position   - Unix timestamp of last position update
4: last_contact    - Unix timestamp of last message
5: longitude       - WGS84 longitude
6: latitude        - WGS84 latitude
7: baro_altitude   - Barometric altitude (meters)
8: on_ground       - Boolean
9: velocity        - Ground speed (m/s)
10: true_track     - Track angle (degrees, 0=north)
11: vertical_rate  - Vertical rate (m/s)
12: sensors        - Sensor IDs (array)
13: geo_altitude   - Geometric altitude (meters)
14: squawk         - Transponder code
15: spi            - Special position indicator
16: position_source - 0=ADS-B, 1=ASTERIX, 2=MLAT, 3=FLARM
17: category       - Emitter category code

Normalization never raises: a malformed snapshot yields an empty list
and a malformed entry is skipped.
"""

import logging
import time
from typing import Any, Callable, List, Optional

from pydantic import ValidationError

from contracts.constants import (
    AIRCRAFT_CATEGORIES,
    CATEGORY_UNKNOWN,
    DEFAULT_CALLSIGN,
    DEFAULT_ORIGIN_COUNTRY,
)
from contracts.validation import FlightRecord, Position, Velocity

logger = logging.getLogger(__name__)

ICAO24 = 0
CALLSIGN = 1
ORIGIN_COUNTRY = 2
LAST_CONTACT = 4
LONGITUDE = 5
LATITUDE = 6
BARO_ALTITUDE = 7
ON_GROUND = 8
VELOCITY = 9
TRUE_TRACK = 10
VERTICAL_RATE = 11
CATEGORY = 17


def get_aircraft_category(code: Any) -> str:
    """Map an emitter category code to its name; anything unrecognized is Unknown."""
    if not isinstance(code, int) or isinstance(code, bool):
        return CATEGORY_UNKNOWN
    return AIRCRAFT_CATEGORIES.get(code, CATEGORY_UNKNOWN)


def normalize_callsign(callsign: Any) -> str:
    """Trim and upper-case; blank or missing callsigns become Unknown."""
    if not callsign:
        return DEFAULT_CALLSIGN
    return str(callsign).strip().upper() or DEFAULT_CALLSIGN


def _field(state: list, index: int) -> Any:
    return state[index] if index < len(state) else None


def transform_state(state: Any, now: float) -> Optional[FlightRecord]:
    """Build a FlightRecord from one state vector, or None if it has no position."""
    if not isinstance(state, (list, tuple)):
        return None

    latitude = _field(state, LATITUDE)
    longitude = _field(state, LONGITUDE)
    if latitude is None or longitude is None:
        return None

    try:
        return FlightRecord(
            icao24=str(_field(state, ICAO24) or ""),
            callsign=normalize_callsign(_field(state, CALLSIGN)),
            origin_country=str(_field(state, ORIGIN_COUNTRY) or DEFAULT_ORIGIN_COUNTRY),
            position=Position(
                latitude=latitude,
                longitude=longitude,
                altitude=_field(state, BARO_ALTITUDE) or 0,
            ),
            velocity=Velocity(
                speed=_field(state, VELOCITY) or 0,
                heading=_field(state, TRUE_TRACK) or 0,
                vertical_rate=_field(state, VERTICAL_RATE) or 0,
            ),
            on_ground=bool(_field(state, ON_GROUND)),
            last_update=_field(state, LAST_CONTACT) or now,
            category=get_aircraft_category(_field(state, CATEGORY)),
        )
    except ValidationError as e:
        logger.debug(f"Skipping malformed state vector {state!r}: {e}")
        return None


def normalize_snapshot(raw: Any, clock: Callable[[], float] = time.time) -> List[FlightRecord]:
    """
    Convert a raw /states/all response into an ordered list of FlightRecords.

    Returns an empty list for a missing snapshot, a missing or
    non-list "states" field, or an empty states list. Entries lacking
    latitude or longitude are dropped.
    """
    if not isinstance(raw, dict):
        return []

    states = raw.get("states")
    if not isinstance(states, (list, tuple)) or not states:
        return []

    now = clock()
    records = []
    for state in states:
        record = transform_state(state, now)
        if record is not None:
            records.append(record)

    logger.debug(f"Normalized {len(records)} of {len(states)} state vectors")
    return records
