"""
Shared fakes for SkyRelay tests.

No network: the upstream feed and credential provider are replaced with
in-memory doubles, and clocks are injected.
"""

import asyncio
from typing import Any, List, Optional

import pytest

from contracts.validation import FlightRecord, Position, UpdateMessage, Velocity


def make_state(
    icao24: str,
    lat: Optional[float],
    lon: Optional[float],
    altitude: Optional[float] = 10000.0,
    speed: Optional[float] = 200.0,
    last_contact: Optional[int] = 1699000000,
    callsign: Optional[str] = "TEST1 ",
    category: Any = 3,
) -> list:
    """OpenSky state vector with 18 fields."""
    return [
        icao24, callsign, "Switzerland", last_contact, last_contact,
        lon, lat, altitude, False, speed, 90.0, 0.0,
        None, altitude, None, False, 0, category,
    ]


DEFAULT_SNAPSHOT = {
    "time": 1699000000,
    "states": [
        make_state("3c6444", 47.4502, 8.5456),
        make_state("4b1814", 46.9123, 7.5291, altitude=3200.0),
        make_state("4b1a2c", None, None),
    ],
}


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeTokenProvider:
    def __init__(self, token: Optional[str] = "test-token", error: Optional[Exception] = None):
        self.token = token
        self.error = error
        self.calls = 0
        self.cleared = 0

    async def get_valid_token(self) -> Optional[str]:
        self.calls += 1
        if self.error:
            raise self.error
        return self.token

    def clear(self) -> None:
        self.cleared += 1

    def token_info(self) -> dict:
        return {"has_token": True, "is_expired": False}


class FakeFeed:
    """
    Records every fetch. Queued responses (dicts or exceptions) are used
    in order, then DEFAULT_SNAPSHOT. Set `gate` to hold fetches open.
    """

    def __init__(self, responses: Optional[List[Any]] = None):
        self.responses = list(responses or [])
        self.calls: List[Any] = []
        self.tokens: List[Optional[str]] = []
        self.gate: Optional[asyncio.Event] = None
        self.in_flight = 0
        self.max_in_flight = 0

    async def fetch_snapshot(self, token, region=None) -> dict:
        self.calls.append(region)
        self.tokens.append(token)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.gate is not None:
                await self.gate.wait()
            else:
                await asyncio.sleep(0)
            response = self.responses.pop(0) if self.responses else DEFAULT_SNAPSHOT
            if isinstance(response, Exception):
                raise response
            return response
        finally:
            self.in_flight -= 1


class Inbox:
    """Collects messages sent to one subscriber."""

    def __init__(self):
        self.messages: List[dict] = []

    async def send(self, message: dict) -> None:
        self.messages.append(message)

    def of_type(self, message_type: str) -> List[dict]:
        return [m for m in self.messages if m["type"] == message_type]


def make_record(
    icao24: str,
    lat: float = 47.0,
    lon: float = 8.0,
    altitude: float = 10000.0,
    speed: float = 200.0,
    last_update: float = 1699000000,
) -> FlightRecord:
    return FlightRecord(
        icao24=icao24,
        callsign=icao24.upper(),
        origin_country="Switzerland",
        position=Position(latitude=lat, longitude=lon, altitude=altitude),
        velocity=Velocity(speed=speed, heading=90.0, vertical_rate=0.0),
        on_ground=False,
        last_update=last_update,
        category="Large",
    )


def make_batch(records: List[FlightRecord], timestamp: float = 1699000000, total: Optional[int] = None) -> UpdateMessage:
    return UpdateMessage(
        flights=records,
        timestamp=timestamp,
        total_flights=len(records) if total is None else total,
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def tokens():
    return FakeTokenProvider()


@pytest.fixture
def feed():
    return FakeFeed()
