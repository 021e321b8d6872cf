"""
Per-viewer reconciliation of broadcast batches into durable flight state.

Rules applied to every incoming batch:
- Throttle: a batch arriving less than 0.5s after the last *applied*
  batch is dropped whole (latest-wins, no buffering).
- Change detection: an existing entry is replaced only when latitude or
  longitude moved by more than 1e-4 degrees or altitude by more than
  100; smaller movement keeps the stored record as-is.
- Eviction: every 10th applied batch, entries absent from the batch and
  last updated more than 300s before the batch timestamp are removed.

Stats (total_flights, last_update) mirror what the server declared in
the batch, not the size of the local map.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from contracts.constants import (
    ALTITUDE_CHANGE_THRESHOLD,
    EVICTION_INTERVAL_BATCHES,
    POSITION_CHANGE_THRESHOLD_DEG,
    RECONCILE_THROTTLE_SECONDS,
    STALE_FLIGHT_SECONDS,
)
from contracts.validation import ErrorMessage, FlightRecord, UpdateMessage

logger = logging.getLogger(__name__)


@dataclass
class ViewerStats:
    total_flights: int = 0
    last_update: Optional[float] = None
    applied_batches: int = 0
    dropped_batches: int = 0
    tracked_flights: int = 0


def has_moved(existing: FlightRecord, incoming: FlightRecord) -> bool:
    """True if incoming differs enough from existing to be worth redrawing."""
    old, new = existing.position, incoming.position
    if old is None:
        return True
    return (
        abs(old.latitude - new.latitude) > POSITION_CHANGE_THRESHOLD_DEG
        or abs(old.longitude - new.longitude) > POSITION_CHANGE_THRESHOLD_DEG
        or abs(old.altitude - new.altitude) > ALTITUDE_CHANGE_THRESHOLD
    )


class ClientReconciler:
    """
    Merges update batches into an icao24 -> FlightRecord map.

    Batches for one viewer are applied one at a time; the lock only
    guards against readers on another thread (e.g. a renderer) while
    the transport thread merges.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._lock = threading.Lock()
        self._flights: Dict[str, FlightRecord] = {}
        self._applied = 0
        self._dropped = 0
        self._last_applied_at: Optional[float] = None

        self.total_flights = 0
        self.last_update: Optional[float] = None
        self.error: Optional[str] = None

    def on_batch(self, batch: UpdateMessage) -> bool:
        """
        Merge one batch. Returns False if it was throttled away.
        """
        now = self._clock()
        if self._last_applied_at is not None and now - self._last_applied_at < RECONCILE_THROTTLE_SECONDS:
            self._dropped += 1
            logger.debug(f"Throttled batch of {len(batch.flights)} flights")
            return False
        self._last_applied_at = now

        with self._lock:
            seen = set()
            changed = 0
            for flight in batch.flights:
                if flight.position is None:
                    continue
                seen.add(flight.icao24)
                existing = self._flights.get(flight.icao24)
                if existing is None or has_moved(existing, flight):
                    self._flights[flight.icao24] = flight
                    changed += 1

            evicted = 0
            if self._applied % EVICTION_INTERVAL_BATCHES == 0:
                evicted = self._evict_stale(seen, batch.timestamp)

            self._applied += 1

        self.total_flights = batch.total_flights
        self.last_update = batch.timestamp
        self.error = None

        logger.debug(
            f"Applied batch #{self._applied}: {changed} changed, {evicted} evicted, "
            f"{len(self._flights)} tracked"
        )
        return True

    def _evict_stale(self, seen: set, batch_timestamp: float) -> int:
        cutoff = batch_timestamp - STALE_FLIGHT_SECONDS
        stale = [
            icao24 for icao24, flight in self._flights.items()
            if icao24 not in seen and flight.last_update < cutoff
        ]
        for icao24 in stale:
            del self._flights[icao24]
        if stale:
            logger.info(f"Evicted {len(stale)} stale flights")
        return len(stale)

    def on_error(self, error: ErrorMessage) -> None:
        """Record the server-reported failure; tracked flights stay visible."""
        logger.warning(f"Flight data error: {error.message}")
        self.error = error.message

    def snapshot(self) -> Dict[str, FlightRecord]:
        """Copy of the current flight map."""
        with self._lock:
            return dict(self._flights)

    def flights(self) -> List[FlightRecord]:
        with self._lock:
            return list(self._flights.values())

    def get(self, icao24: str) -> Optional[FlightRecord]:
        with self._lock:
            return self._flights.get(icao24)

    @property
    def stats(self) -> ViewerStats:
        with self._lock:
            tracked = len(self._flights)
        return ViewerStats(
            total_flights=self.total_flights,
            last_update=self.last_update,
            applied_batches=self._applied,
            dropped_batches=self._dropped,
            tracked_flights=tracked,
        )
