"""
Shared-poll broadcast service.

One upstream poll serves every connected subscriber:
- Polling starts when the first subscriber joins and stops when the
  last one leaves (Idle <-> Polling).
- Each cycle fetches the union of all subscribers' regions, normalizes
  it, caches the batch and publishes it to everyone.
- A region change triggers one out-of-band cycle without touching the
  timer schedule.
- At most one upstream fetch is in flight; requests arriving meanwhile
  are folded into a single follow-up cycle.

All state is owned by the service instance and mutated only from the
event loop.
"""

import asyncio
import logging
import os
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, List, Optional, Protocol

from backend.bounds import aggregate_bounds
from backend.metrics import (
    FETCH_CYCLES,
    FETCHES_COALESCED,
    FLIGHTS_CACHED,
    POLLING_ACTIVE,
    SUBSCRIBERS,
    WEBSOCKET_MESSAGES_SENT,
)
from backend.registry import SubscriberRegistry
from contracts.constants import ERROR_FETCH_FAILED, POLL_INTERVAL_SECONDS as DEFAULT_POLL_INTERVAL
from contracts.validation import ErrorMessage, FlightRecord, GeographicBounds, UpdateMessage, WireModel
from ingestion.errors import AuthError, FeedError
from ingestion.normalizer import normalize_snapshot

logger = logging.getLogger(__name__)

POLL_INTERVAL_SECONDS = float(os.getenv("POLL_INTERVAL_SECONDS", str(DEFAULT_POLL_INTERVAL)))

Send = Callable[[dict], Awaitable[None]]


class CredentialProvider(Protocol):
    async def get_valid_token(self) -> Optional[str]: ...

    def clear(self) -> None: ...


class FeedClient(Protocol):
    async def fetch_snapshot(self, token: Optional[str], region: Optional[GeographicBounds] = None) -> dict: ...


@dataclass(frozen=True)
class BroadcastCache:
    """Most recent normalized batch, handed to joiners without waiting for a tick."""
    flights: List[FlightRecord]
    timestamp: float
    bounds: Optional[GeographicBounds]

    def to_message(self) -> UpdateMessage:
        return UpdateMessage(
            flights=self.flights,
            timestamp=self.timestamp,
            total_flights=len(self.flights),
            bounds=self.bounds,
        )


class BroadcastService:
    """Owns the subscriber registry, the batch cache and the polling lifecycle."""

    def __init__(
        self,
        token_provider: CredentialProvider,
        feed_client: FeedClient,
        poll_interval: float = POLL_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.token_provider = token_provider
        self.feed_client = feed_client
        self.poll_interval = poll_interval
        self._clock = clock

        self._registry = SubscriberRegistry()
        self._senders: Dict[str, Send] = {}
        self._cache: Optional[BroadcastCache] = None

        self._poll_task: Optional[asyncio.Task] = None
        self._cycle_task: Optional[asyncio.Task] = None
        self._refetch_pending = False

    # ------------------------------------------------------------------
    # Subscriber lifecycle
    # ------------------------------------------------------------------

    async def join(self, subscriber_id: str, send: Send) -> None:
        """
        Register a subscriber.

        The cached batch, if any, is sent to the joiner straight away.
        The first subscriber arms the poll timer and runs one cycle
        immediately.
        """
        if subscriber_id in self._registry:
            logger.warning(f"Subscriber {subscriber_id} already joined")
            return

        self._registry.add(subscriber_id)
        self._senders[subscriber_id] = send
        SUBSCRIBERS.set(self._registry.count())
        logger.info(f"Subscriber joined. Total subscribers: {self._registry.count()}")
        first = self._registry.count() == 1

        if self._cache is not None:
            await self._send(subscriber_id, self._cache.to_message())

        # the cache send may already have dropped a dead subscriber
        if first and subscriber_id in self._registry:
            self._start_polling()
            await self._run_cycle("join")

    def leave(self, subscriber_id: str) -> None:
        """Remove a subscriber; the last one out disarms the poll timer."""
        if subscriber_id not in self._registry:
            return

        self._registry.remove(subscriber_id)
        self._senders.pop(subscriber_id, None)
        SUBSCRIBERS.set(self._registry.count())
        logger.info(f"Subscriber left. Total subscribers: {self._registry.count()}")

        if self._registry.count() == 0:
            self._stop_polling()

    async def set_bounds(self, subscriber_id: str, bounds: GeographicBounds) -> bool:
        """
        Replace a subscriber's region and refetch immediately.

        The timer schedule is left untouched. Returns False (and does
        nothing) for an unknown subscriber.
        """
        if not self._registry.set_bounds(subscriber_id, bounds):
            logger.debug(f"Ignoring bounds for unknown subscriber {subscriber_id}")
            return False

        logger.info(
            f"Bounds updated for {subscriber_id}: "
            f"({bounds.south}, {bounds.west}) to ({bounds.north}, {bounds.east})"
        )
        await self._run_cycle("bounds")
        return True

    # ------------------------------------------------------------------
    # Polling state machine
    # ------------------------------------------------------------------

    @property
    def is_polling(self) -> bool:
        return self._poll_task is not None and not self._poll_task.done()

    def _start_polling(self) -> None:
        if self.is_polling:
            return
        self._poll_task = asyncio.get_running_loop().create_task(self._poll_loop())
        POLLING_ACTIVE.set(1)
        logger.info(f"Starting flight data polling (interval: {self.poll_interval:g}s)")

    def _stop_polling(self) -> None:
        if self._poll_task is None:
            return
        self._poll_task.cancel()
        self._poll_task = None
        POLLING_ACTIVE.set(0)
        logger.info("Stopping flight data polling")

    async def _poll_loop(self) -> None:
        while True:
            await asyncio.sleep(self.poll_interval)
            await self._run_cycle("tick")

    async def shutdown(self) -> None:
        """Disarm polling and cancel any in-flight fetch."""
        tasks = [t for t in (self._poll_task, self._cycle_task) if t is not None]
        self._stop_polling()
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass

    # ------------------------------------------------------------------
    # Fetch cycle
    # ------------------------------------------------------------------

    @property
    def fetch_in_flight(self) -> bool:
        return self._cycle_task is not None and not self._cycle_task.done()

    async def _run_cycle(self, trigger: str) -> None:
        """
        Run one fetch cycle, or fold the request into the one in flight.

        Either way the caller waits until the data it asked for has been
        published. The cycle runs in its own task so that disarming the
        timer mid-fetch does not abort a follow-up owed to other callers.
        """
        if self.fetch_in_flight:
            self._refetch_pending = True
            FETCHES_COALESCED.inc()
            logger.debug(f"Fetch already in flight, coalescing {trigger} request")
        else:
            self._cycle_task = asyncio.get_running_loop().create_task(self._cycle_loop(trigger))
        await asyncio.shield(self._cycle_task)

    async def _cycle_loop(self, trigger: str) -> None:
        while True:
            self._refetch_pending = False
            try:
                await self._fetch_and_publish(trigger)
            except Exception:
                logger.exception(f"Unexpected error in {trigger} fetch cycle")
            if not self._refetch_pending or self._registry.count() == 0:
                return
            trigger = "coalesced"

    async def _fetch_and_publish(self, trigger: str) -> None:
        region = aggregate_bounds(self._registry.all_bounds())

        try:
            token = await self.token_provider.get_valid_token()
            raw = await self.feed_client.fetch_snapshot(token, region)
        except FeedError as e:
            FETCH_CYCLES.labels(trigger=trigger, status="error").inc()
            logger.error(f"Error fetching flight data: {e}")
            if isinstance(e, AuthError):
                self.token_provider.clear()
            await self._broadcast(ErrorMessage(
                error=ERROR_FETCH_FAILED,
                message=str(e),
                timestamp=self._clock(),
            ))
            return

        flights = normalize_snapshot(raw, clock=self._clock)
        self._cache = BroadcastCache(flights=flights, timestamp=self._clock(), bounds=region)
        FLIGHTS_CACHED.set(len(flights))
        FETCH_CYCLES.labels(trigger=trigger, status="success").inc()

        await self._broadcast(self._cache.to_message())
        logger.info(
            f"Broadcasting flight data: {len(flights)} flights to "
            f"{self._registry.count()} subscribers ({trigger})"
        )

    # ------------------------------------------------------------------
    # Fan-out
    # ------------------------------------------------------------------

    async def _deliver(self, subscriber_id: str, payload: dict) -> None:
        send = self._senders.get(subscriber_id)
        if send is None:
            return
        try:
            await send(payload)
            WEBSOCKET_MESSAGES_SENT.labels(type=payload["type"]).inc()
        except Exception as e:
            logger.warning(f"Failed to send {payload['type']} to {subscriber_id}: {e}")
            self.leave(subscriber_id)

    async def _send(self, subscriber_id: str, message: WireModel) -> None:
        await self._deliver(subscriber_id, message.to_wire())

    async def _broadcast(self, message: WireModel) -> None:
        payload = message.to_wire()
        for subscriber_id in self._registry.ids():
            await self._deliver(subscriber_id, payload)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def cache(self) -> Optional[BroadcastCache]:
        return self._cache

    def stats(self) -> dict:
        """Read-only service statistics."""
        return {
            "subscribers": self._registry.count(),
            "polling": self.is_polling,
            "cached_flights": len(self._cache.flights) if self._cache else 0,
            "has_data": self._cache is not None,
            "last_update": self._cache.timestamp if self._cache else None,
        }
