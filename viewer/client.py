#!/usr/bin/env python3
"""
Headless viewer - subscribes to the SkyRelay WebSocket hub.

Inbound update batches are reconciled into local flight state; error
messages are recorded without touching that state. Region-of-interest
changes are debounced before being sent upstream.
"""

import os
import sys
import json
import time
import logging
import threading
from typing import List, Optional

import websocket

from contracts.constants import (
    BOUNDS_DEBOUNCE_SECONDS,
    MAX_RENDERED_FLIGHTS,
    WS_MESSAGE_TYPE_ERROR,
    WS_MESSAGE_TYPE_UPDATE,
)
from contracts.validation import (
    FlightRecord,
    GeographicBounds,
    SetBoundsMessage,
    validate_error_message,
    validate_update_message,
)
from viewer.debounce import Debouncer
from viewer.reconciler import ClientReconciler
from viewer.viewport import select_visible

logger = logging.getLogger(__name__)

BACKEND_WS_URL = os.getenv("BACKEND_WS_URL", "ws://localhost:8000/ws/flights")
RECONNECT_DELAY_SECONDS = int(os.getenv("RECONNECT_DELAY_SECONDS", "5"))
STATS_INTERVAL_SECONDS = int(os.getenv("STATS_INTERVAL_SECONDS", "15"))


class ViewerClient:
    """WebSocket subscriber feeding a ClientReconciler."""

    def __init__(
        self,
        url: str = BACKEND_WS_URL,
        reconciler: Optional[ClientReconciler] = None,
        debounce_seconds: float = BOUNDS_DEBOUNCE_SECONDS,
    ):
        self.url = url
        self.reconciler = reconciler or ClientReconciler()
        self.connected = False
        self._app: Optional[websocket.WebSocketApp] = None
        self._last_bounds: Optional[GeographicBounds] = None
        self._debounced_send = Debouncer(self._send_bounds, wait=debounce_seconds)

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    def handle_message(self, raw: str) -> None:
        """Dispatch one inbound message by type."""
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning(f"Failed to decode message: {e}")
            return

        message_type = data.get("type") if isinstance(data, dict) else None

        if message_type == WS_MESSAGE_TYPE_UPDATE:
            is_valid, batch, error = validate_update_message(data)
            if not is_valid:
                logger.warning(f"Invalid update message: {error}")
                return
            self.reconciler.on_batch(batch)

        elif message_type == WS_MESSAGE_TYPE_ERROR:
            is_valid, failure, error = validate_error_message(data)
            if not is_valid:
                logger.warning(f"Invalid error message: {error}")
                return
            self.reconciler.on_error(failure)

        else:
            logger.warning(f"Unexpected message type: {message_type}")

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------

    def update_bounds(self, bounds: GeographicBounds) -> None:
        """Request a new region of interest (debounced)."""
        self._last_bounds = bounds
        self._debounced_send(bounds)

    def _send_bounds(self, bounds: GeographicBounds) -> None:
        if not self.connected or self._app is None:
            logger.debug("Not connected, dropping bounds update")
            return
        message = SetBoundsMessage(
            south=bounds.south, west=bounds.west, north=bounds.north, east=bounds.east
        )
        self._app.send(json.dumps(message.to_wire()))
        logger.info(
            f"Sent bounds ({bounds.south}, {bounds.west}) to ({bounds.north}, {bounds.east})"
        )

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def visible_flights(
        self,
        region: Optional[GeographicBounds] = None,
        cap: int = MAX_RENDERED_FLIGHTS,
    ) -> List[FlightRecord]:
        return select_visible(self.reconciler.snapshot(), region, cap)

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    def _on_open(self, ws):
        self.connected = True
        logger.info(f"Connected to flight data server: {self.url}")
        # a new connection is a new subscriber with no region yet
        if self._last_bounds is not None:
            self._send_bounds(self._last_bounds)

    def _on_message(self, ws, message):
        self.handle_message(message)

    def _on_error(self, ws, error):
        logger.error(f"Connection error: {error}")

    def _on_close(self, ws, status_code, reason):
        self.connected = False
        logger.info(f"Disconnected from server: {status_code} {reason}")

    def run_forever(self) -> None:
        """Connect and process messages, reconnecting after drops. Blocks."""
        self._app = websocket.WebSocketApp(
            self.url,
            on_open=self._on_open,
            on_message=self._on_message,
            on_error=self._on_error,
            on_close=self._on_close,
        )
        self._app.run_forever(reconnect=RECONNECT_DELAY_SECONDS)

    def close(self) -> None:
        self._debounced_send.cancel()
        if self._app is not None:
            self._app.close()
        self.connected = False


def _parse_bounds(value: str) -> Optional[GeographicBounds]:
    """Parse 'south,west,north,east' into bounds, or None if empty/invalid."""
    if not value:
        return None
    try:
        south, west, north, east = (float(v) for v in value.split(","))
        return GeographicBounds(south=south, west=west, north=north, east=east)
    except ValueError as e:
        logger.warning(f"Ignoring VIEWER_BOUNDS={value!r}: {e}")
        return None


def main():
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        stream=sys.stdout
    )

    client = ViewerClient()
    region = _parse_bounds(os.getenv("VIEWER_BOUNDS", ""))
    if region:
        client.update_bounds(region)

    thread = threading.Thread(target=client.run_forever, daemon=True)
    thread.start()

    try:
        while True:
            time.sleep(STATS_INTERVAL_SECONDS)
            stats = client.reconciler.stats
            visible = client.visible_flights(region)
            logger.info(
                f"Server reported {stats.total_flights} flights; tracking {stats.tracked_flights}, "
                f"{len(visible)} visible; {stats.applied_batches} batches applied, "
                f"{stats.dropped_batches} throttled"
            )
            if client.reconciler.error:
                logger.warning(f"Last error: {client.reconciler.error}")
    except KeyboardInterrupt:
        logger.info("Shutting down viewer")
        client.close()


if __name__ == "__main__":
    main()
