"""
Shared constants for SkyRelay services.

This module provides a single source of truth for:
- WebSocket message types
- Aircraft category lookup
- Polling, reconciliation and rendering defaults

All services should import from this module to ensure consistency.
"""

# WebSocket Message Types
WS_MESSAGE_TYPE_UPDATE = "update"
WS_MESSAGE_TYPE_ERROR = "error"
WS_MESSAGE_TYPE_SET_BOUNDS = "set_bounds"

# Error reasons surfaced to subscribers
ERROR_FETCH_FAILED = "Failed to fetch flight data"

# OpenSky endpoints
OPENSKY_API_URL = "https://opensky-network.org/api"
OPENSKY_TOKEN_URL = "https://auth.opensky-network.org/auth/realms/opensky-network/protocol/openid-connect/token"

# Emitter category codes (state vector index 17)
CATEGORY_UNKNOWN = "Unknown"
AIRCRAFT_CATEGORIES = {
    0: CATEGORY_UNKNOWN,
    1: "Light",
    2: "Small",
    3: "Large",
    4: "High Vortex Large",
    5: "Heavy",
    6: "High Performance",
    7: "Rotorcraft",
}

DEFAULT_CALLSIGN = "Unknown"
DEFAULT_ORIGIN_COUNTRY = "Unknown"

# Server-side polling
POLL_INTERVAL_SECONDS = 15
FETCH_TIMEOUT_SECONDS = 30
TOKEN_REQUEST_TIMEOUT_SECONDS = 10
TOKEN_EXPIRY_MARGIN_SECONDS = 60

# Client-side reconciliation
RECONCILE_THROTTLE_SECONDS = 0.5
POSITION_CHANGE_THRESHOLD_DEG = 0.0001
ALTITUDE_CHANGE_THRESHOLD = 100
EVICTION_INTERVAL_BATCHES = 10
STALE_FLIGHT_SECONDS = 300

# Client-side interest updates and rendering
BOUNDS_DEBOUNCE_SECONDS = 1.0
MAX_RENDERED_FLIGHTS = 500
