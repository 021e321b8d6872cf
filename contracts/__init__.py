"""
SkyRelay Contracts Package

Provides shared constants and validation for message contracts.
"""

from contracts.constants import *
from contracts.validation import (
    GeographicBounds,
    Position,
    Velocity,
    FlightRecord,
    UpdateMessage,
    ErrorMessage,
    SetBoundsMessage,
    validate_update_message,
    validate_error_message,
    validate_set_bounds_message,
)

__all__ = [
    # Constants
    "WS_MESSAGE_TYPE_UPDATE",
    "WS_MESSAGE_TYPE_ERROR",
    "WS_MESSAGE_TYPE_SET_BOUNDS",
    "AIRCRAFT_CATEGORIES",
    "POLL_INTERVAL_SECONDS",
    "FETCH_TIMEOUT_SECONDS",
    "MAX_RENDERED_FLIGHTS",
    # Models
    "GeographicBounds",
    "Position",
    "Velocity",
    "FlightRecord",
    "UpdateMessage",
    "ErrorMessage",
    "SetBoundsMessage",
    # Validators
    "validate_update_message",
    "validate_error_message",
    "validate_set_bounds_message",
]
