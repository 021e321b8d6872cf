"""
Validation library for SkyRelay message contracts.

Provides Pydantic models for every message that crosses the
subscriber channel, plus the canonical flight record produced by
normalization. Python attributes are snake_case; the wire format is
camelCase (originCountry, verticalRate, totalFlights, ...).
"""

from typing import Optional, Literal
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    """Base for models serialized to the subscriber channel."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict:
        """JSON-serializable dict using wire (camelCase) names."""
        return self.model_dump(mode="json", by_alias=True)


# ============================================================================
# Geography
# ============================================================================

class GeographicBounds(WireModel):
    """
    Rectangular region of interest.

    Accepts the upstream names (lamin, lomin, lamax, lomax) as well as
    south/west/north/east. No antimeridian wraparound.
    """
    model_config = ConfigDict(frozen=True)

    south: float = Field(validation_alias=AliasChoices("south", "lamin"))
    west: float = Field(validation_alias=AliasChoices("west", "lomin"))
    north: float = Field(validation_alias=AliasChoices("north", "lamax"))
    east: float = Field(validation_alias=AliasChoices("east", "lomax"))

    @model_validator(mode="after")
    def check_ordering(self):
        if self.south > self.north:
            raise ValueError(f"south ({self.south}) must not exceed north ({self.north})")
        if self.west > self.east:
            raise ValueError(f"west ({self.west}) must not exceed east ({self.east})")
        return self

    def to_params(self) -> dict:
        """Convert to OpenSky API query parameters."""
        return {
            "lamin": self.south,
            "lomin": self.west,
            "lamax": self.north,
            "lomax": self.east,
        }


# ============================================================================
# Flight Record
# ============================================================================

class Position(WireModel):
    """Geographic position."""
    model_config = ConfigDict(frozen=True)

    latitude: float
    longitude: float
    altitude: float = 0


class Velocity(WireModel):
    """Ground speed, true track and vertical rate."""
    model_config = ConfigDict(frozen=True)

    speed: float = 0
    heading: float = 0
    vertical_rate: float = 0


class FlightRecord(WireModel):
    """Canonical, immutable flight state keyed by icao24."""
    model_config = ConfigDict(frozen=True)

    icao24: str
    callsign: str
    origin_country: str
    position: Optional[Position] = None
    velocity: Velocity = Field(default_factory=Velocity)
    on_ground: bool = False
    last_update: float
    category: str


# ============================================================================
# WebSocket Messages
# ============================================================================

class UpdateMessage(WireModel):
    """Batch of normalized flights broadcast after every successful fetch."""
    type: Literal["update"] = "update"
    flights: list[FlightRecord]
    timestamp: float = Field(description="Unix seconds when the batch was produced")
    total_flights: int = Field(ge=0)
    bounds: Optional[GeographicBounds] = None


class ErrorMessage(WireModel):
    """Fetch failure broadcast to every subscriber."""
    type: Literal["error"] = "error"
    error: str
    message: str
    timestamp: float


class SetBoundsMessage(GeographicBounds):
    """Inbound region-of-interest update from a viewer."""
    type: Literal["set_bounds"] = "set_bounds"

    def to_bounds(self) -> GeographicBounds:
        return GeographicBounds(
            south=self.south, west=self.west, north=self.north, east=self.east
        )


# ============================================================================
# Validation Functions
# ============================================================================

def validate_update_message(data: dict) -> tuple[bool, Optional[UpdateMessage], Optional[str]]:
    """
    Validate UpdateMessage.

    Returns:
        (is_valid, message_or_none, error_message_or_none)
    """
    try:
        message = UpdateMessage.model_validate(data)
        return True, message, None
    except Exception as e:
        return False, None, str(e)


def validate_error_message(data: dict) -> tuple[bool, Optional[ErrorMessage], Optional[str]]:
    """
    Validate ErrorMessage.

    Returns:
        (is_valid, message_or_none, error_message_or_none)
    """
    try:
        message = ErrorMessage.model_validate(data)
        return True, message, None
    except Exception as e:
        return False, None, str(e)


def validate_set_bounds_message(data: dict) -> tuple[bool, Optional[SetBoundsMessage], Optional[str]]:
    """
    Validate SetBoundsMessage.

    Returns:
        (is_valid, message_or_none, error_message_or_none)
    """
    try:
        message = SetBoundsMessage.model_validate(data)
        return True, message, None
    except Exception as e:
        return False, None, str(e)
