"""
Upstream ingestion for SkyRelay.

Credential provider, OpenSky feed client and record normalization.
"""

from ingestion.errors import FeedError, AuthError, FetchError
from ingestion.auth import TokenProvider
from ingestion.opensky_client import OpenSkyClient
from ingestion.normalizer import normalize_snapshot, get_aircraft_category, normalize_callsign

__all__ = [
    'FeedError',
    'AuthError',
    'FetchError',
    'TokenProvider',
    'OpenSkyClient',
    'normalize_snapshot',
    'get_aircraft_category',
    'normalize_callsign',
]
