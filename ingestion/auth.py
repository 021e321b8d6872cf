"""
OpenSky credential provider (OAuth2 Client Credentials Flow).

Caches the access token until shortly before expiry. Overlapping
callers that find the token expired share one in-flight refresh.
"""

import asyncio
import logging
import os
import time
from datetime import datetime, timezone
from typing import Callable, Optional

import requests
from prometheus_client import Counter

from contracts.constants import (
    OPENSKY_TOKEN_URL as DEFAULT_TOKEN_URL,
    TOKEN_EXPIRY_MARGIN_SECONDS,
    TOKEN_REQUEST_TIMEOUT_SECONDS,
)
from ingestion.errors import AuthError

logger = logging.getLogger(__name__)

OPENSKY_CLIENT_ID = os.getenv("OPENSKY_CLIENT_ID")
OPENSKY_CLIENT_SECRET = os.getenv("OPENSKY_CLIENT_SECRET")
OPENSKY_TOKEN_URL = os.getenv("OPENSKY_TOKEN_URL", DEFAULT_TOKEN_URL)

TOKEN_REFRESHES = Counter('ingestion_token_refreshes_total', 'OAuth2 token refresh attempts', ['status'])


class TokenProvider:
    """Single-flight OAuth2 token cache for the OpenSky API."""

    def __init__(
        self,
        client_id: Optional[str] = OPENSKY_CLIENT_ID,
        client_secret: Optional[str] = OPENSKY_CLIENT_SECRET,
        token_url: str = OPENSKY_TOKEN_URL,
        session: Optional[requests.Session] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.token_url = token_url
        self.session = session or requests.Session()
        self._clock = clock

        self._access_token: Optional[str] = None
        self._expires_at: float = 0
        self._refresh: Optional[asyncio.Future] = None

        if not self.has_credentials:
            logger.warning(
                "OpenSky OAuth2 credentials not provided. Using anonymous access (rate-limited). "
                "Set OPENSKY_CLIENT_ID and OPENSKY_CLIENT_SECRET for authenticated access."
            )

    @property
    def has_credentials(self) -> bool:
        return bool(self.client_id and self.client_secret)

    def _request_token(self) -> tuple[str, int]:
        """Blocking token request. Returns (access_token, expires_in)."""
        try:
            response = self.session.post(
                self.token_url,
                headers={"Content-Type": "application/x-www-form-urlencoded"},
                data={
                    "grant_type": "client_credentials",
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                },
                timeout=TOKEN_REQUEST_TIMEOUT_SECONDS,
            )
        except requests.exceptions.RequestException as e:
            TOKEN_REFRESHES.labels(status="error").inc()
            raise AuthError(f"Token request failed: {e}") from e

        if response.status_code != 200:
            TOKEN_REFRESHES.labels(status="failed").inc()
            raise AuthError(f"Token endpoint returned HTTP {response.status_code}")

        try:
            token_data = response.json()
            access_token = token_data["access_token"]
            expires_in = int(token_data.get("expires_in", 1800))
        except (ValueError, KeyError, TypeError) as e:
            TOKEN_REFRESHES.labels(status="failed").inc()
            raise AuthError(f"Malformed token response: {e}") from e

        TOKEN_REFRESHES.labels(status="success").inc()
        return access_token, expires_in

    async def _refresh_token(self) -> str:
        access_token, expires_in = await asyncio.to_thread(self._request_token)
        self._access_token = access_token
        self._expires_at = self._clock() + expires_in - TOKEN_EXPIRY_MARGIN_SECONDS
        logger.info(f"OAuth2 token obtained. Expires in {expires_in}s ({expires_in // 60} min)")
        return access_token

    def _clear_refresh(self, future: asyncio.Future) -> None:
        if self._refresh is future:
            self._refresh = None

    async def get_valid_token(self) -> Optional[str]:
        """
        Return a valid bearer token, refreshing if needed.

        Returns None when no credentials are configured (anonymous access).

        Raises:
            AuthError if the refresh fails
        """
        if not self.has_credentials:
            return None

        if self._access_token and self._clock() < self._expires_at:
            return self._access_token

        if self._refresh is None:
            logger.info("Token missing or expiring, refreshing...")
            self._refresh = asyncio.ensure_future(self._refresh_token())
            self._refresh.add_done_callback(self._clear_refresh)

        # shield: a cancelled caller must not cancel the shared refresh
        return await asyncio.shield(self._refresh)

    def clear(self) -> None:
        """Forget the cached token so the next call refreshes."""
        self._access_token = None
        self._expires_at = 0

    def token_info(self) -> dict:
        """Token status for the auth health endpoint."""
        if not self._access_token:
            return {"has_token": False, "is_expired": True}

        now = self._clock()
        return {
            "has_token": True,
            "is_expired": now >= self._expires_at,
            "expires_at": datetime.fromtimestamp(self._expires_at, tz=timezone.utc).isoformat(),
            "time_until_expiry": int(max(0, self._expires_at - now)),
        }
