"""
OpenSky Network feed client.

Fetches the current /states/all snapshot, optionally narrowed to a
bounding box. The blocking requests call runs in a worker thread and is
bounded by an overall timeout so a hung upstream never stalls polling.
"""

import asyncio
import logging
import os
from typing import Optional

import requests
from prometheus_client import Counter, Histogram

from contracts.constants import (
    FETCH_TIMEOUT_SECONDS as DEFAULT_FETCH_TIMEOUT,
    OPENSKY_API_URL as DEFAULT_API_URL,
)
from contracts.validation import GeographicBounds
from ingestion.errors import AuthError, FetchError

logger = logging.getLogger(__name__)

OPENSKY_API_URL = os.getenv("OPENSKY_API_URL", DEFAULT_API_URL)
FETCH_TIMEOUT_SECONDS = float(os.getenv("FETCH_TIMEOUT_SECONDS", str(DEFAULT_FETCH_TIMEOUT)))

POLLS_TOTAL = Counter('ingestion_polls_total', 'Total API poll attempts', ['status'])
POLL_LATENCY = Histogram('ingestion_poll_latency_seconds', 'API poll duration')
API_ERRORS = Counter('ingestion_api_errors_total', 'API errors', ['error_type'])


class OpenSkyClient:
    """Client for the OpenSky Network states endpoint."""

    def __init__(
        self,
        base_url: str = OPENSKY_API_URL,
        timeout: float = FETCH_TIMEOUT_SECONDS,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def _get_states(self, params: dict, headers: dict) -> dict:
        """Blocking GET /states/all. Returns the decoded snapshot."""
        url = f"{self.base_url}/states/all"
        logger.debug(f"Fetching states: {url} params={params}")

        try:
            with POLL_LATENCY.time():
                response = self.session.get(
                    url,
                    params=params,
                    headers=headers,
                    timeout=self.timeout,
                )
        except requests.exceptions.Timeout as e:
            POLLS_TOTAL.labels(status="timeout").inc()
            API_ERRORS.labels(error_type="timeout").inc()
            raise FetchError(f"OpenSky request timed out: {e}") from e
        except requests.exceptions.RequestException as e:
            POLLS_TOTAL.labels(status="connection_error").inc()
            API_ERRORS.labels(error_type="connection").inc()
            raise FetchError(f"OpenSky connection error: {e}") from e

        if response.status_code == 200:
            try:
                data = response.json()
            except ValueError as e:
                POLLS_TOTAL.labels(status="error").inc()
                API_ERRORS.labels(error_type="invalid_json").inc()
                raise FetchError("OpenSky returned an undecodable body", 200) from e
            POLLS_TOTAL.labels(status="success").inc()
            return data

        if response.status_code == 401:
            POLLS_TOTAL.labels(status="auth_failed").inc()
            API_ERRORS.labels(error_type="auth_failed").inc()
            raise AuthError("OpenSky rejected the access token (HTTP 401)")

        if response.status_code == 429:
            POLLS_TOTAL.labels(status="rate_limited").inc()
            API_ERRORS.labels(error_type="rate_limited").inc()
            raise FetchError("OpenSky rate limit exceeded", 429)

        POLLS_TOTAL.labels(status="error").inc()
        API_ERRORS.labels(error_type=f"http_{response.status_code}").inc()
        raise FetchError(f"OpenSky API error: HTTP {response.status_code}", response.status_code)

    async def fetch_snapshot(
        self,
        token: Optional[str],
        region: Optional[GeographicBounds] = None,
    ) -> dict:
        """
        Fetch the current raw snapshot for an optional region.

        Args:
            token: Bearer token, or None for anonymous access
            region: Bounding box; None queries the whole world

        Raises:
            AuthError on HTTP 401
            FetchError on timeout, connection failure or other non-200 status
        """
        params = region.to_params() if region else {}
        headers = {"Authorization": f"Bearer {token}"} if token else {}

        try:
            return await asyncio.wait_for(
                asyncio.to_thread(self._get_states, params, headers),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            POLLS_TOTAL.labels(status="timeout").inc()
            API_ERRORS.labels(error_type="timeout").inc()
            raise FetchError(f"OpenSky request timed out after {self.timeout:g}s") from e
