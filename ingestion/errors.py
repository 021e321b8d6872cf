"""
Failure kinds on the upstream fetch path.
"""

from typing import Optional


class FeedError(Exception):
    """Base class for upstream feed failures."""


class AuthError(FeedError):
    """Credential unavailable or rejected by the upstream feed."""


class FetchError(FeedError):
    """Network failure, timeout or non-success upstream response."""

    def __init__(self, reason: str, status_code: Optional[int] = None):
        super().__init__(reason)
        self.reason = reason
        self.status_code = status_code
