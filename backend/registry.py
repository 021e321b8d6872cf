"""
Registry of connected subscribers and their regions of interest.
"""

from typing import Dict, List, Optional

from contracts.validation import GeographicBounds


class SubscriberRegistry:
    """
    Tracks connected subscriber ids and each one's current bounds.

    No operation raises; remove/set_bounds on an unknown id are no-ops.
    """

    def __init__(self):
        self._subscribers: Dict[str, Optional[GeographicBounds]] = {}

    def add(self, subscriber_id: str) -> None:
        self._subscribers.setdefault(subscriber_id, None)

    def remove(self, subscriber_id: str) -> None:
        """Drop the subscriber and any bounds it declared."""
        self._subscribers.pop(subscriber_id, None)

    def set_bounds(self, subscriber_id: str, bounds: GeographicBounds) -> bool:
        """Replace the subscriber's bounds. Returns False for an unknown id."""
        if subscriber_id not in self._subscribers:
            return False
        self._subscribers[subscriber_id] = bounds
        return True

    def count(self) -> int:
        return len(self._subscribers)

    def all_bounds(self) -> List[GeographicBounds]:
        """Bounds of every subscriber that has declared one."""
        return [b for b in self._subscribers.values() if b is not None]

    def ids(self) -> List[str]:
        return list(self._subscribers)

    def __contains__(self, subscriber_id: str) -> bool:
        return subscriber_id in self._subscribers
