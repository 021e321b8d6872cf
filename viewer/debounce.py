"""
Trailing-edge debouncer for region-of-interest updates.

Only the last call within the quiet period is forwarded, so continuous
panning or zooming produces one set_bounds request once the map settles.
"""

import logging
import threading
from typing import Any, Callable, Optional

from contracts.constants import BOUNDS_DEBOUNCE_SECONDS

logger = logging.getLogger(__name__)


class Debouncer:
    """Calls func with the most recent arguments after `wait` quiet seconds."""

    def __init__(
        self,
        func: Callable[..., Any],
        wait: float = BOUNDS_DEBOUNCE_SECONDS,
        timer_factory: Callable[..., Any] = threading.Timer,
    ):
        self.func = func
        self.wait = wait
        self._timer_factory = timer_factory
        self._timer: Optional[Any] = None
        self._generation = 0
        self._lock = threading.Lock()

    def __call__(self, *args, **kwargs) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._generation += 1
            self._timer = self._timer_factory(
                self.wait, self._fire, args=(self._generation, args, kwargs)
            )
            self._timer.daemon = True
            self._timer.start()

    def _fire(self, generation: int, args: tuple, kwargs: dict) -> None:
        with self._lock:
            # a newer call (or cancel) superseded this timer after it expired
            if generation != self._generation:
                return
            self._timer = None
        try:
            self.func(*args, **kwargs)
        except Exception as e:
            logger.error(f"Debounced call failed: {e}")

    def cancel(self) -> None:
        """Drop any pending call."""
        with self._lock:
            self._generation += 1
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

    @property
    def pending(self) -> bool:
        with self._lock:
            return self._timer is not None
