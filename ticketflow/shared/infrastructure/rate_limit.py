"""
Rate Limiting
=============

Sliding-window rate limiter keyed by actor identity.

The set of tracked actors is bounded: when a new actor arrives and the map is
full, the least recently seen actor is evicted. Time comes from an injected
Clock so the limiter is testable without real time passing.
"""

import threading
from collections import OrderedDict, deque
from typing import Deque

from ticketflow.shared.infrastructure.clock import Clock
from ticketflow.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


class SlidingWindowRateLimiter:
    """
    Allow at most ``limit`` calls per actor within ``window_seconds``.

    Thread-safe; shared by all request handlers of the process.
    """

    def __init__(
        self,
        limit: int,
        window_seconds: float,
        clock: Clock,
        max_actors: int = 10_000,
    ):
        if limit < 1:
            raise ValueError("limit must be at least 1")
        if max_actors < 1:
            raise ValueError("max_actors must be at least 1")
        self.limit = limit
        self.window_seconds = window_seconds
        self.max_actors = max_actors
        self._clock = clock
        self._hits: OrderedDict[str, Deque[float]] = OrderedDict()
        self._lock = threading.Lock()

    def allow(self, actor_key: str) -> bool:
        """Record a call for ``actor_key`` and report whether it is admitted."""
        now = self._clock.timestamp()
        cutoff = now - self.window_seconds

        with self._lock:
            hits = self._hits.get(actor_key)
            if hits is None:
                if len(self._hits) >= self.max_actors:
                    evicted, _ = self._hits.popitem(last=False)
                    logger.debug("Rate limiter evicted actor", extra={"actor": evicted})
                hits = deque()
                self._hits[actor_key] = hits
            else:
                self._hits.move_to_end(actor_key)

            while hits and hits[0] <= cutoff:
                hits.popleft()

            if len(hits) >= self.limit:
                return False

            hits.append(now)
            return True

    def remaining(self, actor_key: str) -> int:
        """Calls still available to ``actor_key`` in the current window."""
        cutoff = self._clock.timestamp() - self.window_seconds
        with self._lock:
            hits = self._hits.get(actor_key)
            if not hits:
                return self.limit
            live = sum(1 for ts in hits if ts > cutoff)
            return max(0, self.limit - live)

    def tracked_actors(self) -> int:
        with self._lock:
            return len(self._hits)

    def reset(self) -> None:
        with self._lock:
            self._hits.clear()
