"""Per-user, per-channel sliding-window rate limiting.

Each accepted enqueue records a timestamp under its (user, channel) key.
A key accepts a new job only while fewer than ``limit`` timestamps fall
inside the trailing window. Lookup and eviction are amortized O(1).
"""

import threading
from collections import deque
from datetime import datetime
from typing import Deque, Dict, List, Optional, Tuple

from infrastructure.logging import get_module_logger
from modules.notifications.domain.timeutils import as_utc, utc_now
from modules.notifications.domain.types import DeliveryChannel

logger = get_module_logger()

Key = Tuple[str, DeliveryChannel]


class SlidingWindowRateLimiter:
    """Counts accepted jobs per (user, channel) over a trailing window.

    Attributes:
        limits: Maximum jobs per window, by channel. Missing channels are
            unlimited.
        window_seconds: Length of the trailing window
    """

    def __init__(
        self,
        limits: Dict[DeliveryChannel, int],
        window_seconds: int = 60,
    ) -> None:
        self.limits = dict(limits)
        self.window_seconds = window_seconds
        self._events: Dict[Key, Deque[float]] = {}
        self._lock = threading.Lock()

    def try_acquire(
        self,
        user_id: str,
        channel: DeliveryChannel,
        now: Optional[datetime] = None,
    ) -> bool:
        """Record one job for the key if it is under its limit.

        Returns:
            True when the job is accepted, False when the limit is reached
        """
        limit = self.limits.get(channel)
        timestamp = as_utc(now or utc_now()).timestamp()
        with self._lock:
            events = self._evict((user_id, channel), timestamp)
            if limit is not None and len(events) >= limit:
                logger.warning(
                    "rate_limit_exceeded",
                    user_id=user_id,
                    channel=channel.value,
                    limit=limit,
                    window_seconds=self.window_seconds,
                )
                return False
            events.append(timestamp)
            self._events[(user_id, channel)] = events
            return True

    def release(self, user_id: str, channel: DeliveryChannel) -> None:
        """Give back the most recent acquisition, e.g. after a failed enqueue."""
        with self._lock:
            events = self._events.get((user_id, channel))
            if events:
                events.pop()
            if not events:
                self._events.pop((user_id, channel), None)

    def acquire_channels(
        self,
        user_id: str,
        channels: List[DeliveryChannel],
        now: Optional[datetime] = None,
    ) -> Tuple[List[DeliveryChannel], List[DeliveryChannel]]:
        """Acquire a slot on each channel.

        Returns:
            (accepted, dropped) channel lists, both in input order
        """
        accepted: List[DeliveryChannel] = []
        dropped: List[DeliveryChannel] = []
        for channel in channels:
            if self.try_acquire(user_id, channel, now):
                accepted.append(channel)
            else:
                dropped.append(channel)
        return accepted, dropped

    def remaining(
        self,
        user_id: str,
        channel: DeliveryChannel,
        now: Optional[datetime] = None,
    ) -> Optional[int]:
        """Jobs still accepted in the current window, or None when unlimited."""
        limit = self.limits.get(channel)
        if limit is None:
            return None
        timestamp = as_utc(now or utc_now()).timestamp()
        with self._lock:
            return max(limit - len(self._evict((user_id, channel), timestamp)), 0)

    def reset(self) -> None:
        with self._lock:
            self._events.clear()

    def _evict(self, key: Key, timestamp: float) -> Deque[float]:
        """Drop timestamps outside the window; keys left empty are forgotten.

        Caller holds the lock. The returned deque is detached from the map
        when empty, so callers that append must store it back.
        """
        events = self._events.get(key)
        if events is None:
            return deque()
        cutoff = timestamp - self.window_seconds
        while events and events[0] <= cutoff:
            events.popleft()
        if not events:
            del self._events[key]
        return events
