"""Process-wide pacing for outbound completion calls."""

from __future__ import annotations

from collections import deque
import logging
import threading
import time
from typing import Callable, Deque, Optional


logger = logging.getLogger("translation_flow.rate_limiter")

WINDOW_SECONDS = 60.0


class RateLimiter:
    """Spacing plus a per-minute cap over a sliding window.

    Slots are handed out under a lock in call order, so waiters are served
    FIFO. The caller sleeps outside the lock until its slot arrives.
    """

    def __init__(
        self,
        min_interval: float = 0.0,
        max_requests_per_minute: int = 0,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
        window_seconds: float = WINDOW_SECONDS,
    ) -> None:
        self.min_interval = max(0.0, float(min_interval or 0.0))
        self.max_requests_per_minute = max(0, int(max_requests_per_minute or 0))
        self.window_seconds = float(window_seconds)
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        self._slots: Deque[float] = deque()
        self._last_slot: Optional[float] = None

    @property
    def enabled(self) -> bool:
        return self.min_interval > 0 or self.max_requests_per_minute > 0

    def _prune_slots_locked(self, slot: float) -> None:
        cutoff = slot - self.window_seconds
        while self._slots and self._slots[0] <= cutoff:
            self._slots.popleft()

    def reserve(self) -> float:
        """Claim the next slot and return how long the caller must wait."""
        with self._lock:
            now = self._clock()
            slot = now
            if self._last_slot is not None:
                slot = max(slot, self._last_slot)
                if self.min_interval > 0:
                    slot = max(slot, self._last_slot + self.min_interval)
            limit = self.max_requests_per_minute
            if limit > 0:
                self._prune_slots_locked(slot)
                if len(self._slots) >= limit:
                    slot = max(slot, self._slots[-limit] + self.window_seconds)
                    self._prune_slots_locked(slot)
                self._slots.append(slot)
            self._last_slot = slot
            return max(0.0, slot - now)

    def acquire(self) -> float:
        if not self.enabled:
            return 0.0
        wait_seconds = self.reserve()
        if wait_seconds > 0:
            logger.debug("Rate limiter delaying call by %.3fs", wait_seconds)
            self._sleep(wait_seconds)
        return wait_seconds

    def pending(self) -> int:
        with self._lock:
            return len(self._slots)
