"""In-memory fixed-window rate limiter.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Thread-safe: uses a lock around shared state.
- Expired counters are reclaimed lazily by ``check`` and eagerly by a
  background sweeper thread.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable

from apiguard.adapters.rate_limit.base import AbstractRateLimiter, RateLimitConfig, RateLimitResult

logger = logging.getLogger(__name__)

DEFAULT_CLEANUP_INTERVAL_SECONDS = 5 * 60


@dataclass
class RateLimitEntry:
    count: int
    reset_time: int


class InMemoryRateLimiter(AbstractRateLimiter):
    """Rate limiter counting requests per key in fixed windows.

    A window opens on the first request for a key and lasts
    ``config.window_ms``. Requests beyond ``config.max_requests`` are rejected
    until the window has passed; rejected requests are not counted.

    Important:
        Each instance owns its own storage. Limiters for different categories
        must be separate instances to keep their counters isolated.
    """

    def __init__(
        self,
        *,
        cleanup_interval_seconds: float = DEFAULT_CLEANUP_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.time,
        start_cleanup: bool = True,
    ) -> None:
        """Initialize the limiter and start its sweeper.

        Args:
            cleanup_interval_seconds: Delay between background sweeps.
            clock: Time source function returning UNIX time in seconds.
            start_cleanup: Start the background sweeper thread.

        Raises:
            ValueError: If cleanup_interval_seconds is not positive.
        """
        if cleanup_interval_seconds <= 0:
            raise ValueError("cleanup_interval_seconds must be > 0")

        self._cleanup_interval = cleanup_interval_seconds
        self._clock = clock
        self._lock = threading.RLock()
        self._store: dict[str, RateLimitEntry] = {}
        self._stop_event = threading.Event()
        self._cleanup_thread: threading.Thread | None = None

        if start_cleanup:
            self._cleanup_thread = threading.Thread(
                target=self._run_cleanup_loop,
                name="rate-limit-cleanup",
                daemon=True,
            )
            self._cleanup_thread.start()

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._store

    def now_ms(self) -> int:
        """Current time on this limiter's clock, in epoch milliseconds."""
        return int(self._clock() * 1000)

    def check(self, key: str, config: RateLimitConfig) -> RateLimitResult:
        """Count a request for ``key`` and decide whether it is allowed.

        Args:
            key: Non-empty bucket key.
            config: Window and budget to apply.

        Returns:
            RateLimitResult with the decision and window bookkeeping.

        Raises:
            ValueError: If key is empty.
        """
        if not key:
            raise ValueError("key must be a non-empty string")

        limit = config.max_requests

        with self._lock:
            now = self.now_ms()
            entry = self._store.get(key)

            if entry is None or entry.reset_time <= now:
                entry = RateLimitEntry(count=1, reset_time=now + config.window_ms)
                self._store[key] = entry
                return RateLimitResult(
                    success=True,
                    limit=limit,
                    used=1,
                    remaining=limit - 1,
                    reset_time=entry.reset_time,
                )

            if entry.count >= limit:
                return RateLimitResult(
                    success=False,
                    limit=limit,
                    used=entry.count,
                    remaining=0,
                    reset_time=entry.reset_time,
                )

            entry.count += 1
            return RateLimitResult(
                success=True,
                limit=limit,
                used=entry.count,
                remaining=limit - entry.count,
                reset_time=entry.reset_time,
            )

    def cleanup(self) -> int:
        """Delete every entry whose window has passed.

        Returns:
            Number of entries removed.
        """
        with self._lock:
            now = self.now_ms()
            expired_keys = [k for k, entry in self._store.items() if entry.reset_time <= now]
            for key in expired_keys:
                del self._store[key]
            remaining = len(self._store)

        if expired_keys:
            logger.debug(
                "rate_limit.cleanup",
                extra={"removed": len(expired_keys), "active_keys": remaining},
            )
        return len(expired_keys)

    def _run_cleanup_loop(self) -> None:
        while not self._stop_event.wait(self._cleanup_interval):
            try:
                self.cleanup()
            except Exception:
                # Keep sweeping; a failed pass only delays reclamation.
                logger.exception("rate_limit.cleanup_failed")

    def destroy(self) -> None:
        """Stop the sweeper thread and clear all counters. Safe to call twice."""
        self._stop_event.set()
        thread = self._cleanup_thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=5)
        self._cleanup_thread = None

        with self._lock:
            self._store.clear()
