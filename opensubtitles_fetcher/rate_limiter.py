"""Client-side approximation of the OpenSubtitles rate limits.

The API allows 5 requests per second (reported through the
``x-ratelimit-remaining-second`` and ``ratelimit-reset`` headers) and 40
requests per 10 seconds, which is tracked locally.
"""

import asyncio
import logging
import math
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass

logger = logging.getLogger(__name__)

WINDOW_SECONDS = 10.0
MAX_REQUESTS_PER_WINDOW = 40
FALLBACK_RESET_SECONDS = 5


@dataclass
class RateLimitState:
    remaining_per_second: int = -1  # -1 = unknown
    reset_seconds: int = -1
    window_start: float = -math.inf
    request_count: int = 0


def _parse_int(value: str | None) -> int | None:
    if value is None:
        return None
    try:
        return int(value.strip())
    except ValueError:
        return None


def parse_retry_after(value: str | None) -> float | None:
    if value is None:
        return None
    try:
        seconds = float(value)
    except ValueError:
        return None
    return seconds if seconds >= 0 else None


class RateLimiter:
    """Rate-limit state shared by every request sent through one dispatcher.

    All reads and writes of the state happen under an asyncio lock, so
    concurrent callers queue up behind a throttle sleep instead of racing
    past it.
    """

    def __init__(
        self,
        max_requests: int = MAX_REQUESTS_PER_WINDOW,
        window_seconds: float = WINDOW_SECONDS,
        fallback_reset_seconds: int = FALLBACK_RESET_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.state = RateLimitState()
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.fallback_reset_seconds = fallback_reset_seconds
        self._clock = clock
        self._lock = asyncio.Lock()

    def _forget_header_state(self) -> None:
        self.state.remaining_per_second = -1
        self.state.reset_seconds = -1

    def reset_delay(self) -> int:
        """Seconds until the per-second limit resets, or the fallback when unknown."""
        if self.state.reset_seconds < 0:
            return self.fallback_reset_seconds
        return self.state.reset_seconds

    def retry_delay(self, retry_after: str | None = None) -> float:
        """Backoff before retrying a throttled request."""
        if self.state.reset_seconds >= 0:
            return self.state.reset_seconds
        seconds = parse_retry_after(retry_after)
        if seconds is not None:
            return seconds
        return self.fallback_reset_seconds

    async def acquire(self) -> None:
        """Wait until a request may be sent, then reserve a slot in the window."""
        async with self._lock:
            state = self.state
            if state.remaining_per_second == 0:
                delay = self.reset_delay()
                logger.debug("Per-second limit reached, waiting %ss", delay)
                await asyncio.sleep(delay)
                self._forget_header_state()

            if state.request_count >= self.max_requests:
                elapsed = self._clock() - state.window_start
                if elapsed < self.window_seconds:
                    delay = self.window_seconds - elapsed
                    logger.debug(
                        "%d requests in %.1fs, waiting %.1fs", state.request_count, elapsed, delay
                    )
                    await asyncio.sleep(delay)
                    self._forget_header_state()

            now = self._clock()
            if now - state.window_start >= self.window_seconds:
                state.window_start = now
                state.request_count = 0

            state.request_count += 1

    def update(self, headers: Mapping[str, str]) -> None:
        """Record rate-limit headers from a response; unparseable values are ignored."""
        remaining = _parse_int(headers.get("x-ratelimit-remaining-second"))
        if remaining is not None:
            self.state.remaining_per_second = remaining

        reset = _parse_int(headers.get("ratelimit-reset"))
        if reset is not None:
            self.state.reset_seconds = reset
