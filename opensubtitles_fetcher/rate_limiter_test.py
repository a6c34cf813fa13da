"""Unit tests for the client-side rate limiter."""

import asyncio
from unittest.mock import patch

import pytest

from .rate_limiter import RateLimiter, parse_retry_after


class FakeClock:
    """Monotonic clock that only moves when something sleeps."""

    def __init__(self):
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def clock():
    c = FakeClock()
    with patch("opensubtitles_fetcher.rate_limiter.asyncio.sleep", new=c.sleep):
        yield c


@pytest.fixture
def limiter(clock):
    return RateLimiter(clock=clock)


def _acquire(limiter: RateLimiter, times: int = 1):
    async def run():
        for _ in range(times):
            await limiter.acquire()

    asyncio.run(run())


def describe_RateLimiter():
    def describe_acquire():
        def it_starts_a_window_on_first_request(limiter, clock):
            clock.now = 3.0
            _acquire(limiter)

            assert limiter.state.window_start == 3.0
            assert limiter.state.request_count == 1
            assert clock.sleeps == []

        def it_delays_41st_request_until_window_elapses(limiter, clock):
            _acquire(limiter)
            clock.now = 3.0
            _acquire(limiter, 39)
            assert limiter.state.request_count == 40
            assert clock.sleeps == []

            _acquire(limiter)

            assert clock.sleeps == [7.0]
            assert limiter.state.window_start == 10.0
            assert limiter.state.request_count == 1

        def it_resets_counter_when_window_already_elapsed(limiter, clock):
            _acquire(limiter, 40)
            clock.now = 12.0

            _acquire(limiter)

            assert clock.sleeps == []
            assert limiter.state.request_count == 1
            assert limiter.state.window_start == 12.0

        def it_waits_for_reset_when_no_requests_remain(limiter, clock):
            limiter.update({"x-ratelimit-remaining-second": "0", "ratelimit-reset": "2"})

            _acquire(limiter)

            assert clock.sleeps == [2]
            assert limiter.state.remaining_per_second == -1
            assert limiter.state.reset_seconds == -1

        def it_falls_back_to_5s_when_reset_unknown(limiter, clock):
            limiter.update({"x-ratelimit-remaining-second": "0"})

            _acquire(limiter)

            assert clock.sleeps == [5]

        def it_does_not_wait_while_requests_remain(limiter, clock):
            limiter.update({"x-ratelimit-remaining-second": "3", "ratelimit-reset": "1"})

            _acquire(limiter)

            assert clock.sleeps == []

        def it_serializes_concurrent_callers(limiter, clock):
            async def run():
                await asyncio.gather(*(limiter.acquire() for _ in range(45)))

            asyncio.run(run())

            # All 45 arrive at t=0; only the 41st has to wait out the window
            assert clock.sleeps == [10.0]
            assert limiter.state.request_count == 5

    def describe_update():
        def it_parses_rate_limit_headers(limiter):
            limiter.update({"x-ratelimit-remaining-second": "4", "ratelimit-reset": "1"})

            assert limiter.state.remaining_per_second == 4
            assert limiter.state.reset_seconds == 1

        def it_keeps_prior_values_for_garbage(limiter):
            limiter.update({"x-ratelimit-remaining-second": "3", "ratelimit-reset": "2"})

            limiter.update({"x-ratelimit-remaining-second": "abc", "ratelimit-reset": ""})

            assert limiter.state.remaining_per_second == 3
            assert limiter.state.reset_seconds == 2

        def it_keeps_prior_values_when_headers_missing(limiter):
            limiter.update({"x-ratelimit-remaining-second": "3"})

            limiter.update({})

            assert limiter.state.remaining_per_second == 3
            assert limiter.state.reset_seconds == -1

    def describe_retry_delay():
        def it_prefers_known_reset(limiter):
            limiter.update({"ratelimit-reset": "3"})
            assert limiter.retry_delay("10") == 3

        def it_uses_retry_after_when_reset_unknown(limiter):
            assert limiter.retry_delay("7") == 7.0

        def it_falls_back_to_5s(limiter):
            assert limiter.retry_delay(None) == 5
            assert limiter.retry_delay("soon") == 5


def describe_parse_retry_after():
    def it_parses_seconds():
        assert parse_retry_after("30") == 30.0

    def it_returns_none_for_missing():
        assert parse_retry_after(None) is None

    def it_returns_none_for_invalid():
        assert parse_retry_after("not-a-number") is None

    def it_rejects_negative_values():
        assert parse_retry_after("-1") is None


async def _yield_to_loop():
    loop = asyncio.get_running_loop()
    fut = loop.create_future()
    loop.call_soon(fut.set_result, None)
    await fut


def describe_cancellation():
    def it_releases_lock_when_cancelled_during_window_wait(limiter, clock):
        _acquire(limiter, 40)

        async def run():
            waiting = asyncio.Event()

            async def block(delay):
                waiting.set()
                await asyncio.get_running_loop().create_future()

            with patch("opensubtitles_fetcher.rate_limiter.asyncio.sleep", new=block):
                task = asyncio.create_task(limiter.acquire())
                await waiting.wait()
                task.cancel()
                with pytest.raises(asyncio.CancelledError):
                    await task

            assert not limiter._lock.locked()
            clock.now = 10.0
            await limiter.acquire()

        asyncio.run(run())

        assert clock.sleeps == []
        assert limiter.state.window_start == 10.0
        assert limiter.state.request_count == 1

    def it_drops_cancelled_waiters_from_the_queue(limiter, clock):
        _acquire(limiter, 40)

        async def run():
            waiting = asyncio.Event()
            release = asyncio.Event()

            async def block(delay):
                waiting.set()
                await release.wait()
                clock.now += delay

            with patch("opensubtitles_fetcher.rate_limiter.asyncio.sleep", new=block):
                holder = asyncio.create_task(limiter.acquire())
                await waiting.wait()
                queued = asyncio.create_task(limiter.acquire())
                await _yield_to_loop()
                queued.cancel()
                with pytest.raises(asyncio.CancelledError):
                    await queued

                release.set()
                await holder

            await limiter.acquire()

        asyncio.run(run())

        assert not limiter._lock.locked()
        assert limiter.state.window_start == 10.0
        assert limiter.state.request_count == 2
