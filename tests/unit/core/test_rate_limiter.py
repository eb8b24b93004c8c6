"""Tests for RequestThrottle."""

from typing import List

import pytest

from mica_checker.core.rate_limiter import RequestThrottle


class FakeTime:
    """Clock whose sleep advances the clock instead of blocking."""

    def __init__(self):
        self.now = 100.0
        self.sleeps: List[float] = []

    def clock(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class TestRequestThrottle:
    """Test suite for RequestThrottle."""

    @pytest.mark.asyncio
    async def test_first_call_does_not_wait(self):
        fake = FakeTime()
        throttle = RequestThrottle(1.0, clock=fake.clock, sleep=fake.sleep)

        assert await throttle.wait() == 0.0
        assert fake.sleeps == []

    @pytest.mark.asyncio
    async def test_spaces_consecutive_calls(self):
        fake = FakeTime()
        throttle = RequestThrottle(1.0, clock=fake.clock, sleep=fake.sleep)

        await throttle.wait()
        fake.now += 0.25
        waited = await throttle.wait()

        assert waited == pytest.approx(0.75)
        assert fake.sleeps == [pytest.approx(0.75)]

    @pytest.mark.asyncio
    async def test_no_wait_after_interval_elapsed(self):
        fake = FakeTime()
        throttle = RequestThrottle(1.0, clock=fake.clock, sleep=fake.sleep)

        await throttle.wait()
        fake.now += 5.0

        assert await throttle.wait() == 0.0

    @pytest.mark.asyncio
    async def test_per_minute(self):
        fake = FakeTime()
        throttle = RequestThrottle.per_minute(30, clock=fake.clock, sleep=fake.sleep)

        for _ in range(3):
            await throttle.wait()

        assert throttle.min_interval == 2.0
        assert fake.sleeps == [2.0, 2.0]

    def test_unlimited(self):
        assert RequestThrottle.per_minute(0).min_interval == 0.0
        assert RequestThrottle(-1).min_interval == 0.0
