"""In-process throttle spacing out outbound LLM calls."""

import asyncio
import time
from typing import Awaitable, Callable, Optional

from mica_checker.utils.logging import get_logger

LOGGER = get_logger(__name__)


class RequestThrottle:
    """Enforces a minimum interval between consecutive acquisitions.

    Cooperative and per-process: callers ``await throttle.wait()`` before each
    request. The first call never waits.
    """

    def __init__(
        self,
        min_interval: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """Initialize the throttle.

        Args:
            min_interval: Minimum seconds between two calls
            clock: Monotonic clock
            sleep: Coroutine used to wait
        """
        self.min_interval = max(0.0, min_interval)
        self._clock = clock
        self._sleep = sleep
        self._last_call: Optional[float] = None
        self._lock = asyncio.Lock()

    @classmethod
    def per_minute(cls, requests_per_minute: int, **kwargs) -> "RequestThrottle":
        """Build a throttle from a requests-per-minute ceiling."""
        interval = 60.0 / requests_per_minute if requests_per_minute > 0 else 0.0
        return cls(interval, **kwargs)

    async def wait(self) -> float:
        """Wait until the next call is allowed.

        Returns:
            Seconds actually waited
        """
        async with self._lock:
            waited = 0.0
            if self._last_call is not None:
                remaining = self.min_interval - (self._clock() - self._last_call)
                if remaining > 0:
                    LOGGER.debug(f"Throttling LLM call for {remaining:.2f}s")
                    await self._sleep(remaining)
                    waited = remaining
            self._last_call = self._clock()
            return waited
