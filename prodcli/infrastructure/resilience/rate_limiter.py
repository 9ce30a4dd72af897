"""Implementation of a per-class sliding window rate limiter.

Controls the frequency of outgoing requests so the aggregate rate in each
limiter class never exceeds that class's ceiling. State is held per limiter
instance (no module-level singletons) so tests can build isolated limiters.
"""

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass
from typing import Awaitable, Callable, Deque, Dict, Iterable, Mapping, Optional

logger = logging.getLogger(__name__)

Clock = Callable[[], float]
Sleeper = Callable[[float], Awaitable[None]]

DEFAULT_LIMITER_CLASS = "regular"


@dataclass(frozen=True)
class RateLimitConfig:
    """Settings for one limiter class.

    Attributes:
        name: Limiter class id ('regular', 'reports').
        limit: Maximum admissions in any trailing window.
        window_ms: Window length in milliseconds.
        max_retries: Retry ceiling for throttled calls in this class.
        base_delay_ms: Base delay for exponential backoff.
    """
    name: str
    limit: int
    window_ms: int
    max_retries: int = 5
    base_delay_ms: int = 1000

    def __post_init__(self) -> None:
        if self.limit <= 0 or self.window_ms <= 0:
            raise ValueError("Limit and window must be positive.")
        if self.max_retries < 0 or self.base_delay_ms < 0:
            raise ValueError("Retry settings must not be negative.")

    @property
    def window_seconds(self) -> float:
        return self.window_ms / 1000.0

    @property
    def base_delay_seconds(self) -> float:
        return self.base_delay_ms / 1000.0


DEFAULT_RATE_LIMITS: Dict[str, RateLimitConfig] = {
    "regular": RateLimitConfig("regular", limit=100, window_ms=10_000),
    "reports": RateLimitConfig("reports", limit=10, window_ms=30_000),
}


def configs_from_settings(settings: Mapping[str, Mapping[str, int]]) -> Dict[str, RateLimitConfig]:
    """Builds limiter configs from the plain dicts returned by the settings module."""
    return {name: RateLimitConfig(name=name, **values) for name, values in settings.items()}


class RateWindow:
    """Admission timestamps of one limiter class within its trailing window."""

    def __init__(self, config: RateLimitConfig):
        self.config = config
        self.timestamps: Deque[float] = deque()

    def prune(self, now: float) -> None:
        """Removes timestamps that fell out of the trailing window."""
        horizon = self.config.window_seconds
        while self.timestamps and now - self.timestamps[0] >= horizon:
            self.timestamps.popleft()

    def try_admit(self, now: float) -> float:
        """Admits a request at ``now`` if the window has room.

        Returns:
            0.0 when admitted, otherwise the seconds until the oldest entry expires.
        """
        self.prune(now)
        if len(self.timestamps) < self.config.limit:
            self.timestamps.append(now)
            return 0.0
        return max(0.0, self.timestamps[0] + self.config.window_seconds - now)

    def wait_time(self, now: float) -> float:
        self.prune(now)
        if len(self.timestamps) < self.config.limit:
            return 0.0
        return max(0.0, self.timestamps[0] + self.config.window_seconds - now)


class RateLimiter:
    """Sliding window rate limiter keyed by limiter class."""

    def __init__(
        self,
        configs: Optional[Iterable[RateLimitConfig]] = None,
        clock: Clock = time.monotonic,
        sleep: Sleeper = asyncio.sleep,
    ):
        """Initializes the rate limiter.

        Args:
            configs: Limiter classes to enforce; defaults to 'regular' and 'reports'.
            clock: Monotonic clock in seconds (injectable for tests).
            sleep: Coroutine used to suspend (injectable for tests).
        """
        chosen = list(configs) if configs is not None else list(DEFAULT_RATE_LIMITS.values())
        self._configs: Dict[str, RateLimitConfig] = {c.name: c for c in chosen}
        self._windows: Dict[str, RateWindow] = {}
        self._clock = clock
        self._sleep = sleep
        logger.debug(
            "RateLimiter initialized: "
            + ", ".join(f"{c.name}={c.limit}/{c.window_ms}ms" for c in self._configs.values())
        )

    @property
    def clock(self) -> Clock:
        return self._clock

    @property
    def sleep(self) -> Sleeper:
        return self._sleep

    def config_for(self, limiter_class: str) -> RateLimitConfig:
        try:
            return self._configs[limiter_class]
        except KeyError:
            raise ValueError(f"Unknown rate limiter class: '{limiter_class}'") from None

    def window_for(self, limiter_class: str) -> RateWindow:
        """Returns the class's window, creating it on first use."""
        window = self._windows.get(limiter_class)
        if window is None:
            window = RateWindow(self.config_for(limiter_class))
            self._windows[limiter_class] = window
        return window

    async def acquire(self, limiter_class: str = DEFAULT_LIMITER_CLASS) -> None:
        """Waits until a request in ``limiter_class`` is permitted.

        The window is re-checked after every wait: other tasks may have been
        admitted while this one slept. A timestamp is recorded only on admission,
        so cancelling a waiting task leaves the window untouched.
        """
        window = self.window_for(limiter_class)
        while True:
            # No await between prune and append, so this is atomic under asyncio
            wait_time = window.try_admit(self._clock())
            if wait_time <= 0:
                logger.debug(f"Rate limit permission granted for class '{limiter_class}'.")
                return
            logger.debug(f"Rate limit reached for class '{limiter_class}'. Waiting for {wait_time:.2f} seconds.")
            await self._sleep(wait_time)

    def get_wait_time(self, limiter_class: str = DEFAULT_LIMITER_CLASS) -> float:
        """Estimates the time needed before the next request can be made."""
        return self.window_for(limiter_class).wait_time(self._clock())

    def reset(self, limiter_class: Optional[str] = None) -> None:
        """Forgets recorded admissions for one class, or for all classes."""
        if limiter_class is None:
            self._windows.clear()
        else:
            self._windows.pop(limiter_class, None)
