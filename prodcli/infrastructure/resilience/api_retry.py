"""Service for executing API calls with rate limiting and automatic retries.

Every attempt is admitted by the RateLimiter first. When the server throttles a
call (HTTP 429) the service waits for the server's ``Retry-After`` hint, or for
an exponential backoff with jitter when no hint is given, and tries again up
to the class's retry ceiling.
"""

import email.utils
import math
import logging
import random
import time
from datetime import datetime, timezone
from typing import Any, Callable, Coroutine, Optional

import httpx

from prodcli.domain.errors import RateLimitExceeded
from prodcli.domain.events.api_events import (
    ApiCallDeferred,
    ApiCallFailed,
    ApiCallInitiated,
    ApiCallSucceeded,
    DomainEvent,
    RetryScheduled,
)
from prodcli.infrastructure.resilience.rate_limiter import DEFAULT_LIMITER_CLASS, RateLimiter

logger = logging.getLogger(__name__)

THROTTLED_STATUS = 429


def parse_retry_after(value: Optional[str], now: Optional[datetime] = None) -> Optional[float]:
    """Converts a Retry-After header value into a delay in seconds.

    Accepts both delta-seconds ("2") and HTTP-date forms. Dates in the past give
    0.0; unparseable values give None.
    """
    if value is None:
        return None
    value = value.strip()
    if not value:
        return None

    try:
        seconds = float(value)
    except ValueError:
        seconds = None
    if seconds is not None:
        return max(0.0, seconds) if math.isfinite(seconds) else None

    try:
        retry_at = email.utils.parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if retry_at is None:
        return None
    if retry_at.tzinfo is None:
        retry_at = retry_at.replace(tzinfo=timezone.utc)
    current = now or datetime.now(timezone.utc)
    return max(0.0, (retry_at - current).total_seconds())


def compute_backoff_delay(
    attempt: int,
    base_delay: float,
    jitter: Callable[[], float] = random.random,
) -> float:
    """Exponential backoff with additive jitter, in the units of ``base_delay``.

    delay = base_delay * 2**attempt + U[0, base_delay)
    """
    if attempt < 0:
        raise ValueError("attempt must be >= 0")
    return base_delay * (2 ** attempt) + jitter() * base_delay


def _throttle_hint(exc: httpx.HTTPStatusError) -> Optional[float]:
    return parse_retry_after(exc.response.headers.get("Retry-After"))


def _is_throttled(exc: BaseException) -> bool:
    return isinstance(exc, httpx.HTTPStatusError) and exc.response.status_code == THROTTLED_STATUS


def dispatch_event(event: DomainEvent) -> None:
    logger.debug(f"EVENT: {event}")


class ApiRetryService:
    """Handles API call execution with rate limiting and throttling retries."""

    def __init__(
        self,
        rate_limiter: RateLimiter,
        jitter: Callable[[], float] = random.random,
    ):
        """Initializes the ApiRetryService.

        Args:
            rate_limiter: The rate limiter consulted before every attempt. Its
                clock and sleep are reused for backoff waits.
            jitter: Source of uniform [0, 1) values for backoff jitter.
        """
        self.rate_limiter = rate_limiter
        self._jitter = jitter

    def backoff_delay(self, attempt: int, limiter_class: str = DEFAULT_LIMITER_CLASS) -> float:
        """Backoff (seconds) for a throttled call without a Retry-After hint."""
        config = self.rate_limiter.config_for(limiter_class)
        return compute_backoff_delay(attempt, config.base_delay_seconds, self._jitter)

    async def execute_with_retry(
        self,
        func: Callable[..., Coroutine[Any, Any, Any]],
        *args: Any,
        limiter_class: str = DEFAULT_LIMITER_CLASS,
        endpoint_name: Optional[str] = None,
        **kwargs: Any,
    ) -> Any:
        """Executes an async function with rate limiting and 429 retries.

        Args:
            func: The async function (API call) to execute. Throttling must surface
                as ``httpx.HTTPStatusError`` with status 429.
            *args: Positional arguments for the function.
            limiter_class: Rate limiter class to admit the call under.
            endpoint_name: Name used in logs and events (defaults to func name).
            **kwargs: Keyword arguments for the function.

        Returns:
            The result of the function call.

        Raises:
            RateLimitExceeded: If the call is still throttled after the retry ceiling.
            Exception: Any non-throttling error raised by ``func``, unchanged.
        """
        config = self.rate_limiter.config_for(limiter_class)
        endpoint = endpoint_name or getattr(func, "__name__", "call")
        last_hint: Optional[float] = None

        for attempt in range(config.max_retries + 1):
            wait_duration = self.rate_limiter.get_wait_time(limiter_class)
            if wait_duration > 0:
                dispatch_event(ApiCallDeferred(limiter_class=limiter_class, endpoint=endpoint, wait_time_seconds=wait_duration))
            await self.rate_limiter.acquire(limiter_class)

            dispatch_event(ApiCallInitiated(limiter_class=limiter_class, endpoint=endpoint, attempt=attempt))
            start_time = time.perf_counter()
            try:
                result = await func(*args, **kwargs)
            except httpx.HTTPStatusError as e:
                if not _is_throttled(e):
                    dispatch_event(ApiCallFailed(limiter_class=limiter_class, endpoint=endpoint, error_type=type(e).__name__, error_message=str(e)))
                    raise
                last_hint = _throttle_hint(e)
                if attempt >= config.max_retries:
                    break
                delay = last_hint if last_hint is not None else self.backoff_delay(attempt, limiter_class)
                logger.warning(
                    f"Throttled calling {endpoint} (attempt {attempt + 1}/{config.max_retries + 1}). "
                    f"Waiting {delay:.2f}s..."
                )
                dispatch_event(RetryScheduled(limiter_class=limiter_class, endpoint=endpoint, attempt_number=attempt + 1, delay_seconds=delay, retry_after=last_hint))
                await self.rate_limiter.sleep(delay)
                continue

            latency_ms = (time.perf_counter() - start_time) * 1000
            dispatch_event(ApiCallSucceeded(limiter_class=limiter_class, endpoint=endpoint, latency_ms=latency_ms))
            return result

        attempts = config.max_retries + 1
        logger.error(f"Max retries ({config.max_retries}) reached for {endpoint} while throttled.")
        dispatch_event(ApiCallFailed(limiter_class=limiter_class, endpoint=endpoint, error_type="RateLimitExceeded", error_message=f"{attempts} attempts"))
        raise RateLimitExceeded(attempts=attempts, retry_after=last_hint, endpoint=endpoint)
