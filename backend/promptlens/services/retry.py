"""
PromptLens Backend - Retry Orchestrator
=========================================

What:  Bounded exponential backoff with jitter around any async operation.
How:   Thin layer over tenacity's AsyncRetrying with a custom wait strategy
       that honours server-specified Retry-After values.
Who:   Used by the remote analyzers for their upstream HTTP calls, and by
       retry_api_request() for callers re-invoking our own HTTP API.

Delay schedule (attempt index i starts at 0 for the first failure):
    delay = min(base_delay * backoff_factor^i, max_delay)
    delay = error.retry_after            (if the failure carries one)
    no retry at all                      (if error.retry_after > max_delay)
    delay += uniform(0, jitter)          (jitter defaults to 1 second)

Example with defaults (base=1s, factor=2, max=10s, 3 retries):
    attempt 1 fails → ~1-2s, attempt 2 fails → ~2-3s, attempt 3 fails → ~4-5s,
    attempt 4 fails → error propagates unchanged

Cancellation:
    The whole with_retry() call is one awaitable. Cancelling the task while
    it sleeps raises CancelledError out of the sleep; no further attempt is
    scheduled.
"""

import asyncio
import logging
import random
from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Awaitable, Callable, Optional, TypeVar

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
)

from promptlens.exceptions import ErrorKind, RetryableHTTPError, ServiceError

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRYABLE_STATUSES = frozenset({408, 429, 502, 503, 504})
RETRYABLE_KINDS = frozenset(
    {ErrorKind.TIMEOUT, ErrorKind.NETWORK_ERROR, ErrorKind.SERVICE_UNAVAILABLE}
)


def is_retryable(error: BaseException) -> bool:
    """
    Default retry predicate.

    Errors carrying an HTTP `status` are retried for 408/429/502/503/504.
    ServiceErrors are retried for TIMEOUT, NETWORK_ERROR and
    SERVICE_UNAVAILABLE. Everything else (including CancelledError) is not.
    """
    status = getattr(error, "status", None)
    if isinstance(status, int) and status in RETRYABLE_STATUSES:
        return True
    if isinstance(error, ServiceError):
        return error.kind in RETRYABLE_KINDS
    return False


@dataclass(frozen=True)
class RetryOptions:
    """
    Retry policy for with_retry().

    Attributes:
        max_retries:      Attempts allowed beyond the first one
        base_delay:       Seconds before the first retry
        max_delay:        Cap on the computed (pre-jitter) delay
        backoff_factor:   Multiplier per attempt
        jitter:           Upper bound of the random extra delay, seconds
        retry_predicate:  Decides whether a failure is transient
        sleep:            Awaitable sleep; tests inject an AsyncMock
    """

    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 10.0
    backoff_factor: float = 2.0
    jitter: float = 1.0
    retry_predicate: Callable[[BaseException], bool] = is_retryable
    sleep: Callable[[float], Awaitable[Any]] = field(default=asyncio.sleep)


DEFAULT_RETRY_OPTIONS = RetryOptions()


def _server_delay(error: Optional[BaseException]) -> Optional[float]:
    """Positive Retry-After seconds carried by `error`, else None."""
    retry_after = getattr(error, "retry_after", None)
    if isinstance(retry_after, (int, float)) and retry_after > 0:
        return float(retry_after)
    return None


class _BackoffWait:
    """tenacity wait strategy: capped exponential backoff, Retry-After override, jitter."""

    def __init__(self, options: RetryOptions, rng: Optional[random.Random] = None):
        self.options = options
        self._rng = rng or random.Random()

    def compute_delay(self, attempt_index: int, error: Optional[BaseException]) -> float:
        opts = self.options
        delay = min(opts.base_delay * (opts.backoff_factor ** attempt_index), opts.max_delay)

        # What: The server's Retry-After wins over our own schedule
        # Never above max_delay here: _should_retry() already refused longer waits
        server_delay = _server_delay(error)
        if server_delay is not None:
            delay = server_delay

        # Why jitter: spreads out clients that failed at the same moment
        if opts.jitter > 0:
            delay += self._rng.uniform(0, opts.jitter)
        return delay

    def __call__(self, retry_state: RetryCallState) -> float:
        # tenacity counts attempts from 1; the backoff exponent starts at 0
        error = retry_state.outcome.exception() if retry_state.outcome else None
        return self.compute_delay(retry_state.attempt_number - 1, error)


def _should_retry(options: RetryOptions) -> Callable[[BaseException], bool]:
    """
    Wrap the configured predicate with the Retry-After ceiling.

    A failure asking us to wait longer than max_delay is not retried: the
    caller's request would otherwise stay open for that long. The error
    propagates with its retry_after intact so the HTTP layer can forward it.
    """

    def predicate(error: BaseException) -> bool:
        if not options.retry_predicate(error):
            return False
        server_delay = _server_delay(error)
        if server_delay is not None and server_delay > options.max_delay:
            logger.warning(
                "Not retrying: server asked for %.1fs, above max_delay=%.1fs",
                server_delay,
                options.max_delay,
            )
            return False
        return True

    return predicate


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    options: Optional[RetryOptions] = None,
) -> T:
    """
    Run `operation` until it succeeds, the predicate rejects the failure,
    or the retry budget is spent.

    Args:
        operation: Zero-argument callable returning an awaitable; called once
                   per attempt. Coroutine functions and lambdas wrapping a
                   coroutine call are both accepted.
        options:   RetryOptions; DEFAULT_RETRY_OPTIONS when omitted.

    Returns:
        Whatever the first successful attempt returns.

    Raises:
        The last attempt's exception, unchanged.
    """
    opts = options or DEFAULT_RETRY_OPTIONS

    # Why the wrapper: AsyncRetrying only awaits the result when it is handed
    # a coroutine function. A plain lambda returning a coroutine would be
    # treated as a sync call and its coroutine never awaited.
    async def _attempt() -> T:
        return await operation()

    retryer = AsyncRetrying(
        stop=stop_after_attempt(max(opts.max_retries, 0) + 1),
        wait=_BackoffWait(opts),
        retry=retry_if_exception(_should_retry(opts)),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        sleep=opts.sleep,
        reraise=True,
    )
    return await retryer(_attempt)


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """
    Parse a Retry-After header (delta-seconds or HTTP-date) into seconds.

    Returns None for a missing or unparseable header.
    """
    if not value:
        return None
    value = value.strip()
    try:
        seconds = float(value)
        return seconds if seconds >= 0 else None
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return max((when - datetime.now(timezone.utc)).total_seconds(), 0.0)


async def retry_api_request(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    options: Optional[RetryOptions] = None,
    **request_kwargs: Any,
) -> Any:
    """
    Send an HTTP request through with_retry() and return the decoded JSON body.

    What:    Client-side helper for re-invoking an endpoint such as
             POST /api/analyze-image after a transient failure.
    How:     Non-2xx responses become RetryableHTTPError carrying the status,
             the JSON `code` (top-level or under `error`) and Retry-After.

    Raises:
        RetryableHTTPError: Final non-2xx response.
        httpx.HTTPError:    Transport failure (not retried by the default predicate).
    """

    async def _send() -> Any:
        response = await client.request(method, url, **request_kwargs)
        if response.is_success:
            return response.json()

        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}
        detail = body.get("error") if isinstance(body.get("error"), dict) else body

        raise RetryableHTTPError(
            message=detail.get("message") or f"HTTP {response.status_code}: {response.reason_phrase}",
            status=response.status_code,
            code=detail.get("code"),
            retry_after=parse_retry_after(response.headers.get("Retry-After")),
            context={"url": str(response.request.url)},
        )

    return await with_retry(_send, options)
