"""
PromptLens Backend - Retry Orchestrator Tests
===============================================

What we test:
    ✅ Non-retryable failures run exactly once and never sleep
    ✅ Retry budget: max_retries=N means N+1 attempts, last error unchanged
    ✅ Backoff schedule is capped and honours retry_after
    ✅ Cancellation during backoff stops further attempts
    ✅ retry_api_request() over an httpx MockTransport
    ❌ Real network calls
"""

import asyncio
import random
from unittest.mock import AsyncMock

import httpx
import pytest

from promptlens.exceptions import ErrorKind, RetryableHTTPError, ServiceError
from promptlens.services.retry import (
    RetryOptions,
    _BackoffWait,
    is_retryable,
    parse_retry_after,
    retry_api_request,
    with_retry,
)


def _failing(errors):
    """Coroutine function that raises the given errors in order, then returns "ok"."""
    calls = {"count": 0}

    async def operation():
        calls["count"] += 1
        if errors:
            raise errors.pop(0)
        return "ok"

    return operation, calls


class TestIsRetryable:

    @pytest.mark.parametrize("status", [408, 429, 502, 503, 504])
    def test_retryable_statuses(self, status):
        assert is_retryable(RetryableHTTPError("x", status=status))

    @pytest.mark.parametrize("status", [400, 401, 404, 500])
    def test_non_retryable_statuses(self, status):
        assert not is_retryable(RetryableHTTPError("x", status=status))

    @pytest.mark.parametrize(
        "kind", [ErrorKind.TIMEOUT, ErrorKind.NETWORK_ERROR, ErrorKind.SERVICE_UNAVAILABLE]
    )
    def test_transient_kinds(self, kind):
        assert is_retryable(ServiceError(kind, "x", "openai"))

    @pytest.mark.parametrize(
        "kind",
        [
            ErrorKind.INVALID_API_KEY,
            ErrorKind.QUOTA_EXCEEDED,
            ErrorKind.IMAGE_TOO_LARGE,
            ErrorKind.UNSUPPORTED_FORMAT,
            ErrorKind.INVALID_RESPONSE,
        ],
    )
    def test_permanent_kinds(self, kind):
        assert not is_retryable(ServiceError(kind, "x", "openai"))

    def test_plain_exceptions_are_not_retried(self):
        assert not is_retryable(ValueError("nope"))


class TestWithRetry:

    @pytest.mark.asyncio
    async def test_success_first_try(self):
        sleep = AsyncMock()
        operation, calls = _failing([])

        result = await with_retry(operation, RetryOptions(sleep=sleep))

        assert result == "ok"
        assert calls["count"] == 1
        sleep.assert_not_called()

    @pytest.mark.asyncio
    async def test_predicate_false_means_single_attempt(self):
        sleep = AsyncMock()
        operation, calls = _failing([ServiceError(ErrorKind.TIMEOUT, "t", "openai")])
        options = RetryOptions(retry_predicate=lambda e: False, sleep=sleep)

        with pytest.raises(ServiceError):
            await with_retry(operation, options)

        assert calls["count"] == 1
        sleep.assert_not_called()

    @pytest.mark.asyncio
    async def test_exhausted_budget_raises_last_error_unchanged(self):
        sleep = AsyncMock()
        errors = [ServiceError(ErrorKind.NETWORK_ERROR, f"fail {i}", "openai") for i in range(5)]
        last = errors[2]
        operation, calls = _failing(errors)

        with pytest.raises(ServiceError) as exc_info:
            await with_retry(operation, RetryOptions(max_retries=2, sleep=sleep))

        assert calls["count"] == 3
        assert exc_info.value is last
        assert exc_info.value.kind is ErrorKind.NETWORK_ERROR
        assert sleep.await_count == 2

    @pytest.mark.asyncio
    async def test_recovers_after_transient_failure(self):
        sleep = AsyncMock()
        operation, calls = _failing([ServiceError(ErrorKind.TIMEOUT, "t", "gemini")])

        result = await with_retry(operation, RetryOptions(max_retries=3, sleep=sleep))

        assert result == "ok"
        assert calls["count"] == 2
        assert sleep.await_count == 1

    @pytest.mark.asyncio
    async def test_zero_retries_means_one_attempt(self):
        sleep = AsyncMock()
        operation, calls = _failing([ServiceError(ErrorKind.TIMEOUT, "t", "openai")])

        with pytest.raises(ServiceError):
            await with_retry(operation, RetryOptions(max_retries=0, sleep=sleep))

        assert calls["count"] == 1
        sleep.assert_not_called()

    @pytest.mark.asyncio
    async def test_retry_after_overrides_computed_delay(self):
        sleep = AsyncMock()
        error = ServiceError(
            ErrorKind.SERVICE_UNAVAILABLE, "busy", "openai", retry_after=7
        )
        operation, _ = _failing([error])

        await with_retry(operation, RetryOptions(jitter=0, sleep=sleep))

        sleep.assert_awaited_once_with(7.0)

    @pytest.mark.asyncio
    async def test_lambda_returning_coroutine_is_awaited(self):
        sleep = AsyncMock()
        operation, calls = _failing([ServiceError(ErrorKind.SERVICE_UNAVAILABLE, "busy", "openai")])

        result = await with_retry(lambda: operation(), RetryOptions(max_retries=2, sleep=sleep))

        assert result == "ok"
        assert calls["count"] == 2
        assert sleep.await_count == 1

    @pytest.mark.asyncio
    async def test_lambda_failure_propagates_after_budget(self):
        sleep = AsyncMock()
        errors = [ServiceError(ErrorKind.TIMEOUT, "t", "gemini") for _ in range(3)]
        operation, calls = _failing(errors)

        with pytest.raises(ServiceError) as exc_info:
            await with_retry(lambda: operation(), RetryOptions(max_retries=2, sleep=sleep))

        assert exc_info.value.kind is ErrorKind.TIMEOUT
        assert calls["count"] == 3

    @pytest.mark.asyncio
    async def test_retry_after_above_max_delay_is_not_retried(self):
        sleep = AsyncMock()
        error = ServiceError(
            ErrorKind.SERVICE_UNAVAILABLE, "come back later", "openai", retry_after=3600
        )
        operation, calls = _failing([error])
        options = RetryOptions(max_retries=3, max_delay=10, jitter=0, sleep=sleep)

        with pytest.raises(ServiceError) as exc_info:
            await with_retry(operation, options)

        assert exc_info.value is error
        assert exc_info.value.retry_after == 3600
        assert calls["count"] == 1
        sleep.assert_not_called()

    @pytest.mark.asyncio
    async def test_retry_after_equal_to_max_delay_is_retried(self):
        sleep = AsyncMock()
        error = ServiceError(ErrorKind.SERVICE_UNAVAILABLE, "busy", "openai", retry_after=10)
        operation, _ = _failing([error])

        await with_retry(operation, RetryOptions(max_delay=10, jitter=0, sleep=sleep))

        sleep.assert_awaited_once_with(10.0)

    @pytest.mark.asyncio
    async def test_cancellation_during_backoff_stops_retrying(self):
        calls = {"count": 0}

        async def operation():
            calls["count"] += 1
            raise ServiceError(ErrorKind.TIMEOUT, "t", "openai")

        options = RetryOptions(max_retries=5, base_delay=30, jitter=0)
        task = asyncio.create_task(with_retry(operation, options))
        await asyncio.sleep(0.05)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert calls["count"] == 1


class TestBackoffSchedule:

    def test_exponential_without_jitter(self):
        wait = _BackoffWait(RetryOptions(base_delay=1, backoff_factor=2, max_delay=10, jitter=0))
        assert [wait.compute_delay(i, None) for i in range(5)] == [1, 2, 4, 8, 10]

    def test_delay_is_capped(self):
        wait = _BackoffWait(RetryOptions(base_delay=1, backoff_factor=2, max_delay=10, jitter=0))
        assert wait.compute_delay(20, None) == 10

    def test_jitter_bounds(self):
        wait = _BackoffWait(RetryOptions(base_delay=1, jitter=1.0), rng=random.Random(3))
        for _ in range(50):
            assert 1.0 <= wait.compute_delay(0, None) <= 2.0


class TestParseRetryAfter:

    def test_seconds(self):
        assert parse_retry_after("12") == 12.0

    def test_missing_or_garbage(self):
        assert parse_retry_after(None) is None
        assert parse_retry_after("soon") is None

    def test_past_http_date_is_zero(self):
        assert parse_retry_after("Wed, 21 Oct 2015 07:28:00 GMT") == 0.0


class TestRetryApiRequest:

    @pytest.mark.asyncio
    async def test_retries_503_then_returns_json(self):
        responses = [
            httpx.Response(503, json={"success": False, "error": {"code": "SERVICE_UNAVAILABLE"}}),
            httpx.Response(200, json={"success": True}),
        ]
        seen = []

        def handler(request):
            seen.append(request)
            return responses.pop(0)

        sleep = AsyncMock()
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            body = await retry_api_request(
                client, "POST", "http://test/api/analyze-image", RetryOptions(sleep=sleep)
            )

        assert body == {"success": True}
        assert len(seen) == 2
        assert sleep.await_count == 1

    @pytest.mark.asyncio
    async def test_non_retryable_status_raises_with_code(self):
        def handler(request):
            return httpx.Response(
                400,
                json={"success": False, "error": {"message": "bad", "code": "VALIDATION_ERROR"}},
            )

        sleep = AsyncMock()
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            with pytest.raises(RetryableHTTPError) as exc_info:
                await retry_api_request(client, "GET", "http://test/x", RetryOptions(sleep=sleep))

        assert exc_info.value.status == 400
        assert exc_info.value.code == "VALIDATION_ERROR"
        assert exc_info.value.message == "bad"
        sleep.assert_not_called()

    @pytest.mark.asyncio
    async def test_429_honours_retry_after_header(self):
        responses = [
            httpx.Response(429, headers={"Retry-After": "3"}, json={"code": "QUOTA_EXCEEDED"}),
            httpx.Response(200, json={"ok": 1}),
        ]

        sleep = AsyncMock()
        async with httpx.AsyncClient(
            transport=httpx.MockTransport(lambda request: responses.pop(0))
        ) as client:
            await retry_api_request(
                client, "GET", "http://test/x", RetryOptions(jitter=0, sleep=sleep)
            )

        sleep.assert_awaited_once_with(3.0)
