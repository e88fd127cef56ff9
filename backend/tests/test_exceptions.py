"""
PromptLens Backend - Error Taxonomy Tests
===========================================

What:  ErrorKind → HTTP status mapping and ServiceError attributes.
"""

import pytest

from promptlens.exceptions import (
    ErrorKind,
    PromptLensError,
    ServiceError,
    ValidationError,
    status_for_kind,
)


class TestStatusForKind:

    @pytest.mark.parametrize(
        "kind,status",
        [
            (ErrorKind.INVALID_API_KEY, 503),
            (ErrorKind.QUOTA_EXCEEDED, 429),
            (ErrorKind.IMAGE_TOO_LARGE, 413),
            (ErrorKind.UNSUPPORTED_FORMAT, 415),
            (ErrorKind.TIMEOUT, 408),
            (ErrorKind.SERVICE_UNAVAILABLE, 503),
            (ErrorKind.NETWORK_ERROR, 502),
            (ErrorKind.INVALID_RESPONSE, 502),
        ],
    )
    def test_every_kind_has_a_status(self, kind, status):
        assert status_for_kind(kind) == status

    def test_accepts_string_code(self):
        assert status_for_kind("QUOTA_EXCEEDED") == 429

    def test_unknown_kind_maps_to_500(self):
        assert status_for_kind("SOMETHING_ELSE") == 500
        assert status_for_kind(None) == 500


class TestServiceError:

    def test_carries_kind_provider_and_code(self):
        cause = RuntimeError("boom")
        err = ServiceError(ErrorKind.TIMEOUT, "timed out", "openai", cause=cause)

        assert err.kind is ErrorKind.TIMEOUT
        assert err.code == "TIMEOUT"
        assert err.provider == "openai"
        assert err.cause is cause
        assert err.status_code == 408
        assert err.context["provider"] == "openai"
        assert isinstance(err, PromptLensError)

    def test_retry_after_is_kept_in_context(self):
        err = ServiceError(ErrorKind.QUOTA_EXCEEDED, "slow down", "openai", retry_after=7)
        assert err.retry_after == 7
        assert err.context["retry_after"] == 7

    def test_string_kind_is_coerced(self):
        err = ServiceError("NETWORK_ERROR", "down", "gemini")
        assert err.kind is ErrorKind.NETWORK_ERROR


def test_validation_error_records_field():
    err = ValidationError("bad style", field="style")
    assert err.field == "style"
    assert err.context["field"] == "style"
