"""
Tests for retry logic.
"""

import pytest

from votechain.retry import (
    RetryError,
    RetryableStatusError,
    backoff_delays,
    exponential_backoff,
    is_transient_error,
    should_retry_http_status,
)


class FlakyCall:
    """Raises the queued errors in order, then returns "ok"."""

    def __init__(self, *errors):
        self.errors = list(errors)
        self.calls = 0

    def __call__(self):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return "ok"


class TestBackoffDelays:

    def test_doubles(self):
        assert backoff_delays(3, 1.0, 30.0) == [1.0, 2.0, 4.0]

    def test_capped(self):
        assert backoff_delays(4, 1.0, 3.0, exponential_base=3.0) == [1.0, 3.0, 3.0, 3.0]

    def test_no_retries(self):
        assert backoff_delays(0, 1.0, 30.0) == []
        assert backoff_delays(-1, 1.0, 30.0) == []


class TestExponentialBackoff:
    """Test exponential backoff decorator."""

    def test_success_on_first_try(self):
        slept = []
        call = FlakyCall()

        assert exponential_backoff(max_retries=3, sleep=slept.append)(call)() == "ok"
        assert call.calls == 1
        assert slept == []

    def test_retry_then_succeed(self):
        slept = []
        call = FlakyCall(ConnectionError("reset"), ConnectionError("reset"))

        result = exponential_backoff(max_retries=3, base_delay=0.5, sleep=slept.append)(call)()

        assert result == "ok"
        assert call.calls == 3
        assert slept == [0.5, 1.0]

    def test_all_retries_exhausted(self):
        """Should raise RetryError chained to the last failure."""
        call = FlakyCall(*[ValueError(f"fail {i}") for i in range(5)])

        with pytest.raises(RetryError) as exc_info:
            exponential_backoff(max_retries=2, sleep=lambda _: None)(call)()

        assert call.calls == 3  # Initial + 2 retries
        assert exc_info.value.attempts == 3
        assert str(exc_info.value.last_error) == "fail 2"
        assert exc_info.value.__cause__ is exc_info.value.last_error

    def test_zero_retries_makes_one_attempt(self):
        call = FlakyCall(ConnectionError("down"))

        with pytest.raises(RetryError):
            exponential_backoff(max_retries=0, sleep=lambda _: None)(call)()
        assert call.calls == 1

    def test_only_catches_specified_exceptions(self):
        call = FlakyCall(ValueError("Not retryable"))

        with pytest.raises(ValueError):
            exponential_backoff(max_retries=3, exceptions=(ConnectionError,), sleep=lambda _: None)(call)()

        assert call.calls == 1

    def test_on_retry_callback(self):
        seen = []
        call = FlakyCall(RetryableStatusError(503, "busy"), TimeoutError("slow"))

        exponential_backoff(
            max_retries=3,
            base_delay=0.25,
            on_retry=lambda attempt, exc, delay: seen.append((attempt, type(exc).__name__, delay)),
            sleep=lambda _: None,
        )(call)()

        assert seen == [(1, "RetryableStatusError", 0.25), (2, "TimeoutError", 0.5)]

    def test_wraps_function_metadata(self):
        @exponential_backoff(max_retries=1)
        def post_completion():
            """Send the request."""
            return 1

        assert post_completion.__name__ == "post_completion"
        assert post_completion.__doc__ == "Send the request."


class TestRetryableStatusError:

    def test_message_truncates_body(self):
        error = RetryableStatusError(502, "x" * 500)
        assert error.status_code == 502
        assert len(error.body) == 500
        assert str(error) == "HTTP 502: " + "x" * 200


class TestTransientErrorDetection:
    """Test transient error detection utilities."""

    def test_builtin_network_errors(self):
        assert is_transient_error(TimeoutError("receipt not found"))
        assert is_transient_error(ConnectionError("refused"))

    def test_retryable_status(self):
        assert is_transient_error(RetryableStatusError(429, "slow down"))
        assert not is_transient_error(RetryableStatusError(400, "bad request"))

    @pytest.mark.parametrize("message", [
        "Read timed out",
        "503 Service Unavailable",
        "502 Bad Gateway",
        "Rate limit exceeded",
        "HTTPSConnectionPool: connection aborted",
    ])
    def test_transient_messages(self, message):
        assert is_transient_error(Exception(message))

    @pytest.mark.parametrize("error", [
        Exception("404 Not Found"),
        ValueError("insufficient funds for gas"),
        Exception("401 Unauthorized"),
    ])
    def test_non_transient_errors(self, error):
        assert not is_transient_error(error)

    def test_http_status_retry_logic(self):
        for code in (408, 429, 500, 502, 503, 504):
            assert should_retry_http_status(code)
        for code in (200, 400, 401, 403, 404, 422):
            assert not should_retry_http_status(code)
