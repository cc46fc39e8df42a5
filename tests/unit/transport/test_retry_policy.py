"""Unit tests for retry policy and timeout configuration."""

from __future__ import annotations

import math

import pytest

from kaleido_controller.transport.retry_policy import RetryPolicy, TimeoutConfig
from tests.helpers.expectations import expect_exception

BASE_DELAY = 0.1
MAX_DELAY = 0.2


def assert_close(actual: float, expected: float, rel_tol: float = 1e-6) -> None:
    """Assert that two floats are approximately equal."""
    assert math.isclose(actual, expected, rel_tol=rel_tol)


class TestTimeoutConfig:
    """Tests for TimeoutConfig class."""

    def test_defaults(self):
        config = TimeoutConfig()
        assert_close(config.response_timeout_seconds, 5.0)
        assert_close(config.connect_timeout_seconds, 3.0)
        assert_close(config.write_timeout_seconds, 2.0)

    @pytest.mark.parametrize("value", [0.0, -1.0])
    def test_response_timeout_must_be_positive(self, value: float):
        err = expect_exception(TimeoutConfig, ValueError, response_timeout_seconds=value)
        assert "positive" in str(err)

    def test_repr(self):
        repr_str = repr(TimeoutConfig(response_timeout_seconds=1.5))
        assert "TimeoutConfig" in repr_str
        assert "response=1.5s" in repr_str


class TestRetryPolicy:
    """Tests for RetryPolicy backoff."""

    def test_exponential_backoff_without_jitter(self):
        policy = RetryPolicy(base_delay_seconds=1.0, max_delay_seconds=30.0, jitter_factor=0.0)
        assert [policy.get_delay(n) for n in range(6)] == [1.0, 2.0, 4.0, 8.0, 16.0, 30.0]

    def test_jitter_stays_within_bounds(self):
        policy = RetryPolicy(base_delay_seconds=BASE_DELAY, max_delay_seconds=MAX_DELAY, jitter_factor=0.5)
        for attempt in range(10):
            delay = policy.get_delay(attempt)
            capped = min(BASE_DELAY * 2**attempt, MAX_DELAY)
            assert capped <= delay <= capped * 1.5

    def test_unlimited_attempts_by_default(self):
        assert RetryPolicy().should_retry(1000)

    def test_max_attempts(self):
        policy = RetryPolicy(max_attempts=2)
        assert policy.should_retry(0)
        assert policy.should_retry(1)
        assert not policy.should_retry(2)

    def test_repr(self):
        assert "max_attempts=3" in repr(RetryPolicy(max_attempts=3))
