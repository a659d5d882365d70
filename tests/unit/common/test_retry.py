"""Tests for the bounded retry policy."""

import random

import pytest

from fraud_sentinel.common.config import Config
from fraud_sentinel.common.exceptions import (
    PermanentUpstreamError,
    TransientUpstreamError,
    classify_http_status,
)
from fraud_sentinel.common.retry import RetryPolicy


class Flaky:
    """Callable failing transiently a fixed number of times."""

    def __init__(self, failures, result="ok"):
        self.failures = failures
        self.result = result
        self.calls = 0

    def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise TransientUpstreamError("gateway timeout", "servicenow", status_code=504)
        return self.result


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def policy(sleeps):
    return RetryPolicy(max_attempts=3, base_delay=1.0, max_jitter=0.0, sleep=sleeps.append)


class TestRetryPolicy:
    """Retry behavior."""

    def test_success_first_try(self, policy, sleeps):
        assert policy.call(Flaky(0)) == ("ok", 1)
        assert sleeps == []

    def test_recovers_after_transient_failures(self, policy, sleeps):
        fn = Flaky(2)

        result, attempts = policy.call(fn)

        assert result == "ok"
        assert attempts == 3
        assert sleeps == [1.0, 2.0]

    def test_exhaustion_reraises_with_attempts(self, policy, sleeps):
        fn = Flaky(10)

        with pytest.raises(TransientUpstreamError) as exc_info:
            policy.call(fn)

        assert exc_info.value.attempts == 3
        assert fn.calls == 3
        assert sleeps == [1.0, 2.0]

    def test_permanent_fails_fast(self, policy, sleeps):
        calls = []

        def rejected():
            calls.append(1)
            raise PermanentUpstreamError("bad request", "twilio:sms", status_code=400)

        with pytest.raises(PermanentUpstreamError) as exc_info:
            policy.call(rejected)

        assert len(calls) == 1
        assert exc_info.value.attempts == 1
        assert sleeps == []

    def test_other_errors_propagate_unretried(self, policy, sleeps):
        calls = []

        def broken():
            calls.append(1)
            raise KeyError("sys_id")

        with pytest.raises(KeyError):
            policy.call(broken)
        assert len(calls) == 1

    def test_jitter_bounded(self):
        policy = RetryPolicy(base_delay=1.0, max_jitter=0.5, rng=random.Random(7))

        for attempt in (1, 2, 3):
            delay = policy.backoff(attempt)
            base = 2 ** (attempt - 1)
            assert base <= delay <= base + 0.5

    def test_single_attempt_never_sleeps(self, sleeps):
        policy = RetryPolicy(max_attempts=1, sleep=sleeps.append)

        with pytest.raises(TransientUpstreamError):
            policy.call(Flaky(1))
        assert sleeps == []

    def test_invalid_max_attempts(self):
        with pytest.raises(ValueError):
            RetryPolicy(max_attempts=0)

    def test_from_config(self, sleeps):
        config = Config(retry_max_attempts=5, retry_base_delay_seconds=0.2, retry_max_jitter_seconds=0.0)

        policy = RetryPolicy.from_config(config, sleep=sleeps.append)

        assert policy.max_attempts == 5
        assert policy.backoff(2) == pytest.approx(0.4)


class TestClassifyHttpStatus:
    """HTTP status to retry class."""

    @pytest.mark.parametrize("status", [500, 502, 503, 504, 429])
    def test_transient(self, status):
        error = classify_http_status(status, "servicenow")
        assert isinstance(error, TransientUpstreamError)
        assert error.status_code == status

    @pytest.mark.parametrize("status", [400, 401, 403, 404, 422])
    def test_permanent(self, status):
        assert isinstance(classify_http_status(status, "twilio:sms"), PermanentUpstreamError)

    def test_body_truncated_in_message(self):
        error = classify_http_status(400, "servicenow", body="x" * 500)
        assert error.message.endswith("x" * 200)
        assert error.to_dict()["details"]["service"] == "servicenow"
