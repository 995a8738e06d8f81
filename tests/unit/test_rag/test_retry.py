"""
Unit tests for RetryPolicy.
"""

import pytest

from chat_recall.rag.retry import BATCH_EMBED_RETRY, STORE_WRITE_RETRY, RetryPolicy


class Flaky:
    """Callable that fails a set number of times before returning a value."""

    def __init__(self, failures, value="done"):
        self.failures = failures
        self.value = value
        self.calls = 0

    def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise ConnectionError(f"failure {self.calls}")
        return self.value


class TestRetryPolicy:
    """Tests for RetryPolicy.run()."""

    def test_first_try_success_never_sleeps(self, sleeps):
        policy = RetryPolicy(max_attempts=3, sleep=sleeps.append)
        assert policy.run(Flaky(0)) == "done"
        assert sleeps == []

    def test_exponential_delays_without_jitter(self, sleeps):
        policy = RetryPolicy(max_attempts=4, base_delay=1.0, sleep=sleeps.append)
        fn = Flaky(3)

        assert policy.run(fn) == "done"
        assert fn.calls == 4
        assert sleeps == [1.0, 2.0, 4.0]

    def test_exhausted_budget_reraises_last_error(self, sleeps):
        policy = RetryPolicy(max_attempts=3, base_delay=0.5, sleep=sleeps.append)
        fn = Flaky(10)

        with pytest.raises(ConnectionError) as exc_info:
            policy.run(fn)

        assert "failure 3" in str(exc_info.value)
        assert fn.calls == 3
        assert sleeps == [0.5, 1.0]

    def test_jitter_bounded(self):
        policy = RetryPolicy(max_attempts=6, base_delay=1.0, max_jitter=0.25)
        for attempt in range(5):
            delay = policy.delay_for(attempt)
            assert 2 ** attempt <= delay <= 2 ** attempt + 0.25

    def test_rejects_zero_attempts(self):
        with pytest.raises(ValueError):
            RetryPolicy(max_attempts=0)

    def test_terminal_error_raised_without_retry(self, sleeps):
        """Exception types listed as terminal skip the backoff loop."""
        policy = RetryPolicy(max_attempts=5, terminal=(ConnectionError,), sleep=sleeps.append)
        fn = Flaky(10)

        with pytest.raises(ConnectionError):
            policy.run(fn)

        assert fn.calls == 1
        assert sleeps == []


class TestPresets:
    """The two call-site presets."""

    def test_batch_embed_preset(self):
        assert BATCH_EMBED_RETRY.max_attempts == 6
        assert BATCH_EMBED_RETRY.base_delay == 1.0
        assert BATCH_EMBED_RETRY.max_jitter == 0.25

    def test_store_write_preset(self):
        assert STORE_WRITE_RETRY.max_attempts == 4
        assert STORE_WRITE_RETRY.max_jitter == 0.0
