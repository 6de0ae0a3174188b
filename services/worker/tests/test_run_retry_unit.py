"""Unit tests for task retry backoff."""

import pytest

from insightforge_worker.util.retry import RUN_RETRY, RetryConfig, exponential_backoff


class TestExponentialBackoff:
    @pytest.mark.parametrize("attempt,expected", [(1, 1.0), (2, 2.0), (3, 4.0), (4, 8.0)])
    def test_doubles_per_attempt(self, attempt, expected):
        assert exponential_backoff(attempt, RetryConfig()) == expected

    def test_capped_at_max_delay(self):
        config = RetryConfig(base_delay=10.0, max_delay=30.0)

        assert exponential_backoff(10, config) == 30.0

    def test_custom_base(self):
        assert exponential_backoff(3, RetryConfig(exponential_base=3.0)) == 9.0


class TestRunRetry:
    """Backoff schedule used for infrastructure errors while processing runs."""

    def test_schedule(self):
        delays = [exponential_backoff(n, RUN_RETRY) for n in range(1, RUN_RETRY.max_attempts + 1)]

        assert delays == [30.0, 60.0, 120.0, 240.0, 480.0]

    def test_never_exceeds_ten_minutes(self):
        assert exponential_backoff(20, RUN_RETRY) == 600.0
