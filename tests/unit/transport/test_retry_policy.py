"""Unit tests for retry policy defaults and backoff."""

import pytest
from pydantic import ValidationError

from reststub import BackoffStrategy, HttpMethod, RetryPolicy


@pytest.mark.unit
class TestRetryPolicy:
    def test_documented_defaults(self):
        policy = RetryPolicy()

        assert policy.max_attempts == 3
        assert policy.backoff is BackoffStrategy.EXPONENTIAL
        assert policy.retryable_status_codes == frozenset({502, 503, 504})
        assert policy.retry_on_connection_error
        assert policy.retry_on_timeout
        assert not policy.retry_non_idempotent

    @pytest.mark.parametrize("method", ["GET", "PUT", "DELETE"])
    def test_idempotent_verbs_retry(self, method):
        assert RetryPolicy().allows_retry(method)

    @pytest.mark.parametrize("method", [HttpMethod.POST, HttpMethod.PATCH])
    def test_non_idempotent_verbs_do_not_retry(self, method):
        assert not RetryPolicy().allows_retry(method)

    def test_non_idempotent_retry_opt_in(self):
        policy = RetryPolicy(retry_non_idempotent=True)
        assert policy.allows_retry("POST")

    def test_endpoint_override_wins(self):
        policy = RetryPolicy()

        assert policy.allows_retry("POST", idempotent=True)
        assert not policy.allows_retry("GET", idempotent=False)

    def test_single_attempt_never_retries(self):
        assert not RetryPolicy.no_retry().allows_retry("GET", idempotent=True)

    def test_exponential_backoff_is_capped(self):
        policy = RetryPolicy(initial_delay=0.5, multiplier=2.0, max_delay=1.5)

        assert [policy.delay_for(n) for n in (1, 2, 3, 4)] == [0.5, 1.0, 1.5, 1.5]

    def test_constant_backoff(self):
        policy = RetryPolicy(backoff=BackoffStrategy.CONSTANT, initial_delay=0.3)

        assert policy.delay_for(1) == policy.delay_for(5) == 0.3

    def test_jitter_stays_within_bounds(self):
        policy = RetryPolicy(initial_delay=1.0, jitter=True)

        for attempt in range(1, 5):
            assert 0 <= policy.delay_for(attempt) <= policy.max_delay

    def test_policy_is_frozen(self):
        policy = RetryPolicy()
        with pytest.raises(ValidationError):
            policy.max_attempts = 10  # type: ignore[misc]

    def test_rejects_zero_attempts(self):
        with pytest.raises(ValidationError):
            RetryPolicy(max_attempts=0)
