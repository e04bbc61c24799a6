import pytest
from controlplane_client.errors import APIError
from controlplane_client.retry import (
    TRANSIENT_ERROR_MATCHES,
    RetryPolicy,
    decide_retry,
    is_transient,
)


@pytest.mark.parametrize("match", TRANSIENT_ERROR_MATCHES)
def test_transient_substrings_retry(match):
    err = APIError(message=f"prefix {match} suffix", status_code=400)
    decision = decide_retry(err)
    assert decision.should_retry is True
    assert decision.error is err


def test_worker_environment_message_retries():
    assert is_transient("There is no worker environment with id 5")


def test_other_errors_are_terminal():
    err = APIError(message="resource not found", status_code=404)
    decision = decide_retry(err)
    assert decision.should_retry is False
    assert decision.error is err


def test_no_error_means_no_retry():
    decision = decide_retry(None)
    assert decision.should_retry is False
    assert decision.error is None


def test_empty_message_is_not_transient():
    assert not is_transient("")
    assert not is_transient(None)


def test_default_policy_is_linear_ten_seconds_for_five_minutes():
    policy = RetryPolicy()
    assert policy.max_retries == 30
    assert [policy.backoff(n) for n in range(3)] == [10.0, 10.0, 10.0]


def test_retry_max_overrides_duration_budget():
    assert RetryPolicy(wait_seconds=0, retry_max=3).max_retries == 3
    assert RetryPolicy(wait_seconds=0).max_retries == 0
