from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Optional

from .errors import APIError

# Worker environment provisioning races seen right after resource creation.
TRANSIENT_ERROR_MATCHES = (
    "com.databricks.backend.manager.util.UnknownWorkerEnvironmentException",
    "does not have any associated worker environments",
    "There is no worker environment with id",
)


class RetryState(enum.Enum):
    SENDING = "sending"
    EVALUATING = "evaluating"
    RETRYING = "retrying"
    SUCCESS = "success"
    FAILURE = "failure"


@dataclass(frozen=True)
class RetryPolicy:
    """Linear backoff without jitter: the same wait between every attempt."""

    wait_seconds: float = 10.0
    max_duration_seconds: float = 300.0
    retry_max: Optional[int] = None  # overrides the duration-derived budget

    @property
    def max_retries(self) -> int:
        if self.retry_max is not None:
            return self.retry_max
        if self.wait_seconds <= 0:
            return 0
        return int(self.max_duration_seconds // self.wait_seconds)

    def backoff(self, attempt: int) -> float:
        return self.wait_seconds


@dataclass(frozen=True)
class RetryDecision:
    should_retry: bool
    error: Optional[APIError] = None


def is_transient(message: Optional[str]) -> bool:
    if not message:
        return False
    return any(match in message for match in TRANSIENT_ERROR_MATCHES)


def decide_retry(error: Optional[APIError]) -> RetryDecision:
    """
    Decide whether a classified response should be attempted again.
    - None means the response was not an error: no retry
    - Transient messages retry; every other API error is terminal
    """
    if error is None:
        return RetryDecision(should_retry=False)
    return RetryDecision(should_retry=is_transient(error.message), error=error)


__all__ = [
    "RetryDecision",
    "RetryPolicy",
    "RetryState",
    "TRANSIENT_ERROR_MATCHES",
    "decide_retry",
    "is_transient",
]
