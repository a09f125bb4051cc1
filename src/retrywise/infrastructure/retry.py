"""Tenacity building blocks for the retry executor.

The executor decides *what* to retry (via the policy's predicate on a
classified Failure); this module translates a RetryPolicy into tenacity's
stop/wait/retry/before_sleep strategies.
"""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, Optional

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from retrywise.domain.models.failure import Failure, FailureKind
from retrywise.domain.policies import RetryPolicy

logger = logging.getLogger(__name__)


class AttemptFailed(Exception):
    """Carries the classified failure of one attempt through tenacity

    ``retryable`` holds the retry decision once it has been made, so the
    policy's predicate runs once per attempt.
    """

    def __init__(self, failure: Failure, retryable: Optional[bool] = None):
        super().__init__(str(failure))
        self.failure = failure
        self.retryable = retryable


def backoff_wait(policy: RetryPolicy) -> wait_exponential:
    """Exponential backoff: base_delay * (backoff_factor ^ (attempt - 1)), capped at max_delay"""
    return wait_exponential(
        multiplier=policy.base_delay,
        exp_base=policy.backoff_factor,
        min=0,
        max=policy.max_delay,
    )


def should_retry(policy: RetryPolicy) -> retry_if_exception:
    def _retry_condition(exception: BaseException) -> bool:
        if not isinstance(exception, AttemptFailed):
            return False
        if exception.retryable is None:
            try:
                exception.retryable = bool(policy.retry_predicate(exception.failure))
            except Exception as e:
                logger.error(f"{policy.name} retry predicate raised {type(e).__name__}: {e}")
                exception.failure = Failure(FailureKind.OTHER, str(e), exception=e)
                exception.retryable = False
        return exception.retryable

    return retry_if_exception(_retry_condition)


def log_before_sleep(policy: RetryPolicy) -> Callable[[RetryCallState], None]:
    """Log attempt number, planned attempts and delay before each sleep"""

    def _before_sleep_log(retry_state: RetryCallState) -> None:
        if retry_state.outcome is None:
            return
        exception = retry_state.outcome.exception()
        failure = exception.failure if isinstance(exception, AttemptFailed) else exception
        delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
        attempt = retry_state.attempt_number
        logger.warning(
            f"{policy.name} call failed (attempt {attempt}/{policy.total_attempts}): "
            f"{failure}. Retrying in {delay:.2f}s..."
        )

    return _before_sleep_log


def create_async_retrying(
    policy: RetryPolicy,
    sleep: Callable[[float], Awaitable[None]],
) -> AsyncRetrying:
    """Create a tenacity AsyncRetrying controller for a policy

    Args:
        policy: Retry policy
        sleep: Coroutine function awaited between attempts

    Returns:
        AsyncRetrying instance that re-raises the last exception
    """
    return AsyncRetrying(
        stop=stop_after_attempt(policy.total_attempts),
        wait=backoff_wait(policy),
        retry=should_retry(policy),
        before_sleep=log_before_sleep(policy),
        sleep=sleep,
        reraise=True,
    )
