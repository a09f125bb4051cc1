"""Retry executor - run an async operation under a retry policy"""

import asyncio
import functools
import logging
from typing import Any, Awaitable, Callable, List, Optional

from retrywise.domain.models.failure import Failure, FailureKind
from retrywise.domain.models.retry_result import RetryResult
from retrywise.domain.policies import RetryPolicy
from retrywise.infrastructure.cancellation import CancellationToken, RetryCancelled
from retrywise.infrastructure.failure_adapter import classify_failure
from retrywise.infrastructure.retry import AttemptFailed, create_async_retrying

logger = logging.getLogger(__name__)

Operation = Callable[[], Awaitable[Any]]
Classifier = Callable[[BaseException], Failure]
Sleep = Callable[[float], Awaitable[None]]


class RetryExecutor:
    """Executes async operations with exponential backoff

    The executor holds no per-call state, so one instance may serve many
    concurrent callers. It never raises an operation's failure: every outcome
    is reported through a RetryResult.
    """

    def __init__(
        self,
        policy: Optional[RetryPolicy] = None,
        *,
        classifier: Classifier = classify_failure,
        sleep: Optional[Sleep] = None,
    ):
        """Initialize executor

        Args:
            policy: Retry policy (default policy if None)
            classifier: Turns a raised exception into a Failure
            sleep: Coroutine function used between attempts (asyncio.sleep if None)
        """
        self.policy = policy or RetryPolicy()
        self.classifier = classifier
        self._sleep = sleep

    async def execute(
        self,
        operation: Operation,
        cancel_token: Optional[CancellationToken] = None,
    ) -> RetryResult:
        """Run operation until it succeeds, fails permanently or runs out of retries

        Args:
            operation: Zero-argument coroutine function
            cancel_token: Optional token that aborts the remaining sequence

        Returns:
            RetryResult describing the outcome
        """
        policy = self.policy
        attempts = 0
        delays: List[float] = []
        last_failure: Optional[Failure] = None

        if cancel_token is not None and cancel_token.cancelled:
            logger.info(f"{policy.name} call cancelled before the first attempt")
            return RetryResult(
                failure=Failure(FailureKind.CANCELLED, "Cancelled before the first attempt"),
                attempts=0,
            )

        async def _attempt() -> Any:
            nonlocal attempts, last_failure
            attempts += 1
            try:
                return await operation()
            except Exception as e:
                try:
                    last_failure = self.classifier(e)
                except Exception as classify_error:
                    logger.error(
                        f"{policy.name} failure classifier raised "
                        f"{type(classify_error).__name__}: {classify_error}"
                    )
                    last_failure = Failure(
                        FailureKind.OTHER, str(classify_error), exception=classify_error
                    )
                    raise AttemptFailed(last_failure, retryable=False) from e
                raise AttemptFailed(last_failure) from e

        async def _sleep(delay: float) -> None:
            if cancel_token is not None:
                cancel_token.raise_if_cancelled()
            delays.append(delay)
            if cancel_token is not None:
                await cancel_token.sleep(delay, sleep=self._sleep)
            elif self._sleep is not None:
                await self._sleep(delay)
            else:
                await asyncio.sleep(delay)

        retrying = create_async_retrying(policy, _sleep)
        try:
            value = await retrying(_attempt)
        except AttemptFailed as e:
            failure = e.failure
            if attempts >= policy.total_attempts and e.retryable:
                logger.error(
                    f"{policy.name} call failed after {attempts} attempts: {failure}"
                )
            else:
                logger.debug(f"{policy.name} call failed with non-retryable error: {failure}")
            return RetryResult(failure=failure, attempts=attempts, delays=tuple(delays))
        except RetryCancelled as e:
            logger.info(f"{policy.name} call cancelled after {attempts} attempt(s)")
            failure = Failure(
                FailureKind.CANCELLED,
                str(e),
                exception=last_failure.exception if last_failure else e,
            )
            return RetryResult(failure=failure, attempts=attempts, delays=tuple(delays))

        if attempts > 1:
            logger.info(f"{policy.name} call succeeded on attempt {attempts}")
        return RetryResult(value=value, attempts=attempts, delays=tuple(delays))


async def execute_with_retry(
    operation: Operation,
    policy: Optional[RetryPolicy] = None,
    *,
    cancel_token: Optional[CancellationToken] = None,
    classifier: Classifier = classify_failure,
    sleep: Optional[Sleep] = None,
) -> RetryResult:
    """Run operation once under policy and return the RetryResult"""
    executor = RetryExecutor(policy, classifier=classifier, sleep=sleep)
    return await executor.execute(operation, cancel_token=cancel_token)


def with_retry(
    policy: Optional[RetryPolicy] = None,
    *,
    classifier: Classifier = classify_failure,
    sleep: Optional[Sleep] = None,
) -> Callable[[Callable[..., Awaitable[Any]]], Callable[..., Awaitable[RetryResult]]]:
    """Decorator form: the wrapped coroutine function returns a RetryResult

    A ``cancel_token`` keyword argument passed to the wrapped function is
    consumed by the executor and not forwarded.
    """
    executor = RetryExecutor(policy, classifier=classifier, sleep=sleep)

    def decorator(func: Callable[..., Awaitable[Any]]) -> Callable[..., Awaitable[RetryResult]]:
        @functools.wraps(func)
        async def wrapped(
            *args: Any, cancel_token: Optional[CancellationToken] = None, **kwargs: Any
        ) -> RetryResult:
            return await executor.execute(lambda: func(*args, **kwargs), cancel_token=cancel_token)

        return wrapped

    return decorator
