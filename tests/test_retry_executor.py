"""Tests for the retry executor"""

from __future__ import annotations

import asyncio
import logging

import pytest

from retrywise.application.retry_executor import RetryExecutor, execute_with_retry, with_retry
from retrywise.domain.models.failure import (
    Failure,
    FailureKind,
    OperationError,
    RetryFailedError,
)
from retrywise.domain.policies import RetryPolicy, auth_policy, compute_delay
from retrywise.infrastructure.cancellation import CancellationToken


class RecordingSleep:
    """Fake sleep that records delays instead of waiting"""

    def __init__(self):
        self.delays = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class StatusError(Exception):
    def __init__(self, status: int, message: str = ""):
        super().__init__(message or f"HTTP {status}")
        self.status = status


def failing_then_succeeding(failures, value="ok"):
    """Operation that raises the given exceptions in order, then returns value"""
    state = {"calls": 0}
    pending = list(failures)

    async def operation():
        state["calls"] += 1
        if pending:
            raise pending.pop(0)
        return value

    return operation, state


@pytest.fixture
def fake_sleep():
    return RecordingSleep()


@pytest.fixture
def policy():
    return RetryPolicy(max_retries=3, base_delay=0.5, max_delay=5.0, backoff_factor=2.0)


class TestImmediateOutcomes:
    """Tests for calls decided on the first attempt"""

    @pytest.mark.asyncio
    async def test_success_on_first_attempt(self, policy, fake_sleep):
        """First-attempt success never sleeps"""
        operation, state = failing_then_succeeding([], value=42)

        result = await execute_with_retry(operation, policy, sleep=fake_sleep)

        assert result.succeeded is True
        assert result.value == 42
        assert result.attempts == 1
        assert result.failure is None
        assert fake_sleep.delays == []
        assert state["calls"] == 1

    @pytest.mark.asyncio
    async def test_none_value_is_still_success(self, policy, fake_sleep):
        operation, _ = failing_then_succeeding([], value=None)

        result = await execute_with_retry(operation, policy, sleep=fake_sleep)

        assert result.succeeded is True
        assert result.value is None

    @pytest.mark.asyncio
    async def test_forbidden_short_circuits(self, policy, fake_sleep):
        """403 is not retried and incurs no delay"""
        operation, state = failing_then_succeeding([StatusError(403, "forbidden")] * 5)

        result = await execute_with_retry(operation, policy, sleep=fake_sleep)

        assert result.succeeded is False
        assert result.attempts == 1
        assert result.failure.kind == FailureKind.AUTH_REJECTED
        assert result.failure.status == 403
        assert fake_sleep.delays == []
        assert state["calls"] == 1

    @pytest.mark.asyncio
    async def test_unclassified_error_is_not_retried(self, policy, fake_sleep):
        operation, state = failing_then_succeeding([ValueError("bad input")])

        result = await execute_with_retry(operation, policy, sleep=fake_sleep)

        assert result.succeeded is False
        assert result.failure.kind == FailureKind.OTHER
        assert isinstance(result.failure.exception, ValueError)
        assert state["calls"] == 1


class TestRetrySequences:
    """Tests for retried calls"""

    @pytest.mark.asyncio
    async def test_network_timeouts_then_success(self, policy, fake_sleep):
        """Three timeouts then success: delays 0.5, 1.0, 2.0"""
        operation, state = failing_then_succeeding(
            [TimeoutError("network timeout")] * 3, value={"id": 1}
        )

        result = await execute_with_retry(operation, policy, sleep=fake_sleep)

        assert result.succeeded is True
        assert result.attempts == 4
        assert result.value == {"id": 1}
        assert fake_sleep.delays == [0.5, 1.0, 2.0]
        assert list(result.delays) == [0.5, 1.0, 2.0]
        assert state["calls"] == 4

    @pytest.mark.parametrize("failures_before_success", [1, 2, 3])
    @pytest.mark.asyncio
    async def test_k_retryable_failures(self, policy, fake_sleep, failures_before_success):
        """k retryable failures give k + 1 attempts and k delays"""
        operation, _ = failing_then_succeeding([ConnectionRefusedError()] * failures_before_success)

        result = await execute_with_retry(operation, policy, sleep=fake_sleep)

        assert result.succeeded is True
        assert result.attempts == failures_before_success + 1
        expected = [compute_delay(policy, i) for i in range(1, failures_before_success + 1)]
        assert fake_sleep.delays == pytest.approx(expected)

    @pytest.mark.asyncio
    async def test_exhaustion_reports_last_failure(self, policy, fake_sleep):
        """Always-retryable failures stop after max_retries + 1 attempts"""
        errors = [StatusError(500 + i) for i in range(10)]
        operation, state = failing_then_succeeding(errors)

        result = await execute_with_retry(operation, policy, sleep=fake_sleep)

        assert result.succeeded is False
        assert result.attempts == policy.max_retries + 1
        assert state["calls"] == 4
        assert result.failure.kind == FailureKind.SERVER_ERROR
        assert result.failure.status == 503
        assert len(fake_sleep.delays) == 3

    @pytest.mark.asyncio
    async def test_zero_retries_attempts_once(self, fake_sleep):
        operation, state = failing_then_succeeding([TimeoutError()] * 3)

        result = await execute_with_retry(
            operation, RetryPolicy(max_retries=0), sleep=fake_sleep
        )

        assert result.attempts == 1
        assert result.succeeded is False
        assert fake_sleep.delays == []
        assert state["calls"] == 1

    @pytest.mark.asyncio
    async def test_delays_never_exceed_max_delay(self, fake_sleep):
        policy = RetryPolicy(max_retries=8, base_delay=1.0, max_delay=3.0, backoff_factor=10.0)
        operation, _ = failing_then_succeeding([TimeoutError()] * 20)

        result = await execute_with_retry(operation, policy, sleep=fake_sleep)

        assert result.attempts == 9
        assert fake_sleep.delays == [1.0] + [3.0] * 7
        assert max(fake_sleep.delays) <= policy.max_delay

    @pytest.mark.asyncio
    async def test_base_delay_above_max_delay_is_clamped(self, fake_sleep):
        policy = RetryPolicy(max_retries=2, base_delay=10.0, max_delay=2.0)
        operation, _ = failing_then_succeeding([TimeoutError()] * 5)

        await execute_with_retry(operation, policy, sleep=fake_sleep)

        assert fake_sleep.delays == [2.0, 2.0]

    @pytest.mark.asyncio
    async def test_retryable_then_permanent_failure_stops(self, policy, fake_sleep):
        operation, state = failing_then_succeeding([TimeoutError(), StatusError(401)])

        result = await execute_with_retry(operation, policy, sleep=fake_sleep)

        assert result.attempts == 2
        assert result.failure.kind == FailureKind.AUTH_REJECTED
        assert fake_sleep.delays == [0.5]
        assert state["calls"] == 2

    @pytest.mark.asyncio
    async def test_custom_predicate(self, fake_sleep):
        """Predicates decide on the tagged failure"""
        policy = RetryPolicy(
            max_retries=2,
            retry_predicate=lambda failure: failure.code == "retry-me",
        )
        operation, _ = failing_then_succeeding(
            [OperationError(Failure(FailureKind.OTHER, "flaky", code="retry-me"))]
        )

        result = await execute_with_retry(operation, policy, sleep=fake_sleep)

        assert result.succeeded is True
        assert result.attempts == 2

    @pytest.mark.asyncio
    async def test_default_sleep_is_asyncio_sleep(self, monkeypatch):
        recorded = []

        async def fake_asyncio_sleep(delay):
            recorded.append(delay)

        monkeypatch.setattr(asyncio, "sleep", fake_asyncio_sleep)
        operation, _ = failing_then_succeeding([TimeoutError()])

        result = await execute_with_retry(operation, RetryPolicy(base_delay=0.25))

        assert result.succeeded is True
        assert recorded == [0.25]


class TestCallbackErrors:
    """A raising predicate or classifier ends the sequence with a result"""

    @pytest.mark.asyncio
    async def test_raising_predicate_returns_failed_result(self, fake_sleep):
        def predicate(failure):
            raise KeyError("boom")

        policy = RetryPolicy(max_retries=3, retry_predicate=predicate)
        operation, state = failing_then_succeeding([TimeoutError("slow")])

        result = await execute_with_retry(operation, policy, sleep=fake_sleep)

        assert result.succeeded is False
        assert result.attempts == 1
        assert result.failure.kind == FailureKind.OTHER
        assert isinstance(result.failure.exception, KeyError)
        assert state["calls"] == 1
        assert fake_sleep.delays == []

    @pytest.mark.asyncio
    async def test_raising_classifier_returns_failed_result(self, policy, fake_sleep):
        def classifier(exc):
            raise RuntimeError("cannot classify")

        operation, state = failing_then_succeeding([ConnectionResetError()])

        result = await execute_with_retry(
            operation, policy, classifier=classifier, sleep=fake_sleep
        )

        assert result.succeeded is False
        assert result.attempts == 1
        assert result.failure.kind == FailureKind.OTHER
        assert isinstance(result.failure.exception, RuntimeError)
        assert state["calls"] == 1

    @pytest.mark.asyncio
    async def test_predicate_runs_once_per_failed_attempt(self, fake_sleep):
        seen = []

        def predicate(failure):
            seen.append(failure.kind)
            return failure.is_transient

        policy = RetryPolicy(max_retries=2, retry_predicate=predicate)

        async def operation():
            raise TimeoutError("slow")

        result = await execute_with_retry(operation, policy, sleep=fake_sleep)

        assert result.attempts == 3
        assert seen == [FailureKind.TIMEOUT] * 3


class TestAuthVariant:
    """Tests for the authentication policy"""

    @pytest.mark.asyncio
    async def test_invalid_credentials_single_attempt(self, fake_sleep):
        """Invalid credentials are attempted once whatever max_retries is"""
        policy = auth_policy().replace(max_retries=10)
        failure = Failure(FailureKind.AUTH_REJECTED, "Invalid login credentials", code="invalid_credentials")
        operation, state = failing_then_succeeding([OperationError(failure)] * 10)

        result = await execute_with_retry(operation, policy, sleep=fake_sleep)

        assert result.attempts == 1
        assert result.failure is failure
        assert fake_sleep.delays == []
        assert state["calls"] == 1

    @pytest.mark.asyncio
    async def test_auth_retries_server_errors(self, fake_sleep):
        operation, _ = failing_then_succeeding([StatusError(502)])

        result = await execute_with_retry(operation, auth_policy(), sleep=fake_sleep)

        assert result.succeeded is True
        assert fake_sleep.delays == [1.0]


class TestCancellation:
    """Tests for cancellation tokens"""

    @pytest.mark.asyncio
    async def test_cancelled_before_start(self, policy, fake_sleep):
        token = CancellationToken()
        token.cancel()
        operation, state = failing_then_succeeding([])

        result = await execute_with_retry(operation, policy, cancel_token=token, sleep=fake_sleep)

        assert result.attempts == 0
        assert result.cancelled is True
        assert result.succeeded is False
        assert state["calls"] == 0

    @pytest.mark.asyncio
    async def test_cancel_during_attempt_stops_sequence(self, policy, fake_sleep):
        token = CancellationToken()
        calls = {"n": 0}

        async def operation():
            calls["n"] += 1
            token.cancel()
            raise TimeoutError("slow backend")

        result = await execute_with_retry(operation, policy, cancel_token=token, sleep=fake_sleep)

        assert calls["n"] == 1
        assert result.attempts == 1
        assert result.cancelled is True
        assert isinstance(result.failure.exception, TimeoutError)
        assert fake_sleep.delays == []
        assert result.delays == ()

    @pytest.mark.asyncio
    async def test_cancel_cuts_pending_delay_short(self):
        """Without a custom sleep the token interrupts the wait itself"""
        token = CancellationToken()
        policy = RetryPolicy(max_retries=3, base_delay=30.0, max_delay=30.0)
        calls = {"n": 0}

        async def operation():
            calls["n"] += 1
            raise ConnectionResetError()

        task = asyncio.create_task(execute_with_retry(operation, policy, cancel_token=token))
        await asyncio.sleep(0.01)
        token.cancel()
        result = await asyncio.wait_for(task, timeout=1.0)

        assert calls["n"] == 1
        assert result.cancelled is True
        assert result.delays == (30.0,)

    @pytest.mark.asyncio
    async def test_task_cancellation_propagates(self, policy, fake_sleep):
        async def operation():
            raise asyncio.CancelledError()

        with pytest.raises(asyncio.CancelledError):
            await execute_with_retry(operation, policy, sleep=fake_sleep)


class TestLoggingAndResult:
    """Tests for log output and result helpers"""

    @pytest.mark.asyncio
    async def test_logs_attempt_and_delay_before_sleep(self, policy, fake_sleep, caplog):
        operation, _ = failing_then_succeeding([TimeoutError("network timeout")])

        with caplog.at_level(logging.WARNING):
            await execute_with_retry(operation, policy, sleep=fake_sleep)

        messages = [r.getMessage() for r in caplog.records if r.levelno == logging.WARNING]
        assert any("attempt 1/4" in m and "0.50s" in m for m in messages)

    @pytest.mark.asyncio
    async def test_unwrap(self, policy, fake_sleep):
        ok, _ = failing_then_succeeding([], value="v")
        bad, _ = failing_then_succeeding([StatusError(404)])

        assert (await execute_with_retry(ok, policy, sleep=fake_sleep)).unwrap() == "v"
        failed = await execute_with_retry(bad, policy, sleep=fake_sleep)
        with pytest.raises(RetryFailedError) as exc_info:
            failed.unwrap()
        assert exc_info.value.failure.kind == FailureKind.NOT_FOUND
        assert exc_info.value.attempts == 1

    @pytest.mark.asyncio
    async def test_concurrent_calls_are_independent(self, policy, fake_sleep):
        executor = RetryExecutor(policy, sleep=fake_sleep)
        first, _ = failing_then_succeeding([TimeoutError()] * 2, value="a")
        second, _ = failing_then_succeeding([], value="b")

        results = await asyncio.gather(executor.execute(first), executor.execute(second))

        assert [r.value for r in results] == ["a", "b"]
        assert [r.attempts for r in results] == [3, 1]


class TestWithRetryDecorator:
    """Tests for the decorator form"""

    @pytest.mark.asyncio
    async def test_decorated_function_returns_result(self, fake_sleep):
        calls = {"n": 0}

        @with_retry(RetryPolicy(max_retries=2), sleep=fake_sleep)
        async def fetch_profile(user_id, *, fields=None):
            calls["n"] += 1
            if calls["n"] == 1:
                raise TimeoutError()
            return {"id": user_id, "fields": fields}

        result = await fetch_profile("u1", fields=["role"])

        assert result.succeeded is True
        assert result.value == {"id": "u1", "fields": ["role"]}
        assert result.attempts == 2
        assert fetch_profile.__name__ == "fetch_profile"

    @pytest.mark.asyncio
    async def test_decorated_function_accepts_cancel_token(self, fake_sleep):
        token = CancellationToken()
        token.cancel()

        @with_retry(sleep=fake_sleep)
        async def load():
            return 1

        result = await load(cancel_token=token)

        assert result.cancelled is True
