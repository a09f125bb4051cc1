"""Retry policies, retry predicates and the named policy presets.

A policy only describes *when* and *how long* to wait; running an operation
under a policy is the executor's job (see ``retrywise.application.retry_executor``).
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field, replace as dataclass_replace
from typing import Any, Callable, Dict, List

from retrywise.domain.models.failure import Failure, FailureKind

RetryPredicate = Callable[[Failure], bool]

# Postgres SQLSTATEs that are safe to retry as-is
DATA_ACCESS_TRANSIENT_CODES = frozenset(
    {
        "40001",  # serialization_failure
        "40P01",  # deadlock_detected
        "53300",  # too_many_connections
        "57P01",  # admin_shutdown
        "57P03",  # cannot_connect_now
    }
)

_AUTH_RETRYABLE_KINDS = frozenset(
    {FailureKind.NETWORK, FailureKind.TIMEOUT, FailureKind.SERVER_ERROR}
)


def is_transient(failure: Failure) -> bool:
    """Default predicate: network, timeout, 5xx and rate limiting"""
    return failure.is_transient


def is_data_access_transient(failure: Failure) -> bool:
    """Data-access predicate: transient failures plus retryable SQLSTATEs"""
    return is_transient(failure) or failure.code in DATA_ACCESS_TRANSIENT_CODES


def is_auth_retryable(failure: Failure) -> bool:
    """Authentication predicate.

    Rejected credentials, unconfirmed accounts and 401/403 are never retried:
    the outcome cannot change and repeated attempts may lock the account.
    Rate limiting is not retried either.
    """
    if failure.kind == FailureKind.AUTH_REJECTED:
        return False
    return failure.kind in _AUTH_RETRYABLE_KINDS


@dataclass(frozen=True)
class RetryPolicy:
    """Immutable retry configuration for a single call site.

    Attributes:
        max_retries: Additional attempts after the first one
        base_delay: Delay before the first retry, in seconds
        max_delay: Upper bound of any delay, in seconds
        backoff_factor: Multiplier applied per retry
        retry_predicate: Decides whether a classified failure is retried
        name: Label used in log lines
    """

    max_retries: int = 3
    base_delay: float = 0.5
    max_delay: float = 5.0
    backoff_factor: float = 2.0
    retry_predicate: RetryPredicate = field(default=is_transient, compare=False)
    name: str = "default"

    def __post_init__(self):
        if isinstance(self.max_retries, bool) or not isinstance(self.max_retries, int):
            raise ValueError("max_retries must be an integer")
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.base_delay <= 0:
            raise ValueError("base_delay must be > 0")
        if self.max_delay <= 0:
            raise ValueError("max_delay must be > 0")
        if self.backoff_factor < 1:
            raise ValueError("backoff_factor must be >= 1")
        if not callable(self.retry_predicate):
            raise ValueError("retry_predicate must be callable")

    @property
    def total_attempts(self) -> int:
        return self.max_retries + 1

    def replace(self, **changes: Any) -> "RetryPolicy":
        """Return a copy with the given fields overridden (None values are ignored)"""
        changes = {k: v for k, v in changes.items() if v is not None}
        return dataclass_replace(self, **changes)


def compute_delay(policy: RetryPolicy, attempt: int) -> float:
    """Delay to wait after the given 1-based failed attempt.

    min(base_delay * backoff_factor ** (attempt - 1), max_delay); a
    base_delay above max_delay is clamped as well.
    """
    if attempt < 1:
        raise ValueError("attempt must be >= 1")
    try:
        delay = policy.base_delay * math.pow(policy.backoff_factor, attempt - 1)
    except OverflowError:
        return policy.max_delay
    return min(delay, policy.max_delay)


def delay_schedule(policy: RetryPolicy) -> List[float]:
    """Delays of a sequence that uses every retry"""
    return [compute_delay(policy, attempt) for attempt in range(1, policy.max_retries + 1)]


def default_policy() -> RetryPolicy:
    return RetryPolicy()


def data_access_policy() -> RetryPolicy:
    return RetryPolicy(retry_predicate=is_data_access_transient, name="data_access")


def auth_policy() -> RetryPolicy:
    """Fewer retries and a longer first delay for sign-in calls"""
    return RetryPolicy(
        max_retries=2,
        base_delay=1.0,
        max_delay=5.0,
        retry_predicate=is_auth_retryable,
        name="auth",
    )


def dashboard_policy() -> RetryPolicy:
    """Best-effort reads: fail fast rather than keep a widget loading"""
    return RetryPolicy(max_retries=1, base_delay=0.2, max_delay=1.0, name="dashboard")


POLICY_PRESETS: Dict[str, Callable[[], RetryPolicy]] = {
    "default": default_policy,
    "data_access": data_access_policy,
    "auth": auth_policy,
    "dashboard": dashboard_policy,
}

PREDICATES: Dict[str, RetryPredicate] = {
    "default": is_transient,
    "data_access": is_data_access_transient,
    "auth": is_auth_retryable,
    "dashboard": is_transient,
}


def policy_for(name: str, **overrides: Any) -> RetryPolicy:
    """Create a preset policy by name, with optional field overrides

    Args:
        name: Preset name (default, data_access, auth, dashboard)
        **overrides: RetryPolicy fields to override (None values are ignored)

    Returns:
        RetryPolicy instance

    Raises:
        ValueError: If the preset name is unknown
    """
    key = name.lower()
    if key not in POLICY_PRESETS:
        available = ", ".join(POLICY_PRESETS.keys())
        raise ValueError(f"Unknown retry policy: {name}. Available policies: {available}")
    return POLICY_PRESETS[key]().replace(**overrides)
