"""RetryResult model - outcome envelope of a retried call"""

from dataclasses import dataclass
from typing import Any, Optional, Tuple

from retrywise.domain.models.failure import Failure, FailureKind, RetryFailedError


@dataclass(frozen=True)
class RetryResult:
    """Result of running an operation under a retry policy

    Exactly one of ``value`` / ``failure`` is meaningful: ``failure`` is None
    when the call succeeded. ``value`` may itself be None if the operation
    returned None.
    """

    value: Any = None
    failure: Optional[Failure] = None
    attempts: int = 0
    delays: Tuple[float, ...] = ()  # Delays slept between attempts, in order

    def __post_init__(self):
        """Validate result data"""
        if self.attempts < 0:
            raise ValueError("Attempts must be >= 0")
        if self.attempts == 0 and self.failure is None:
            raise ValueError("A successful result needs at least one attempt")
        if self.failure is not None and self.value is not None:
            raise ValueError("A failed result cannot carry a value")
        if len(self.delays) > max(self.attempts - 1, 0) + (1 if self.cancelled else 0):
            raise ValueError("More delays than attempts")

    @property
    def succeeded(self) -> bool:
        """Check if the call produced a value"""
        return self.failure is None

    @property
    def cancelled(self) -> bool:
        """Check if the sequence was stopped by a cancellation token"""
        return self.failure is not None and self.failure.kind == FailureKind.CANCELLED

    def unwrap(self) -> Any:
        """Return the value or raise RetryFailedError

        Raises:
            RetryFailedError: If the call did not succeed
        """
        if self.failure is not None:
            raise RetryFailedError(self.failure, self.attempts)
        return self.value
