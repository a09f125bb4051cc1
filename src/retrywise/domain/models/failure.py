"""Failure model - tagged description of why an attempt failed"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class FailureKind(str, Enum):
    """Discriminant used by retry predicates"""

    NETWORK = "network"
    TIMEOUT = "timeout"
    SERVER_ERROR = "server_error"
    RATE_LIMITED = "rate_limited"
    AUTH_REJECTED = "auth_rejected"
    NOT_FOUND = "not_found"
    CANCELLED = "cancelled"
    OTHER = "other"


TRANSIENT_KINDS = frozenset(
    {
        FailureKind.NETWORK,
        FailureKind.TIMEOUT,
        FailureKind.SERVER_ERROR,
        FailureKind.RATE_LIMITED,
    }
)


@dataclass(frozen=True)
class Failure:
    """A classified failure observed while running an operation"""

    kind: FailureKind
    message: str = ""
    status: Optional[int] = None  # HTTP-style status code, if any
    code: Optional[str] = None  # Backend error code (SQLSTATE, auth code, errno name)
    exception: Optional[BaseException] = None

    @property
    def is_transient(self) -> bool:
        """Check if failure belongs to the transient family"""
        return self.kind in TRANSIENT_KINDS

    def __str__(self) -> str:
        details = []
        if self.status is not None:
            details.append(f"status={self.status}")
        if self.code:
            details.append(f"code={self.code}")
        suffix = f" ({', '.join(details)})" if details else ""
        message = f": {self.message}" if self.message else ""
        return f"{self.kind.value}{message}{suffix}"


class OperationError(Exception):
    """Raised by operations that already know how their failure is classified"""

    def __init__(self, failure: Failure):
        super().__init__(str(failure))
        self.failure = failure


class RetryFailedError(Exception):
    """Raised by RetryResult.unwrap() when the call did not succeed"""

    def __init__(self, failure: Failure, attempts: int):
        super().__init__(f"Call failed after {attempts} attempt(s): {failure}")
        self.failure = failure
        self.attempts = attempts
