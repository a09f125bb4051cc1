"""Classify raised exceptions into tagged Failure values.

This is the only place that inspects exception types and attributes. Retry
predicates work on the resulting ``Failure`` and never look at messages.
"""

from __future__ import annotations

import asyncio
import errno
import logging
import socket
from typing import Optional

import requests

from retrywise.domain.models.failure import Failure, FailureKind, OperationError
from retrywise.infrastructure.cancellation import RetryCancelled

logger = logging.getLogger(__name__)

# Backend error codes: Postgres SQLSTATE, auth service error codes, errno names
TIMEOUT_CODES = frozenset({"57014", "ETIMEDOUT", "timeout"})
AUTH_REJECTED_CODES = frozenset({"invalid_credentials", "email_not_confirmed", "invalid_grant"})
NETWORK_CODES = frozenset(
    {
        "ECONNREFUSED",
        "ECONNRESET",
        "ENOTFOUND",
        "EAI_AGAIN",
        "08000",  # connection_exception
        "08001",  # sqlclient_unable_to_establish_sqlconnection
        "08003",  # connection_does_not_exist
        "08006",  # connection_failure
    }
)
NOT_FOUND_CODES = frozenset({"PGRST116"})

# Socket errnos raised as plain OSError by the transport
NETWORK_ERRNOS = frozenset(
    getattr(errno, name)
    for name in (
        "ENETUNREACH",
        "ENETDOWN",
        "ENETRESET",
        "EHOSTUNREACH",
        "EHOSTDOWN",
        "ECONNABORTED",
        "ECONNRESET",
        "ECONNREFUSED",
    )
    if hasattr(errno, name)
)


def kind_for_status(status: int) -> FailureKind:
    """Map an HTTP-style status code to a failure kind"""
    if status in (401, 403):
        return FailureKind.AUTH_REJECTED
    if status == 404:
        return FailureKind.NOT_FOUND
    if status == 408:
        return FailureKind.TIMEOUT
    if status == 429:
        return FailureKind.RATE_LIMITED
    if status >= 500:
        return FailureKind.SERVER_ERROR
    return FailureKind.OTHER


def kind_for_code(code: str) -> Optional[FailureKind]:
    """Map a backend error code to a failure kind, None if unknown"""
    if code in TIMEOUT_CODES:
        return FailureKind.TIMEOUT
    if code in AUTH_REJECTED_CODES:
        return FailureKind.AUTH_REJECTED
    if code in NETWORK_CODES:
        return FailureKind.NETWORK
    if code in NOT_FOUND_CODES:
        return FailureKind.NOT_FOUND
    return None


def _status_of(exc: BaseException) -> Optional[int]:
    response = getattr(exc, "response", None)
    candidates = (
        getattr(response, "status_code", None) if response is not None else None,
        getattr(exc, "status_code", None),
        getattr(exc, "status", None),
    )
    for candidate in candidates:
        if isinstance(candidate, bool):
            continue
        if isinstance(candidate, int):
            return candidate
        if isinstance(candidate, str) and candidate.isdigit():
            return int(candidate)
    return None


def _code_of(exc: BaseException) -> Optional[str]:
    code = getattr(exc, "code", None)
    if code is None or isinstance(code, bool):
        return None
    return str(code)


def classify_failure(exc: BaseException) -> Failure:
    """Build a Failure for an exception raised by an operation

    Args:
        exc: Exception raised by the operation

    Returns:
        Classified Failure (kind OTHER when nothing matches)
    """
    if isinstance(exc, OperationError):
        return exc.failure

    message = str(exc)

    if isinstance(exc, RetryCancelled):
        return Failure(FailureKind.CANCELLED, message, exception=exc)

    status = _status_of(exc)
    code = _code_of(exc)

    # requests.Timeout covers ConnectTimeout, which is also a ConnectionError
    if isinstance(exc, (requests.exceptions.Timeout, asyncio.TimeoutError, TimeoutError)):
        return Failure(FailureKind.TIMEOUT, message, status=status, code=code, exception=exc)

    if isinstance(exc, requests.exceptions.HTTPError) and status is not None:
        return Failure(kind_for_status(status), message, status=status, code=code, exception=exc)

    if isinstance(
        exc,
        (requests.exceptions.ConnectionError, socket.gaierror, ConnectionError),
    ):
        return Failure(FailureKind.NETWORK, message, status=status, code=code, exception=exc)

    if isinstance(exc, OSError) and exc.errno in NETWORK_ERRNOS:
        return Failure(FailureKind.NETWORK, message, status=status, code=code, exception=exc)

    if status is not None:
        return Failure(kind_for_status(status), message, status=status, code=code, exception=exc)

    if code is not None:
        kind = kind_for_code(code)
        if kind is not None:
            return Failure(kind, message, code=code, exception=exc)

    logger.debug(f"Unclassified failure {type(exc).__name__}: {exc}")
    return Failure(FailureKind.OTHER, message, code=code, exception=exc)
