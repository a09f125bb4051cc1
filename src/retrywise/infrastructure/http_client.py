"""Shared HTTP client utilities (requests + retry/backoff).

We keep HTTP logic centralized so every caller classifies failures the same way.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional

import requests

from retrywise.application.retry_executor import RetryExecutor
from retrywise.domain.models.retry_result import RetryResult
from retrywise.domain.policies import RetryPolicy
from retrywise.infrastructure.cancellation import CancellationToken

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0
DEFAULT_HEADERS = {
    "Content-Type": "application/json",
    "Accept": "application/json",
}


def _decode_json(resp: requests.Response) -> Any:
    if not resp.content:
        return None
    return resp.json()


async def request_json_with_retries(
    method: str,
    url: str,
    *,
    payload: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None,
    timeout: float = DEFAULT_TIMEOUT,
    policy: Optional[RetryPolicy] = None,
    cancel_token: Optional[CancellationToken] = None,
    executor: Optional[RetryExecutor] = None,
) -> RetryResult:
    """Send a JSON request, retrying network errors, timeouts, 429 and 5xx

    Args:
        method: HTTP method
        url: Absolute URL
        payload: JSON body (None for no body)
        headers: Extra headers merged over the defaults
        timeout: Per-attempt timeout in seconds
        policy: Retry policy (ignored when executor is given)
        cancel_token: Optional cancellation token
        executor: Preconfigured executor

    Returns:
        RetryResult whose value is the decoded JSON body
    """
    request_headers = {**DEFAULT_HEADERS, **(headers or {})}
    executor = executor or RetryExecutor(policy)

    def _make_request() -> Any:
        logger.debug(f"HTTP {method} {url}")
        resp = requests.request(
            method,
            url,
            json=payload,
            headers=request_headers,
            timeout=timeout,
        )
        resp.raise_for_status()
        return _decode_json(resp)

    async def _operation() -> Any:
        return await asyncio.to_thread(_make_request)

    return await executor.execute(_operation, cancel_token=cancel_token)


async def get_json(url: str, **kwargs: Any) -> RetryResult:
    """GET JSON with retries (see request_json_with_retries)"""
    return await request_json_with_retries("GET", url, **kwargs)


async def post_json(url: str, *, payload: Dict[str, Any], **kwargs: Any) -> RetryResult:
    """POST JSON with retries (see request_json_with_retries)"""
    return await request_json_with_retries("POST", url, payload=payload, **kwargs)
