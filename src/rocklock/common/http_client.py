"""Shared HTTP helpers used by the index clients.

Encapsulates request/timeout handling and bounded retries so callers avoid
duplicating try/except blocks. Responses are not cached here; the index
clients own their caches.
"""
from __future__ import annotations

import json
import logging
import time
from typing import Any, Dict, Optional, Tuple

import requests

from ..constants import Constants
from .logging_utils import Timer, extra_context, is_debug_enabled, safe_url

logger = logging.getLogger(__name__)


def robust_get(
    url: str,
    *,
    headers: Optional[Dict[str, str]] = None,
    timeout: Optional[float] = None,
    retries: Optional[int] = None,
    **kwargs: Any,
) -> Tuple[int, Dict[str, str], str]:
    """Perform GET request with timeout and retries.

    Returns ``(status_code, headers, text)``. A status of 0 means every
    attempt failed at the transport level; ``text`` then carries the reason.
    """
    safe_target = safe_url(url)
    request_headers = {"User-Agent": Constants.USER_AGENT}
    if headers:
        request_headers.update(headers)
    attempts = retries if retries is not None else Constants.HTTP_RETRY_MAX
    last_exception = None

    for attempt in range(attempts):
        if attempt:
            time.sleep(Constants.HTTP_RETRY_BASE_DELAY_SEC * (2 ** (attempt - 1)))
        with Timer() as t:
            try:
                if is_debug_enabled(logger):
                    logger.debug(
                        "HTTP request",
                        extra=extra_context(
                            event="http_request",
                            component="http_client",
                            action="GET",
                            target=safe_target,
                            attempt=attempt + 1,
                        ),
                    )
                response = requests.get(
                    url,
                    timeout=timeout or Constants.REQUEST_TIMEOUT,
                    headers=request_headers,
                    **kwargs,
                )
            except requests.Timeout:
                last_exception = "timeout"
                logger.debug("HTTP timeout on %s (attempt %d)", safe_target, attempt + 1)
                continue
            except requests.RequestException as exc:  # includes ConnectionError
                last_exception = str(exc)
                logger.debug("HTTP error on %s (attempt %d): %s", safe_target, attempt + 1, exc)
                continue

        if response.status_code >= 500:
            last_exception = f"HTTP {response.status_code}"
            continue

        result = (response.status_code, dict(response.headers), response.text)
        if is_debug_enabled(logger):
            logger.debug(
                "HTTP response",
                extra=extra_context(
                    event="http_response",
                    component="http_client",
                    action="GET",
                    status_code=response.status_code,
                    duration_ms=t.duration_ms(),
                    target=safe_target,
                ),
            )
        return result

    return 0, {}, f"Request failed after {attempts} attempts: {last_exception}"


def get_json(
    url: str,
    *,
    headers: Optional[Dict[str, str]] = None,
    **kwargs: Any,
) -> Tuple[int, Dict[str, str], Optional[Any]]:
    """Perform GET request and parse JSON response.

    Returns:
        Tuple of (status_code, headers_dict, parsed_json_or_none)
    """
    merged = {"Accept": "application/json"}
    if headers:
        merged.update(headers)
    status_code, response_headers, text = robust_get(url, headers=merged, **kwargs)

    if status_code == 200 and text:
        try:
            return status_code, response_headers, json.loads(text)
        except json.JSONDecodeError:
            logger.debug("JSON decode error for %s", safe_url(url))
            return status_code, response_headers, None

    return status_code, response_headers, None
