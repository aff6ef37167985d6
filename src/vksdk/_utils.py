"""
Utility functions for the vksdk SDK.

This module provides internal helper functions used by the API client.
These functions are not part of the public API and may change without notice.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any

# Parameters never written to logs in clear text
SENSITIVE_PARAMS = frozenset({"access_token", "client_secret", "password", "captcha_key"})


def mask_secret(value: str) -> str:
    """
    Hide most of a secret, keeping its last characters for correlation.

    Example:
        >>> mask_secret("0123456789abcdef")
        '********cdef'
    """
    if len(value) >= 12:
        return f"********{value[-4:]}"
    return "********"


def format_params_for_log(params: Mapping[str, Any]) -> str:
    """
    Render parameters as `key=value` pairs with secrets masked.

    Example:
        >>> format_params_for_log({"user_ids": "1", "access_token": "0123456789abcdef"})
        'user_ids=1,access_token=********cdef'
    """
    return ",".join(
        f"{key}={mask_secret(str(value)) if key in SENSITIVE_PARAMS else value}"
        for key, value in params.items()
    )


def pretty_print_json(raw_json: str) -> str:
    """
    Indent a JSON document for debug logs.

    Text that is not valid JSON is returned unchanged.
    """
    try:
        return json.dumps(json.loads(raw_json), indent=2, ensure_ascii=False)
    except ValueError:
        return raw_json


def is_timeout_exception(exc: Exception) -> bool:
    """
    Determine if an exception indicates a timeout condition.

    Args:
        exc: The exception to check.

    Returns:
        True for request timeouts, rate limiter timeouts and transport
        errors flagged as timeouts.
    """
    # Lazy imports to avoid circular dependencies
    import requests

    from vksdk._errors import TransportError
    from vksdk._rate_limit import TokenAcquisitionTimeoutError

    timeout_exceptions_types = (
        requests.Timeout,
        TokenAcquisitionTimeoutError,
        TimeoutError,
    )

    if isinstance(exc, timeout_exceptions_types):
        return True
    if isinstance(exc, TransportError):
        return exc.timed_out
    return False
