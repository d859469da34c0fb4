"""
HTTP utility functions.

Helpers for interpreting responses from geolocation providers.
"""

from typing import Optional


def is_success_status(status_code: Optional[int]) -> bool:
    """
    Check if status code indicates success (2xx).

    Examples:
        >>> is_success_status(200)
        True
        >>> is_success_status(429)
        False
    """
    return status_code is not None and 200 <= status_code < 300


def is_rate_limited_status(status_code: Optional[int]) -> bool:
    """True for HTTP 429 Too Many Requests."""
    return status_code == 429
