"""Utility functions for the flow import pipeline."""

from .http_utils import is_rate_limited_status, is_success_status

__all__ = [
    "is_success_status",
    "is_rate_limited_status",
]
