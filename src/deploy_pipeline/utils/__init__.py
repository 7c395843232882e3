"""Shared utilities."""

from .clock import format_rfc3339, parse_rfc3339, utc_now
from .logging import configure_logging, get_logger

__all__ = [
    "configure_logging",
    "format_rfc3339",
    "get_logger",
    "parse_rfc3339",
    "utc_now",
]
