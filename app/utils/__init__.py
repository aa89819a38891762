"""Utility functions for Short Video Maker."""

from app.utils.error_handler import (
    ShortVideoError,
    classify_error,
    format_error_message,
    get_operator_hint,
)

__all__ = [
    "ShortVideoError",
    "classify_error",
    "format_error_message",
    "get_operator_hint",
]
