"""
Core utility functions.
Provides common functionality used across multiple modules.
"""
import re
from datetime import datetime, timezone
from typing import Any, Optional

UTC = timezone.utc

_URL_LIKE = re.compile(r"^(?:https?:)?//|^/[^/\s]", re.IGNORECASE)
_ABSOLUTE_URL = re.compile(r"^[a-z][a-z0-9+.-]*://", re.IGNORECASE)


def get_utc_now() -> datetime:
    """
    Get current datetime in UTC.

    Always returns a timezone-aware datetime object.
    Use this for feed dates and webhook timestamps.
    """
    return datetime.now(UTC)


def to_utc(dt: datetime) -> datetime:
    """
    Convert any datetime to UTC.

    Args:
        dt: Datetime object (aware or naive)

    Returns:
        Datetime in UTC (naive input is assumed to already be UTC)
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def looks_like_url(value: Optional[str]) -> bool:
    """True for absolute, protocol-relative or root-relative URLs."""
    if not value:
        return False
    return bool(_URL_LIKE.match(value.strip()))


def is_absolute_url(value: Optional[str]) -> bool:
    if not value:
        return False
    return bool(_ABSOLUTE_URL.match(value.strip()))


def get_path(obj: Any, path: Optional[str], default: Any = None) -> Any:
    """
    Walks a dotted path ("data.items.0.title") through dicts and lists.

    An empty path returns the object itself.
    """
    if not path:
        return obj if obj is not None else default

    result = obj
    for key in path.split("."):
        if result is None:
            return default
        if isinstance(result, dict):
            if key not in result:
                return default
            result = result[key]
        elif isinstance(result, (list, tuple)) and key.lstrip("-").isdigit():
            index = int(key)
            if index >= len(result) or index < -len(result):
                return default
            result = result[index]
        else:
            return default
    return result


def truncate_text(text: str, max_length: int, suffix: str = "...") -> str:
    """
    Truncate text to max length with suffix.

    Args:
        text: Text to truncate
        max_length: Maximum allowed length including suffix
        suffix: Suffix to append when truncating

    Returns:
        Truncated text
    """
    if len(text) <= max_length:
        return text
    return text[:max_length - len(suffix)] + suffix


def safe_filename(filename: str) -> str:
    """
    Sanitize a feed id so it can be used as a file name.

    Args:
        filename: Original name

    Returns:
        Sanitized name safe for filesystem (no path separators)
    """
    unsafe_chars = '<>:"/\\|?*'
    for char in unsafe_chars:
        filename = filename.replace(char, '_')
    filename = filename.strip().lstrip(".")
    return filename or "_"
