"""
Utility functions for qcli.
"""
import secrets
import string
import time
from datetime import datetime
from typing import Optional

_ID_ALPHABET = string.ascii_lowercase + string.digits


def truncate_string(text: str, max_length: int = 100, suffix: str = "...") -> str:
    """
    Truncate a string to a maximum length.

    Args:
        text: The string to truncate
        max_length: Maximum length of the output string
        suffix: Suffix to append when truncating

    Returns:
        Truncated string
    """
    if len(text) <= max_length:
        return text
    return text[:max_length - len(suffix)] + suffix


def generate_session_id(length: int = 8) -> str:
    """
    Generate a short, opaque session ID.

    Args:
        length: Number of characters

    Returns:
        Lowercase alphanumeric ID (e.g. "k3f9x0ab")
    """
    return "".join(secrets.choice(_ID_ALPHABET) for _ in range(length))


def format_timestamp(timestamp: Optional[float] = None, fmt: str = "%Y-%m-%d %H:%M:%S") -> str:
    """
    Format a timestamp to a human-readable string.

    Args:
        timestamp: Unix timestamp (uses current time if None)
        fmt: strftime format string

    Returns:
        Formatted timestamp string
    """
    if timestamp is None:
        timestamp = time.time()
    return datetime.fromtimestamp(timestamp).strftime(fmt)


def format_tokens(input_tokens: int, output_tokens: int) -> str:
    """
    Format a token count compactly.

    Args:
        input_tokens: Prompt tokens
        output_tokens: Completion tokens

    Returns:
        "950", "1.5k" or "12k"
    """
    total = input_tokens + output_tokens
    if total < 1000:
        return str(total)
    if total < 10000:
        return f"{total / 1000:.1f}k"
    return f"{round(total / 1000)}k"


def format_cost(cost: float) -> str:
    """
    Format a cost value to a currency string.

    Args:
        cost: Cost value in USD

    Returns:
        Formatted cost string (e.g., "$0.0012", "$0.050", "$1.23")
    """
    if cost < 0.01:
        return f"${cost:.4f}"
    if cost < 0.1:
        return f"${cost:.3f}"
    return f"${cost:.2f}"


def format_relative_time(timestamp: float, now: Optional[float] = None) -> str:
    """
    Format a timestamp relative to now.

    Args:
        timestamp: Unix timestamp in seconds
        now: Reference time (defaults to the current time)

    Returns:
        "just now", "5m ago", "3h ago", "2d ago" or a date
    """
    if now is None:
        now = time.time()
    diff = now - timestamp
    mins = int(diff // 60)
    hours = int(diff // 3600)
    days = int(diff // 86400)

    if mins < 1:
        return "just now"
    if mins < 60:
        return f"{mins}m ago"
    if hours < 24:
        return f"{hours}h ago"
    if days < 7:
        return f"{days}d ago"
    return format_timestamp(timestamp, "%Y-%m-%d")


def format_error(error: BaseException) -> str:
    """Extract a one-line message from an exception."""
    message = str(error).strip()
    return message or error.__class__.__name__
