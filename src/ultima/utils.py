"""
Ultima - Utility functions.

Provides formatting helpers and identifiers shared by the session and UI.
"""

import logging
import secrets
import string
from datetime import datetime

logger = logging.getLogger(__name__)

_ID_ALPHABET = string.ascii_lowercase + string.digits


def generate_random_id(length: int = 9) -> str:
    """
    Generate a short random identifier.

    Args:
        length: Number of characters

    Returns:
        Lowercase alphanumeric identifier
    """
    return "".join(secrets.choice(_ID_ALPHABET) for _ in range(length))


def format_timestamp(timestamp: float, format_str: str = "%H:%M") -> str:
    """
    Format a UNIX timestamp to a human-readable local time.

    Args:
        timestamp: Seconds since the epoch
        format_str: strftime format string

    Returns:
        Formatted timestamp string, or empty string if out of range
    """
    try:
        return datetime.fromtimestamp(timestamp).strftime(format_str)
    except (OverflowError, OSError, ValueError) as e:
        logger.debug(f"Failed to format timestamp '{timestamp}': {e}")
        return ""


def format_size(size: int) -> str:
    """
    Format a byte count for display.

    Args:
        size: Size in bytes

    Returns:
        Size with a binary unit suffix
    """
    value = float(size)
    for unit in ("B", "KiB", "MiB", "GiB"):
        if value < 1024 or unit == "GiB":
            if unit == "B":
                return f"{int(value)} {unit}"
            return f"{value:.1f} {unit}"
        value /= 1024
    return f"{size} B"


def sanitize_filename(filename: str) -> str:
    """
    Sanitize a filename received from the peer.

    Args:
        filename: Filename to sanitize

    Returns:
        Sanitized filename without path separators
    """
    invalid_chars = '<>:"/\\|?*\0'
    for char in invalid_chars:
        filename = filename.replace(char, "_")

    # Remove leading/trailing spaces and dots
    filename = filename.strip(". ")

    if not filename:
        filename = "unnamed"

    return filename
