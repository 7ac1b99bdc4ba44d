"""
Cipherlink - Utility functions.

Created by orpheus497
Version: 1.0.0

Provides formatting and validation helpers shared by the protocol modules.
"""

import logging
import re
import time
import uuid
from datetime import datetime, timezone

from .constants import FINGERPRINT_LENGTH, MAX_DISPLAY_NAME_LENGTH

logger = logging.getLogger(__name__)

_FINGERPRINT_PATTERN = re.compile(rf"^[0-9A-F]{{{FINGERPRINT_LENGTH}}}$")


def now_ms() -> int:
    """Current UTC time as integer milliseconds since the epoch."""
    return time.time_ns() // 1_000_000


def format_timestamp_ms(timestamp_ms: int, format_str: str = "%Y-%m-%d %H:%M:%S") -> str:
    """
    Format a millisecond epoch timestamp to a human-readable UTC string.

    Args:
        timestamp_ms: Milliseconds since the epoch
        format_str: strftime format string

    Returns:
        Formatted timestamp string, or the raw value if it is out of range
    """
    try:
        dt = datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc)
        return dt.strftime(format_str)
    except (OverflowError, OSError, ValueError, TypeError) as e:
        logger.debug(f"Failed to format timestamp {timestamp_ms!r}: {e}")
        return str(timestamp_ms)


def validate_uid(uid: str) -> bool:
    """
    Validate a UID format.

    Args:
        uid: UID string

    Returns:
        True if uid is a canonical lowercase UUID string, False otherwise
    """
    if not isinstance(uid, str):
        return False
    try:
        return str(uuid.UUID(uid)) == uid
    except ValueError:
        return False


def validate_fingerprint(fingerprint: str) -> bool:
    """Check a fingerprint is 16 uppercase hexadecimal characters."""
    return isinstance(fingerprint, str) and bool(_FINGERPRINT_PATTERN.match(fingerprint))


def validate_display_name(name: str) -> bool:
    """A display name is non-blank, at most 64 characters, with no control characters."""
    if not isinstance(name, str):
        return False
    stripped = name.strip()
    if not stripped or len(stripped) > MAX_DISPLAY_NAME_LENGTH:
        return False
    return all(ord(char) >= 32 and ord(char) != 127 for char in stripped)


def truncate_string(s: str, max_length: int, suffix: str = "...") -> str:
    """
    Truncate a string to a maximum length.

    Args:
        s: String to truncate
        max_length: Maximum length
        suffix: Suffix to add if truncated

    Returns:
        Truncated string
    """
    if len(s) <= max_length:
        return s
    return s[: max_length - len(suffix)] + suffix


def format_fingerprint(fingerprint: str) -> str:
    """
    Format a fingerprint for display with spaces every 4 characters.

    Args:
        fingerprint: Hex fingerprint string

    Returns:
        Formatted fingerprint
    """
    return " ".join(fingerprint[i : i + 4] for i in range(0, len(fingerprint), 4))
