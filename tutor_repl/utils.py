"""
Utility functions for session ids, output handling and time bookkeeping.
"""

import re
import secrets
import time
from datetime import datetime, timezone
from typing import Optional


# Shape every session id must match before it is looked up
SESSION_ID_PATTERN = re.compile(r"^session_\d+_[a-z0-9]+$")

TRUNCATION_MARKER = "\n... [output truncated]"


def utcnow() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def generate_session_id() -> str:
    """
    Generate a new session identifier.

    Returns:
        An id like ``session_1718000000000_3f9a0c1b2d4e5f60``
    """
    return f"session_{int(time.time() * 1000)}_{secrets.token_hex(8)}"


def generate_execution_id() -> str:
    """Generate an identifier for one execution record."""
    return f"exec_{int(time.time() * 1000)}_{secrets.token_hex(5)}"


def is_valid_session_id(session_id: object) -> bool:
    """Check that a value has the session id shape (does not check existence)."""
    return isinstance(session_id, str) and bool(SESSION_ID_PATTERN.match(session_id))


def truncate_output(data: Optional[bytes], max_size: int = 10000) -> str:
    """
    Decode captured process output, truncating it to ``max_size`` bytes.

    Args:
        data: Raw bytes from the container, or None if the stream was empty
        max_size: Maximum number of bytes kept before the marker

    Returns:
        Decoded text with a visible marker appended when truncated
    """
    if not data:
        return ""

    if len(data) <= max_size:
        return data.decode("utf-8", errors="replace")

    return data[:max_size].decode("utf-8", errors="replace") + TRUNCATION_MARKER


def is_expired(timestamp: datetime, timeout_seconds: float, now: Optional[datetime] = None) -> bool:
    """True when more than ``timeout_seconds`` have passed since ``timestamp``."""
    now = now or utcnow()
    return (now - timestamp).total_seconds() > timeout_seconds


def format_execution_time(time_ms: float) -> str:
    """Format a duration for display, e.g. ``250ms`` or ``1.50s``."""
    if time_ms < 1000:
        return f"{int(time_ms)}ms"
    return f"{time_ms / 1000:.2f}s"
