"""
Runtime utility helpers.

Design principles (heyclaw style):
- Pure functional utilities
- No IO
"""

from __future__ import annotations

import re
import time
from datetime import datetime, timezone


# ===========================
# Clock Utilities
# ===========================

def now_ms() -> int:
    """Return current unix time in milliseconds."""
    return int(time.time() * 1000)


def format_utc(timestamp_ms: int) -> str:
    """Render a millisecond timestamp as ``YYYY-MM-DD HH:MM UTC``."""
    dt = datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc)
    return dt.strftime("%Y-%m-%d %H:%M UTC")


# ===========================
# String Utilities
# ===========================

_WHITESPACE = re.compile(r"\s+")


def truncate(s: str, max_len: int = 120, suffix: str = "...") -> str:
    """Truncate a string with suffix."""
    if len(s) <= max_len:
        return s
    return s[: max_len - len(suffix)] + suffix


def preview(text: str, limit: int = 160) -> str:
    """Collapse whitespace and cut to ``limit`` characters (no suffix)."""
    return _WHITESPACE.sub(" ", text or "")[:limit]


# ===========================
# Session Helpers
# ===========================

def build_session_key(*parts: str) -> str:
    """Build normalized session key from non-empty parts."""
    return ":".join(str(p) for p in parts if p)
