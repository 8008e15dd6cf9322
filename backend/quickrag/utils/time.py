"""Time helpers."""

from __future__ import annotations

import time


def now_ms() -> int:
    """Return current timestamp in milliseconds."""
    return int(time.time() * 1000)


def mtime_ms(st_mtime: float) -> float:
    """Convert a stat mtime in seconds to the millisecond value stored in the file index."""
    return st_mtime * 1000.0
