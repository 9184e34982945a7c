from __future__ import annotations

import time


def now_s() -> float:
    """Monotonic clock in seconds."""
    return time.monotonic()


def format_mm_ss(seconds: float) -> str:
    """Format a duration as m:ss (whole seconds, truncated)."""
    total = int(max(0.0, seconds))
    return f"{total // 60}:{total % 60:02d}"
