"""Timestamp and calendar-day helpers."""

from __future__ import annotations

import time
from datetime import datetime

DAY_FMT = "%Y-%m-%d"


def now_ms() -> int:
    """Return the current wall-clock time in integer milliseconds."""
    return int(time.time() * 1000)


def day_bucket(timestamp_ms: int) -> str:
    """Return the local calendar day (YYYY-MM-DD) a timestamp falls on."""
    return datetime.fromtimestamp(timestamp_ms / 1000).strftime(DAY_FMT)

