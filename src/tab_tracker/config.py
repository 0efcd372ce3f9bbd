"""Configuration models and helpers for the tab tracker."""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Optional

from platformdirs import PlatformDirs


@dataclass(slots=True)
class TrackerSettings:
    """Runtime configuration for the tab collector."""

    transition_debounce: timedelta = timedelta(milliseconds=100)
    flush_delay: timedelta = timedelta(seconds=2)
    safety_flush_interval: Optional[timedelta] = timedelta(seconds=30)
    track_focus_and_idle: bool = True

    @classmethod
    def from_intervals(
        cls,
        debounce_ms: float = 100.0,
        flush_seconds: float = 2.0,
        safety_flush_seconds: float | None = 30.0,
        track_focus_and_idle: bool = True,
    ) -> "TrackerSettings":
        safety = (
            timedelta(seconds=safety_flush_seconds)
            if safety_flush_seconds and safety_flush_seconds > 0
            else None
        )
        return cls(
            transition_debounce=timedelta(milliseconds=debounce_ms),
            flush_delay=timedelta(seconds=flush_seconds),
            safety_flush_interval=safety,
            track_focus_and_idle=track_focus_and_idle,
        )


APP_NAME = "TabTimeTracker"
DATA_DIR_ENV = "TAB_TRACKER_DATA_DIR"


def get_data_dir() -> Path:
    """Return the directory holding the database and log file.

    ``TAB_TRACKER_DATA_DIR`` overrides the platform's user data directory.
    """
    override = os.environ.get(DATA_DIR_ENV)
    if override:
        path = Path(override).expanduser()
    else:
        path = PlatformDirs(appname=APP_NAME, appauthor=False, roaming=True).user_data_path
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_db_path() -> Path:
    return get_data_dir() / "tabs.sqlite3"


def get_log_path() -> Path:
    return get_data_dir() / "tracker.log"
