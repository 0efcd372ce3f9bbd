"""Durable key-value stores for per-page time totals."""

from __future__ import annotations

import copy
import logging
import sqlite3
import threading
from pathlib import Path
from typing import Protocol, Union

from .db import delete_all, delete_day, fetch_pages, open_database, upsert_pages
from .models import TrackedData

logger = logging.getLogger(__name__)


class StoreError(Exception):
    """The durable store could not complete a read or write."""


class DurableStore(Protocol):
    def get_all(self) -> TrackedData: ...

    def get_range(self, start_day: str, end_day: str) -> TrackedData:
        """Return the days between ``start_day`` and ``end_day`` inclusive."""

    def set(self, root: TrackedData) -> None:
        """Write every page present in ``root``; other pages are left untouched."""

    def remove(self, day: str) -> None: ...

    def clear(self) -> None: ...

    def close(self) -> None: ...


class MemoryStore:
    """Process-local store holding a private copy of everything written."""

    def __init__(self) -> None:
        self._data: TrackedData = {}
        self._lock = threading.Lock()

    def get_all(self) -> TrackedData:
        with self._lock:
            return copy.deepcopy(self._data)

    def get_range(self, start_day: str, end_day: str) -> TrackedData:
        with self._lock:
            return {
                day: copy.deepcopy(self._data[day])
                for day in sorted(self._data)
                if start_day <= day <= end_day
            }

    def set(self, root: TrackedData) -> None:
        with self._lock:
            for day, hosts in root.items():
                day_data = self._data.setdefault(day, {})
                for hostname, pages in hosts.items():
                    host_data = day_data.setdefault(hostname, {})
                    for key, page in pages.items():
                        host_data[key] = copy.deepcopy(page)

    def remove(self, day: str) -> None:
        with self._lock:
            self._data.pop(day, None)

    def clear(self) -> None:
        with self._lock:
            self._data.clear()

    def close(self) -> None:
        pass


class SqliteStore:
    """Store backed by the ``page_data`` table of a SQLite database."""

    def __init__(self, path: Union[Path, str]) -> None:
        self.path = path
        self._conn = open_database(path, check_same_thread=False)

    def get_all(self) -> TrackedData:
        try:
            return fetch_pages(self._conn)
        except sqlite3.Error as exc:
            raise StoreError(f"Failed to read {self.path}: {exc}") from exc

    def get_range(self, start_day: str, end_day: str) -> TrackedData:
        try:
            return fetch_pages(self._conn, start_day, end_day)
        except sqlite3.Error as exc:
            raise StoreError(f"Failed to read {self.path}: {exc}") from exc

    def set(self, root: TrackedData) -> None:
        rows = [
            (day, hostname, key, page)
            for day, hosts in root.items()
            for hostname, pages in hosts.items()
            for key, page in pages.items()
        ]
        try:
            upsert_pages(self._conn, rows)
        except sqlite3.Error as exc:
            raise StoreError(f"Failed to write {self.path}: {exc}") from exc
        logger.debug("Wrote %d pages to %s", len(rows), self.path)

    def remove(self, day: str) -> None:
        try:
            delete_day(self._conn, day)
        except sqlite3.Error as exc:
            raise StoreError(f"Failed to delete {day} from {self.path}: {exc}") from exc

    def clear(self) -> None:
        try:
            delete_all(self._conn)
        except sqlite3.Error as exc:
            raise StoreError(f"Failed to clear {self.path}: {exc}") from exc

    def close(self) -> None:
        self._conn.close()
