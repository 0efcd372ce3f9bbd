"""SQLite database layer for per-page time totals."""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterable, Iterator, Optional, Union

from .models import PageData, TrackedData


def open_database(
    path: Union[Path, str], *, check_same_thread: bool = True
) -> sqlite3.Connection:
    """Open (and initialize) the SQLite database."""
    conn = sqlite3.connect(
        path,
        isolation_level=None,
        check_same_thread=check_same_thread,
    )
    conn.row_factory = sqlite3.Row
    initialize_schema(conn)
    return conn


@contextmanager
def database_connection(
    path: Union[Path, str], *, check_same_thread: bool = True
) -> Iterator[sqlite3.Connection]:
    conn = open_database(path, check_same_thread=check_same_thread)
    try:
        yield conn
    finally:
        conn.close()


def initialize_schema(conn: sqlite3.Connection) -> None:
    conn.executescript(
        """
        CREATE TABLE IF NOT EXISTS page_data (
            day TEXT NOT NULL,
            hostname TEXT NOT NULL,
            resource_key TEXT NOT NULL,
            active_ms INTEGER NOT NULL DEFAULT 0,
            focused_ms INTEGER NOT NULL DEFAULT 0,
            unfocused_ms INTEGER NOT NULL DEFAULT 0,
            idle_ms INTEGER NOT NULL DEFAULT 0,
            first_seen INTEGER NOT NULL,
            last_seen INTEGER NOT NULL,
            last_updated INTEGER NOT NULL,
            title TEXT NOT NULL DEFAULT '',
            PRIMARY KEY (day, hostname, resource_key)
        );

        CREATE INDEX IF NOT EXISTS idx_page_data_hostname
            ON page_data(hostname);
        """
    )


def upsert_pages(
    conn: sqlite3.Connection, rows: Iterable[tuple[str, str, str, PageData]]
) -> None:
    """Write pages in one transaction, replacing rows with the same key."""
    params = [
        (
            day,
            hostname,
            key,
            page.active_ms,
            page.focused_ms,
            page.unfocused_ms,
            page.idle_ms,
            page.first_seen,
            page.last_seen,
            page.last_updated,
            page.title,
        )
        for day, hostname, key, page in rows
    ]
    if not params:
        return
    conn.execute("BEGIN")
    try:
        conn.executemany(
            """
            INSERT INTO page_data (
                day,
                hostname,
                resource_key,
                active_ms,
                focused_ms,
                unfocused_ms,
                idle_ms,
                first_seen,
                last_seen,
                last_updated,
                title
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT (day, hostname, resource_key) DO UPDATE SET
                active_ms = excluded.active_ms,
                focused_ms = excluded.focused_ms,
                unfocused_ms = excluded.unfocused_ms,
                idle_ms = excluded.idle_ms,
                first_seen = excluded.first_seen,
                last_seen = excluded.last_seen,
                last_updated = excluded.last_updated,
                title = excluded.title
            """,
            params,
        )
    except sqlite3.Error:
        conn.execute("ROLLBACK")
        raise
    conn.execute("COMMIT")


def fetch_pages(
    conn: sqlite3.Connection,
    start_day: Optional[str] = None,
    end_day: Optional[str] = None,
) -> TrackedData:
    """Return persisted pages, optionally limited to an inclusive day range."""
    clauses: list[str] = []
    params: list[str] = []
    if start_day is not None:
        clauses.append("day >= ?")
        params.append(start_day)
    if end_day is not None:
        clauses.append("day <= ?")
        params.append(end_day)
    where = f"WHERE {' AND '.join(clauses)}" if clauses else ""

    data: TrackedData = {}
    for row in conn.execute(
        f"""
        SELECT
            day,
            hostname,
            resource_key,
            active_ms,
            focused_ms,
            unfocused_ms,
            idle_ms,
            first_seen,
            last_seen,
            last_updated,
            title
        FROM page_data
        {where}
        ORDER BY day, hostname, resource_key;
        """,
        params,
    ):
        data.setdefault(row["day"], {}).setdefault(row["hostname"], {})[
            row["resource_key"]
        ] = PageData(
            first_seen=row["first_seen"],
            last_seen=row["last_seen"],
            last_updated=row["last_updated"],
            title=row["title"],
            active_ms=row["active_ms"],
            focused_ms=row["focused_ms"],
            unfocused_ms=row["unfocused_ms"],
            idle_ms=row["idle_ms"],
        )
    return data


def delete_day(conn: sqlite3.Connection, day: str) -> int:
    cur = conn.execute("DELETE FROM page_data WHERE day = ?", (day,))
    return cur.rowcount


def delete_all(conn: sqlite3.Connection) -> None:
    conn.execute("DELETE FROM page_data")
