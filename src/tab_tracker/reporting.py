"""Reporting helpers shared by the CLI and the web API."""

from __future__ import annotations

import csv
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import IO, Any, Iterable

from .db import database_connection, fetch_pages
from .models import TrackedData


@dataclass(slots=True)
class PageStat:
    hostname: str
    resource_key: str
    title: str
    active_ms: int
    focused_ms: int
    unfocused_ms: int
    idle_ms: int
    first_seen: int
    last_seen: int

    @property
    def open_ms(self) -> int:
        return max(self.last_seen - self.first_seen, 0)


@dataclass(slots=True)
class HostnameStat:
    hostname: str
    active_ms: int = 0
    focused_ms: int = 0
    unfocused_ms: int = 0
    idle_ms: int = 0
    first_seen: int = 0
    last_seen: int = 0
    pages: list[PageStat] = field(default_factory=list)

    @property
    def open_ms(self) -> int:
        return max(self.last_seen - self.first_seen, 0)

    def to_dict(self) -> dict[str, Any]:
        return {
            "hostname": self.hostname,
            "active_ms": self.active_ms,
            "focused_ms": self.focused_ms,
            "unfocused_ms": self.unfocused_ms,
            "idle_ms": self.idle_ms,
            "open_ms": self.open_ms,
            "first_seen": self.first_seen,
            "last_seen": self.last_seen,
            "pages": [
                {
                    "resource_key": page.resource_key,
                    "title": page.title,
                    "active_ms": page.active_ms,
                    "focused_ms": page.focused_ms,
                    "unfocused_ms": page.unfocused_ms,
                    "idle_ms": page.idle_ms,
                    "open_ms": page.open_ms,
                    "first_seen": page.first_seen,
                    "last_seen": page.last_seen,
                }
                for page in self.pages
            ],
        }


def aggregate_by_hostname(data: TrackedData) -> list[HostnameStat]:
    """Collapse a day range into per-hostname totals, busiest first.

    The same page on several days appears once per day under its hostname.
    """
    hosts: dict[str, HostnameStat] = {}
    for day in sorted(data):
        for hostname, pages in data[day].items():
            stat = hosts.get(hostname)
            if stat is None:
                stat = hosts[hostname] = HostnameStat(hostname=hostname)
            for key, page in pages.items():
                stat.active_ms += page.active_ms
                stat.focused_ms += page.focused_ms
                stat.unfocused_ms += page.unfocused_ms
                stat.idle_ms += page.idle_ms
                stat.first_seen = (
                    min(stat.first_seen, page.first_seen) if stat.first_seen else page.first_seen
                )
                stat.last_seen = max(stat.last_seen, page.last_seen)
                stat.pages.append(
                    PageStat(
                        hostname=hostname,
                        resource_key=key,
                        title=page.title or key,
                        active_ms=page.active_ms,
                        focused_ms=page.focused_ms,
                        unfocused_ms=page.unfocused_ms,
                        idle_ms=page.idle_ms,
                        first_seen=page.first_seen,
                        last_seen=page.last_seen,
                    )
                )
    for stat in hosts.values():
        stat.pages.sort(key=lambda page: page.title)
    return sorted(hosts.values(), key=lambda item: item.active_ms, reverse=True)


def format_duration(milliseconds: float) -> str:
    if milliseconds <= 0:
        return "00:00:00"
    if milliseconds < 1000:
        return "< 1s"
    total_seconds = int(milliseconds // 1000)
    hours, remainder = divmod(total_seconds, 3600)
    minutes, secs = divmod(remainder, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


def format_timestamp(timestamp_ms: int) -> str:
    if not timestamp_ms:
        return "-"
    return datetime.fromtimestamp(timestamp_ms / 1000).strftime("%Y-%m-%d %H:%M:%S")


CSV_HEADERS = (
    "Hostname",
    "Page Title",
    "Page Path",
    "Active",
    "Active & Focused",
    "Active & Unfocused",
    "Idle Time",
    "Total Open Time (Page Span)",
    "First Seen (Page)",
    "Last Seen (Page)",
)


def write_csv(stats: Iterable[HostnameStat], stream: IO[str]) -> int:
    """Write one row per page; returns the number of rows written."""
    writer = csv.writer(stream, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(CSV_HEADERS)
    rows = 0
    for host in stats:
        for page in host.pages:
            writer.writerow(
                (
                    page.hostname,
                    page.title,
                    page.resource_key,
                    format_duration(page.active_ms),
                    format_duration(page.focused_ms),
                    format_duration(page.unfocused_ms),
                    format_duration(page.idle_ms),
                    format_duration(page.open_ms),
                    format_timestamp(page.first_seen),
                    format_timestamp(page.last_seen),
                )
            )
            rows += 1
    return rows


def load_range(db_path: Path, start_day: str, end_day: str) -> TrackedData:
    with database_connection(db_path) as conn:
        return fetch_pages(conn, start_day, end_day)


class SummaryPrinter:
    """Render human-readable summaries in the console."""

    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)

    def print_summary(self, start_day: str, end_day: str, limit: int = 10) -> None:
        stats = aggregate_by_hostname(load_range(self.db_path, start_day, end_day))
        if not stats:
            print("No activity recorded for the selected period.")
            return

        label = start_day if start_day == end_day else f"{start_day} to {end_day}"
        print(f"Summary for {label}")
        print("-" * 60)
        print(f"Active time:    {format_duration(sum(s.active_ms for s in stats))}")
        print(f"  focused:      {format_duration(sum(s.focused_ms for s in stats))}")
        print(f"  unfocused:    {format_duration(sum(s.unfocused_ms for s in stats))}")
        print(f"  idle:         {format_duration(sum(s.idle_ms for s in stats))}")
        print()

        print("Top hostnames:")
        for host in stats[:limit]:
            print(f"  {host.hostname[:40]:<40} {format_duration(host.active_ms)}")

        pages = sorted(
            (page for host in stats for page in host.pages),
            key=lambda page: page.active_ms,
            reverse=True,
        )
        if pages:
            print()
            print("Top pages:")
            for page in pages[:limit]:
                print(f"  {page.hostname[:20]:<20} {page.title[:40]:<40} {format_duration(page.active_ms)}")
