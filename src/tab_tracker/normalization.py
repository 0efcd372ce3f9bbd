"""Utilities to derive grouping keys and titles from tab URLs."""

from __future__ import annotations

import re
from typing import Optional
from urllib.parse import urlsplit

NO_URL = "no_url"
INVALID_URL = "invalid_url"
CHROME_INTERNAL = "chrome_internal"
CHROME_EXTENSION = "chrome_extension"
ABOUT_PAGE = "about_page"
LOCAL_FILE = "local_file"
OTHER_SCHEME = "other_scheme"

EXCLUDED_HOSTNAMES: frozenset[str] = frozenset(
    {NO_URL, INVALID_URL, CHROME_INTERNAL, CHROME_EXTENSION, ABOUT_PAGE}
)

_SCHEME_PREFIXES: tuple[tuple[str, str], ...] = (
    ("chrome-extension://", CHROME_EXTENSION),
    ("chrome://", CHROME_INTERNAL),
    ("about:", ABOUT_PAGE),
)


def derive_hostname(url: Optional[str]) -> str:
    """Return the hostname bucket for a URL, or a marker for special schemes."""
    if not url:
        return NO_URL
    for prefix, marker in _SCHEME_PREFIXES:
        if url.startswith(prefix):
            return marker

    try:
        parts = urlsplit(url)
    except ValueError:
        return INVALID_URL

    if parts.scheme in ("http", "https"):
        return (parts.hostname or "").lower() or INVALID_URL
    if parts.scheme == "file":
        return LOCAL_FILE
    if not parts.scheme:
        return INVALID_URL
    return OTHER_SCHEME


def is_trackable(url: Optional[str]) -> bool:
    return derive_hostname(url) not in EXCLUDED_HOSTNAMES


def resource_key(url: Optional[str]) -> str:
    """Return the URL path with query string and fragment removed."""
    if not url:
        return "/"
    try:
        path = urlsplit(url).path
    except ValueError:
        return "/"
    return path or "/"


_WHITESPACE_PATTERN = re.compile(r"\s+")


def normalize_title(title: Optional[str], url: Optional[str]) -> str:
    """Collapse whitespace in a page title, falling back to the URL."""
    if title:
        cleaned = _WHITESPACE_PATTERN.sub(" ", title).strip()
        if cleaned:
            return cleaned
    return url or ""
