"""Citation cleanup shared by every adapter that returns web sources."""

from __future__ import annotations

from collections.abc import Iterable
from urllib.parse import urlsplit

from ..domain.chat import Source


def _dedupe_key(url: str) -> str:
    # Fragment, trailing slash and case differences name the same page.
    return urlsplit(url)._replace(fragment="").geturl().rstrip("/").lower()


def _http_url(value: object) -> str | None:
    if not isinstance(value, str) or not value.strip():
        return None
    url = value.strip()
    try:
        parts = urlsplit(url)
    except ValueError:
        return None
    if parts.scheme not in ("http", "https") or not parts.netloc:
        return None
    return url


def _title(value: object) -> str | None:
    if not isinstance(value, str):
        return None
    title = value.strip()
    # Bare numbers ("1", "2") are citation markers, not titles.
    if not title or title.isdigit():
        return None
    return title


def _host_title(url: str) -> str:
    host = (urlsplit(url).hostname or "").lower()
    return host.removeprefix("www.")


def normalize_sources(items: Iterable[object]) -> list[Source]:
    """Clean and deduplicate raw citations.

    Accepts ``Source`` objects, ``{"url"|"uri", "title"}`` dicts, or bare URL
    strings. Non-http(s) URLs are dropped; missing titles fall back to the host.
    """
    sources: list[Source] = []
    seen: set[str] = set()
    for item in items:
        if isinstance(item, Source):
            raw_url: object = item.url
            raw_title: object = item.title
        elif isinstance(item, dict):
            raw_url = item["url"] if "url" in item else item.get("uri")
            raw_title = item.get("title")
        elif isinstance(item, str):
            raw_url, raw_title = item, None
        else:
            continue

        url = _http_url(raw_url)
        if url is None:
            continue
        key = _dedupe_key(url)
        if key in seen:
            continue
        seen.add(key)
        sources.append(Source(title=_title(raw_title) or _host_title(url), url=url))
    return sources


class SourceCollector:
    """Accumulates sources across stream chunks, preserving first-seen order."""

    def __init__(self) -> None:
        self._raw: list[object] = []

    def add(self, item: object) -> None:
        self._raw.append(item)

    def extend(self, items: Iterable[object]) -> None:
        self._raw.extend(items)

    def collect(self) -> list[Source]:
        return normalize_sources(self._raw)
