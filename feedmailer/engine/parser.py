"""Turn fetched feed documents into the normalised feed shape."""

from __future__ import annotations

from dataclasses import dataclass, field
from urllib.parse import urljoin

import feedparser

from ..errors import ParseError


@dataclass(frozen=True, slots=True)
class Entry:
    """Normalised feed entry; ``id`` is None when it cannot be deduplicated."""

    id: str | None = None
    title: str | None = None
    link: str | None = None
    summary: str | None = None
    content: str | None = None
    author: str | None = None


@dataclass(frozen=True, slots=True)
class Feed:
    title: str | None = None
    link: str | None = None
    icon: str | None = None
    entries: tuple[Entry, ...] = field(default_factory=tuple)


def _clean(value: object) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _resolve(base_url: str, href: str | None) -> str | None:
    if not href:
        return None
    return urljoin(base_url, href)


def _entry_content(entry: feedparser.FeedParserDict) -> str | None:
    parts = [_clean(item.get("value")) for item in entry.get("content") or []]
    parts = [part for part in parts if part]
    return "\n".join(parts) if parts else None


def _convert_entry(entry: feedparser.FeedParserDict, base_url: str) -> Entry:
    link = _resolve(base_url, _clean(entry.get("link")))
    return Entry(
        id=_clean(entry.get("id")) or link,
        title=_clean(entry.get("title")),
        link=link,
        summary=_clean(entry.get("summary")),
        content=_entry_content(entry),
        author=_clean(entry.get("author")),
    )


def _parse_failure(result: feedparser.FeedParserDict) -> ParseError:
    exc = result.get("bozo_exception")
    line = column = 0
    if exc is not None and hasattr(exc, "getLineNumber"):
        line = exc.getLineNumber() or 0
        column = exc.getColumnNumber() or 0
    message = str(exc) if exc is not None else "Not a feed"
    return ParseError(message, line=line, column=column)


def parse_feed(raw: bytes, base_url: str) -> Feed:
    """Parse an RSS, Atom or RDF document.

    Raises :class:`ParseError` when the document yields no recognisable feed.
    Relative links are resolved against ``base_url``.
    """

    result = feedparser.parse(raw, response_headers={"content-location": base_url})
    if not result.get("version") and not result.entries:
        raise _parse_failure(result)
    info = result.feed
    image = info.get("image") or {}
    return Feed(
        title=_clean(info.get("title")),
        link=_resolve(base_url, _clean(info.get("link"))),
        icon=_resolve(base_url, _clean(info.get("icon")) or _clean(image.get("href"))),
        entries=tuple(_convert_entry(entry, base_url) for entry in result.entries),
    )


__all__ = ["Entry", "Feed", "parse_feed"]
