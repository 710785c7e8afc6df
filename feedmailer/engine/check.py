"""Check one source: due-ness, fetch, parse, dedup, filter and compose."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import tzinfo
from typing import Awaitable, Callable, Protocol, Sequence, Union
from urllib.parse import urlparse

from ..config import (
    BundleSource,
    FeedOptions,
    PlainSource,
    ScrapedSource,
    SourceConfig,
    SourceDescriptor,
)
from ..errors import FetchError, ParseError
from .compose import Notification, compose_digest, compose_single, single_line
from .filters import passes_filters
from .parser import Entry, Feed, parse_feed
from .refresh import is_due
from .scraper import Scraper
from .seen import SeenSet, record_check

FetchFn = Callable[[str], Awaitable[bytes]]


@dataclass(frozen=True, slots=True)
class CheckState:
    """What is persisted for a source between runs."""

    last_update: int
    seen: SeenSet = field(default_factory=SeenSet)


@dataclass(frozen=True, slots=True)
class Uptodate:
    pass


@dataclass(frozen=True, slots=True)
class FetchFailed:
    error: FetchError


@dataclass(frozen=True, slots=True)
class ParseFailed:
    error: ParseError


@dataclass(frozen=True, slots=True)
class Updated:
    seen: SeenSet
    notifications: tuple[Notification, ...] = ()

    @property
    def count(self) -> int:
        return len(self.notifications)


@dataclass(frozen=True, slots=True)
class CheckCrashed:
    """An unexpected exception escaped the pipeline for this source."""

    message: str


CheckResult = Union[Uptodate, FetchFailed, ParseFailed, Updated, CheckCrashed]


class SourceKind(Protocol):
    async def load(self, fetch: FetchFn, url: str) -> Feed: ...

    def compose(
        self, sender: str, feed: Feed, options: FeedOptions, new_entries: Sequence[Entry]
    ) -> list[Notification]: ...


class PlainKind:
    """Syndication feed, one notification per new entry."""

    async def load(self, fetch: FetchFn, url: str) -> Feed:
        raw = await fetch(url)
        return parse_feed(raw, url)

    def compose(
        self, sender: str, feed: Feed, options: FeedOptions, new_entries: Sequence[Entry]
    ) -> list[Notification]:
        return compose_single(sender, feed, options, new_entries)


class ScrapedKind(PlainKind):
    """HTML page read through a scrape program."""

    def __init__(self, scraper: Scraper) -> None:
        self.scraper = scraper

    async def load(self, fetch: FetchFn, url: str) -> Feed:
        raw = await fetch(url)
        return self.scraper.scrape(raw, url)


class BundleKind:
    """Loads like the wrapped kind, composes a single digest."""

    def __init__(self, inner: SourceKind) -> None:
        self.inner = inner

    async def load(self, fetch: FetchFn, url: str) -> Feed:
        return await self.inner.load(fetch, url)

    def compose(
        self, sender: str, feed: Feed, options: FeedOptions, new_entries: Sequence[Entry]
    ) -> list[Notification]:
        return compose_digest(sender, feed, options, new_entries)


def kind_for(descriptor: SourceDescriptor) -> SourceKind:
    if isinstance(descriptor, PlainSource):
        return PlainKind()
    if isinstance(descriptor, ScrapedSource):
        return ScrapedKind(Scraper(descriptor.program))
    if isinstance(descriptor, BundleSource):
        return BundleKind(kind_for(descriptor.inner))
    raise TypeError(f"Unknown source descriptor: {descriptor!r}")


def resolve_sender(options: FeedOptions, feed: Feed, url: str) -> str:
    """Title override, then feed title, then host, then the raw URL."""

    for candidate in (options.title, feed.title, urlparse(url).hostname, url):
        if candidate and candidate.strip():
            return single_line(candidate)
    return url


def select_new_entries(
    entries: Sequence[Entry], seen: SeenSet, options: FeedOptions
) -> tuple[list[str], list[Entry]]:
    """Return every identifier observed and the entries to notify, in feed order."""

    observed: list[str] = []
    fresh: list[Entry] = []
    notified: set[str] = set()
    for entry in entries:
        if entry.id is None:
            continue
        observed.append(entry.id)
        if seen.is_seen(entry.id) or entry.id in notified:
            continue
        if passes_filters(options.filters, entry):
            notified.add(entry.id)
            fresh.append(entry)
    return observed, fresh


async def check_source(
    now: int,
    source: SourceConfig,
    prior: CheckState | None,
    fetch: FetchFn,
    *,
    tz: tzinfo | None = None,
) -> CheckResult:
    """Run one check of ``source`` at ``now``.

    On fetch or parse failure the prior state is left untouched so the next
    run naturally retries. The first check of a source records its entries
    without notifying them.
    """

    options = source.options
    last_update = prior.last_update if prior is not None else None
    if not is_due(now, last_update, options.refresh, tz=tz):
        return Uptodate()

    kind = kind_for(source.source)
    try:
        feed = await kind.load(fetch, source.url)
    except FetchError as exc:
        return FetchFailed(exc)
    except ParseError as exc:
        return ParseFailed(exc)

    seen = prior.seen if prior is not None else SeenSet()
    observed, fresh = select_new_entries(feed.entries, seen, options)
    new_seen = record_check(now, observed, seen)

    sender = resolve_sender(options, feed, source.url)
    notifications = kind.compose(sender, feed, options, fresh)
    if prior is None:
        notifications = []
    return Updated(seen=new_seen, notifications=tuple(notifications))


__all__ = [
    "BundleKind",
    "CheckCrashed",
    "CheckResult",
    "CheckState",
    "FetchFailed",
    "FetchFn",
    "ParseFailed",
    "PlainKind",
    "ScrapedKind",
    "SourceKind",
    "Updated",
    "Uptodate",
    "check_source",
    "kind_for",
    "resolve_sender",
    "select_new_entries",
]
