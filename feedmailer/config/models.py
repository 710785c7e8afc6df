"""Pydantic models describing the feeds configuration file."""

from __future__ import annotations

import re
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

_TIME_PATTERN = re.compile(r"^\s*(\d{1,2}):(\d{1,2})\s*$")

FEED_FIELDS = frozenset({"feed_title", "feed_link", "feed_icon"})
ENTRY_FIELDS = frozenset({"id", "title", "link", "summary", "content"})


class Weekday(str, Enum):
    """Days accepted by weekly refresh rules, in ``datetime.weekday()`` order."""

    MON = "mon"
    TUE = "tue"
    WED = "wed"
    THU = "thu"
    FRI = "fri"
    SAT = "sat"
    SUN = "sun"

    @property
    def index(self) -> int:
        return list(Weekday).index(self)

    @classmethod
    def _missing_(cls, value: object) -> "Weekday | None":
        if isinstance(value, str):
            prefix = value.strip().lower()[:3]
            for member in cls:
                if member.value == prefix:
                    return member
        return None


class Every(BaseModel):
    """Refresh every ``hours`` hours after the last successful check."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: Literal["every"] = "every"
    hours: float = Field(gt=0)


class DailyAt(BaseModel):
    """Refresh once a day, after ``hour:minute``."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: Literal["daily"] = "daily"
    hour: int = Field(ge=0, le=23)
    minute: int = Field(ge=0, le=59)


class WeeklyAt(BaseModel):
    """Refresh once a week, after ``weekday hour:minute``."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: Literal["weekly"] = "weekly"
    weekday: Weekday
    hour: int = Field(ge=0, le=23)
    minute: int = Field(ge=0, le=59)


RefreshRule = Annotated[Union[Every, DailyAt, WeeklyAt], Field(discriminator="kind")]

DEFAULT_REFRESH = Every(hours=6)


def _parse_time(text: str) -> tuple[int, int]:
    match = _TIME_PATTERN.match(text)
    if not match:
        raise ValueError(f"Malformed time {text!r}, expected HH:MM")
    return int(match.group(1)), int(match.group(2))


def coerce_refresh(value: Any) -> Any:
    """Turn the config shorthands (hours, ``{at: ...}``) into a rule payload."""

    if isinstance(value, (Every, DailyAt, WeeklyAt)):
        return value
    if isinstance(value, bool):
        raise ValueError("refresh expects a number of hours or {at: HH:MM}")
    if isinstance(value, (int, float)):
        return {"kind": "every", "hours": value}
    if isinstance(value, str):
        try:
            return {"kind": "every", "hours": float(value)}
        except ValueError:
            hour, minute = _parse_time(value)
            return {"kind": "daily", "hour": hour, "minute": minute}
    if isinstance(value, dict):
        if "kind" in value:
            return value
        if "at" not in value:
            raise ValueError("refresh mapping requires an `at` key")
        unknown = set(value) - {"at", "weekday"}
        if unknown:
            raise ValueError(f"Unknown refresh option(s): {', '.join(sorted(map(str, unknown)))}")
        hour, minute = _parse_time(str(value["at"]))
        if value.get("weekday") is not None:
            weekday = Weekday(str(value["weekday"]))
            return {"kind": "weekly", "weekday": weekday, "hour": hour, "minute": minute}
        return {"kind": "daily", "hour": hour, "minute": minute}
    raise ValueError("refresh expects a number of hours or {at: HH:MM}")


class FilterTarget(str, Enum):
    TITLE = "title"
    CONTENT = "content"


class EntryFilter(BaseModel):
    """Regex filter; matches when ``pattern`` is found iff ``expected``."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    target: FilterTarget
    pattern: re.Pattern
    expected: bool = True

    @model_validator(mode="before")
    @classmethod
    def _from_shorthand(cls, data: Any) -> Any:
        # `{title: "regex", expected: false}` is the form used in config files
        if isinstance(data, dict) and "target" not in data:
            targets = [name for name in ("title", "content") if name in data]
            if len(targets) != 1:
                raise ValueError("filter expects exactly one of `title` or `content`")
            name = targets[0]
            unknown = set(data) - {name, "expected"}
            if unknown:
                raise ValueError(f"Unknown filter option(s): {', '.join(sorted(map(str, unknown)))}")
            return {
                "target": name,
                "pattern": data[name],
                "expected": data.get("expected", True),
            }
        return data


class ScrapeRule(BaseModel):
    """One step of a scrape program.

    For every node matching ``select`` under the current node, the node value
    is assigned to each of ``fields``; ``entry`` opens a new entry evaluated
    with its own rules and ``rules`` recurse with the current target.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    select: str
    fields: tuple[str, ...] = ()
    entry: tuple["ScrapeRule", ...] | None = None
    rules: tuple["ScrapeRule", ...] = ()

    @field_validator("select")
    @classmethod
    def _non_empty(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("select cannot be empty")
        return value.strip()

    @field_validator("fields", mode="before")
    @classmethod
    def _coerce_fields(cls, value: Any) -> Any:
        if isinstance(value, str):
            return (value,)
        return value


class ScrapeProgram(BaseModel):
    """Declarative, recursively composed rules extracting a feed from HTML."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    rules: tuple[ScrapeRule, ...]

    @model_validator(mode="before")
    @classmethod
    def _from_list(cls, data: Any) -> Any:
        if isinstance(data, list):
            return {"rules": data}
        if isinstance(data, dict) and "rules" not in data:
            return {"rules": [data]}
        return data

    @model_validator(mode="after")
    def _validate_fields(self) -> "ScrapeProgram":
        if not self.rules:
            raise ValueError("scraper needs at least one rule")
        self._check(self.rules, in_entry=False)
        return self

    def _check(self, rules: tuple[ScrapeRule, ...], *, in_entry: bool) -> None:
        allowed = ENTRY_FIELDS if in_entry else FEED_FIELDS
        for rule in rules:
            unknown = set(rule.fields) - allowed
            if unknown:
                raise ValueError(f"Invalid scraper target(s): {', '.join(sorted(unknown))}")
            if rule.entry is not None:
                if in_entry:
                    raise ValueError("entry rules cannot be nested")
                self._check(rule.entry, in_entry=True)
            self._check(rule.rules, in_entry=in_entry)


class PlainSource(BaseModel):
    """Syndication feed (RSS, Atom, RDF)."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: Literal["plain"] = "plain"
    url: str


class ScrapedSource(BaseModel):
    """Web page turned into a feed by a scrape program."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: Literal["scraped"] = "scraped"
    url: str
    program: ScrapeProgram


class BundleSource(BaseModel):
    """Wrap another source so every check produces at most one digest."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: Literal["bundle"] = "bundle"
    inner: Annotated[Union[PlainSource, ScrapedSource], Field(discriminator="kind")]

    @property
    def url(self) -> str:
        return self.inner.url


SourceDescriptor = Annotated[
    Union[PlainSource, ScrapedSource, BundleSource], Field(discriminator="kind")
]


class FeedOptions(BaseModel):
    """Per-source options."""

    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)

    refresh: RefreshRule = DEFAULT_REFRESH
    title: str | None = None
    label: str | None = None
    no_content: bool = False
    filters: tuple[EntryFilter, ...] = Field(default=(), alias="filter")
    to: str | None = None

    @field_validator("refresh", mode="before")
    @classmethod
    def _coerce_refresh(cls, value: Any) -> Any:
        return coerce_refresh(value)

    @field_validator("filters", mode="before")
    @classmethod
    def _coerce_filters(cls, value: Any) -> Any:
        if value is None:
            return ()
        if isinstance(value, dict):
            return (value,)
        return value


_SOURCE_KEYS = ("url", "scraper", "bundle")


class SourceConfig(BaseModel):
    """A configured source: descriptor plus options.

    Accepts the flat config form, a bare URL string or a mapping such as
    ``{url: ..., scraper: [...], bundle: true, refresh: 2}``.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    source: SourceDescriptor
    options: FeedOptions = Field(default_factory=FeedOptions)

    @model_validator(mode="before")
    @classmethod
    def _from_flat(cls, data: Any) -> Any:
        if isinstance(data, str):
            data = {"url": data}
        if not isinstance(data, dict) or "source" in data:
            return data
        payload = dict(data)
        url = payload.pop("url", None)
        if not isinstance(url, str) or not url.strip():
            raise ValueError("source requires a non-empty `url`")
        scraper = payload.pop("scraper", None)
        bundle = payload.pop("bundle", False)
        if scraper is not None:
            source: dict[str, Any] = {"kind": "scraped", "url": url.strip(), "program": scraper}
        else:
            source = {"kind": "plain", "url": url.strip()}
        if bundle:
            source = {"kind": "bundle", "inner": source}
        return {"source": source, "options": payload}

    @property
    def url(self) -> str:
        return self.source.url

    @property
    def kind(self) -> str:
        return self.source.kind


class SmtpConfig(BaseModel):
    """SMTP server used to deliver notifications."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    server: str
    port: int = 587
    username: str | None = None
    password: str | None = None
    # ignored when `ssl` is set, the session is then encrypted from the start
    starttls: bool = True
    ssl: bool = False
    from_address: str | None = None
    timeout: float = 30.0

    @model_validator(mode="after")
    def _validate_auth(self) -> "SmtpConfig":
        if (self.username is None) != (self.password is None):
            raise ValueError("smtp username and password must be given together")
        return self


class AppConfig(BaseModel):
    """Root of the feeds configuration file."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    smtp: SmtpConfig
    address: str
    default_refresh: RefreshRule | None = None
    fetch_concurrency: int = Field(default=5, ge=1)
    fetch_timeout: float = Field(default=30.0, gt=0)
    user_agent: str = "feedmailer/1.0"
    feeds: tuple[SourceConfig, ...]

    @field_validator("default_refresh", mode="before")
    @classmethod
    def _coerce_default_refresh(cls, value: Any) -> Any:
        if value is None:
            return None
        return coerce_refresh(value)

    @model_validator(mode="before")
    @classmethod
    def _apply_default_refresh(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        default = data.get("default_refresh")
        feeds = data.get("feeds")
        if feeds is None:
            raise ValueError("Missing field `feeds`")
        if isinstance(feeds, (str, dict)):
            feeds = [feeds]
        if default is None:
            return {**data, "feeds": feeds}
        patched: list[Any] = []
        for feed in feeds:
            if isinstance(feed, str):
                feed = {"url": feed}
            if isinstance(feed, dict) and "source" not in feed and "refresh" not in feed:
                feed = {**feed, "refresh": default}
            patched.append(feed)
        return {**data, "feeds": patched}

    @model_validator(mode="after")
    def _reject_duplicates(self) -> "AppConfig":
        seen: set[str] = set()
        for feed in self.feeds:
            if feed.url in seen:
                raise ValueError(f"Feed declared twice: {feed.url}")
            seen.add(feed.url)
        return self


__all__ = [
    "AppConfig",
    "BundleSource",
    "DEFAULT_REFRESH",
    "DailyAt",
    "ENTRY_FIELDS",
    "EntryFilter",
    "Every",
    "FEED_FIELDS",
    "FeedOptions",
    "FilterTarget",
    "PlainSource",
    "RefreshRule",
    "ScrapeProgram",
    "ScrapeRule",
    "ScrapedSource",
    "SmtpConfig",
    "SourceConfig",
    "SourceDescriptor",
    "Weekday",
    "WeeklyAt",
    "coerce_refresh",
]
