"""Configuration package exports."""

from .loader import ConfigLocator, ConfigRepository
from .models import (
    AppConfig,
    BundleSource,
    DailyAt,
    EntryFilter,
    Every,
    FeedOptions,
    FilterTarget,
    PlainSource,
    RefreshRule,
    ScrapeProgram,
    ScrapeRule,
    ScrapedSource,
    SmtpConfig,
    SourceConfig,
    SourceDescriptor,
    Weekday,
    WeeklyAt,
)

__all__ = [
    "AppConfig",
    "BundleSource",
    "ConfigLocator",
    "ConfigRepository",
    "DailyAt",
    "EntryFilter",
    "Every",
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
]
