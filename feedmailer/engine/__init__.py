"""Engine components: refresh policy → fetch → parse → dedup → filter → compose."""

from .check import (
    CheckCrashed,
    CheckResult,
    CheckState,
    FetchFailed,
    ParseFailed,
    Updated,
    Uptodate,
    check_source,
)
from .compose import Notification
from .fetcher import Fetcher
from .parser import Entry, Feed, parse_feed
from .refresh import is_due
from .scraper import Scraper
from .seen import SeenSet, record_check

__all__ = [
    "CheckCrashed",
    "CheckResult",
    "CheckState",
    "Entry",
    "Feed",
    "FetchFailed",
    "Fetcher",
    "Notification",
    "ParseFailed",
    "Scraper",
    "SeenSet",
    "Updated",
    "Uptodate",
    "check_source",
    "is_due",
    "parse_feed",
    "record_check",
]
