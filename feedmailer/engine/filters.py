"""Regex filters selecting which entries produce notifications."""

from __future__ import annotations

from typing import Iterable

from ..config import EntryFilter, FilterTarget
from .parser import Entry


def _target_text(entry: Entry, target: FilterTarget) -> str | None:
    if target is FilterTarget.TITLE:
        return entry.title
    parts = [part for part in (entry.summary, entry.content) if part]
    return "\n".join(parts) if parts else None


def filter_matches(entry_filter: EntryFilter, entry: Entry) -> bool:
    text = _target_text(entry, entry_filter.target)
    if text is None:
        # nothing to evaluate, never drop the entry because of missing metadata
        return True
    found = entry_filter.pattern.search(text) is not None
    return found == entry_filter.expected


def passes_filters(filters: Iterable[EntryFilter], entry: Entry) -> bool:
    """An entry passes when there are no filters or any of them matches."""

    filters = tuple(filters)
    if not filters:
        return True
    return any(filter_matches(entry_filter, entry) for entry_filter in filters)


__all__ = ["filter_matches", "passes_filters"]
