"""Build notifications for new entries."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from html import escape
from typing import Any, Sequence

from ..config import FeedOptions
from .parser import Entry, Feed


@dataclass(frozen=True, slots=True)
class Notification:
    """One outgoing message; ``to`` overrides the configured default address."""

    sender: str
    subject: str
    body: str
    to: str | None = None

    def to_json(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_json(cls, payload: dict[str, Any]) -> "Notification":
        return cls(
            sender=str(payload["sender"]),
            subject=str(payload["subject"]),
            body=str(payload["body"]),
            to=payload.get("to"),
        )


def single_line(text: str) -> str:
    """Collapse whitespace runs, newlines included; mail headers are one line."""

    return " ".join(text.split())


def entry_subject(entry: Entry) -> str:
    for candidate in (entry.title, entry.link):
        if candidate and candidate.strip():
            return single_line(candidate)
    return "New entry"


def render_entry(entry: Entry, options: FeedOptions) -> str:
    title = escape(entry_subject(entry))
    if entry.link:
        heading = f'<h3><a href="{escape(entry.link, quote=True)}">{title}</a></h3>'
    else:
        heading = f"<h3>{title}</h3>"
    parts = [heading]
    if entry.author:
        parts.append(f"<p><em>{escape(entry.author)}</em></p>")
    body = entry.content or entry.summary
    if body and not options.no_content:
        parts.append(f"<div>{body}</div>")
    return "\n".join(parts)


def _with_label(body: str, options: FeedOptions) -> str:
    if not options.label:
        return body
    return f"{body}\n<p><small>{escape(options.label)}</small></p>"


def compose_single(
    sender: str, feed: Feed, options: FeedOptions, new_entries: Sequence[Entry]
) -> list[Notification]:
    """One notification per new entry."""

    return [
        Notification(
            sender=sender,
            subject=entry_subject(entry),
            body=_with_label(render_entry(entry, options), options),
            to=options.to,
        )
        for entry in new_entries
    ]


def compose_digest(
    sender: str, feed: Feed, options: FeedOptions, new_entries: Sequence[Entry]
) -> list[Notification]:
    """A single notification covering every new entry, in feed order."""

    if not new_entries:
        return []
    sections = "\n<hr>\n".join(render_entry(entry, options) for entry in new_entries)
    count = len(new_entries)
    subject = f"{sender} ({count} new entr{'y' if count == 1 else 'ies'})"
    return [
        Notification(
            sender=sender,
            subject=subject,
            body=_with_label(sections, options),
            to=options.to,
        )
    ]


__all__ = [
    "Notification",
    "compose_digest",
    "compose_single",
    "entry_subject",
    "render_entry",
    "single_line",
]
