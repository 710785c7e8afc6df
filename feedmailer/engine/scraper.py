"""Evaluate scrape programs over fetched HTML."""

from __future__ import annotations

from typing import Any
from urllib.parse import urljoin

from selectolax.parser import HTMLParser, Node

from ..config import ScrapeProgram, ScrapeRule
from ..errors import ParseError
from .parser import Entry, Feed

# Value read from a node when the selector carries no explicit ``::mode``
_DEFAULT_MODES = {
    "link": "attr:href",
    "feed_link": "attr:href",
    "feed_icon": "attr:src",
    "content": "html",
}
_URL_FIELDS = frozenset({"link", "feed_link", "feed_icon"})


def _split_selector(selector: str) -> tuple[str, str | None]:
    if "::" in selector:
        css, mode = selector.split("::", 1)
        return css.strip(), mode.strip().lower()
    return selector.strip(), None


def _node_value(node: Node, mode: str) -> str | None:
    if mode == "html":
        value = node.html
    elif mode.startswith("attr:"):
        value = node.attributes.get(mode.split(":", 1)[1])
    else:
        value = node.text(separator=" ", strip=True)
    if value is None:
        return None
    value = value.strip()
    return value or None


class Scraper:
    """Run a :class:`ScrapeProgram` against one HTML document."""

    def __init__(self, program: ScrapeProgram) -> None:
        self.program = program

    def scrape(self, raw: bytes | str, base_url: str) -> Feed:
        html = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw
        if not html.strip():
            raise ParseError("Empty document")
        tree = HTMLParser(html)
        root = tree.root
        if root is None:
            raise ParseError("Document has no root element")

        feed_fields: dict[str, str] = {}
        entries: list[dict[str, str]] = []
        self._run(self.program.rules, root, feed_fields, entries, base_url)
        return Feed(
            title=feed_fields.get("feed_title"),
            link=feed_fields.get("feed_link"),
            icon=feed_fields.get("feed_icon"),
            entries=tuple(self._build_entry(fields) for fields in entries),
        )

    def _run(
        self,
        rules: tuple[ScrapeRule, ...],
        node: Node,
        target: dict[str, str],
        entries: list[dict[str, str]],
        base_url: str,
    ) -> None:
        for rule in rules:
            css, mode = _split_selector(rule.select)
            for match in node.css(css):
                self._assign(rule, match, mode, target, base_url)
                if rule.entry is not None:
                    entry_fields: dict[str, str] = {}
                    self._run(rule.entry, match, entry_fields, entries, base_url)
                    entries.append(entry_fields)
                self._run(rule.rules, match, target, entries, base_url)

    @staticmethod
    def _assign(
        rule: ScrapeRule, node: Node, mode: str | None, target: dict[str, str], base_url: str
    ) -> None:
        for name in rule.fields:
            if name in target:
                continue
            value = _node_value(node, mode or _DEFAULT_MODES.get(name, "text"))
            if value is None and mode is None and name in _URL_FIELDS:
                value = _node_value(node, "text")
            if value is None:
                continue
            target[name] = urljoin(base_url, value) if name in _URL_FIELDS else value

    @staticmethod
    def _build_entry(fields: dict[str, Any]) -> Entry:
        link = fields.get("link")
        return Entry(
            id=fields.get("id") or link,
            title=fields.get("title"),
            link=link,
            summary=fields.get("summary"),
            content=fields.get("content"),
        )


def scrape(raw: bytes | str, base_url: str, program: ScrapeProgram) -> Feed:
    return Scraper(program).scrape(raw, base_url)


__all__ = ["Scraper", "scrape"]
