from __future__ import annotations

import pytest

from feedmailer.engine.parser import parse_feed
from feedmailer.errors import ParseError

BASE = "https://example.com/feed.xml"

ATOM = b"""<?xml version="1.0" encoding="utf-8"?>
<feed xmlns="http://www.w3.org/2005/Atom">
  <title>Atom Example</title>
  <link href="https://example.com/"/>
  <id>tag:example.com,2024:feed</id>
  <updated>2024-03-01T00:00:00Z</updated>
  <entry>
    <title>Hello</title>
    <link href="https://example.com/hello"/>
    <id>tag:example.com,2024:1</id>
    <updated>2024-03-01T00:00:00Z</updated>
    <author><name>Jane</name></author>
    <summary>Short</summary>
    <content type="html">&lt;p&gt;Long body&lt;/p&gt;</content>
  </entry>
</feed>
"""


def test_parse_rss(rss, rss_items) -> None:
    feed = parse_feed(rss(rss_items(1, 2, author="writer@example.com (Writer)")), BASE)

    assert feed.title == "Example Feed"
    assert [entry.id for entry in feed.entries] == ["id-1", "id-2"]
    first = feed.entries[0]
    assert first.title == "Entry 1"
    assert first.link == "https://example.com/posts/1"
    assert first.summary == "Body of entry 1"
    assert first.author


def test_parse_atom_content_and_author() -> None:
    feed = parse_feed(ATOM, BASE)
    assert feed.title == "Atom Example"
    (entry,) = feed.entries
    assert entry.id == "tag:example.com,2024:1"
    assert entry.author == "Jane"
    assert entry.summary == "Short"
    assert entry.content is not None
    assert "Long body" in entry.content


def test_relative_links_are_resolved(rss) -> None:
    feed = parse_feed(rss([{"title": "Relative", "link": "/posts/7"}]), BASE)
    (entry,) = feed.entries
    assert entry.link == "https://example.com/posts/7"
    # no guid: the link identifies the entry
    assert entry.id == entry.link


def test_entry_without_id_or_link(rss) -> None:
    feed = parse_feed(rss([{"title": "Nothing to track"}]), BASE)
    (entry,) = feed.entries
    assert entry.id is None
    assert entry.title == "Nothing to track"


def test_empty_channel_is_a_feed(rss) -> None:
    feed = parse_feed(rss([]), BASE)
    assert feed.entries == ()


@pytest.mark.parametrize("raw", [b"definitely not a feed", b"<html><body><p>hi</p></body></html>"])
def test_garbage_raises_parse_error(raw: bytes) -> None:
    with pytest.raises(ParseError):
        parse_feed(raw, BASE)
