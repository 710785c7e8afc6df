"""Pytest configuration providing shared builders for configs, feeds and fetchers."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Iterable, Mapping
from xml.sax.saxutils import escape

import pytest

from feedmailer.config import AppConfig, ConfigLocator, ConfigRepository, SourceConfig
from feedmailer.errors import FetchError


def _rss_item(item: Mapping[str, str]) -> str:
    parts = ["<item>"]
    for tag in ("title", "link", "guid", "description", "author"):
        if tag not in item:
            continue
        # opaque guids, otherwise they are resolved as URLs
        opening = 'guid isPermaLink="false"' if tag == "guid" else tag
        parts.append(f"<{opening}>{escape(item[tag])}</{tag}>")
    parts.append("</item>")
    return "".join(parts)


def build_rss(items: Iterable[Mapping[str, str]], title: str | None = "Example Feed") -> bytes:
    channel_title = f"<title>{escape(title)}</title>" if title else ""
    body = "".join(_rss_item(item) for item in items)
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        '<rss version="2.0"><channel>'
        f"{channel_title}<link>https://example.com/</link><description>d</description>"
        f"{body}</channel></rss>"
    ).encode("utf-8")


@pytest.fixture
def rss() -> Callable[..., bytes]:
    return build_rss


@pytest.fixture
def rss_items() -> Callable[..., list[dict[str, str]]]:
    """Items with guid ``id-N`` and title ``Entry N``."""

    def _builder(*numbers: int, **extra: str) -> list[dict[str, str]]:
        return [
            {
                "title": f"Entry {n}",
                "link": f"https://example.com/posts/{n}",
                "guid": f"id-{n}",
                "description": f"Body of entry {n}",
                **extra,
            }
            for n in numbers
        ]

    return _builder


@pytest.fixture
def make_source() -> Callable[..., SourceConfig]:
    def _builder(url: str = "https://example.com/feed.xml", **options: Any) -> SourceConfig:
        return SourceConfig.model_validate({"url": url, **options})

    return _builder


@pytest.fixture
def config_payload() -> Callable[..., dict[str, Any]]:
    def _builder(**overrides: Any) -> dict[str, Any]:
        base: dict[str, Any] = {
            "smtp": {"server": "smtp.example.com", "port": 587},
            "address": "reader@example.com",
            "feeds": ["https://example.com/feed.xml"],
        }
        base.update(overrides)
        return base

    return _builder


@pytest.fixture
def make_config(config_payload) -> Callable[..., AppConfig]:
    def _builder(**overrides: Any) -> AppConfig:
        return AppConfig.model_validate(config_payload(**overrides))

    return _builder


class FakeFetch:
    """Async fetch capability serving canned bodies and recording calls."""

    def __init__(self, responses: Mapping[str, bytes | Exception]) -> None:
        self.responses = dict(responses)
        self.calls: list[str] = []

    async def __call__(self, url: str) -> bytes:
        self.calls.append(url)
        response = self.responses.get(url)
        if response is None:
            raise FetchError.http(404)
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture
def fake_fetch() -> Callable[[Mapping[str, bytes | Exception]], FakeFetch]:
    return FakeFetch


@pytest.fixture
def temp_config_repository(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> ConfigRepository:
    monkeypatch.setenv("FEEDMAILER_HOME", str(tmp_path))
    return ConfigRepository(ConfigLocator(project_root=tmp_path))

