from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from feedmailer.engine import CheckCrashed, CheckState, FetchFailed, Notification, SeenSet, Updated, Uptodate
from feedmailer.infra import Mailer, PersistentData, StateStore
from feedmailer.orchestrator import Orchestrator, check_all

NOW = 1_700_000_000
HOUR = 3600
A = "https://a.example/feed.xml"
B = "https://b.example/feed.xml"
C = "https://c.example/feed.xml"
GONE = "https://gone.example/feed.xml"


def stale(*ids: str) -> CheckState:
    return CheckState(last_update=NOW - 7 * HOUR, seen=SeenSet.of(ids))


class FakeMailer:
    def __init__(self, failing: set[str] | None = None) -> None:
        self.failing = failing or set()
        self.sent: list[Notification] = []

    async def send_all(self, notifications):
        unsent = []
        for notification in notifications:
            if notification.subject in self.failing:
                unsent.append(notification)
            else:
                self.sent.append(notification)
        return unsent


class FakeFetcher:
    def __init__(self, fetch) -> None:
        self.fetch = fetch

    async def __aenter__(self) -> "FakeFetcher":
        return self

    async def __aexit__(self, *_exc_info) -> None:
        return None


def test_check_all_folds_in_source_order(make_source, fake_fetch, rss, rss_items) -> None:
    sources = [make_source(A), make_source(B), make_source(C)]
    fetch = fake_fetch({A: rss(rss_items(1, 2), title="A"), C: rss(rss_items(1, 3), title="C")})
    states = {A: stale("id-1"), B: stale("id-1"), C: stale("id-1"), GONE: stale("old")}

    batch = asyncio.run(check_all(NOW, states, sources, fetch))

    assert [url for url, _ in batch.log] == [A, B, C]
    assert isinstance(batch.log[1][1], FetchFailed)
    assert [(n.sender, n.subject) for n in batch.notifications] == [("A", "Entry 2"), ("C", "Entry 3")]
    assert batch.states[A].last_update == NOW
    assert batch.states[C].last_update == NOW
    # failed and unconfigured sources keep their previous state
    assert batch.states[B] == states[B]
    assert batch.states[GONE] == states[GONE]
    # the input mapping is left alone
    assert states[A].last_update == NOW - 7 * HOUR


def test_check_all_isolates_unexpected_errors(make_source, fake_fetch, rss, rss_items) -> None:
    sources = [make_source(A), make_source(B)]
    fetch = fake_fetch({A: RuntimeError("boom"), B: rss(rss_items(1))})
    batch = asyncio.run(check_all(NOW, {}, sources, fetch))

    crashed = batch.log[0][1]
    assert isinstance(crashed, CheckCrashed)
    assert "boom" in crashed.message
    assert A not in batch.states
    assert isinstance(batch.log[1][1], Updated)
    assert B in batch.states


def test_check_all_uptodate_sources_are_untouched(make_source, fake_fetch) -> None:
    fresh = CheckState(last_update=NOW - HOUR, seen=SeenSet.of(["id-1"]))
    fetch = fake_fetch({})
    batch = asyncio.run(check_all(NOW, {A: fresh}, [make_source(A)], fetch))
    assert isinstance(batch.log[0][1], Uptodate)
    assert batch.states[A] is fresh
    assert fetch.calls == []


def test_run_sends_and_persists(tmp_path: Path, make_config, fake_fetch, rss, rss_items) -> None:
    config = make_config(feeds=[A, C])
    store = StateStore(tmp_path / "state.json")
    leftover = Notification(sender="Old", subject="Leftover", body="<p>x</p>")
    store.save(PersistentData(feed_data={A: stale("id-1"), C: stale("id-1")}, unsent=[leftover]))

    mailer = FakeMailer(failing={"Entry 3"})
    fetch = fake_fetch({A: rss(rss_items(1, 2)), C: rss(rss_items(1, 3))})
    orchestrator = Orchestrator(config, store, mailer, fetcher_factory=lambda: FakeFetcher(fetch))

    summary = asyncio.run(orchestrator.run(NOW))

    assert summary.new_notifications == 2
    assert summary.sent == 2
    assert summary.unsent == 1
    assert [n.subject for n in mailer.sent] == ["Leftover", "Entry 2"]

    saved = store.load()
    assert [n.subject for n in saved.unsent] == ["Entry 3"]
    assert saved.feed_data[A].last_update == NOW
    assert saved.feed_data[A].seen.is_present("id-2")


def test_run_first_time_records_only(tmp_path: Path, make_config, fake_fetch, rss, rss_items) -> None:
    config = make_config(feeds=[A])
    store = StateStore(tmp_path / "state.json")
    mailer = FakeMailer()
    fetch = fake_fetch({A: rss(rss_items(1, 2, 3))})
    orchestrator = Orchestrator(config, store, mailer, fetcher_factory=lambda: FakeFetcher(fetch))

    summary = asyncio.run(orchestrator.run(NOW))

    assert summary.new_notifications == 0
    assert mailer.sent == []
    assert sorted(store.load().feed_data[A].seen) == ["id-1", "id-2", "id-3"]


def test_dry_run_sends_nothing_and_keeps_state(tmp_path: Path, make_config, fake_fetch, rss, rss_items) -> None:
    config = make_config(feeds=[A])
    store = StateStore(tmp_path / "state.json")
    store.save(PersistentData(feed_data={A: stale("id-1")}))
    before = (tmp_path / "state.json").read_text(encoding="utf-8")

    mailer = FakeMailer()
    fetch = fake_fetch({A: rss(rss_items(1, 2))})
    orchestrator = Orchestrator(config, store, mailer, fetcher_factory=lambda: FakeFetcher(fetch))
    summary = asyncio.run(orchestrator.run(NOW, dry_run=True))

    assert summary.new_notifications == 1
    assert summary.sent == 0
    assert summary.unsent == 1
    assert mailer.sent == []
    assert (tmp_path / "state.json").read_text(encoding="utf-8") == before


class DelayedFetch:
    """Serve canned bodies, finishing each fetch after its own delay."""

    def __init__(self, responses, delays) -> None:
        self.responses = responses
        self.delays = delays
        self.completed: list[str] = []

    async def __call__(self, url: str) -> bytes:
        await asyncio.sleep(self.delays.get(url, 0))
        self.completed.append(url)
        return self.responses[url]


def test_fold_ignores_completion_order(make_source, rss, rss_items) -> None:
    sources = [make_source(A), make_source(B), make_source(C)]
    responses = {
        A: rss(rss_items(1, 2), title="A"),
        B: rss(rss_items(1, 4), title="B"),
        C: rss(rss_items(1, 3), title="C"),
    }
    states = {A: stale("id-1"), B: stale("id-1"), C: stale("id-1")}

    slow_first = DelayedFetch(responses, {A: 0.05, B: 0.02, C: 0})
    fast_first = DelayedFetch(responses, {A: 0, B: 0.02, C: 0.05})
    first = asyncio.run(check_all(NOW, states, sources, slow_first))
    second = asyncio.run(check_all(NOW, states, sources, fast_first))

    assert slow_first.completed == [C, B, A]
    assert fast_first.completed == [A, B, C]
    for batch in (first, second):
        assert [url for url, _ in batch.log] == [A, B, C]
        assert [n.sender for n in batch.notifications] == ["A", "B", "C"]
        assert list(batch.states) == [A, B, C]
    assert first == second


def test_multiline_title_does_not_abort_the_run(
    tmp_path: Path, make_config, fake_fetch, rss, rss_items, monkeypatch: pytest.MonkeyPatch
) -> None:
    config = make_config(feeds=[A])
    store = StateStore(tmp_path / "state.json")
    store.save(PersistentData(feed_data={A: stale("id-1")}))

    items = rss_items(1) + [{"title": "Line one\nline two", "guid": "id-2", "link": "https://example.com/2"}]
    fetch = fake_fetch({A: rss(items)})
    mailer = Mailer(config.smtp, config.address)
    delivered: list = []

    class RecordingSMTP:
        def __enter__(self):
            return self

        def __exit__(self, *_exc_info) -> None:
            return None

        def send_message(self, message) -> None:
            delivered.append(message)

    monkeypatch.setattr(mailer, "_connect", RecordingSMTP)
    orchestrator = Orchestrator(config, store, mailer, fetcher_factory=lambda: FakeFetcher(fetch))

    summary = asyncio.run(orchestrator.run(NOW))

    assert summary.sent == 1
    assert summary.unsent == 0
    assert [message["Subject"] for message in delivered] == ["Line one line two"]
    saved = store.load()
    assert saved.feed_data[A].last_update == NOW
    assert saved.feed_data[A].seen.is_present("id-2")
