from __future__ import annotations

import pytest

from feedmailer.engine.seen import RETENTION_SECONDS, SeenSet, record_check

T = 1_700_000_000
DAY = 24 * 3600


def test_record_check_marks_observed_present_and_tombstones_missing() -> None:
    store = SeenSet.of(["a", "b"])
    updated = record_check(T, ["b", "c"], store)

    assert updated.is_present("b")
    assert updated.is_present("c")
    assert updated.removed_at("a") == T
    assert updated.is_seen("a")
    # the input is never modified
    assert store == SeenSet.of(["a", "b"])


def test_reappearing_entry_clears_tombstone() -> None:
    store = record_check(T, [], SeenSet.of(["a"]))
    assert store.removed_at("a") == T
    back = record_check(T + 5 * DAY, ["a"], store)
    assert back.is_present("a")
    assert back.removed_at("a") is None


def test_tombstone_keeps_original_removal_date() -> None:
    store = record_check(T, [], SeenSet.of(["a"]))
    later = record_check(T + 10 * DAY, ["b"], store)
    assert later.removed_at("a") == T


def test_tombstone_purged_at_retention_boundary() -> None:
    store = record_check(T, [], SeenSet.of(["a"]))
    before = record_check(T + RETENTION_SECONDS - 1, [], store)
    assert "a" in before
    assert before.removed_at("a") == T
    at_boundary = record_check(T + RETENTION_SECONDS, [], before)
    assert "a" not in at_boundary
    assert len(at_boundary) == 0


def test_observed_ids_are_never_tombstoned() -> None:
    store = SeenSet({"a": T - 40 * DAY, "b": T - DAY, "c": None})
    updated = store.record_check(T, ["a", "b", "c"])
    assert all(updated.is_present(entry_id) for entry_id in ("a", "b", "c"))


def test_json_encoding_roundtrip() -> None:
    store = SeenSet({"present": None, "gone": T})
    encoded = store.to_json()
    assert encoded == [["gone", T], "present"]
    assert SeenSet.from_json(encoded) == store


def test_from_json_rejects_malformed_items() -> None:
    with pytest.raises(ValueError):
        SeenSet.from_json([["only-one"]])
    with pytest.raises(ValueError):
        SeenSet.from_json([42])
