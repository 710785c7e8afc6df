"""Per-source record of entry identifiers already notified.

An identifier is either present (seen in the latest fetch) or tombstoned with
the time it disappeared from the source. Tombstones are kept for
``RETENTION_SECONDS`` so an entry that briefly drops out of a feed and comes
back is not notified twice.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Iterable, Iterator, Mapping

RETENTION_SECONDS = 30 * 24 * 3600


@dataclass(frozen=True)
class SeenSet:
    """Immutable mapping of identifier to removal timestamp (``None`` while present)."""

    _entries: Mapping[str, int | None] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "_entries", MappingProxyType(dict(self._entries)))

    @classmethod
    def of(cls, ids: Iterable[str]) -> "SeenSet":
        return cls({entry_id: None for entry_id in ids})

    def is_seen(self, entry_id: str) -> bool:
        return entry_id in self._entries

    def is_present(self, entry_id: str) -> bool:
        return entry_id in self._entries and self._entries[entry_id] is None

    def removed_at(self, entry_id: str) -> int | None:
        return self._entries.get(entry_id)

    def __contains__(self, entry_id: object) -> bool:
        return entry_id in self._entries

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SeenSet):
            return NotImplemented
        return dict(self._entries) == dict(other._entries)

    def __hash__(self) -> int:
        return hash(frozenset(self._entries.items()))

    def __repr__(self) -> str:
        return f"SeenSet({dict(self._entries)!r})"

    def items(self) -> Iterable[tuple[str, int | None]]:
        return self._entries.items()

    def record_check(self, now: int, observed_ids: Iterable[str]) -> "SeenSet":
        return record_check(now, observed_ids, self)

    # ------------------------------------------------------------------
    # State file encoding: bare id while present, [id, removed_at] once tombstoned
    # ------------------------------------------------------------------
    def to_json(self) -> list[Any]:
        encoded: list[Any] = []
        for entry_id in sorted(self._entries):
            removed = self._entries[entry_id]
            encoded.append(entry_id if removed is None else [entry_id, removed])
        return encoded

    @classmethod
    def from_json(cls, payload: Iterable[Any]) -> "SeenSet":
        entries: dict[str, int | None] = {}
        for item in payload:
            if isinstance(item, str):
                entries[item] = None
            elif isinstance(item, (list, tuple)) and len(item) == 2:
                entries[str(item[0])] = int(item[1])
            else:
                raise ValueError(f"Malformed seen entry: {item!r}")
        return cls(entries)


def record_check(now: int, observed_ids: Iterable[str], store: SeenSet) -> SeenSet:
    """Return the store after a check at ``now`` that observed ``observed_ids``."""

    observed = set(observed_ids)
    expiry = now - RETENTION_SECONDS
    updated: dict[str, int | None] = {}
    for entry_id, removed in store.items():
        if entry_id in observed:
            continue
        if removed is None:
            updated[entry_id] = now
        elif removed > expiry:
            updated[entry_id] = removed
    for entry_id in observed:
        updated[entry_id] = None
    return SeenSet(updated)


__all__ = ["RETENTION_SECONDS", "SeenSet", "record_check"]
