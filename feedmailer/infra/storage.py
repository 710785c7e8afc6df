"""Persisted per-source state and undelivered notifications."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import structlog

from ..engine.check import CheckState
from ..engine.compose import Notification
from ..engine.seen import SeenSet


@dataclass(slots=True)
class PersistentData:
    """Everything carried from one run to the next."""

    feed_data: dict[str, CheckState] = field(default_factory=dict)
    unsent: list[Notification] = field(default_factory=list)

    def to_json(self) -> dict[str, Any]:
        return {
            "feed_data": {
                url: {"last_update": state.last_update, "seen": state.seen.to_json()}
                for url, state in sorted(self.feed_data.items())
            },
            "unsent": [notification.to_json() for notification in self.unsent],
        }

    @classmethod
    def from_json(cls, payload: dict[str, Any]) -> "PersistentData":
        """Decode the state file layout; a malformed shape raises ``ValueError``."""

        raw_feeds = payload.get("feed_data") or {}
        if not isinstance(raw_feeds, dict):
            raise ValueError("`feed_data` must be a mapping of url to state")
        feed_data: dict[str, CheckState] = {}
        for url, item in raw_feeds.items():
            if not isinstance(item, dict):
                raise ValueError(f"Malformed state for {url}")
            feed_data[url] = CheckState(
                last_update=int(item["last_update"]),
                seen=SeenSet.from_json(item.get("seen") or []),
            )
        raw_unsent = payload.get("unsent") or []
        if not isinstance(raw_unsent, list) or not all(isinstance(item, dict) for item in raw_unsent):
            raise ValueError("`unsent` must be a list of notifications")
        unsent = [Notification.from_json(item) for item in raw_unsent]
        return cls(feed_data=feed_data, unsent=unsent)


class StateStore:
    """Read and atomically replace the JSON state file."""

    def __init__(self, path: Path, logger: structlog.BoundLogger | None = None) -> None:
        self.path = path
        self.logger = logger or structlog.get_logger("feedmailer.storage")

    def load(self) -> PersistentData:
        """Missing or unreadable state loads as empty, like a first run."""

        if not self.path.exists():
            return PersistentData()
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
            if not isinstance(payload, dict):
                raise ValueError("state file must contain a mapping")
            return PersistentData.from_json(payload)
        except (OSError, ValueError, KeyError, TypeError) as exc:
            self.logger.warning("state_unreadable", path=str(self.path), error=str(exc))
            return PersistentData()

    def save(self, data: PersistentData) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        tmp_path.write_text(
            json.dumps(data.to_json(), ensure_ascii=False, indent=2), encoding="utf-8"
        )
        os.replace(tmp_path, self.path)


__all__ = ["PersistentData", "StateStore"]
