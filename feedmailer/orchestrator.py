"""Run every source check concurrently and fold the results into the next state."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import tzinfo
from typing import Callable, Mapping, Sequence

import structlog

from .config import AppConfig, SourceConfig
from .engine import (
    CheckCrashed,
    CheckResult,
    CheckState,
    FetchFailed,
    Fetcher,
    Notification,
    ParseFailed,
    Updated,
    Uptodate,
    check_source,
)
from .engine.check import FetchFn
from .infra import Mailer, PersistentData, StateStore
from .logging_conf import source_logger


@dataclass(slots=True)
class BatchResult:
    """Outcome of one pass over every configured source."""

    states: dict[str, CheckState]
    notifications: list[Notification] = field(default_factory=list)
    log: list[tuple[str, CheckResult]] = field(default_factory=list)


@dataclass(slots=True)
class RunSummary:
    log: list[tuple[str, CheckResult]]
    new_notifications: int
    sent: int
    unsent: int


def _log_result(url: str, result: CheckResult) -> None:
    logger = source_logger(url)
    if isinstance(result, Updated):
        logger.info("feed_updated", new_entries=result.count, seen=len(result.seen))
    elif isinstance(result, Uptodate):
        logger.debug("feed_uptodate")
    elif isinstance(result, FetchFailed):
        logger.warning(
            "feed_fetch_failed", error=str(result.error), status_code=result.error.status_code
        )
    elif isinstance(result, ParseFailed):
        logger.warning(
            "feed_parse_failed",
            line=result.error.line,
            column=result.error.column,
            error=result.error.message,
        )
    else:
        logger.error("feed_crashed", error=result.message)


async def check_all(
    now: int,
    states: Mapping[str, CheckState],
    sources: Sequence[SourceConfig],
    fetch: FetchFn,
    *,
    tz: tzinfo | None = None,
) -> BatchResult:
    """Check every source and fold the results in source order.

    Completion order never matters: states, notifications and log come out
    the same for identical inputs. Sources missing from ``sources`` keep
    their state untouched.
    """

    async def _guarded(source: SourceConfig) -> CheckResult:
        try:
            return await check_source(now, source, states.get(source.url), fetch, tz=tz)
        except Exception as exc:  # noqa: BLE001
            source_logger(source.url).exception("feed_check_exception")
            return CheckCrashed(f"{type(exc).__name__}: {exc}")

    results = await asyncio.gather(*(_guarded(source) for source in sources))

    batch = BatchResult(states=dict(states))
    for source, result in zip(sources, results):
        _log_result(source.url, result)
        batch.log.append((source.url, result))
        if isinstance(result, Updated):
            batch.states[source.url] = CheckState(last_update=now, seen=result.seen)
            batch.notifications.extend(result.notifications)
    return batch


class Orchestrator:
    """Central coordinator: load state, check sources, deliver, persist."""

    def __init__(
        self,
        config: AppConfig,
        store: StateStore,
        mailer: Mailer | None = None,
        *,
        fetcher_factory: Callable[[], Fetcher] | None = None,
        tz: tzinfo | None = None,
    ) -> None:
        self.config = config
        self.store = store
        self.mailer = mailer or Mailer(config.smtp, config.address)
        self.fetcher_factory = fetcher_factory or self._default_fetcher
        self.tz = tz
        self.logger = structlog.get_logger("feedmailer").bind(component="orchestrator")

    def _default_fetcher(self) -> Fetcher:
        return Fetcher(
            concurrency=self.config.fetch_concurrency,
            timeout=self.config.fetch_timeout,
            user_agent=self.config.user_agent,
        )

    async def check(self, now: int, data: PersistentData) -> BatchResult:
        async with self.fetcher_factory() as fetcher:
            return await check_all(now, data.feed_data, self.config.feeds, fetcher.fetch, tz=self.tz)

    async def run(self, now: int, *, dry_run: bool = False) -> RunSummary:
        """One full run; with ``dry_run`` nothing is sent and state is not saved."""

        data = self.store.load()
        batch = await self.check(now, data)
        self.logger.info("run_checked", sources=len(batch.log), new_entries=len(batch.notifications))

        pending = [*data.unsent, *batch.notifications]
        if dry_run:
            return RunSummary(
                log=batch.log, new_notifications=len(batch.notifications), sent=0, unsent=len(pending)
            )

        unsent = await self.mailer.send_all(pending)
        if unsent:
            self.logger.warning("run_unsent", count=len(unsent))
        self.store.save(PersistentData(feed_data=batch.states, unsent=unsent))
        return RunSummary(
            log=batch.log,
            new_notifications=len(batch.notifications),
            sent=len(pending) - len(unsent),
            unsent=len(unsent),
        )


__all__ = ["BatchResult", "Orchestrator", "RunSummary", "check_all"]
