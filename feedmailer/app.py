"""Typer CLI entrypoint for feedmailer."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Annotated, Optional, Sequence

import structlog
import typer
from rich import box
from rich.console import Console
from rich.table import Table

from .config import (
    AppConfig,
    ConfigLocator,
    ConfigRepository,
    DailyAt,
    Every,
    RefreshRule,
    SourceConfig,
    WeeklyAt,
)
from .engine import CheckCrashed, CheckResult, FetchFailed, ParseFailed, Updated, Uptodate
from .errors import ConfigError
from .infra import StateStore
from .logging_conf import configure_logging
from .orchestrator import Orchestrator, RunSummary
from .scheduler import APSchedulerAdapter

app = typer.Typer(
    help="feedmailer 命令行工具：检查订阅源并通过邮件推送新内容",
    no_args_is_help=True,
    rich_markup_mode=None,
)

console = Console()

ConfigArgument = Annotated[
    Optional[str],
    typer.Argument(help="配置文件路径（默认 feeds.yaml）", show_default=False, metavar="CONFIG"),
]
StateOption = Annotated[
    Optional[Path],
    typer.Option("--state", help="状态文件路径（默认 feed_datas.json）", show_default=False),
]


@dataclass
class AppState:
    locator: ConfigLocator
    repository: ConfigRepository
    verbose: bool = False


def build_state(verbose: bool) -> AppState:
    locator = ConfigLocator()
    repository = ConfigRepository(locator)
    locator.ensure_directories()
    configure_logging(verbose=verbose, log_dir=locator.logs_dir)
    return AppState(locator=locator, repository=repository, verbose=verbose)


def build_orchestrator(config: AppConfig, store: StateStore) -> Orchestrator:
    return Orchestrator(config, store)


def _get_state(ctx: typer.Context) -> AppState:
    state = ctx.obj
    if state is None:
        state = build_state(verbose=False)
        ctx.obj = state
    return state


def _load_config(state: AppState, config_path: Optional[str]) -> AppConfig:
    try:
        return state.repository.load(config_path)
    except ConfigError as exc:
        console.print("配置文件存在错误：", style="red")
        console.print(f"  {exc}", markup=False, highlight=False)
        raise typer.Exit(code=1) from exc


def _state_store(state: AppState, state_path: Optional[Path]) -> StateStore:
    return StateStore(state_path or state.locator.state_path())


def _format_refresh(rule: RefreshRule) -> str:
    if isinstance(rule, Every):
        return f"every {rule.hours:g}h"
    if isinstance(rule, DailyAt):
        return f"at {rule.hour:02d}:{rule.minute:02d}"
    if isinstance(rule, WeeklyAt):
        return f"{rule.weekday.value} {rule.hour:02d}:{rule.minute:02d}"
    return str(rule)


def _format_kind(source: SourceConfig) -> str:
    if source.kind == "bundle":
        return f"bundle ({source.source.inner.kind})"
    return source.kind


def describe_result(result: CheckResult) -> tuple[str, str]:
    """Return a (status, detail) pair for display."""

    if isinstance(result, Updated):
        return "updated", f"{result.count} new entries"
    if isinstance(result, Uptodate):
        return "uptodate", ""
    if isinstance(result, FetchFailed):
        return "fetch_error", str(result.error)
    if isinstance(result, ParseFailed):
        line, column = result.error.position
        return "parse_error", f"{line}:{column}: {result.error.message}"
    if isinstance(result, CheckCrashed):
        return "error", result.message
    return "unknown", repr(result)


def _render_sources_table(sources: Sequence[SourceConfig]) -> Table:
    table = Table(title=f"订阅源总览 · 共 {len(sources)} 个", box=box.SIMPLE_HEAD)
    table.add_column("URL", style="cyan", overflow="fold")
    table.add_column("类型", style="magenta")
    table.add_column("刷新策略", style="yellow")
    table.add_column("过滤器", style="green", justify="right")
    for source in sources:
        table.add_row(
            source.url,
            _format_kind(source),
            _format_refresh(source.options.refresh),
            str(len(source.options.filters)),
        )
    return table


def _render_run_table(summary: RunSummary) -> Table:
    table = Table(title="运行结果", box=box.SIMPLE_HEAD)
    table.add_column("URL", style="cyan", overflow="fold")
    table.add_column("状态", style="magenta")
    table.add_column("详情", overflow="fold")
    for url, result in summary.log:
        status, detail = describe_result(result)
        table.add_row(url, status, detail)
    return table


@app.callback()
def main(
    ctx: typer.Context, verbose: bool = typer.Option(False, "--verbose", help="开启调试日志", is_flag=True)
) -> None:
    ctx.obj = build_state(verbose)


@app.command("run", help="检查全部订阅源，发送新条目通知并保存状态。")
def run(
    ctx: typer.Context,
    config: ConfigArgument = None,
    check_config: bool = typer.Option(
        False, "--check-config", help="仅校验配置文件后退出，不执行抓取。", is_flag=True
    ),
    state_path: StateOption = None,
    dry_run: bool = typer.Option(False, "--dry-run", help="只检查不发送，也不保存状态。", is_flag=True),
    quiet: bool = typer.Option(False, "--quiet", help="只输出精简结果。", is_flag=True),
) -> None:
    state = _get_state(ctx)
    app_config = _load_config(state, config)
    if check_config:
        console.print(f"配置文件有效：共 {len(app_config.feeds)} 个订阅源。", style="green")
        raise typer.Exit(code=0)

    orchestrator = build_orchestrator(app_config, _state_store(state, state_path))
    summary = asyncio.run(orchestrator.run(int(time.time()), dry_run=dry_run))
    if not quiet:
        console.print(_render_run_table(summary))
    console.print(f"{summary.new_notifications} new entries")
    if summary.unsent:
        console.print(f"{summary.unsent} mails could not be sent", style="yellow")


@app.command("sources", help="查看配置中的订阅源清单。")
def sources(ctx: typer.Context, config: ConfigArgument = None) -> None:
    state = _get_state(ctx)
    app_config = _load_config(state, config)
    console.print(_render_sources_table(app_config.feeds))


@app.command("watch", help="常驻运行，按固定间隔重复执行 run。")
def watch(
    ctx: typer.Context,
    config: ConfigArgument = None,
    every: float = typer.Option(30.0, "--every", help="两次运行之间的分钟数。", min=1.0),
    state_path: StateOption = None,
) -> None:
    state = _get_state(ctx)
    # fail fast on an invalid config, later runs reload it from disk
    _load_config(state, config)
    logger = structlog.get_logger("feedmailer").bind(component="watch")

    def _tick() -> None:
        try:
            app_config = state.repository.load(config)
        except ConfigError as exc:
            logger.error("config_invalid", error=str(exc))
            return
        orchestrator = build_orchestrator(app_config, _state_store(state, state_path))
        summary = asyncio.run(orchestrator.run(int(time.time())))
        logger.info("run_finished", new_entries=summary.new_notifications, unsent=summary.unsent)

    adapter = APSchedulerAdapter()
    adapter.schedule_runs(_tick, every)
    console.print(f"每 {every:g} 分钟检查一次订阅源，按 Ctrl+C 退出。", style="dim")
    _tick()
    try:
        adapter.start()
    except (KeyboardInterrupt, SystemExit):
        adapter.shutdown()


if __name__ == "__main__":  # pragma: no cover
    app()
