"""Typer CLI entrypoint for the link regex extractor."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional, Sequence

import typer
from rich import box
from rich.console import Console
from rich.table import Table
from rich.text import Text

from .config import ChunkPolicy, ConfigRepository, GlobalConfig
from .engine import BatchExecutor, Fetcher, ResultExporter, RetryPolicy
from .errors import InvalidInput, JobNotFound
from .infra import SQLiteJobStore, UserAgentPool, read_urls
from .jobs import JobEngine
from .logging_conf import available_job_logs, configure_logging, log_path, tail_log
from .models import AdvanceReport, Result
from .ui import ProgressReporter

app = typer.Typer(
    help="Fetch batches of URLs and extract regex matches from their page source.",
    no_args_is_help=True,
    rich_markup_mode=None,
)
job_app = typer.Typer(name="job", help="Create, run and export extraction jobs.", no_args_is_help=True)
log_app = typer.Typer(name="log", help="Inspect log files.", no_args_is_help=True)
app.add_typer(job_app, name="job")
app.add_typer(log_app, name="log")

console = Console()
PATTERN_HELP = "Regex, bare or /body/flags (delimited only when flags or \\/ are present)."


@dataclass
class AppState:
    repository: ConfigRepository
    config: GlobalConfig
    engine: JobEngine
    closers: list[Callable[[], None]] = field(default_factory=list)

    def close(self) -> None:
        for closer in self.closers:
            closer()
        self.closers.clear()


def build_state(verbose: bool) -> AppState:
    repository = ConfigRepository()
    global_config = repository.load_global_config()
    configure_logging(verbose=verbose)

    ua_pool = None
    if isinstance(global_config.user_agent_list, list) and global_config.user_agent_list:
        ua_pool = UserAgentPool(global_config.user_agent_list)

    store = SQLiteJobStore(repository.store_path())
    fetcher = Fetcher(global_config, ua_pool=ua_pool)
    executor = BatchExecutor(fetcher, RetryPolicy(backoff=global_config.retry_backoff))
    engine = JobEngine(store, executor, global_config)
    return AppState(
        repository=repository,
        config=global_config,
        engine=engine,
        closers=[fetcher.close, store.close],
    )


def _get_state(ctx: typer.Context) -> AppState:
    state = ctx.obj
    if state is None:
        state = build_state(verbose=False)
        ctx.obj = state
    return state


def _render_results_table(results: Sequence[Result], title: str | None = None) -> Table:
    table = Table(title=title, box=box.SIMPLE_HEAVY, show_lines=False)
    table.add_column("Source", style="cyan", overflow="fold")
    table.add_column("HTTP", justify="right")
    table.add_column("Error", style="red", overflow="fold")
    table.add_column("Matches", overflow="fold")
    for result in results:
        status_style = "green" if result.ok else "red"
        if result.matches:
            matches = Text("\n".join(result.matches))
        else:
            matches = Text("No matches", style="dim")
        table.add_row(
            Text(result.url),
            Text(str(result.http_status), style=status_style),
            Text(result.error),
            matches,
        )
    return table


def _progress_line(report: AdvanceReport) -> str:
    return f"{report.completed} / {report.total} completed ({report.progress_percent}%)"


def _create(state: AppState, urls_file: Path, pattern: str, concurrency, delay, retries) -> str:
    if not urls_file.exists():
        console.print(f"URL file not found: {urls_file}", style="red")
        raise typer.Exit(code=1)
    urls = read_urls(urls_file)
    try:
        job_id = state.engine.create_job(
            urls,
            pattern,
            concurrency=concurrency,
            delay_ms=delay,
            max_retries=retries,
        )
    except InvalidInput as exc:
        console.print(f"Cannot start job: {exc.message}", style="red")
        raise typer.Exit(code=1)
    total = state.engine.snapshot(job_id).total
    console.print(f"Job [bold]{job_id}[/bold] created with {total} URL(s).", style="green")
    return job_id


def _drive(state: AppState, job_id: str, policy: ChunkPolicy, quiet: bool) -> AdvanceReport | None:
    """Poll ``advance`` until the job is done; Ctrl-C stops after the current chunk."""

    try:
        snapshot = state.engine.snapshot(job_id)
    except JobNotFound:
        console.print(f"Job {job_id} not found or expired; nothing left to do.", style="yellow")
        return None

    chunk_size = state.engine.chunk_size_for(snapshot.concurrency, policy)
    progress = ProgressReporter(enabled=not quiet, console=console)
    progress.set_label(job_id[:14])
    progress.start(snapshot.total, completed=snapshot.completed)
    report: AdvanceReport | None = None
    try:
        while True:
            report = state.engine.poll(
                job_id,
                chunk_size,
                on_result=lambda result: progress.advance(result.ok, result.url),
            )
            if report.new_results and not quiet:
                progress.print(_render_results_table(report.new_results))
            if report.done:
                break
            time.sleep(state.config.poll_interval)
    except KeyboardInterrupt:
        progress.close()
        console.print(
            f"Stopped. Resume with `link-extractor job run {job_id}`.", style="yellow"
        )
        raise typer.Exit(code=130)
    finally:
        progress.close()
    counts = progress.summary()
    console.print(
        f"Finished: {_progress_line(report)}; this run: {counts['success']} ok, {counts['failed']} failed",
        style="green",
    )
    return report


def _export(state: AppState, job_id: str, output: Optional[Path], fmt: str) -> Path:
    if fmt not in ("csv", "json"):
        console.print(f"Unsupported export format: {fmt}", style="red")
        raise typer.Exit(code=1)
    try:
        results = state.engine.finalize(job_id)
    except JobNotFound:
        console.print(f"Job {job_id} not found or expired.", style="red")
        raise typer.Exit(code=1)
    path = output or state.repository.outputs_dir() / ResultExporter.default_filename(job_id, fmt)
    with ResultExporter(path, fmt=fmt) as exporter:
        count = exporter.export_many(results)
    console.print(f"Exported {count} result(s) to {path}", style="green")
    return path


@app.callback()
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", help="Enable debug logging.", is_flag=True),
) -> None:
    state = build_state(verbose)
    ctx.obj = state
    ctx.call_on_close(state.close)


@job_app.command("start", help="Create a job from a URL file (one URL per line, or a CSV).")
def job_start(
    ctx: typer.Context,
    urls_file: Path = typer.Argument(..., help="Text or CSV file holding the URLs."),
    pattern: str = typer.Option(..., "--pattern", "-p", help=PATTERN_HELP),
    concurrency: Optional[int] = typer.Option(None, "--concurrency", "-c", help="Parallel fetches (1-20)."),
    delay: Optional[int] = typer.Option(None, "--delay", "-d", help="Randomized delay ceiling in ms."),
    retries: Optional[int] = typer.Option(None, "--retries", "-r", help="Max retries per URL."),
) -> None:
    state = _get_state(ctx)
    _create(state, urls_file, pattern, concurrency, delay, retries)


@job_app.command("advance", help="Process the next chunk of a job once.")
def job_advance(
    ctx: typer.Context,
    job_id: str = typer.Argument(..., help="Job id printed by `job start`."),
    chunk_size: Optional[int] = typer.Option(None, "--chunk-size", "-n", help="URLs to take this call."),
) -> None:
    state = _get_state(ctx)
    try:
        report = state.engine.advance(job_id, chunk_size)
    except JobNotFound:
        console.print(f"Job {job_id} not found or expired; treating it as finished.", style="yellow")
        return
    except InvalidInput as exc:
        console.print(exc.message, style="red")
        raise typer.Exit(code=1)
    if report.new_results:
        console.print(_render_results_table(report.new_results))
    console.print(_progress_line(report), style="green" if report.done else "cyan")
    if report.done:
        console.print("Job done.", style="green")


@job_app.command("run", help="Poll a job until every URL is processed.")
def job_run(
    ctx: typer.Context,
    job_id: str = typer.Argument(..., help="Job id printed by `job start`."),
    policy: Optional[ChunkPolicy] = typer.Option(None, "--policy", help="Chunk per call: concurrency or single."),
    quiet: bool = typer.Option(False, "--quiet", help="Hide progress and per-chunk tables.", is_flag=True),
) -> None:
    state = _get_state(ctx)
    _drive(state, job_id, policy or state.config.chunk_policy, quiet)


@job_app.command("extract", help="Start a job, run it to completion and export the results.")
def job_extract(
    ctx: typer.Context,
    urls_file: Path = typer.Argument(..., help="Text or CSV file holding the URLs."),
    pattern: str = typer.Option(..., "--pattern", "-p", help=PATTERN_HELP),
    concurrency: Optional[int] = typer.Option(None, "--concurrency", "-c"),
    delay: Optional[int] = typer.Option(None, "--delay", "-d"),
    retries: Optional[int] = typer.Option(None, "--retries", "-r"),
    policy: Optional[ChunkPolicy] = typer.Option(None, "--policy"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Export file path."),
    fmt: str = typer.Option("csv", "--format", "-f", help="csv or json."),
    quiet: bool = typer.Option(False, "--quiet", is_flag=True),
) -> None:
    state = _get_state(ctx)
    job_id = _create(state, urls_file, pattern, concurrency, delay, retries)
    _drive(state, job_id, policy or state.config.chunk_policy, quiet)
    _export(state, job_id, output, fmt)


@job_app.command("status", help="Show counters and the latest delta of a job.")
def job_status(
    ctx: typer.Context,
    job_id: str = typer.Argument(...),
) -> None:
    state = _get_state(ctx)
    try:
        snapshot = state.engine.snapshot(job_id)
    except JobNotFound:
        console.print(f"Job {job_id} not found or expired.", style="yellow")
        raise typer.Exit(code=1)
    table = Table(title=f"Job {snapshot.job_id}", box=box.SIMPLE_HEAD, show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("State", snapshot.state.value)
    table.add_row("Progress", f"{snapshot.completed} / {snapshot.total} ({snapshot.progress_percent}%)")
    table.add_row("Pattern", snapshot.pattern)
    table.add_row("Concurrency", str(snapshot.concurrency))
    table.add_row("Delay (ms)", str(snapshot.delay_ms))
    table.add_row("Max retries", str(snapshot.max_retries))
    table.add_row("Updated", snapshot.updated_at.isoformat())
    console.print(table)
    if snapshot.pending_delta:
        console.print(_render_results_table(snapshot.pending_delta, title="Undelivered results"))


@job_app.command("export", help="Write every result collected so far to CSV or JSON lines.")
def job_export(
    ctx: typer.Context,
    job_id: str = typer.Argument(...),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Export file path."),
    fmt: str = typer.Option("csv", "--format", "-f", help="csv or json."),
) -> None:
    state = _get_state(ctx)
    _export(state, job_id, output, fmt)


@job_app.command("purge", help="Delete expired jobs from the job store.")
def job_purge(ctx: typer.Context) -> None:
    state = _get_state(ctx)
    removed = state.engine.purge_expired()
    console.print(f"Purged {removed} expired job(s).")


@log_app.command("list", help="List per-job log files.")
def log_list() -> None:
    logs = list(available_job_logs())
    if not logs:
        console.print("No job logs yet.", style="dim")
        return
    table = Table(box=box.SIMPLE_HEAD)
    table.add_column("File", style="green")
    for path in logs:
        table.add_row(path.name)
    console.print(table)


@log_app.command("show", help="Show the last lines of the global log or of a job log.")
def log_show(
    job_id: Optional[str] = typer.Option(None, "--job", help="Job id (global log when omitted)."),
    tail: int = typer.Option(100, "--tail", help="Number of lines."),
) -> None:
    lines = tail_log(log_path(job_id), tail)
    if not lines:
        console.print("No log entries yet.", style="dim")
        return
    console.print(f"{'Job log' if job_id else 'Global log'} · last {len(lines)} lines", style="cyan")
    console.print("".join(lines), markup=False, highlight=False)


__all__ = ["AppState", "app", "build_state"]
