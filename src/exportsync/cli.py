"""CLI root: entry point for all exportsync subcommands.

Entry points:
  uv run exportsync     (recommended)
  python -m exportsync

Command surface:
  exportsync export          sync export files to Axiom until interrupted
  exportsync export --once   run a single sync cycle and exit
  exportsync streams         list export streams and whether they have files
  exportsync config show     print resolved configuration
"""

import typer

from exportsync import __version__
from exportsync.logging import get_logger

app = typer.Typer(
    name="exportsync",
    help="Ship Log Analytics export files from blob storage to Axiom.",
    no_args_is_help=True,
)

_log = get_logger(__name__)


# ---------------------------------------------------------------------------
# Global callback: runs before every subcommand
# ---------------------------------------------------------------------------


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"exportsync {__version__}")
        raise typer.Exit()


@app.callback()
def _main(
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        callback=_version_callback,
        is_eager=True,
        help="Print version and exit.",
    ),
) -> None:
    """Ship Log Analytics export files from blob storage to Axiom."""
    # Eager options (--version) raise typer.Exit() before this body runs,
    # so configure_logging() is only called for real subcommands.
    from exportsync.logging import configure_logging

    configure_logging()


# ---------------------------------------------------------------------------
# export
# ---------------------------------------------------------------------------


@app.command("export")
def export(
    once: bool = typer.Option(
        False,
        "--once",
        help="Run a single sync cycle in the foreground, then exit.",
    ),
    workers: int = typer.Option(
        0,
        "--workers",
        "-w",
        help="Streams synced concurrently.  0 = scheduler.worker_pool_size.",
    ),
) -> None:
    """Sync export files to Axiom, oldest first, deleting each once ingested.

    Runs until SIGINT or SIGTERM.  Every cycle lists the export containers,
    drains each one through a bounded worker pool, then waits
    cycle_interval_seconds before starting over.  Stopping waits for
    in-flight files to finish; no file is left half-processed.
    With --once, a signal ends the cycle the same way.
    """
    import signal
    import threading

    from exportsync.backoff import Backoff
    from exportsync.clients import ConfigError, build_directory, build_ingestion, build_storage
    from exportsync.config import get_settings
    from exportsync.errors import ListError
    from exportsync.scheduler import RunSummary, Scheduler

    settings = get_settings()
    try:
        storage = build_storage(settings)
        ingestion = build_ingestion(settings)
    except ConfigError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(1) from exc

    directory = build_directory(settings, storage)
    sched = settings.scheduler
    scheduler = Scheduler(
        pool_size=workers or sched.worker_pool_size,
        max_queued=sched.max_queued,
        cycle_interval=sched.cycle_interval_seconds,
        timestamp_field=settings.axiom.timestamp_field,
        backoff=Backoff(initial=sched.backoff_initial_seconds, maximum=sched.backoff_max_seconds),
        log=get_logger("exportsync.scheduler"),
    )

    typer.echo("exporting from azure to axiom")
    interrupted = threading.Event()

    def _on_signal(signum: int, _frame: object) -> None:
        _log.info("shutdown requested", signal=signal.Signals(signum).name)
        interrupted.set()

    # In --once mode the same event cancels the cycle between files.
    previous = {sig: signal.signal(sig, _on_signal) for sig in (signal.SIGINT, signal.SIGTERM)}
    summary: RunSummary
    try:
        if once:
            try:
                scheduler.run_cycle(directory, storage, ingestion, interrupted)
            except ListError as exc:
                _log.error("stream listing failed", error=str(exc))
                raise typer.Exit(1) from exc
            summary = scheduler.summary
        else:
            scheduler.start(directory, storage, ingestion)
            interrupted.wait()
            summary = scheduler.stop()
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)
        ingestion.close()

    typer.echo("\nfinished exporting")
    typer.echo(f"  cycles:           {summary.cycles}")
    typer.echo(f"  files synced:     {summary.files}")
    typer.echo(f"  bytes processed:  {summary.processed_bytes}")
    typer.echo(f"  records ingested: {summary.ingested}")
    typer.echo(f"  records failed:   {summary.failed}")
    typer.echo(f"  stream errors:    {summary.task_errors}")
    typer.echo(f"  cycle errors:     {summary.list_errors + summary.cycle_errors}")


# ---------------------------------------------------------------------------
# streams
# ---------------------------------------------------------------------------


@app.command("streams")
def streams() -> None:
    """List export streams, their destination datasets, and pending state.

    A stream is pending when its container still holds at least one file.
    Nothing is ingested or deleted.
    """
    from exportsync.clients import ConfigError, build_directory, build_storage
    from exportsync.config import get_settings
    from exportsync.cursor import has_any
    from exportsync.errors import ListError

    settings = get_settings()
    try:
        storage = build_storage(settings)
    except ConfigError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(1) from exc

    directory = build_directory(settings, storage)
    try:
        found = sorted(directory.list_streams(), key=lambda s: s.name)
        pending = {s.name: has_any(storage, s.name) for s in found}
    except ListError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(1) from exc

    if not found:
        typer.echo(f"  no streams with prefix {directory.prefix!r}")
        return

    width = max(len(s.name) for s in found)
    for s in found:
        state = "pending" if pending[s.name] else "empty"
        typer.echo(f"  {s.name.ljust(width)}  -> {s.destination}  [{state}]")
    _log.info("streams listed", total=len(found), pending=sum(pending.values()))


# ---------------------------------------------------------------------------
# config subcommands
# ---------------------------------------------------------------------------

_config_app = typer.Typer(help="Inspect resolved configuration.")
app.add_typer(_config_app, name="config")


@_config_app.command("show")
def config_show() -> None:
    """Print the fully-resolved configuration and exit.

    Shows which config file was loaded and the final value of every setting
    after environment-variable overrides are applied.  Secrets are masked.
    """
    from exportsync.config import _config_file, get_settings

    settings = get_settings()

    typer.echo(f"\n  config : {_config_file()}\n")

    for section_name, section in settings.model_dump().items():
        typer.echo(f"  [{section_name}]")
        width = max(len(k) for k in section)
        for key, val in section.items():
            typer.echo(f"  {key.ljust(width)} = {val}")
        typer.echo()
