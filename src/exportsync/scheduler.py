"""Scheduler: the perpetual sync cycle and its start/stop lifecycle.

A :class:`Scheduler` owns one supervising thread while it is running.
Each cycle the supervisor:

1. lists every stream (container) in the account,
2. shuffles them, so no stream is systematically first or last,
3. submits one drain task per stream to a :class:`~exportsync.pool.BoundedPool`,
4. waits for every drain task to finish (the join barrier),
5. waits ``cycle_interval`` seconds, or less if cancelled.

A drain task sends one stream's files oldest-first, one at a time, until
the stream is empty, a file fails, or cancellation is observed.  A failed
file is not retried within the cycle; it is still the oldest file in
storage, so the next cycle picks it up again.

Lifecycle::

    IDLE ──start()──▶ RUNNING ──stop()──▶ STOPPING ──(supervisor exits)──▶ IDLE

``stop()`` blocks until the supervisor and every worker thread have exited
and returns the :class:`RunSummary` for the run.  Cancellation is
cooperative: it is checked between files and between cycles, never in the
middle of a transfer.
"""

from __future__ import annotations

import contextvars
import enum
import random
import threading
from dataclasses import dataclass, field

import structlog

from exportsync.backoff import Backoff
from exportsync.cursor import next_oldest
from exportsync.directory import Stream, StreamDirectory
from exportsync.errors import InvariantError, ListError, SchedulerError, SyncError
from exportsync.ingestion import DEFAULT_TIMESTAMP_FIELD, IngestionClient, IngestStatus
from exportsync.logging import get_logger
from exportsync.pipeline import sync_file
from exportsync.pool import BoundedPool
from exportsync.storage import StorageClient

DEFAULT_POOL_SIZE = 8
DEFAULT_MAX_QUEUED = 16
DEFAULT_CYCLE_INTERVAL = 30.0


class SchedulerState(enum.Enum):
    IDLE = "idle"
    RUNNING = "running"
    STOPPING = "stopping"


@dataclass
class RunSummary:
    """Totals for one start → stop run, safe to update from worker threads.

    Attributes:
        cycles:          Cycles that reached their join barrier.
        files:           Files ingested and deleted.
        processed_bytes: Uncompressed bytes acknowledged by the destination.
        ingested:        Records accepted by the destination.
        failed:          Records rejected by the destination.
        task_errors:     Drain tasks that ended on an error.
        list_errors:     Stream listings that failed.
        cycle_errors:    Cycles that failed for any other reason.
    """

    cycles: int = 0
    files: int = 0
    processed_bytes: int = 0
    ingested: int = 0
    failed: int = 0
    task_errors: int = 0
    list_errors: int = 0
    cycle_errors: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def record_file(self, status: IngestStatus) -> None:
        with self._lock:
            self.files += 1
            self.processed_bytes += status.processed_bytes
            self.ingested += status.ingested
            self.failed += status.failed

    def record_task_error(self) -> None:
        with self._lock:
            self.task_errors += 1

    def record_list_error(self) -> None:
        with self._lock:
            self.list_errors += 1

    def record_cycle_error(self) -> None:
        with self._lock:
            self.cycle_errors += 1

    def record_cycle(self) -> None:
        with self._lock:
            self.cycles += 1

    def as_dict(self) -> dict[str, int]:
        with self._lock:
            return {
                "cycles": self.cycles,
                "files": self.files,
                "processed_bytes": self.processed_bytes,
                "ingested": self.ingested,
                "failed": self.failed,
                "task_errors": self.task_errors,
                "list_errors": self.list_errors,
                "cycle_errors": self.cycle_errors,
            }


class Scheduler:
    """Runs the sync cycle on a background thread until stopped.

    Args:
        pool_size:       Streams drained concurrently.
        max_queued:      Drain tasks queued before submission blocks.
        cycle_interval:  Seconds to wait between cycles.
        timestamp_field: Record field Axiom should treat as event time.
        backoff:         Delay policy after a failed stream listing.
        log:             Logger to report progress and errors to.  Defaults
                         to this module's structlog logger.
        rng:             Source of the per-cycle stream shuffle.
    """

    def __init__(
        self,
        *,
        pool_size: int = DEFAULT_POOL_SIZE,
        max_queued: int = DEFAULT_MAX_QUEUED,
        cycle_interval: float = DEFAULT_CYCLE_INTERVAL,
        timestamp_field: str = DEFAULT_TIMESTAMP_FIELD,
        backoff: Backoff | None = None,
        log: structlog.BoundLogger | None = None,
        rng: random.Random | None = None,
    ) -> None:
        if pool_size < 1:
            raise ValueError(f"pool_size must be positive, got {pool_size}")
        if max_queued < 0:
            raise ValueError(f"max_queued must not be negative, got {max_queued}")
        if cycle_interval < 0:
            raise ValueError(f"cycle_interval must not be negative, got {cycle_interval}")
        self._pool_size = pool_size
        self._max_queued = max_queued
        self._cycle_interval = cycle_interval
        self._timestamp_field = timestamp_field
        self._backoff = backoff or Backoff()
        self._log = log if log is not None else get_logger(__name__)
        self._rng = rng or random.Random()

        self._lock = threading.Lock()
        self._state = SchedulerState.IDLE
        self._cancel: threading.Event | None = None
        self._thread: threading.Thread | None = None
        self._summary = RunSummary()

    @property
    def state(self) -> SchedulerState:
        with self._lock:
            return self._state

    @property
    def summary(self) -> RunSummary:
        """Totals for the current (or most recent) run."""
        with self._lock:
            return self._summary

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(
        self,
        directory: StreamDirectory,
        storage: StorageClient,
        ingestion: IngestionClient,
    ) -> None:
        """Start the supervising thread.

        Raises:
            SchedulerError: The scheduler is already running or stopping.
        """
        with self._lock:
            if self._state is not SchedulerState.IDLE:
                raise SchedulerError("already started")

            cancel = threading.Event()
            self._summary = RunSummary()
            self._backoff.record_success()
            self._thread = threading.Thread(
                target=contextvars.copy_context().run,
                args=(self._supervise, directory, storage, ingestion, cancel, self._summary),
                name="exportsync-supervisor",
                daemon=True,
            )
            self._cancel = cancel
            self._state = SchedulerState.RUNNING
            self._thread.start()

        self._log.info(
            "scheduler started",
            pool_size=self._pool_size,
            max_queued=self._max_queued,
            cycle_interval=self._cycle_interval,
        )

    def stop(self) -> RunSummary:
        """Cancel the run and block until all background work has exited.

        Returns:
            The :class:`RunSummary` for the run that was stopped.

        Raises:
            SchedulerError: The scheduler was never started, or another
                            ``stop()`` is already in progress.
        """
        with self._lock:
            if self._state is SchedulerState.IDLE:
                raise SchedulerError("not started")
            if self._state is SchedulerState.STOPPING:
                raise SchedulerError("already stopping")
            cancel, thread = self._cancel, self._thread
            if cancel is None or thread is None:
                raise SchedulerError("running without a supervisor thread")

            self._state = SchedulerState.STOPPING

        cancel.set()
        thread.join()

        with self._lock:
            self._state = SchedulerState.IDLE
            self._cancel = None
            self._thread = None
            summary = self._summary

        self._log.info("scheduler stopped", **summary.as_dict())
        return summary

    # ------------------------------------------------------------------
    # Cycle
    # ------------------------------------------------------------------

    def run_cycle(
        self,
        directory: StreamDirectory,
        storage: StorageClient,
        ingestion: IngestionClient,
        cancel: threading.Event,
        summary: RunSummary | None = None,
    ) -> int:
        """Run one full cycle in the calling thread.

        Returns:
            Number of streams dispatched.

        Raises:
            ListError: The streams could not be enumerated.
        """
        summary = summary if summary is not None else self._summary
        streams = directory.list_streams()
        self._rng.shuffle(streams)
        self._log.info("cycle started", streams=len(streams))

        dispatched = 0
        with BoundedPool(self._pool_size, self._max_queued) as pool:
            for stream in streams:
                if cancel.is_set():
                    break
                pool.submit(self._drain, stream, storage, ingestion, cancel, summary)
                dispatched += 1

        summary.record_cycle()
        self._log.info("cycle complete", streams=dispatched)
        return dispatched

    def _supervise(
        self,
        directory: StreamDirectory,
        storage: StorageClient,
        ingestion: IngestionClient,
        cancel: threading.Event,
        summary: RunSummary,
    ) -> None:
        while not cancel.is_set():
            try:
                self.run_cycle(directory, storage, ingestion, cancel, summary)
            except ListError as exc:
                self._listing_failed(cancel, summary, error=str(exc))
                continue
            except Exception as exc:
                # The supervisor must outlive any single cycle.
                self._cycle_failed(cancel, summary, exc)
                continue

            self._backoff.record_success()
            if cancel.wait(self._cycle_interval):
                break

    def _listing_failed(self, cancel: threading.Event, summary: RunSummary, *, error: str) -> None:
        summary.record_list_error()
        delay = self._backoff.record_failure()
        self._log.error(
            "stream listing failed",
            error=error,
            retry_in=round(delay, 2),
            consecutive_failures=self._backoff.consecutive_failures,
        )
        cancel.wait(delay)

    def _cycle_failed(self, cancel: threading.Event, summary: RunSummary, exc: Exception) -> None:
        summary.record_cycle_error()
        delay = self._backoff.record_failure()
        self._log.error(
            "sync cycle failed",
            error=str(exc),
            kind=type(exc).__name__,
            retry_in=round(delay, 2),
            exc_info=exc,
        )
        cancel.wait(delay)

    # ------------------------------------------------------------------
    # Drain task
    # ------------------------------------------------------------------

    def _drain(
        self,
        stream: Stream,
        storage: StorageClient,
        ingestion: IngestionClient,
        cancel: threading.Event,
        summary: RunSummary,
    ) -> int:
        """Send *stream*'s files oldest-first until done; return files sent."""
        log = self._log.bind(stream=stream.name, destination=stream.destination)
        log.info("syncing stream")

        sent = 0
        while not cancel.is_set():
            try:
                file, more = next_oldest(storage, stream.name)
                if file is None:
                    if more:
                        raise InvariantError(
                            f"listing of {stream.name!r} reported more files but no oldest"
                        )
                    break
                status = sync_file(
                    storage,
                    ingestion,
                    file,
                    stream.destination,
                    timestamp_field=self._timestamp_field,
                )
            except SyncError as exc:
                summary.record_task_error()
                log.error("stream sync failed", error=str(exc), kind=type(exc).__name__)
                break
            except Exception:
                summary.record_task_error()
                log.exception("unexpected error syncing stream")
                break

            sent += 1
            summary.record_file(status)
            log.info(
                "file synced",
                path=file.path,
                partition=str(file.key),
                processed_bytes=status.processed_bytes,
                ingested=status.ingested,
                failed=status.failed,
            )
            if not more:
                break

        return sent

