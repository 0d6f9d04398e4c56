"""Bounded worker pool: fixed workers, fixed queue, blocking submit, join.

``ThreadPoolExecutor`` alone has an unbounded queue, so a cycle over
thousands of streams would enqueue them all at once.  :class:`BoundedPool`
adds a semaphore sized ``max_workers + max_queued``: once every worker is
busy and the queue is full, :meth:`submit` blocks until a task finishes.
That is the only throttle between the scheduler and the backends.

One pool serves one cycle::

    with BoundedPool(8, 16) as pool:
        for stream in streams:
            pool.submit(drain, stream)
    # leaving the block waits for every task (the cycle's join barrier)
"""

from __future__ import annotations

import contextvars
import threading
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any


class BoundedPool:
    """Thread pool whose submit blocks when workers and queue are full.

    Args:
        max_workers: Tasks running concurrently.
        max_queued:  Tasks waiting for a worker before submit blocks.
        name:        Thread-name prefix for the workers.
    """

    def __init__(self, max_workers: int, max_queued: int, *, name: str = "exportsync-worker") -> None:
        if max_workers < 1:
            raise ValueError(f"max_workers must be positive, got {max_workers}")
        if max_queued < 0:
            raise ValueError(f"max_queued must not be negative, got {max_queued}")
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix=name)
        self._slots = threading.BoundedSemaphore(max_workers + max_queued)
        self._futures: list[Future[Any]] = []

    def submit(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Future[Any]:
        """Schedule ``fn(*args, **kwargs)``, blocking while the pool is saturated."""
        self._slots.acquire()
        try:
            # Carry contextvars (structlog run_id) into the worker thread.
            ctx = contextvars.copy_context()
            future = self._executor.submit(ctx.run, fn, *args, **kwargs)
        except BaseException:
            self._slots.release()
            raise
        future.add_done_callback(self._release)
        self._futures.append(future)
        return future

    def join(self) -> list[Future[Any]]:
        """Wait for every submitted task to finish and shut the pool down.

        Returns the futures in submission order.  Exceptions raised by tasks
        stay inside their futures.
        """
        self._executor.shutdown(wait=True)
        return list(self._futures)

    def __enter__(self) -> BoundedPool:
        return self

    def __exit__(self, *_: object) -> None:
        self.join()

    def _release(self, _: Future[Any]) -> None:
        self._slots.release()
