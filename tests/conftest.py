"""Shared pytest helpers and fakes for the exportsync test suite.

export_path(y, m, d, h, mi, seq)  - a realistic Log Analytics export blob name
FakeStorage                       - in-memory StorageClient with failure injection
FakeIngestion                     - in-memory IngestionClient that records payloads
wait_for(predicate)               - poll until a background condition holds
"""

from __future__ import annotations

import gzip
import threading
import time
from collections.abc import Callable, Iterable, Iterator
from contextlib import contextmanager

import pytest
import structlog

from exportsync.errors import DeleteError, ListError, TransferError
from exportsync.ingestion import IngestStatus

_WORKSPACE = (
    "WorkspaceResourceId=/subscriptions/0000-1111/resourcegroups/rg-sec"
    "/providers/microsoft.operationalinsights/workspaces/ws-sentinel"
)


def export_path(
    year: int = 2024,
    month: int = 1,
    day: int = 15,
    hour: int = 10,
    minute: int = 0,
    seq: int | None = None,
) -> str:
    """Return the blob name Log Analytics writes for one five-minute bucket."""
    name = "PT05M" if seq is None else f"PT05M_{seq}"
    return (
        f"{_WORKSPACE}/y={year:04d}/m={month:02d}/d={day:02d}"
        f"/h={hour:02d}/m={minute:02d}/{name}.json"
    )


def records(n: int, tag: str = "r") -> bytes:
    """Return *n* NDJSON records."""
    return b"".join(
        f'{{"TimeGenerated":"2024-01-15T10:00:{i:02d}Z","id":"{tag}{i}"}}\n'.encode()
        for i in range(n)
    )


def wait_for(predicate: Callable[[], bool], timeout: float = 5.0) -> None:
    """Poll *predicate* until it is true; fail the test after *timeout* seconds."""
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            pytest.fail("condition not reached before timeout")
        time.sleep(0.005)


class FakeStorage:
    """In-memory storage account.

    Files are listed in insertion order (not sorted) so ordering tests
    exercise the cursor rather than the listing.
    """

    def __init__(self, containers: dict[str, dict[str, bytes]] | None = None, *, page_size: int = 2):
        self.containers: dict[str, dict[str, bytes]] = {
            name: dict(files) for name, files in (containers or {}).items()
        }
        self.page_size = page_size
        self.deleted: list[tuple[str, str]] = []
        self.container_list_failures = 0
        self.fail_listing: set[str] = set()
        self.fail_read: set[tuple[str, str]] = set()
        self.fail_delete: set[tuple[str, str]] = set()
        self._lock = threading.Lock()

    def add(self, container: str, path: str, data: bytes = b"{}\n") -> None:
        with self._lock:
            self.containers.setdefault(container, {})[path] = data

    def files(self, container: str) -> list[str]:
        with self._lock:
            return list(self.containers.get(container, {}))

    def _pages(self, names: list[str]) -> Iterator[list[str]]:
        for start in range(0, len(names), self.page_size):
            yield names[start : start + self.page_size]

    def iter_container_pages(self, prefix: str) -> Iterator[list[str]]:
        with self._lock:
            names = [n for n in self.containers if n.startswith(prefix)]
            failing = self.container_list_failures > 0
            if failing:
                self.container_list_failures -= 1
        pages = self._pages(names)
        if failing:
            # Fail after the first page so partial results would be visible.
            yield next(pages, [])
            raise ListError("can not get next page: injected")
        yield from pages

    def iter_file_pages(self, container: str) -> Iterator[list[str]]:
        if container in self.fail_listing:
            raise ListError(f"can not list container={container!r}: injected")
        yield from self._pages(self.files(container))

    @contextmanager
    def open_read(self, container: str, path: str) -> Iterator[Iterator[bytes]]:
        if (container, path) in self.fail_read:
            raise TransferError(f"can not download blob name={path!r}: injected")
        with self._lock:
            data = self.containers[container][path]
        # Two chunks, to exercise streaming compression.
        yield iter([data[: len(data) // 2], data[len(data) // 2 :]])

    def delete(self, container: str, path: str) -> None:
        if (container, path) in self.fail_delete:
            raise DeleteError(f"can not delete blob {path!r}: injected")
        with self._lock:
            del self.containers[container][path]
            self.deleted.append((container, path))


class FakeIngestion:
    """In-memory ingestion service.

    Records every decompressed payload per destination and tracks how many
    ingests run at once, overall and per destination.
    """

    def __init__(self, *, delay: float = 0.0):
        self.delay = delay
        self.destinations: set[str] = set()
        self.ensure_calls: list[str] = []
        self.payloads: dict[str, list[bytes]] = {}
        self.timestamp_fields: list[str] = []
        self.fail_ingest: set[str] = set()
        self.fail_ensure: set[str] = set()
        self.active = 0
        self.max_active = 0
        self.active_by_destination: dict[str, int] = {}
        self.overlap_violations: list[str] = []
        self.on_ingest: Callable[[str], None] | None = None
        self.closed = False
        self._lock = threading.Lock()

    def ensure_destination(self, name: str) -> None:
        from exportsync.errors import DestinationError

        with self._lock:
            self.ensure_calls.append(name)
            if name in self.fail_ensure:
                raise DestinationError(f"can not create dataset {name!r}: injected")
            self.destinations.add(name)

    def ingest(self, name: str, chunks: Iterable[bytes], *, timestamp_field: str) -> IngestStatus:
        with self._lock:
            self.active += 1
            self.max_active = max(self.max_active, self.active)
            if self.active_by_destination.get(name):
                self.overlap_violations.append(name)
            self.active_by_destination[name] = self.active_by_destination.get(name, 0) + 1
        try:
            data = gzip.decompress(b"".join(chunks))
            if self.delay:
                time.sleep(self.delay)
            if name in self.fail_ingest:
                raise TransferError(f"can not ingest into dataset {name!r}: injected")
            with self._lock:
                self.payloads.setdefault(name, []).append(data)
                self.timestamp_fields.append(timestamp_field)
            if self.on_ingest is not None:
                self.on_ingest(name)
            return IngestStatus(processed_bytes=len(data), ingested=data.count(b"\n"), failed=0)
        finally:
            with self._lock:
                self.active -= 1
                self.active_by_destination[name] -= 1

    def close(self) -> None:
        self.closed = True


@pytest.fixture(autouse=True)
def _reset_structlog():
    """Isolate each test from structlog state and the settings cache."""
    from exportsync.config import get_settings

    get_settings.cache_clear()
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()
    yield
    get_settings.cache_clear()
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()
