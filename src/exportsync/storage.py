"""Storage boundary: the operations the sync engine needs from blob storage.

:class:`StorageClient` is the protocol every storage adapter implements.
Listings are exposed page by page so callers decide when a snapshot is
complete; :mod:`exportsync.cursor` and :mod:`exportsync.directory`
always drain every page before acting.

:class:`LocalStorage` maps the protocol onto a directory tree::

    <root>/<container>/<blob path…>

It serves local mirrors of an export account (``azcopy sync`` output,
fixtures) and is the adapter used with ``storage.backend = "local"``.
Adapters must be safe to share between worker threads.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from contextlib import AbstractContextManager, contextmanager
from pathlib import Path
from typing import BinaryIO, Protocol

from exportsync.errors import DeleteError, ListError, TransferError

# Read size for streaming a file to the ingestion endpoint.
CHUNK_SIZE = 4 * 1024 * 1024


class StorageClient(Protocol):
    """Blob storage operations used by the sync engine."""

    def iter_container_pages(self, prefix: str) -> Iterable[list[str]]:
        """Yield pages of container names starting with *prefix*."""
        ...

    def iter_file_pages(self, container: str) -> Iterable[list[str]]:
        """Yield pages of blob names in *container* (flat listing)."""
        ...

    def open_read(self, container: str, path: str) -> AbstractContextManager[Iterator[bytes]]:
        """Open *path* for streaming; the context yields byte chunks."""
        ...

    def delete(self, container: str, path: str) -> None:
        """Permanently delete *path* from *container*."""
        ...


def _paginate(items: list[str], page_size: int) -> Iterator[list[str]]:
    for start in range(0, len(items), page_size):
        yield items[start : start + page_size]


class LocalStorage:
    """Directory-tree storage adapter.

    Args:
        root:      Directory whose immediate subdirectories are containers.
        page_size: Names per listing page.
    """

    def __init__(self, root: Path, *, page_size: int = 5000) -> None:
        if page_size < 1:
            raise ValueError(f"page_size must be positive, got {page_size}")
        self._root = root
        self._page_size = page_size

    def iter_container_pages(self, prefix: str) -> Iterator[list[str]]:
        try:
            names = sorted(
                p.name for p in self._root.iterdir() if p.is_dir() and p.name.startswith(prefix)
            )
        except OSError as exc:
            raise ListError(f"can not list containers under {self._root}: {exc}") from exc
        yield from _paginate(names, self._page_size)

    def iter_file_pages(self, container: str) -> Iterator[list[str]]:
        base = self._root / container
        if not base.is_dir():
            raise ListError(f"container not found: {container!r}")
        try:
            names = sorted(
                p.relative_to(base).as_posix() for p in base.rglob("*") if p.is_file()
            )
        except OSError as exc:
            raise ListError(f"can not list files in container={container!r}: {exc}") from exc
        yield from _paginate(names, self._page_size)

    @contextmanager
    def open_read(self, container: str, path: str) -> Iterator[Iterator[bytes]]:
        try:
            fh = (self._root / container / path).open("rb")
        except OSError as exc:
            raise TransferError(
                f"can not open file container={container!r}, name={path!r}: {exc}"
            ) from exc
        with fh:
            yield _read_chunks(fh, container, path)

    def delete(self, container: str, path: str) -> None:
        base = self._root / container
        target = base / path
        try:
            target.unlink()
        except OSError as exc:
            raise DeleteError(f"can not delete file {path!r}: {exc}") from exc

        # Prune partition folders left empty, stopping at the container.
        parent = target.parent
        try:
            while parent != base and not any(parent.iterdir()):
                parent.rmdir()
                parent = parent.parent
        except OSError:
            pass  # a writer repopulated the partition; leave it in place


def _read_chunks(fh: BinaryIO, container: str, path: str) -> Iterator[bytes]:
    while True:
        try:
            chunk = fh.read(CHUNK_SIZE)
        except OSError as exc:
            raise TransferError(
                f"can not read file container={container!r}, name={path!r}: {exc}"
            ) from exc
        if not chunk:
            return
        yield chunk
