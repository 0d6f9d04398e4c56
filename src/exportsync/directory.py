"""Stream directory: which export streams exist right now.

Every Log Analytics table exported to the storage account gets its own
container (``am-<table>``).  :class:`StreamDirectory` lists the containers
that match the configured prefix and pairs each one with its destination
dataset name.

The listing is consumed fully into one snapshot before it is returned, so
the stream set is frozen for the whole cycle; containers created or
removed mid-cycle are seen on the next one.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from functools import partial

from exportsync.storage import StorageClient


@dataclass(frozen=True)
class Stream:
    """A container of export files and the dataset it feeds."""

    name: str
    destination: str


def destination_name(stream_name: str, *, stream_prefix: str, dataset_prefix: str = "") -> str:
    """Map a container name to its destination dataset name.

    Strips *stream_prefix* and prepends *dataset_prefix*.  Since every
    listed container carries the same prefix, distinct containers always
    map to distinct datasets.
    """
    if not stream_name.startswith(stream_prefix):
        raise ValueError(f"stream {stream_name!r} does not start with prefix {stream_prefix!r}")
    base = stream_name[len(stream_prefix) :] or stream_name
    return f"{dataset_prefix}{base}"


class StreamDirectory:
    """Enumerates the active streams of one storage account.

    Args:
        storage: Storage adapter for the account.
        prefix:  Container-name prefix that marks an export stream.
        namer:   Maps a container name to its destination.  Defaults to
                 :func:`destination_name` with *prefix* stripped.
    """

    def __init__(
        self,
        storage: StorageClient,
        prefix: str,
        namer: Callable[[str], str] | None = None,
    ) -> None:
        self._storage = storage
        self._prefix = prefix
        self._namer = namer or partial(destination_name, stream_prefix=prefix)

    @property
    def prefix(self) -> str:
        return self._prefix

    def list_streams(self) -> list[Stream]:
        """Return a snapshot of every stream, in listing order.

        Raises:
            ListError: The listing failed on any page; no partial result.
        """
        names: list[str] = []
        for page in self._storage.iter_container_pages(self._prefix):
            names.extend(page)
        return [Stream(name=name, destination=self._namer(name)) for name in names]
