"""Stream cursor: find the oldest export file left in a stream.

There is no stored cursor.  Progress is implicit in what is still in
storage: the pipeline deletes each file after it is ingested, so the next
call to :func:`next_oldest` naturally advances.

``next_oldest(storage, stream)`` lists the whole container (every page)
before choosing, so the answer is always the minimum of a complete
snapshot.  One malformed name fails the whole call: if a file cannot be
placed in time, nothing after it can safely be sent.
"""

from __future__ import annotations

from typing import NamedTuple

from exportsync.storage import StorageClient
from exportsync.timestamps import ChronoKey, resolve


class StreamFile(NamedTuple):
    """One export file, identified by ``(stream, path)``.

    ``key`` is derived from ``path`` by :func:`~exportsync.timestamps.resolve`
    and is what files are ordered by.
    """

    stream: str
    path: str
    key: ChronoKey


def next_oldest(storage: StorageClient, stream: str) -> tuple[StreamFile | None, bool]:
    """Return ``(oldest_file, more_remain)`` for *stream*.

    ``more_remain`` is True iff the snapshot held more than one file, so a
    drain task knows to keep going without waiting for the next cycle.
    An empty stream returns ``(None, False)``.

    Raises:
        ListError:  The listing could not be completed.
        ParseError: Any listed file name is malformed.
    """
    oldest: StreamFile | None = None
    found = 0
    for page in storage.iter_file_pages(stream):
        for path in page:
            found += 1
            candidate = StreamFile(stream=stream, path=path, key=resolve(path))
            if oldest is None or candidate.key < oldest.key:
                oldest = candidate

    return oldest, found > 1


def has_any(storage: StorageClient, stream: str) -> bool:
    """Return True if *stream* holds at least one file.

    Only for deciding whether a stream has work (the ``streams`` command).
    Drain tasks learn the same thing from :func:`next_oldest`.
    """
    for page in storage.iter_file_pages(stream):
        if page:
            return True
    return False
