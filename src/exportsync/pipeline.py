"""Per-file pipeline: read → ensure destination → ingest → delete.

``sync_file(storage, ingestion, file, destination, timestamp_field=...)``
moves one export file into its destination dataset:

1. Open a read stream on the source file.
2. Ensure the destination dataset exists (idempotent).
3. Stream the file, gzip-compressed, to the destination, naming the field
   that carries each record's event time.
4. Only after the ingest is acknowledged, delete the source file.

The function returns only once the delete has resolved, and the drain task
looks for the next file only after it returns.  That sequencing is what
keeps a stream strictly ordered.  A crash between steps 3 and 4 leaves the
file in place, so it is ingested again later (at-least-once).
"""

from __future__ import annotations

import zlib
from collections.abc import Iterable, Iterator

from exportsync.cursor import StreamFile
from exportsync.ingestion import DEFAULT_TIMESTAMP_FIELD, IngestionClient, IngestStatus
from exportsync.storage import StorageClient

# wbits=31 selects the gzip container (16) with a 32 KiB window (15).
_GZIP_WBITS = 31


def gzip_chunks(chunks: Iterable[bytes], *, level: int = 6) -> Iterator[bytes]:
    """Compress *chunks* into a single gzip stream, lazily.

    Never holds more than one input chunk in memory, so multi-gigabyte
    backfill files stream through in constant space.
    """
    compressor = zlib.compressobj(level, zlib.DEFLATED, _GZIP_WBITS)
    for chunk in chunks:
        out = compressor.compress(chunk)
        if out:
            yield out
    yield compressor.flush()


def sync_file(
    storage: StorageClient,
    ingestion: IngestionClient,
    file: StreamFile,
    destination: str,
    *,
    timestamp_field: str = DEFAULT_TIMESTAMP_FIELD,
) -> IngestStatus:
    """Ingest *file* into *destination*, then delete it from storage.

    Args:
        storage:         Source storage adapter.
        ingestion:       Destination client.
        file:            The file selected by :func:`~exportsync.cursor.next_oldest`.
        destination:     Destination dataset name for the file's stream.
        timestamp_field: Record field holding the authoritative event time.

    Returns:
        The :class:`~exportsync.ingestion.IngestStatus` acknowledgment.

    Raises:
        TransferError:    Download or upload failed; the file is untouched.
        DestinationError: The destination could not be ensured.
        DeleteError:      Ingest succeeded but the file could not be deleted.
    """
    with storage.open_read(file.stream, file.path) as chunks:
        ingestion.ensure_destination(destination)
        status = ingestion.ingest(
            destination, gzip_chunks(chunks), timestamp_field=timestamp_field
        )

    storage.delete(file.stream, file.path)
    return status
