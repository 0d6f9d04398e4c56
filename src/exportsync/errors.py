"""Error taxonomy for the sync engine.

Every recoverable failure derives from :class:`SyncError` so a drain task
can catch one type at its boundary, report it, and end without affecting
other streams.  Adapters translate their library's exceptions into these
types with ``raise ... from exc``.

  ParseError        malformed export path; blocks that stream this cycle
  ListError         container or file listing failed; abandons the cycle
                    when raised by the stream directory
  TransferError     download or upload failed; the file stays in storage
  DeleteError       ingest succeeded but delete failed; the file will be
                    re-ingested on a later cycle
  DestinationError  ensure-destination failed with anything but "exists"
  InvariantError    a task reached a state that should be impossible

:class:`SchedulerError` is separate: it signals lifecycle misuse by the
caller, not a sync failure.
"""

from __future__ import annotations


class SyncError(RuntimeError):
    """Base class for recoverable sync failures."""


class ParseError(SyncError, ValueError):
    """Raised when an export file path does not match the partition layout."""


class ListError(SyncError):
    """Raised when a container or file listing cannot be completed."""


class TransferError(SyncError):
    """Raised when a file cannot be downloaded or uploaded."""


class DeleteError(SyncError):
    """Raised when an ingested file cannot be deleted from storage."""


class DestinationError(SyncError):
    """Raised when the ingestion destination cannot be ensured."""


class InvariantError(SyncError):
    """Raised when a task observes a state that should be unreachable."""


class SchedulerError(RuntimeError):
    """Raised on invalid scheduler lifecycle transitions."""
