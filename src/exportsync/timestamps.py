"""Chronological keys parsed from export file paths.

Log Analytics writes one blob per five-minute bucket, laid out as::

    WorkspaceResourceId=/subscriptions/<id>/.../workspaces/<ws>/
        y=2024/m=01/d=15/h=10/m=05/PT05M.json

A bucket that outgrows the append limit is split into further blobs in the
same folder named ``PT05M_1.json``, ``PT05M_2.json``, …

``resolve(path)`` turns such a path into a :class:`ChronoKey`.  The key is
the only basis for ordering files within a stream; blob metadata such as
last-modified time is never consulted.
"""

from __future__ import annotations

import re
from typing import NamedTuple

from exportsync.errors import ParseError

_PARTITION_RE = re.compile(
    r"(?:^|/)"
    r"y=(?P<year>\d+)/"
    r"m=(?P<month>\d+)/"
    r"d=(?P<day>\d+)/"
    r"h=(?P<hour>\d+)/"
    r"m=(?P<minute>\d+)/"
    r"(?P<name>\w+?)(?:_(?P<sequence>\d+))?\.json\Z",
    re.ASCII,
)


class ChronoKey(NamedTuple):
    """Totally ordered position of an export file in its stream.

    Tuple comparison gives the required ordering: by partition time, then
    by split sequence within the same minute.
    """

    year: int
    month: int
    day: int
    hour: int
    minute: int
    sequence: int = 0

    def partition_path(self) -> str:
        """Return the canonical ``y=/m=/d=/h=/m=`` folder for this key."""
        return (
            f"y={self.year:04d}/m={self.month:02d}/d={self.day:02d}"
            f"/h={self.hour:02d}/m={self.minute:02d}"
        )

    def __str__(self) -> str:
        stamp = (
            f"{self.year:04d}-{self.month:02d}-{self.day:02d}"
            f" {self.hour:02d}:{self.minute:02d}"
        )
        return f"{stamp} #{self.sequence}" if self.sequence else stamp


def resolve(path: str) -> ChronoKey:
    """Parse *path* into a :class:`ChronoKey`.

    Args:
        path: Blob name relative to its container.

    Raises:
        ParseError: *path* does not end in the partition layout, or a
                    segment is not numeric.
    """
    match = _PARTITION_RE.search(path)
    if match is None:
        raise ParseError(f"invalid export file name: {path!r}")

    sequence = match.group("sequence")
    return ChronoKey(
        year=int(match.group("year")),
        month=int(match.group("month")),
        day=int(match.group("day")),
        hour=int(match.group("hour")),
        minute=int(match.group("minute")),
        sequence=int(sequence) if sequence is not None else 0,
    )
