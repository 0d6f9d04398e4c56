"""Ingestion boundary: where export files are delivered.

:class:`IngestionClient` is the protocol the per-file pipeline talks to.
:class:`AxiomClient` implements it over Axiom's HTTP API with ``httpx``:

  ensure_destination(name)   GET  /v1/datasets, then POST /v1/datasets if
                             missing.  HTTP 409 means another worker (or a
                             previous run) created it first, which is fine.
  ingest(name, chunks, …)    POST /v1/datasets/<name>/ingest with a
                             gzip-compressed NDJSON body streamed from
                             *chunks*, and ``timestamp-field`` telling Axiom
                             which record field holds the event time.

Every ``httpx`` failure is translated into the :mod:`exportsync.errors`
taxonomy.  One ``httpx.Client`` is shared by all worker threads.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Protocol

import httpx

from exportsync.errors import DestinationError, TransferError

DEFAULT_URL = "https://api.axiom.co"
# Log Analytics stamps records with TimeGenerated; Axiom defaults to _time.
DEFAULT_TIMESTAMP_FIELD = "TimeGenerated"


@dataclass(frozen=True)
class IngestStatus:
    """Acknowledgment returned for one ingested file.

    Attributes:
        processed_bytes: Uncompressed bytes Axiom read from the body.
        ingested:        Records accepted.
        failed:          Records rejected.
    """

    processed_bytes: int
    ingested: int
    failed: int


class IngestionClient(Protocol):
    """Destination-side operations used by the per-file pipeline."""

    def ensure_destination(self, name: str) -> None:
        """Create destination *name* unless it already exists."""
        ...

    def ingest(
        self, name: str, chunks: Iterable[bytes], *, timestamp_field: str
    ) -> IngestStatus:
        """Stream gzip-compressed NDJSON *chunks* into destination *name*."""
        ...


class AxiomClient:
    """Axiom HTTP API client.

    Args:
        token:       Axiom API or personal token.
        org_id:      Organisation ID; required for personal tokens only.
        url:         API base URL.
        timeout:     Per-request timeout in seconds.  Also bounds a stalled
                     upload, since each chunk write is a request operation.
        description: Description given to datasets this client creates.
        transport:   Optional ``httpx`` transport (tests use
                     ``httpx.MockTransport``).
    """

    def __init__(
        self,
        token: str,
        *,
        org_id: str = "",
        url: str = DEFAULT_URL,
        timeout: float = 60.0,
        description: str = "imported from Sentinel",
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        headers = {"Authorization": f"Bearer {token}"}
        if org_id:
            headers["X-Axiom-Org-Id"] = org_id
        self._description = description
        self._http = httpx.Client(
            base_url=url,
            headers=headers,
            timeout=httpx.Timeout(timeout),
            transport=transport,
        )

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> AxiomClient:
        return self

    def __exit__(self, *_: object) -> None:
        self.close()

    def ensure_destination(self, name: str) -> None:
        try:
            resp = self._http.get("/v1/datasets")
            resp.raise_for_status()
            datasets = resp.json()
            if not isinstance(datasets, list):
                raise DestinationError(
                    f"can not ensure dataset {name!r}: unexpected dataset listing {datasets!r}"
                )
            if any(isinstance(ds, dict) and ds.get("name") == name for ds in datasets):
                return

            resp = self._http.post(
                "/v1/datasets", json={"name": name, "description": self._description}
            )
            if resp.status_code == httpx.codes.CONFLICT:
                return
            resp.raise_for_status()
        except (httpx.HTTPError, ValueError) as exc:
            raise DestinationError(f"can not ensure dataset {name!r}: {exc}") from exc

    def ingest(
        self, name: str, chunks: Iterable[bytes], *, timestamp_field: str
    ) -> IngestStatus:
        try:
            resp = self._http.post(
                f"/v1/datasets/{name}/ingest",
                params={"timestamp-field": timestamp_field},
                headers={
                    "Content-Type": "application/x-ndjson",
                    "Content-Encoding": "gzip",
                },
                content=chunks,
            )
            resp.raise_for_status()
            body = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise TransferError(f"can not ingest into dataset {name!r}: {exc}") from exc

        if not isinstance(body, dict):
            raise TransferError(f"can not ingest into dataset {name!r}: unexpected response {body!r}")
        return IngestStatus(
            processed_bytes=_count(body, "processedBytes", name),
            ingested=_count(body, "ingested", name),
            failed=_count(body, "failed", name),
        )


def _count(body: dict, key: str, name: str) -> int:
    value = body.get(key, 0)
    if isinstance(value, bool) or not isinstance(value, int):
        raise TransferError(
            f"can not ingest into dataset {name!r}: {key} is not a count: {value!r}"
        )
    return value
