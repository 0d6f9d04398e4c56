"""Azure Blob Storage adapter for :class:`~exportsync.storage.StorageClient`.

Wraps a ``BlobServiceClient`` from ``azure-storage-blob``.  Construct with
one of the two class methods so authentication stays in one place:

    AzureBlobStorage.from_connection_string(conn_str)
    AzureBlobStorage.from_account_url("https://acct.blob.core.windows.net/")

The account-URL form authenticates with ``DefaultAzureCredential``
(environment, managed identity, Azure CLI login, …).

All ``AzureError`` exceptions are translated into the
:mod:`exportsync.errors` taxonomy.  The underlying client is thread-safe
and shared by every worker.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

from azure.core.exceptions import AzureError
from azure.storage.blob import BlobServiceClient

from exportsync.errors import DeleteError, ListError, TransferError


class AzureBlobStorage:
    """Storage adapter backed by an Azure storage account.

    Args:
        service:   Authenticated ``BlobServiceClient``.
        page_size: Results requested per listing page.
    """

    def __init__(self, service: BlobServiceClient, *, page_size: int = 5000) -> None:
        self._service = service
        self._page_size = page_size

    @classmethod
    def from_connection_string(cls, connection_string: str, *, page_size: int = 5000) -> "AzureBlobStorage":
        return cls(BlobServiceClient.from_connection_string(connection_string), page_size=page_size)

    @classmethod
    def from_account_url(cls, account_url: str, *, page_size: int = 5000) -> "AzureBlobStorage":
        from azure.identity import DefaultAzureCredential

        return cls(
            BlobServiceClient(account_url, credential=DefaultAzureCredential()),
            page_size=page_size,
        )

    def iter_container_pages(self, prefix: str) -> Iterator[list[str]]:
        pager = self._service.list_containers(
            name_starts_with=prefix, results_per_page=self._page_size
        )
        try:
            for page in pager.by_page():
                yield [item.name for item in page]
        except AzureError as exc:
            raise ListError(f"can not get next page of containers: {exc}") from exc

    def iter_file_pages(self, container: str) -> Iterator[list[str]]:
        pager = self._service.get_container_client(container).list_blobs(
            results_per_page=self._page_size
        )
        try:
            for page in pager.by_page():
                yield [item.name for item in page]
        except AzureError as exc:
            raise ListError(f"can not get next page of container={container!r}: {exc}") from exc

    @contextmanager
    def open_read(self, container: str, path: str) -> Iterator[Iterator[bytes]]:
        blob = self._service.get_blob_client(container, path)
        try:
            downloader = blob.download_blob()
        except AzureError as exc:
            raise TransferError(
                f"can not download blob container={container!r}, name={path!r}: {exc}"
            ) from exc
        yield _chunks(downloader.chunks(), container, path)

    def delete(self, container: str, path: str) -> None:
        try:
            self._service.get_blob_client(container, path).delete_blob()
        except AzureError as exc:
            raise DeleteError(f"can not delete blob {path!r}: {exc}") from exc


def _chunks(source: Iterator[bytes], container: str, path: str) -> Iterator[bytes]:
    try:
        yield from source
    except AzureError as exc:
        raise TransferError(
            f"can not read blob container={container!r}, name={path!r}: {exc}"
        ) from exc
