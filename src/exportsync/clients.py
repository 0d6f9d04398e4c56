"""Build the storage and ingestion collaborators from settings.

The sync engine receives already-authenticated clients; this module is the
one place that turns configuration into them.  Missing credentials raise
:class:`ConfigError` so the CLI can fail fast with a readable message.
"""

from __future__ import annotations

from exportsync.config import Settings
from exportsync.directory import StreamDirectory, destination_name
from exportsync.ingestion import AxiomClient
from exportsync.storage import LocalStorage, StorageClient


class ConfigError(ValueError):
    """Raised when settings are not enough to build a client."""


def build_storage(settings: Settings) -> StorageClient:
    """Return the storage adapter selected by ``storage.backend``."""
    cfg = settings.storage
    if cfg.backend == "local":
        if not cfg.local_root.is_dir():
            raise ConfigError(f"storage.local_root is not a directory: {cfg.local_root}")
        return LocalStorage(cfg.local_root, page_size=cfg.page_size)

    from exportsync.azure_blob import AzureBlobStorage

    connection_string = cfg.connection_string.get_secret_value().strip()
    if connection_string:
        return AzureBlobStorage.from_connection_string(connection_string, page_size=cfg.page_size)
    if not cfg.account_url:
        raise ConfigError(
            "storage.account_url or storage.connection_string is required for the azure backend"
        )
    return AzureBlobStorage.from_account_url(cfg.account_url, page_size=cfg.page_size)


def build_ingestion(settings: Settings) -> AxiomClient:
    """Return an Axiom client authenticated with ``axiom.token``."""
    cfg = settings.axiom
    token = cfg.token.get_secret_value()
    if not token:
        raise ConfigError("axiom.token is required")
    return AxiomClient(
        token,
        org_id=cfg.org_id,
        url=cfg.url,
        timeout=cfg.timeout_seconds,
        description=cfg.dataset_description,
    )


def build_directory(settings: Settings, storage: StorageClient) -> StreamDirectory:
    """Return the stream directory for *storage* with the configured naming."""
    prefix = settings.storage.container_prefix
    dataset_prefix = settings.axiom.dataset_prefix

    def namer(stream_name: str) -> str:
        return destination_name(stream_name, stream_prefix=prefix, dataset_prefix=dataset_prefix)

    return StreamDirectory(storage, prefix, namer)
