"""Storage driver abstraction for resultsink.

Provides the backends behind the delivery and reconciliation workflows:
- GDriveDriver: Google Drive document store
- GCSObjectStore: Cloud Storage object store (retry queue)
- LocalObjectStore: Local filesystem object store (retry queue, dev/tests)
- BigQuerySink: BigQuery streaming inserts

Usage:
    from storage import create_object_store

    store = create_object_store("gs:", credentials_file="key.json")
    store = create_object_store("local:/var/lib/resultsink/retry")
"""

from typing import Optional

from resultsink.errors import ConfigurationError

from .base import (
    StorageError,
    RemoteEntry,
    DocumentStore,
    ObjectStore,
    InsertSink,
    FOLDER,
    DOCUMENT,
    FOLDER_MIME_TYPE,
    DOCUMENT_MIME_TYPE,
    LIST_PAGE_SIZE,
)
from .local import LocalObjectStore
from .gdrive import GDriveDriver
from .gcs import GCSObjectStore
from .bigquery import BigQuerySink


def create_object_store(uri: str, credentials_file: str = "",
                        timeout: Optional[float] = None) -> ObjectStore:
    """Create an object store from a URI.

    Args:
        uri: Store URI in one of these formats:
            - gs:  (Cloud Storage; buckets are named per queue class)
            - local:/path/to/folder

    Returns:
        ObjectStore instance for the specified backend

    Raises:
        ConfigurationError: If URI format is invalid
    """
    if uri.startswith("local:"):
        return LocalObjectStore(uri[6:])
    elif uri.startswith("gs:"):
        return GCSObjectStore(credentials_file, timeout=timeout)
    else:
        raise ConfigurationError(
            f"Invalid object store URI: {uri}. "
            "Must start with 'gs:' or 'local:'"
        )


__all__ = [
    'StorageError',
    'RemoteEntry',
    'DocumentStore',
    'ObjectStore',
    'InsertSink',
    'FOLDER',
    'DOCUMENT',
    'FOLDER_MIME_TYPE',
    'DOCUMENT_MIME_TYPE',
    'LIST_PAGE_SIZE',
    'LocalObjectStore',
    'GDriveDriver',
    'GCSObjectStore',
    'BigQuerySink',
    'create_object_store',
]
