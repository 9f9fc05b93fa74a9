"""Base classes for storage drivers.

This module defines the narrow interfaces the workflows rely on:

- DocumentStore: a hierarchical store of folders and documents (Google Drive)
- ObjectStore: a flat keyed blob store with paginated listing (retry queue)
- InsertSink: an append-only analytics table (BigQuery)
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional, Tuple

from resultsink.errors import RemoteCallError
from utils.deadline import Deadline


# Kinds accepted by DocumentStore.create()
FOLDER = "folder"
DOCUMENT = "document"

# Google Drive mime types behind the two kinds
FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"
DOCUMENT_MIME_TYPE = "application/vnd.google-apps.document"

# Page size used when listing the parent folder
LIST_PAGE_SIZE = 10


class StorageError(RemoteCallError):
    """Base exception for storage operations."""
    pass


@dataclass
class RemoteEntry:
    """An item observed in a remote folder listing.

    Attributes:
        name: Item name
        id: Backend-specific identifier (e.g., Google Drive file ID)
        is_folder: True for folders
        mime_type: Raw backend type, "" if unknown
        trashed: True if the item sits in the trash
        target_bucket: For result documents, the month folder it belongs in
    """
    name: str
    id: str
    is_folder: bool = False
    mime_type: str = ""
    trashed: bool = False
    target_bucket: Optional[str] = None

    @property
    def is_document(self) -> bool:
        return self.mime_type == DOCUMENT_MIME_TYPE


class DocumentStore(ABC):
    """Hierarchical document store."""

    @property
    @abstractmethod
    def display_name(self) -> str:
        """Human-readable name for this store."""
        pass

    @abstractmethod
    def list_page(self, parent_id: str, page_token: Optional[str] = None,
                  page_size: int = LIST_PAGE_SIZE) -> Tuple[List[RemoteEntry], Optional[str]]:
        """List one page of the direct children of parent_id.

        Entries are ordered by name, descending.

        Returns:
            (entries, next_page_token); the token is None on the last page

        Raises:
            RemoteCallError: If the listing fails
        """
        pass

    @abstractmethod
    def create(self, parent_id: str, name: str, kind: str,
               content: Optional[bytes] = None) -> str:
        """Create a folder or document under parent_id.

        Args:
            parent_id: Container to create the item in
            name: Item name
            kind: FOLDER or DOCUMENT
            content: Document body (plain text); ignored for folders

        Returns:
            Remote id of the new item

        Raises:
            RemoteCallError: If creation fails
        """
        pass

    @abstractmethod
    def reparent(self, item_id: str, remove_parent: str, add_parent: str) -> None:
        """Move an item from one parent folder to another.

        Raises:
            RemoteCallError: If the move fails
        """
        pass

    def iter_entries(self, parent_id: str, page_size: int = LIST_PAGE_SIZE,
                     deadline: Optional[Deadline] = None) -> Iterator[RemoteEntry]:
        """Lazily yield every child of parent_id, following page tokens.

        A fresh call starts over from the first page. The deadline, if
        given, is checked before each page is requested.
        """
        page_token = None
        while True:
            if deadline is not None:
                deadline.check(f"listing {parent_id}")
            entries, page_token = self.list_page(parent_id, page_token, page_size)
            for entry in entries:
                yield entry
            if not page_token:
                break


class ObjectStore(ABC):
    """Flat keyed blob store, partitioned into buckets."""

    @property
    @abstractmethod
    def display_name(self) -> str:
        pass

    @abstractmethod
    def put(self, bucket: str, key: str, data: bytes) -> None:
        """Write data under key, replacing any existing object."""
        pass

    @abstractmethod
    def get(self, bucket: str, key: str) -> bytes:
        """Read the object stored under key.

        Raises:
            NotFoundRace: If the object does not exist
            RemoteCallError: If the read fails
        """
        pass

    @abstractmethod
    def delete(self, bucket: str, key: str) -> None:
        """Delete the object stored under key.

        Raises:
            NotFoundRace: If the object does not exist
            RemoteCallError: If the delete fails
        """
        pass

    @abstractmethod
    def list_page(self, bucket: str,
                  page_token: Optional[str] = None) -> Tuple[List[str], Optional[str]]:
        """List one page of keys in bucket.

        Returns:
            (keys, next_page_token); the token is None on the last page
        """
        pass

    def iter_keys(self, bucket: str,
                  deadline: Optional[Deadline] = None) -> Iterator[str]:
        """Lazily yield every key in bucket, following page tokens."""
        page_token = None
        while True:
            if deadline is not None:
                deadline.check(f"listing {bucket}")
            keys, page_token = self.list_page(bucket, page_token)
            for key in keys:
                yield key
            if not page_token:
                break


class InsertSink(ABC):
    """Append-only analytics table.

    Attributes:
        skip_invalid_rows: Insert the valid rows of a batch even if some fail
        ignore_unknown_values: Drop fields the table schema does not know
    """

    skip_invalid_rows: bool = True
    ignore_unknown_values: bool = True

    @abstractmethod
    def insert(self, row: Dict[str, Any], schema: List[Dict[str, Any]],
               insert_id: Optional[str] = None) -> None:
        """Insert one row.

        Args:
            row: Column name to value, nested records as dicts
            schema: Table schema as a list of field definitions
            insert_id: Optional de-duplication id for the row

        Raises:
            RemoteCallError: If the row is rejected or the call fails
        """
        pass


def missing_required_fields(row: Dict[str, Any], schema: List[Dict[str, Any]]) -> List[str]:
    """Return names of top-level REQUIRED schema fields absent from row."""
    missing = []
    for column in schema:
        if str(column.get("mode", "")).upper() != "REQUIRED":
            continue
        name = column.get("name")
        if name and row.get(name) in (None, ""):
            missing.append(name)
    return missing
