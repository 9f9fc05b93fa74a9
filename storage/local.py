"""Local filesystem object store."""

import os
import tempfile
from typing import List, Optional, Tuple

from resultsink.errors import NotFoundRace
from .base import ObjectStore, StorageError


class LocalObjectStore(ObjectStore):
    """Object store on the local filesystem.

    Each bucket is a subdirectory of root_path and each key a file inside
    it. Useful for development and tests; listing is paginated the same way
    the cloud store is, with the offset as page token.
    """

    def __init__(self, root_path: str, page_size: int = 100) -> None:
        """Initialize local object store.

        Args:
            root_path: Directory holding the bucket directories (created if missing)
            page_size: Keys returned per list_page() call

        Raises:
            StorageError: If root_path exists but is not a directory
        """
        self.root_path = os.path.abspath(root_path)
        self.page_size = page_size
        if os.path.exists(self.root_path) and not os.path.isdir(self.root_path):
            raise StorageError(f"Not a directory: {self.root_path}")
        os.makedirs(self.root_path, exist_ok=True)

    @property
    def display_name(self) -> str:
        return f"{self.root_path} (local)"

    def _bucket_path(self, bucket: str) -> str:
        if not bucket or os.sep in bucket or bucket in (".", ".."):
            raise ValueError(f"Invalid bucket name: {bucket!r}")
        return os.path.join(self.root_path, bucket)

    def _full_path(self, bucket: str, key: str) -> str:
        """Convert bucket/key to an absolute path."""
        if not key or "/" in key or os.sep in key or key in (".", "..") or key.startswith(".tmp"):
            raise ValueError(f"Invalid key: {key!r}")
        return os.path.join(self._bucket_path(bucket), key)

    def put(self, bucket: str, key: str, data: bytes) -> None:
        """Write via a temp file and rename, so readers never see partial data."""
        full_path = self._full_path(bucket, key)
        bucket_dir = os.path.dirname(full_path)
        try:
            os.makedirs(bucket_dir, exist_ok=True)
            fd, temp_path = tempfile.mkstemp(prefix=".tmp", dir=bucket_dir)
            try:
                with os.fdopen(fd, 'wb') as f:
                    f.write(data)
                os.replace(temp_path, full_path)
            except BaseException:
                if os.path.exists(temp_path):
                    os.unlink(temp_path)
                raise
        except OSError as e:
            raise StorageError(f"Failed to write {bucket}/{key}: {e}")

    def get(self, bucket: str, key: str) -> bytes:
        full_path = self._full_path(bucket, key)
        try:
            with open(full_path, 'rb') as f:
                return f.read()
        except FileNotFoundError:
            raise NotFoundRace(f"Object does not exist: {bucket}/{key}")
        except OSError as e:
            raise StorageError(f"Failed to read {bucket}/{key}: {e}")

    def delete(self, bucket: str, key: str) -> None:
        full_path = self._full_path(bucket, key)
        try:
            os.remove(full_path)
        except FileNotFoundError:
            raise NotFoundRace(f"Object does not exist: {bucket}/{key}")
        except OSError as e:
            raise StorageError(f"Failed to delete {bucket}/{key}: {e}")

    def list_page(self, bucket: str,
                  page_token: Optional[str] = None) -> Tuple[List[str], Optional[str]]:
        bucket_dir = self._bucket_path(bucket)
        if not os.path.isdir(bucket_dir):
            return [], None

        try:
            offset = int(page_token) if page_token else 0
        except ValueError:
            raise StorageError(f"Invalid page token: {page_token!r}")

        try:
            names = sorted(
                name for name in os.listdir(bucket_dir)
                if not name.startswith(".tmp")
                and os.path.isfile(os.path.join(bucket_dir, name))
            )
        except OSError as e:
            raise StorageError(f"Failed to list {bucket}: {e}")

        page = names[offset:offset + self.page_size]
        next_offset = offset + self.page_size
        next_token = str(next_offset) if next_offset < len(names) else None
        return page, next_token
