"""Shared fixtures: in-memory drivers and a throwaway state database."""

import os
import shutil
import tempfile
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

import pytest

from resultsink import Config
from resultsink.errors import RemoteCallError
from resultsink.payload import ResultPayload
from storage import (
    DocumentStore,
    InsertSink,
    RemoteEntry,
    FOLDER,
    FOLDER_MIME_TYPE,
    DOCUMENT_MIME_TYPE,
)
from workflows import FolderStateStore

PARENT_ID = "parent-root"

# 2024-03-15 12:00:00 UTC
FIXED_NOW = datetime(2024, 3, 15, 12, 0, 0, tzinfo=timezone.utc)


class FakeDrive(DocumentStore):
    """In-memory Drive: a flat set of items with a single parent each."""

    def __init__(self, page_size_cap: Optional[int] = None) -> None:
        self.items: Dict[str, dict] = {}
        self.page_size_cap = page_size_cap
        self.list_calls = 0
        self.create_calls: List[Tuple[str, str, str]] = []
        self.reparent_calls: List[Tuple[str, str, str]] = []
        self.fail_create: set = set()     # names whose creation fails
        self.fail_reparent: set = set()   # ids whose move fails
        self._next_id = 1

    @property
    def display_name(self) -> str:
        return "Fake Drive"

    def _new_id(self, prefix: str) -> str:
        item_id = f"{prefix}-{self._next_id}"
        self._next_id += 1
        return item_id

    def add_folder(self, name: str, item_id: Optional[str] = None,
                   parent: str = PARENT_ID, trashed: bool = False) -> str:
        item_id = item_id or self._new_id("folder")
        self.items[item_id] = dict(name=name, mime=FOLDER_MIME_TYPE, parent=parent,
                                   trashed=trashed, content=None)
        return item_id

    def add_document(self, name: str, item_id: Optional[str] = None,
                     parent: str = PARENT_ID, trashed: bool = False,
                     mime: str = DOCUMENT_MIME_TYPE) -> str:
        item_id = item_id or self._new_id("doc")
        self.items[item_id] = dict(name=name, mime=mime, parent=parent,
                                   trashed=trashed, content=b"")
        return item_id

    def children(self, parent: str) -> Dict[str, str]:
        return {i: item["name"] for i, item in self.items.items() if item["parent"] == parent}

    def list_page(self, parent_id, page_token=None, page_size=10):
        self.list_calls += 1
        if self.page_size_cap:
            page_size = min(page_size, self.page_size_cap)
        children = sorted(
            ((i, item) for i, item in self.items.items() if item["parent"] == parent_id),
            key=lambda pair: pair[1]["name"], reverse=True,
        )
        offset = int(page_token or 0)
        page = children[offset:offset + page_size]
        entries = [
            RemoteEntry(name=item["name"], id=i, is_folder=item["mime"] == FOLDER_MIME_TYPE,
                        mime_type=item["mime"], trashed=item["trashed"])
            for i, item in page
        ]
        next_offset = offset + page_size
        return entries, (str(next_offset) if next_offset < len(children) else None)

    def create(self, parent_id, name, kind, content=None):
        self.create_calls.append((parent_id, name, kind))
        if name in self.fail_create:
            raise RemoteCallError(f"create {name} refused")
        if kind == FOLDER:
            return self.add_folder(name, parent=parent_id)
        item_id = self.add_document(name, parent=parent_id)
        self.items[item_id]["content"] = content
        return item_id

    def reparent(self, item_id, remove_parent, add_parent):
        self.reparent_calls.append((item_id, remove_parent, add_parent))
        if item_id in self.fail_reparent:
            raise RemoteCallError(f"move {item_id} refused")
        item = self.items.get(item_id)
        if item is None or item["parent"] != remove_parent:
            raise RemoteCallError(f"{item_id} is not in {remove_parent}")
        item["parent"] = add_parent


class FakeSink(InsertSink):
    """Collects inserted rows; set ``fail`` to reject every insert."""

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.rows: List[Tuple[dict, list, Optional[str]]] = []

    def insert(self, row, schema, insert_id=None):
        if self.fail:
            raise RemoteCallError("insert rejected")
        self.rows.append((row, schema, insert_id))


@pytest.fixture
def temp_dir():
    """Create a temporary directory for testing."""
    dir_path = tempfile.mkdtemp(prefix="resultsink_test_")
    yield dir_path
    shutil.rmtree(dir_path, ignore_errors=True)


@pytest.fixture
def state(temp_dir):
    store = FolderStateStore(os.path.join(temp_dir, "folders.db"))
    yield store
    store.close()


@pytest.fixture
def drive():
    return FakeDrive()


@pytest.fixture
def sink():
    return FakeSink()


@pytest.fixture
def template_file(temp_dir):
    path = os.path.join(temp_dir, "doc.tmpl")
    with open(path, "w", encoding="utf-8") as f:
        f.write("Result $start ($start_unix)\nISP: $ip_isp\nCPU:\n$cpu_cpu\n\nPing:\n$ping\n")
    return path


@pytest.fixture
def schema_file(temp_dir):
    path = os.path.join(temp_dir, "schema.json")
    with open(path, "w", encoding="utf-8") as f:
        f.write('[{"name": "start", "type": "STRING", "mode": "REQUIRED"},'
                ' {"name": "start_unix", "type": "STRING", "mode": "REQUIRED"},'
                ' {"name": "duration", "type": "STRING"}]')
    return path


@pytest.fixture
def config(temp_dir, template_file, schema_file):
    return Config(
        credentials_file="service_account_key.json",
        parent_id=PARENT_ID,
        doc_template=template_file,
        enable_drive_subfolders=True,
        project_id="proj",
        dataset_id="results",
        table_id="runs",
        schema_file=schema_file,
        retry_store=f"local:{os.path.join(temp_dir, 'retry')}",
        retry_bucket_uploads="retry-uploads",
        retry_bucket_inserts="retry-inserts",
        state_db=os.path.join(temp_dir, "folders.db"),
    )


@pytest.fixture
def payload():
    # 2024-02-10 08:00:00 UTC
    return ResultPayload.from_dict({
        "start": "2024-02-10 08:00:00",
        "start_unix": 1707552000,
        "duration": "42s",
        "ip": {"ip": "203.0.113.7", "isp": "Example ISP", "countrycode": "JP", "city": "Tokyo"},
        "os": {"name": "linux", "version": "6.1", "kernel": "6.1.0", "model": "", "build": ""},
        "cpu": {"number": 2, "speed": "", "cpu": ["Intel A", "Intel B"]},
        "memory": {
            "physical": {"total": 8000, "free": 3000, "used": 5000},
            "virtual": {"total": 2000, "free": 2000, "used": 0},
        },
        "ping": [{"location": "tokyo", "output": ["64 bytes", "rtt 1ms"]}],
        "trace": [],
        "download": [{"location": "tokyo", "file": "10MB.bin", "speed": "90Mbps"}],
    })
