"""Wiring of drivers and workflows for one unit of work."""

import logging
from typing import Optional

from resultsink import Config
from resultsink.errors import StateStoreError
from storage import (
    BigQuerySink,
    DocumentStore,
    GDriveDriver,
    InsertSink,
    ObjectStore,
    create_object_store,
)
from utils.deadline import Deadline
from .delivery import DeliveryCoordinator
from .folder_state import FolderStateStore
from .ingest import IngestHandler
from .reconciler import FolderReconciler
from .retry_queue import RetryQueue

logger = logging.getLogger(__name__)


class Runtime:
    """Components for one request or job run.

    The deadline starts when the Runtime is built. Google clients and the
    SQLite connection are created on first use; close() releases the
    connection.

    Delivery only reads the folder state as a cache, so a state store that
    can't be opened sends documents to the parent folder instead of failing
    the delivery. The reconciler needs the store and raises.
    """

    def __init__(self, config: Config, state: Optional[FolderStateStore] = None,
                 object_store: Optional[ObjectStore] = None,
                 drive: Optional[DocumentStore] = None,
                 sink: Optional[InsertSink] = None) -> None:
        self.config = config
        self._deadline = Deadline(config.request_timeout)
        self._state = state
        self._object_store = object_store
        self._drive = drive
        self._sink = sink
        self._coordinator = None

    def deadline(self) -> Deadline:
        return self._deadline

    def state(self) -> FolderStateStore:
        """Open the folder state store.

        Raises:
            StateStoreError: If the database can't be opened
        """
        if self._state is None:
            self._state = FolderStateStore(self.config.state_db)
        return self._state

    def _cached_state(self) -> Optional[FolderStateStore]:
        try:
            return self.state()
        except StateStoreError as e:
            logger.warning("folder state unavailable, delivering to parent folder - %s", e)
            return None

    @property
    def coordinator(self) -> DeliveryCoordinator:
        if self._coordinator is None:
            self._coordinator = DeliveryCoordinator(
                self.config, self._cached_state(),
                drive_factory=self.drive, sink_factory=self.sink,
            )
        return self._coordinator

    def drive(self) -> DocumentStore:
        if self._drive is None:
            self._drive = GDriveDriver(
                self.config.credentials_file,
                team_drive=self.config.is_team_drive,
                timeout=self.config.request_timeout,
                deadline=self._deadline,
            )
        return self._drive

    def sink(self) -> InsertSink:
        if self._sink is None:
            self._sink = BigQuerySink(
                self.config.dataset_id,
                self.config.table_id,
                project_id=self.config.project_id,
                credentials_file=self.config.credentials_file,
                timeout=self.config.request_timeout,
                deadline=self._deadline,
            )
        return self._sink

    def object_store(self) -> ObjectStore:
        # Not bound to the deadline: a retry entry must still be written
        # after a delivery ran out of time.
        if self._object_store is None:
            self._object_store = create_object_store(
                self.config.retry_store,
                credentials_file=self.config.credentials_file,
                timeout=self.config.request_timeout,
            )
        return self._object_store

    def retry_queue(self) -> RetryQueue:
        return RetryQueue.from_config(self.config, store_factory=self.object_store)

    def ingest_handler(self) -> IngestHandler:
        return IngestHandler(self.config, self.coordinator, self.retry_queue())

    def reconciler(self) -> FolderReconciler:
        return FolderReconciler(self.config, self.drive(), self.state())

    def close(self) -> None:
        if self._state is not None:
            self._state.close()


def build_runtime(config: Config) -> Runtime:
    return Runtime(config)
