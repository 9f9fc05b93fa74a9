"""Durable retry queue for failed deliveries.

A payload whose delivery failed is written to the object store under its
idempotency key, in the bucket of its queue class. A later sweep replays
every entry and deletes the ones that succeed. Entries never expire, are
never dead-lettered and are not backed off: a permanently failing entry is
retried on every sweep.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from resultsink import Config
from resultsink.errors import (
    ConfigurationError,
    NotFoundRace,
    RemoteCallError,
    ResultSinkError,
    SerializationError,
)
from resultsink.payload import ResultPayload
from storage import ObjectStore
from utils.deadline import Deadline

logger = logging.getLogger(__name__)

# Queue classes
UPLOADS = "uploads"   # Document delivery failures
INSERTS = "inserts"   # Warehouse insert failures

QUEUE_CLASSES = (UPLOADS, INSERTS)


@dataclass
class RetryEntry:
    """One persisted failure."""
    key: str
    payload_blob: bytes
    queue_class: str

    @classmethod
    def for_payload(cls, queue_class: str, payload: ResultPayload) -> "RetryEntry":
        return cls(key=payload.key, payload_blob=payload.to_bytes(), queue_class=queue_class)


@dataclass
class RetryReport:
    """Counters for one sweep of one queue class."""
    retrieve_error: int = 0
    retry_success: int = 0
    retry_fail: int = 0
    state_removed: int = 0
    state_remove_error: int = 0

    def summary(self) -> str:
        return ", ".join(f"{k}={v}" for k, v in self.__dict__.items())


class RetryQueue:
    """Retry entries in an object store, one bucket per queue class."""

    def __init__(self, store: Optional[ObjectStore], buckets: Dict[str, str],
                 store_factory: Optional[Callable[[], ObjectStore]] = None) -> None:
        """
        Args:
            store: Object store holding the entries
            buckets: {queue_class: bucket name}
            store_factory: Builds the store on first use when store is None,
                so a store that can't be initialized fails the operation
                that needed it
        """
        if store is None and store_factory is None:
            raise ValueError("RetryQueue needs a store or a store_factory")
        self._store = store
        self._store_factory = store_factory
        self.buckets = dict(buckets)

    @classmethod
    def from_config(cls, config: Config, store: Optional[ObjectStore] = None,
                    store_factory: Optional[Callable[[], ObjectStore]] = None) -> "RetryQueue":
        return cls(store, {
            UPLOADS: config.retry_bucket_uploads,
            INSERTS: config.retry_bucket_inserts,
        }, store_factory=store_factory)

    @property
    def store(self) -> ObjectStore:
        if self._store is None:
            self._store = self._store_factory()
        return self._store

    def bucket_for(self, queue_class: str) -> str:
        if queue_class not in QUEUE_CLASSES:
            raise ValueError(f"Unknown queue class: {queue_class}")
        bucket = self.buckets.get(queue_class)
        if not bucket:
            raise ConfigurationError(f"missing bucket configuration for {queue_class} retries")
        return bucket

    def save_retry_state(self, queue_class: str, payload: ResultPayload) -> RetryEntry:
        """Persist a failed payload, replacing any entry with the same key.

        Raises:
            ConfigurationError: If the queue class has no bucket configured
            SerializationError: If the payload can't be encoded
            RemoteCallError: If the write fails
        """
        bucket = self.bucket_for(queue_class)
        entry = RetryEntry.for_payload(queue_class, payload)
        self.store.put(bucket, entry.key, entry.payload_blob)
        return entry

    def load(self, queue_class: str, key: str) -> ResultPayload:
        """Fetch and decode one entry.

        Raises:
            NotFoundRace: If the entry is gone
            SerializationError: If it can't be decoded
            RemoteCallError: If the read fails
        """
        blob = self.store.get(self.bucket_for(queue_class), key)
        return ResultPayload.from_bytes(blob)

    def process_retries(self, queue_class: str,
                        replay_fn: Callable[[ResultPayload], object],
                        deadline: Optional[Deadline] = None) -> RetryReport:
        """Replay every entry of a queue class once.

        All keys are listed first (following every page token); then each
        entry is loaded, replayed and, on success, deleted. An entry that
        disappears in between, or is already gone at delete time, was
        handled by a concurrent sweep and counts as done. Entries that fail
        to decode or to replay are left in place for the next sweep.

        Args:
            queue_class: UPLOADS or INSERTS
            replay_fn: Delivery operation; raises ResultSinkError on failure
            deadline: Stops the sweep between entries when expired

        Returns:
            RetryReport with the sweep counters

        Raises:
            ConfigurationError: If the queue class has no bucket configured
            RemoteCallError: If the keys can't be listed, or the deadline expires
        """
        deadline = deadline or Deadline.unbounded()
        bucket = self.bucket_for(queue_class)
        report = RetryReport()

        keys = list(self.store.iter_keys(bucket, deadline))
        logger.info("retrieved %d state keys (%s)", len(keys), queue_class)
        if not keys:
            logger.info("no retry to perform (%s)", queue_class)
            return report

        for key in keys:
            deadline.check(f"retrying {queue_class}/{key}")
            logger.debug("retrieving retry value (key=%s)", key)
            try:
                payload = self.load(queue_class, key)
            except NotFoundRace:
                continue
            except SerializationError as e:
                logger.warning("error decoding retry value (key=%s) %s", key, e)
                report.retrieve_error += 1
                continue
            except RemoteCallError as e:
                logger.warning("error retrieving retry value (key=%s) %s", key, e)
                report.retrieve_error += 1
                continue

            try:
                replay_fn(payload)
            except ResultSinkError as e:
                logger.warning("error retrying operation (key=%s) %s", key, e)
                report.retry_fail += 1
                continue

            logger.info("finished retry operation (key=%s)", key)
            report.retry_success += 1

            try:
                self.store.delete(bucket, key)
            except NotFoundRace:
                continue
            except RemoteCallError as e:
                logger.warning("error removing state (key=%s) %s", key, e)
                report.state_remove_error += 1
                continue
            logger.info("removed retry state (key=%s)", key)
            report.state_removed += 1

        logger.info("finished processing %s (%s)", queue_class, report.summary())
        return report
