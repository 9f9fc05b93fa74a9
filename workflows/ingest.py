"""Entry points: one per ingested payload, one per scheduled job."""

import logging
from dataclasses import dataclass
from typing import Callable, Mapping, Optional

from resultsink import Config
from resultsink.errors import (
    DeliveryError,
    InsertError,
    ResultSinkError,
)
from resultsink.payload import ResultPayload
from utils.deadline import Deadline
from .delivery import DeliveryCoordinator
from .reconciler import FolderReconciler, ReconcileReport
from .retry_queue import RetryQueue, UPLOADS, INSERTS

logger = logging.getLogger(__name__)

# Header the scheduler sets on its requests (clients can't set it on App Engine)
SCHEDULER_HEADER = "X-Appengine-Cron"


def is_scheduler_request(headers: Mapping[str, str]) -> bool:
    """True if the request carries a non-empty scheduler marker header."""
    wanted = SCHEDULER_HEADER.lower()
    for name, value in headers.items():
        if name.lower() == wanted and value:
            return True
    return False


@dataclass
class IngestOutcome:
    document_delivered: bool = False
    document_queued: bool = False
    record_inserted: bool = False
    record_queued: bool = False


class IngestHandler:
    """Delivers one payload to both destinations, queueing what fails."""

    def __init__(self, config: Config, coordinator: DeliveryCoordinator,
                 retry_queue: RetryQueue) -> None:
        self.config = config
        self.coordinator = coordinator
        self.retry_queue = retry_queue

    def _queue(self, queue_class: str, payload: ResultPayload) -> bool:
        try:
            self.retry_queue.save_retry_state(queue_class, payload)
        except ResultSinkError as e:
            logger.warning("(%s) error saving retry state (%s) %s", queue_class, payload.key, e)
            return False
        logger.info("(%s) saved retry state (%s)", queue_class, payload.key)
        return True

    def handle_result(self, payload: ResultPayload,
                      deadline: Optional[Deadline] = None) -> IngestOutcome:
        """Deliver a payload.

        A failed document upload doesn't stop the warehouse insert; each
        failure is saved to its own retry queue. Failing to save retry
        state is logged, not raised. A delivery that runs out of time
        counts as failed and is queued too.

        Raises:
            ConfigurationError: If credentials or the Drive parent are not configured
        """
        self.config.require("credentials_file", "parent_id")
        outcome = IngestOutcome()

        try:
            self.coordinator.deliver_document(payload, deadline)
        except DeliveryError as e:
            logger.warning("(upload) %s", e)
            outcome.document_queued = self._queue(UPLOADS, payload)
        else:
            logger.info("upload complete")
            outcome.document_delivered = True

        try:
            self.coordinator.insert_record(payload, deadline)
        except InsertError as e:
            logger.warning("(insert) %s", e)
            outcome.record_queued = self._queue(INSERTS, payload)
        else:
            logger.info("insert complete")
            outcome.record_inserted = True

        return outcome


def run_retry_sweep(coordinator: DeliveryCoordinator, retry_queue: RetryQueue,
                    deadline: Optional[Deadline] = None) -> dict:
    """Replay both retry queues, inserts first.

    A failure sweeping one queue is logged and doesn't stop the other.

    Returns:
        {queue_class: RetryReport or None if the sweep failed}
    """
    deadline = deadline or Deadline.unbounded()
    reports = {}
    for queue_class, replay_fn in ((INSERTS, coordinator.insert_record),
                                   (UPLOADS, coordinator.deliver_document)):
        logger.info("start processing %s retries", queue_class)
        try:
            reports[queue_class] = retry_queue.process_retries(queue_class, replay_fn, deadline)
        except ResultSinkError as e:
            logger.warning("(%s) %s", queue_class, e)
            reports[queue_class] = None
    return reports


def run_reconcile(reconciler: FolderReconciler,
                  deadline: Optional[Deadline] = None) -> Optional[ReconcileReport]:
    """Run one reconciliation pass, logging instead of raising on failure."""
    try:
        return reconciler.run(deadline)
    except ResultSinkError as e:
        logger.warning("reconciliation aborted - %s", e)
        return None


def handle_reconcile(headers: Mapping[str, str],
                     reconciler_factory: Callable[[], FolderReconciler],
                     deadline: Optional[Deadline] = None) -> Optional[ReconcileReport]:
    """Scheduled reconciliation; requests without the scheduler header are ignored.

    The reconciler is only built once the request is accepted.
    """
    if not is_scheduler_request(headers):
        logger.warning("reject invalid cron request")
        return None
    return run_reconcile(reconciler_factory(), deadline)


def handle_retry(headers: Mapping[str, str], coordinator: DeliveryCoordinator,
                 retry_queue: RetryQueue,
                 deadline: Optional[Deadline] = None) -> Optional[dict]:
    """Scheduled retry sweep; requests without the scheduler header are ignored."""
    if not is_scheduler_request(headers):
        logger.warning("reject invalid cron request")
        return None
    return run_retry_sweep(coordinator, retry_queue, deadline)
