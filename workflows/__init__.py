"""Workflow layer for resultsink.

Contains the delivery and maintenance logic:
- Delivery: create the result doc in Drive and insert the BigQuery row
- Retry queue: persist failed deliveries and replay them on a schedule
- Reconciliation: keep month folders and the folder state store in sync
"""

from .buckets import (
    RESULT_PREFIX,
    bucket_name,
    near_future_bucket,
    result_filename,
    bucket_from_filename,
)
from .folder_state import FolderStateStore
from .render import render_template, flatten
from .delivery import DeliveryCoordinator, to_warehouse_row, load_schema
from .retry_queue import (
    RetryQueue,
    RetryEntry,
    RetryReport,
    UPLOADS,
    INSERTS,
)
from .reconciler import (
    FolderDiff,
    FolderReconciler,
    ReconcileReport,
    diff_folders,
)
from .ingest import (
    SCHEDULER_HEADER,
    IngestHandler,
    IngestOutcome,
    is_scheduler_request,
    handle_reconcile,
    handle_retry,
    run_reconcile,
    run_retry_sweep,
)
from .runtime import Runtime, build_runtime


__all__ = [
    # Bucket names
    'RESULT_PREFIX',
    'bucket_name',
    'near_future_bucket',
    'result_filename',
    'bucket_from_filename',

    # Folder state
    'FolderStateStore',

    # Delivery
    'render_template',
    'flatten',
    'DeliveryCoordinator',
    'to_warehouse_row',
    'load_schema',

    # Retry queue
    'RetryQueue',
    'RetryEntry',
    'RetryReport',
    'UPLOADS',
    'INSERTS',

    # Reconciliation
    'FolderDiff',
    'FolderReconciler',
    'ReconcileReport',
    'diff_folders',

    # Entry points
    'SCHEDULER_HEADER',
    'IngestHandler',
    'IngestOutcome',
    'is_scheduler_request',
    'handle_reconcile',
    'handle_retry',
    'run_reconcile',
    'run_retry_sweep',
    'Runtime',
    'build_runtime',
]
