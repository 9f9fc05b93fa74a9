"""BigQuery insert sink (streaming inserts via tabledata.insertAll)."""

import logging
from typing import Any, Dict, List, Optional

from utils.deadline import Deadline
from .base import InsertSink, StorageError, missing_required_fields
from .google_api import build_service, execute_with_retry


SCOPES = ['https://www.googleapis.com/auth/bigquery.insertdata']

logger = logging.getLogger(__name__)


class BigQuerySink(InsertSink):
    """Streams rows into one BigQuery table."""

    def __init__(self, dataset_id: str, table_id: str, project_id: str = "",
                 credentials_file: str = "service_account_key.json",
                 timeout: Optional[float] = None,
                 skip_invalid_rows: bool = True,
                 ignore_unknown_values: bool = True,
                 service=None, deadline: Optional[Deadline] = None) -> None:
        """Initialize the sink.

        Args:
            dataset_id: Target dataset
            table_id: Target table
            project_id: Project owning the dataset; defaults to the
                service account's project
            credentials_file: Path to service account credentials JSON
            timeout: Socket timeout in seconds for each HTTP round trip
            skip_invalid_rows: Passed through as skipInvalidRows
            ignore_unknown_values: Passed through as ignoreUnknownValues
            service: Prebuilt BigQuery service (skips authentication)
            deadline: Stops the insert and its transport retries once expired

        Raises:
            RemoteCallError: If authentication fails or no project is known
        """
        self.dataset_id = dataset_id
        self.table_id = table_id
        self.skip_invalid_rows = skip_invalid_rows
        self.ignore_unknown_values = ignore_unknown_values
        self.deadline = deadline

        if service is None:
            service, creds = build_service('bigquery', 'v2', credentials_file, SCOPES, timeout)
            project_id = project_id or getattr(creds, 'project_id', '') or ''
        self.service = service

        if not project_id:
            raise StorageError("No BigQuery project id configured or found in credentials")
        self.project_id = project_id

    @property
    def table_path(self) -> str:
        return f"{self.project_id}.{self.dataset_id}.{self.table_id}"

    def insert(self, row: Dict[str, Any], schema: List[Dict[str, Any]],
               insert_id: Optional[str] = None) -> None:
        """Insert one row.

        Required top-level schema fields are checked locally first; the rest
        of the validation is left to BigQuery under the configured
        skip-invalid / ignore-unknown semantics.

        Raises:
            StorageError: If a required field is missing or BigQuery rejects the row
            RemoteCallError: If the call itself fails
        """
        missing = missing_required_fields(row, schema)
        if missing:
            raise StorageError(f"Row is missing required fields: {', '.join(missing)}")

        record = {'json': row}
        if insert_id:
            record['insertId'] = insert_id

        body = {
            'skipInvalidRows': self.skip_invalid_rows,
            'ignoreUnknownValues': self.ignore_unknown_values,
            'rows': [record],
        }
        logger.info("inserting row into %s", self.table_path)
        response = execute_with_retry(
            self.service.tabledata().insertAll(
                projectId=self.project_id,
                datasetId=self.dataset_id,
                tableId=self.table_id,
                body=body,
            ),
            action=f"insert into {self.table_path}",
            deadline=self.deadline,
        )

        insert_errors = response.get('insertErrors') or []
        if insert_errors:
            reasons = []
            for entry in insert_errors:
                for err in entry.get('errors', []):
                    location = err.get('location')
                    reason = err.get('reason', 'invalid')
                    reasons.append(f"{location}: {reason}" if location else reason)
            raise StorageError(f"BigQuery rejected row: {'; '.join(reasons) or 'unknown error'}")
