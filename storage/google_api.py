"""Shared plumbing for drivers built on google-api-python-client.

Service construction, transient-error retries and the mapping of
googleapiclient errors onto the resultsink error types.
"""

import io
import logging
from typing import Optional, Sequence

import httplib2
from google.oauth2 import service_account
from google_auth_httplib2 import AuthorizedHttp
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from googleapiclient.http import MediaIoBaseDownload

from resultsink.errors import NotFoundRace, RemoteCallError
from utils.deadline import Deadline
from utils.retry import (
    retry_on_transient_error,
    is_transient_network_error,
    TRANSIENT_HTTP_STATUS_CODES,
)

logger = logging.getLogger(__name__)


def build_service(api: str, version: str, credentials_file: str,
                  scopes: Sequence[str], timeout: Optional[float] = None):
    """Build an authorized API client from a service account key.

    The socket timeout bounds every single HTTP round trip.

    Raises:
        RemoteCallError: If the key can't be loaded or the client can't be built
    """
    try:
        creds = service_account.Credentials.from_service_account_file(
            credentials_file, scopes=list(scopes)
        )
        http = AuthorizedHttp(creds, http=httplib2.Http(timeout=timeout))
        service = build(api, version, http=http, cache_discovery=False)
    except Exception as e:
        raise RemoteCallError(f"Failed to initialize {api} {version} client: {e}")
    return service, creds


# ---------------------------------------------------------------------------
# Retry Configuration
# ---------------------------------------------------------------------------

def _is_retryable_google_error(exc: Exception) -> bool:
    """Determine if a Google API error should be retried."""
    if isinstance(exc, HttpError):
        return exc.resp.status in TRANSIENT_HTTP_STATUS_CODES
    return is_transient_network_error(exc)


def _log_retry(exc: Exception, attempt: int, delay: float) -> None:
    """Log when a retry is about to happen."""
    if isinstance(exc, HttpError):
        error_desc = f"HTTP {exc.resp.status}"
    else:
        error_desc = type(exc).__name__
    logger.warning("%s on attempt %d, retrying in %.1fs", error_desc, attempt, delay)


def http_status(exc: Exception) -> Optional[int]:
    if isinstance(exc, HttpError):
        return exc.resp.status
    return None


def translate_error(exc: Exception, action: str) -> RemoteCallError:
    """Map a googleapiclient/transport exception onto RemoteCallError."""
    if isinstance(exc, RemoteCallError):
        return exc
    if http_status(exc) == 404:
        return NotFoundRace(f"{action}: not found")
    return RemoteCallError(f"{action}: {exc}")


def execute_with_retry(request, action: str = "API request", max_retries: int = 5,
                       deadline: Optional[Deadline] = None):
    """Execute a Google API request with automatic retry.

    With a deadline, the call is not started once it has expired and no
    retry is scheduled that would run past it.

    Raises:
        DeadlineExceeded: If the deadline expired before the call
        NotFoundRace: On HTTP 404
        RemoteCallError: On any other failure
    """
    if deadline is not None:
        deadline.check(action)

    @retry_on_transient_error(
        is_retryable=_is_retryable_google_error,
        max_retries=max_retries,
        base_delay=1.0,
        max_delay=60.0,
        on_retry=_log_retry,
        deadline=deadline,
    )
    def execute():
        return request.execute()

    try:
        return execute()
    except Exception as e:
        raise translate_error(e, action)


def download_with_retry(request, action: str = "download", max_retries: int = 5,
                        deadline: Optional[Deadline] = None) -> bytes:
    """Download media for a get_media() request into memory."""
    if deadline is not None:
        deadline.check(action)
    buffer = io.BytesIO()
    downloader = MediaIoBaseDownload(buffer, request)
    done = False

    @retry_on_transient_error(
        is_retryable=_is_retryable_google_error,
        max_retries=max_retries,
        base_delay=1.0,
        max_delay=60.0,
        on_retry=_log_retry,
        deadline=deadline,
    )
    def download_next_chunk():
        return downloader.next_chunk()

    try:
        while not done:
            _, done = download_next_chunk()
    except Exception as e:
        raise translate_error(e, action)
    return buffer.getvalue()


def escape_query_value(value: str) -> str:
    """Escape a value for use in Google Drive API query strings."""
    return value.replace("\\", "\\\\").replace("'", "\\'")
