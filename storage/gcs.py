"""Google Cloud Storage object store (JSON API)."""

import io
from typing import List, Optional, Tuple

from googleapiclient.http import MediaIoBaseUpload

from utils.deadline import Deadline
from .base import ObjectStore
from .google_api import build_service, execute_with_retry, download_with_retry


SCOPES = ['https://www.googleapis.com/auth/devstorage.read_write']


class GCSObjectStore(ObjectStore):
    """Object store on the Cloud Storage v1 JSON API.

    Buckets must already exist; one bucket per queue class.
    """

    def __init__(self, credentials_file: str = "service_account_key.json",
                 timeout: Optional[float] = None, page_size: int = 1000,
                 service=None, deadline: Optional[Deadline] = None) -> None:
        self.page_size = page_size
        self.deadline = deadline
        if service is None:
            service, _ = build_service('storage', 'v1', credentials_file, SCOPES, timeout)
        self.service = service

    @property
    def display_name(self) -> str:
        return "Cloud Storage"

    def put(self, bucket: str, key: str, data: bytes) -> None:
        media = MediaIoBaseUpload(
            io.BytesIO(data), mimetype='application/octet-stream', resumable=False
        )
        execute_with_retry(
            self.service.objects().insert(bucket=bucket, name=key, media_body=media),
            action=f"write gs://{bucket}/{key}",
            deadline=self.deadline,
        )

    def get(self, bucket: str, key: str) -> bytes:
        request = self.service.objects().get_media(bucket=bucket, object=key)
        return download_with_retry(request, action=f"read gs://{bucket}/{key}",
                                   deadline=self.deadline)

    def delete(self, bucket: str, key: str) -> None:
        execute_with_retry(
            self.service.objects().delete(bucket=bucket, object=key),
            action=f"delete gs://{bucket}/{key}",
            deadline=self.deadline,
        )

    def list_page(self, bucket: str,
                  page_token: Optional[str] = None) -> Tuple[List[str], Optional[str]]:
        params = dict(bucket=bucket, maxResults=self.page_size,
                      fields="nextPageToken, items(name)")
        if page_token:
            params['pageToken'] = page_token
        response = execute_with_retry(
            self.service.objects().list(**params),
            action=f"list gs://{bucket}",
            deadline=self.deadline,
        )
        keys = [item['name'] for item in response.get('items', []) if item.get('name')]
        return keys, response.get('nextPageToken') or None
