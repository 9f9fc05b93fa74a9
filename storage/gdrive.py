"""Google Drive document store."""

import io
from typing import List, Optional, Tuple

from googleapiclient.http import MediaIoBaseUpload

from utils.deadline import Deadline
from .base import (
    DocumentStore,
    RemoteEntry,
    FOLDER,
    DOCUMENT,
    FOLDER_MIME_TYPE,
    DOCUMENT_MIME_TYPE,
    LIST_PAGE_SIZE,
)
from .google_api import build_service, execute_with_retry, escape_query_value


SCOPES = ['https://www.googleapis.com/auth/drive']

_MIME_TYPES = {
    FOLDER: FOLDER_MIME_TYPE,
    DOCUMENT: DOCUMENT_MIME_TYPE,
}


class GDriveDriver(DocumentStore):
    """Document store on the Drive v3 API.

    Uses service account authentication. Shared (team) drives need
    ``team_drive=True`` so the API includes their items.
    """

    def __init__(self, credentials_file: str = "service_account_key.json",
                 team_drive: bool = False, timeout: Optional[float] = None,
                 service=None, deadline: Optional[Deadline] = None) -> None:
        """Initialize Google Drive driver.

        Args:
            credentials_file: Path to service account credentials JSON
            team_drive: Set supportsAllDrives/includeItemsFromAllDrives on calls
            timeout: Socket timeout in seconds for each HTTP round trip
            service: Prebuilt Drive service (skips authentication)
            deadline: Stops calls and transport retries once expired

        Raises:
            RemoteCallError: If authentication fails
        """
        self.team_drive = team_drive
        self.deadline = deadline
        if service is None:
            service, _ = build_service('drive', 'v3', credentials_file, SCOPES, timeout)
        self.service = service

    @property
    def display_name(self) -> str:
        return "Google Drive (shared drive)" if self.team_drive else "Google Drive"

    def _drive_flags(self) -> dict:
        if not self.team_drive:
            return {}
        return {'supportsAllDrives': True}

    def list_page(self, parent_id: str, page_token: Optional[str] = None,
                  page_size: int = LIST_PAGE_SIZE) -> Tuple[List[RemoteEntry], Optional[str]]:
        """List one page of a folder, newest month names first."""
        params = dict(
            q=f"'{escape_query_value(parent_id)}' in parents",
            orderBy="name desc",
            pageSize=page_size,
            fields="nextPageToken, files(id, name, mimeType, trashed)",
        )
        if page_token:
            params['pageToken'] = page_token
        if self.team_drive:
            params['supportsAllDrives'] = True
            params['includeItemsFromAllDrives'] = True

        response = execute_with_retry(
            self.service.files().list(**params),
            action=f"list folder {parent_id}",
            deadline=self.deadline,
        )

        entries = []
        for item in response.get('files', []):
            mime_type = item.get('mimeType', '')
            entries.append(RemoteEntry(
                name=item.get('name', ''),
                id=item.get('id', ''),
                is_folder=(mime_type == FOLDER_MIME_TYPE),
                mime_type=mime_type,
                trashed=bool(item.get('trashed', False)),
            ))

        return entries, response.get('nextPageToken') or None

    def create(self, parent_id: str, name: str, kind: str,
               content: Optional[bytes] = None) -> str:
        """Create a folder, or a Google Doc converted from plain text."""
        if kind not in _MIME_TYPES:
            raise ValueError(f"Unknown item kind: {kind}")

        metadata = {
            'name': name,
            'parents': [parent_id],
            'mimeType': _MIME_TYPES[kind],
        }
        params = dict(body=metadata, fields='id', **self._drive_flags())
        if kind == DOCUMENT and content is not None:
            params['media_body'] = MediaIoBaseUpload(
                io.BytesIO(content), mimetype='text/plain', resumable=False
            )

        created = execute_with_retry(
            self.service.files().create(**params),
            action=f"create {kind} {name}",
            deadline=self.deadline,
        )
        return created['id']

    def reparent(self, item_id: str, remove_parent: str, add_parent: str) -> None:
        execute_with_retry(
            self.service.files().update(
                fileId=item_id,
                addParents=add_parent,
                removeParents=remove_parent,
                fields='id, parents',
                **self._drive_flags(),
            ),
            action=f"move {item_id} to {add_parent}",
            deadline=self.deadline,
        )
