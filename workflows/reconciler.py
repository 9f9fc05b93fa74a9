"""Folder reconciliation.

One pass:
(1) loads the persisted folder state,
(2) lists the Drive parent folder,
(3) makes sure the folder for two days from now exists,
(4) brings the persisted state in line with what Drive shows,
(5) moves loose result documents from the parent into their month folder.
"""

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Callable, Dict, List, Mapping, Optional, Tuple

from resultsink import Config
from resultsink.errors import RemoteCallError, StateStoreError
from storage import DocumentStore, RemoteEntry, FOLDER, LIST_PAGE_SIZE
from utils.deadline import Deadline
from .buckets import bucket_from_filename, near_future_bucket, utcnow
from .folder_state import FolderStateStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FolderDiff:
    """Changes needed to turn one folder map into another.

    The three maps have disjoint keys.
    """
    inserted: Dict[str, str] = field(default_factory=dict)              # name -> id
    updated: Dict[str, Tuple[str, str]] = field(default_factory=dict)   # name -> (old, new)
    removed: Dict[str, str] = field(default_factory=dict)               # name -> old id

    @property
    def is_empty(self) -> bool:
        return not (self.inserted or self.updated or self.removed)


def diff_folders(current: Mapping[str, str], observed: Mapping[str, str]) -> FolderDiff:
    """Compare persisted folders with observed folders by name.

    Neither mapping is modified.
    """
    inserted = {}
    updated = {}
    for name, new_id in observed.items():
        old_id = current.get(name)
        if not old_id:
            inserted[name] = new_id
        elif old_id != new_id:
            updated[name] = (old_id, new_id)
    removed = {name: old_id for name, old_id in current.items() if name not in observed}
    return FolderDiff(inserted=inserted, updated=updated, removed=removed)


@dataclass
class ReconcileReport:
    """Counters for one reconciliation pass."""
    folders_inserted: int = 0
    folders_updated: int = 0
    folders_removed: int = 0
    state_write_failed: int = 0
    subfolder_created: int = 0
    subfolder_create_failed: int = 0
    files_moved: int = 0
    file_move_failed: int = 0

    def summary(self) -> str:
        return ", ".join(f"{k}={v}" for k, v in self.__dict__.items())


class FolderReconciler:
    """Keeps the folder state store and the Drive month folders in sync."""

    def __init__(self, config: Config, drive: DocumentStore, state: FolderStateStore,
                 clock: Callable[[], datetime] = utcnow) -> None:
        self.config = config
        self.drive = drive
        self.state = state
        self.clock = clock

    @property
    def parent_id(self) -> str:
        return self.config.parent_id

    def scan(self, now: datetime,
             deadline: Optional[Deadline] = None) -> Tuple[Dict[str, str], Dict[str, List[RemoteEntry]]]:
        """List the parent folder.

        Returns:
            Tuple of (folders, files) where folders maps folder name to id and
            files maps a bucket name to the loose result documents that
            belong in it. Trashed items, other documents and results with
            an invalid or future timestamp are left out.

        Raises:
            RemoteCallError: If any page can't be listed
        """
        folders: Dict[str, str] = {}
        files: Dict[str, List[RemoteEntry]] = {}

        for entry in self.drive.iter_entries(self.parent_id, LIST_PAGE_SIZE, deadline):
            if entry.trashed:
                continue
            if entry.is_folder:
                if entry.name in folders:
                    logger.warning("duplicate folder %s (%s, %s), keeping %s",
                                   entry.name, folders[entry.name], entry.id, folders[entry.name])
                    continue
                folders[entry.name] = entry.id
            elif entry.is_document:
                bucket = bucket_from_filename(entry.name, now)
                if bucket is None:
                    continue
                files.setdefault(bucket, []).append(replace(entry, target_bucket=bucket))

        return folders, files

    def run(self, deadline: Optional[Deadline] = None) -> ReconcileReport:
        """Run one reconciliation pass.

        Raises:
            ConfigurationError: If PARENT_ID is not set
            StateStoreError: If the persisted state can't be loaded
            RemoteCallError: If listing Drive or creating the upcoming
                month folder fails (nothing has been changed at that point),
                or the deadline expires
        """
        self.config.require("parent_id")
        deadline = deadline or Deadline.unbounded()
        now = self.clock()
        report = ReconcileReport()

        current = self.state.load_all()
        logger.info("retrieved %d subfolder info from state", len(current))
        if self.config.debug:
            for name, folder_id in sorted(current.items()):
                logger.debug("subfolder retrieved from state: name=%s, id=%s", name, folder_id)

        observed, files = self.scan(now, deadline)
        logger.info("retrieved %d folders and %d files",
                    len(observed), sum(len(v) for v in files.values()))
        if self.config.debug:
            for name, folder_id in sorted(observed.items()):
                logger.debug("subfolder retrieved from Google Drive: name=%s, id=%s", name, folder_id)
            for name, entries in sorted(files.items()):
                logger.debug("%d files need to be moved to subfolder %s", len(entries), name)

        self._ensure_upcoming_folder(now, observed, report, deadline)
        self._sync_state(current, observed, report)

        if not files:
            logger.info("no file to move")
        else:
            self._move_files(observed, files, report, deadline)

        logger.info("finished reconciliation (%s)", report.summary())
        return report

    def _ensure_upcoming_folder(self, now: datetime, observed: Dict[str, str],
                                report: ReconcileReport, deadline: Deadline) -> None:
        name = near_future_bucket(now)
        logger.info("checking subfolder existence (%s)", name)
        if observed.get(name):
            logger.info("subfolder %s already exists (id=%s), not creating", name, observed[name])
            return

        deadline.check(f"creating subfolder {name}")
        folder_id = self.drive.create(self.parent_id, name, FOLDER)
        observed[name] = folder_id
        report.subfolder_created += 1
        logger.info("subfolder %s created (id=%s)", name, folder_id)

    def _sync_state(self, current: Mapping[str, str], observed: Mapping[str, str],
                    report: ReconcileReport) -> None:
        diff = diff_folders(current, observed)
        if diff.is_empty:
            logger.info("no subfolder change found, not updating state")
            return

        logger.info("subfolder values changed (inserted=%d, updated=%d, removed=%d)",
                    len(diff.inserted), len(diff.updated), len(diff.removed))

        for name, folder_id in sorted(diff.inserted.items()):
            try:
                self.state.put(name, folder_id)
            except StateStoreError as e:
                logger.warning("error inserting folder data (name=%s, id=%s) %s", name, folder_id, e)
                report.state_write_failed += 1
                continue
            logger.info("inserted folder data (name=%s, id=%s)", name, folder_id)
            report.folders_inserted += 1

        for name, (old_id, new_id) in sorted(diff.updated.items()):
            try:
                self.state.put(name, new_id)
            except StateStoreError as e:
                logger.warning("error updating folder data (name=%s, id=%s) %s", name, new_id, e)
                report.state_write_failed += 1
                continue
            logger.info("folderId changed %s -> %s (%s)", old_id, new_id, name)
            report.folders_updated += 1

        for name, old_id in sorted(diff.removed.items()):
            try:
                self.state.delete(name)
            except StateStoreError as e:
                logger.warning("error removing folder data (name=%s, id=%s) %s", name, old_id, e)
                report.state_write_failed += 1
                continue
            logger.info("subfolder %s deleted (%s)", name, old_id)
            report.folders_removed += 1

    def _move_files(self, observed: Dict[str, str], files: Mapping[str, List[RemoteEntry]],
                    report: ReconcileReport, deadline: Deadline) -> None:
        for name in sorted(files):
            entries = files[name]
            logger.info("checking subfolder id for %d files (name=%s)", len(entries), name)

            folder_id = observed.get(name)
            if not folder_id:
                logger.info("subfolder %s not exists, need to create", name)
                deadline.check(f"creating subfolder {name}")
                try:
                    folder_id = self.drive.create(self.parent_id, name, FOLDER)
                except RemoteCallError as e:
                    logger.warning("error creating subfolder (%s) %s", name, e)
                    report.subfolder_create_failed += 1
                    report.file_move_failed += len(entries)
                    continue

                logger.info("subfolder %s created (id=%s)", name, folder_id)
                report.subfolder_created += 1
                observed[name] = folder_id
                try:
                    self.state.put(name, folder_id)
                except StateStoreError as e:
                    logger.warning("error inserting folder data (name=%s, id=%s) %s", name, folder_id, e)
                    report.state_write_failed += 1
                else:
                    logger.info("inserted folder data (name=%s, id=%s)", name, folder_id)

            logger.info("moving %d files to subfolder (name=%s, id=%s)", len(entries), name, folder_id)
            for entry in entries:
                deadline.check(f"moving {entry.name}")
                try:
                    self.drive.reparent(entry.id, self.parent_id, folder_id)
                except RemoteCallError as e:
                    logger.warning("error moving file %s (%s) to folder %s (%s) %s",
                                   entry.name, entry.id, name, folder_id, e)
                    report.file_move_failed += 1
                    continue
                logger.info("moved file %s (%s) to folder %s (%s)", entry.name, entry.id, name, folder_id)
                report.files_moved += 1
