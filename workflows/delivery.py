"""Delivery of a result payload to Google Drive and BigQuery.

The two deliveries are independent: each can fail on its own and each
failure ends up in its own retry queue.
"""

import json
import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from resultsink import Config
from resultsink.errors import (
    ConfigurationError,
    DeliveryError,
    InsertError,
    RemoteCallError,
    StateStoreError,
)
from resultsink.payload import ResultPayload
from storage import DocumentStore, InsertSink, DOCUMENT
from utils.deadline import Deadline
from .buckets import bucket_from_filename, result_filename, utcnow
from .folder_state import FolderStateStore
from .render import render_template

logger = logging.getLogger(__name__)


def _joined(lines: Any) -> str:
    if isinstance(lines, list):
        return "\n".join("" if line is None else str(line) for line in lines)
    return "" if lines is None else str(lines)


def to_warehouse_row(payload: ResultPayload) -> Dict[str, Any]:
    """Map a payload onto the warehouse row shape.

    Output lines (cpu names, ping and trace output) are joined into one
    newline separated string; start_unix is sent as a decimal string.
    """
    ip = payload.section("ip")
    os_info = payload.section("os")
    cpu = payload.section("cpu")
    memory = payload.section("memory")

    def mem(name: str) -> Dict[str, Any]:
        values = memory.get(name) if isinstance(memory.get(name), dict) else {}
        return {
            "total": values.get("total"),
            "free": values.get("free"),
            "used": values.get("used"),
        }

    def execs(name: str) -> List[Dict[str, str]]:
        return [
            {"location": item.get("location", ""), "output": _joined(item.get("output"))}
            for item in payload.items(name)
        ]

    return {
        "start": payload.start,
        "start_unix": payload.key,
        "duration": payload.body.get("duration", ""),
        "ip": {
            "ip": ip.get("ip", ""),
            "isp": ip.get("isp", ""),
            "country": ip.get("countrycode", ""),
            "city": ip.get("city", ""),
        },
        "os": {
            "name": os_info.get("name", ""),
            "version": os_info.get("version", ""),
            "kernel": os_info.get("kernel", ""),
            "model": os_info.get("model", ""),
            "build": os_info.get("build", ""),
        },
        "cpu": {
            "number": cpu.get("number"),
            "speed": cpu.get("speed", ""),
            "cpu": _joined(cpu.get("cpu")),
        },
        "memory": {
            "physical": mem("physical"),
            "virtual": mem("virtual"),
        },
        "ping": execs("ping"),
        "trace": execs("trace"),
        "download": [
            {
                "location": item.get("location", ""),
                "file": item.get("file", ""),
                "speed": item.get("speed", ""),
            }
            for item in payload.items("download")
        ],
    }


def load_schema(path: str) -> List[Dict[str, Any]]:
    """Load a BigQuery table schema from a JSON file.

    Accepts either a bare list of fields or an object with a "fields" list.

    Raises:
        OSError: If the file can't be read
        ValueError: If it isn't a schema
    """
    with open(path, 'r', encoding='utf-8') as f:
        data = json.load(f)
    if isinstance(data, dict):
        data = data.get("fields")
    if not isinstance(data, list) or not all(isinstance(c, dict) for c in data):
        raise ValueError(f"{path} does not contain a list of schema fields")
    return data


class DeliveryCoordinator:
    """Creates the result document and inserts the warehouse row.

    Clients are built lazily through factories so that a client that can't
    be initialized fails the single delivery that needed it.
    """

    def __init__(self, config: Config, state: Optional[FolderStateStore],
                 drive_factory: Callable[[], DocumentStore],
                 sink_factory: Callable[[], InsertSink],
                 renderer: Callable[[str, ResultPayload], bytes] = render_template,
                 clock: Callable[[], datetime] = utcnow) -> None:
        self.config = config
        self.state = state
        self.drive_factory = drive_factory
        self.sink_factory = sink_factory
        self.renderer = renderer
        self.clock = clock

    def target_folder(self, filename: str) -> str:
        """Pick the Drive folder for a result document.

        Uses the month folder if subfolders are enabled and the folder is
        known to the state store; otherwise the parent folder. Drive is
        never queried here.
        """
        parent_id = self.config.parent_id
        if not self.config.enable_drive_subfolders or self.state is None:
            return parent_id

        name = bucket_from_filename(filename, self.clock())
        if name is None:
            logger.info("unable to determine subfolder name (%s)", filename)
            return parent_id

        logger.info("retrieving id for folder %s (file=%s)", name, filename)
        try:
            folder_id = self.state.get(name)
        except StateStoreError as e:
            logger.info("unable to retrieve id for subfolder %s (%s)", name, e)
            return parent_id
        if not folder_id:
            logger.info("subfolder %s not in state, using parent folder", name)
            return parent_id

        logger.info("retrieved id for subfolder %s (%s)", name, folder_id)
        return folder_id

    def deliver_document(self, payload: ResultPayload,
                         deadline: Optional[Deadline] = None) -> str:
        """Render the payload and create it as a Google Doc.

        The deadline, if given, is checked before the create call.

        Returns:
            Id of the created document

        Raises:
            DeliveryError: On missing configuration, client init failure,
                render failure or a failed create call
        """
        try:
            self.config.require("credentials_file", "parent_id", "doc_template")
        except ConfigurationError as e:
            raise DeliveryError(f"missing Google Drive configuration ({e})") from e

        try:
            drive = self.drive_factory()
        except RemoteCallError as e:
            raise DeliveryError(f"error initializing drive service - {e}") from e

        try:
            content = self.renderer(self.config.doc_template, payload)
        except (OSError, ValueError) as e:
            raise DeliveryError(f"error rendering {self.config.doc_template} - {e}") from e

        filename = result_filename(payload.start_unix)
        folder_id = self.target_folder(filename)
        logger.info("uploading file (%s) in folder (%s)", filename, folder_id)

        try:
            if deadline is not None:
                deadline.check(f"uploading {filename}")
            doc_id = drive.create(folder_id, filename, DOCUMENT, content)
        except RemoteCallError as e:
            raise DeliveryError(f"error uploading a doc - {e}") from e

        logger.info("uploaded %s (id=%s)", filename, doc_id)
        return doc_id

    def insert_record(self, payload: ResultPayload,
                      deadline: Optional[Deadline] = None) -> None:
        """Insert the payload as one warehouse row.

        The deadline, if given, is checked before the insert call.

        Raises:
            InsertError: On missing configuration, schema load failure,
                an unconvertible payload, client init failure or a rejected insert
        """
        try:
            self.config.require("dataset_id", "table_id", "schema_file")
        except ConfigurationError as e:
            raise InsertError(f"missing BigQuery configuration ({e})") from e

        try:
            schema = load_schema(self.config.schema_file)
        except (OSError, ValueError) as e:
            raise InsertError(f"error reading schema: {e}") from e

        row = to_warehouse_row(payload)
        if not row["start"]:
            raise InsertError(f"error converting payload {payload.key} into a warehouse row")

        try:
            sink = self.sink_factory()
        except RemoteCallError as e:
            raise InsertError(f"error initializing BigQuery client - {e}") from e

        logger.info("inserting data (key=%s)", payload.key)
        try:
            if deadline is not None:
                deadline.check(f"inserting {payload.key}")
            sink.insert(row, schema, insert_id=payload.key)
        except RemoteCallError as e:
            raise InsertError(f"error inserting data - {e}") from e
        logger.info("inserted data (key=%s)", payload.key)
