"""resultsink - Application configuration and logging setup."""

import logging
import os
from dataclasses import dataclass, fields
from typing import Mapping, Optional

from .errors import ConfigurationError

__version__ = "0.1.0"

DEFAULT_STATE_DB = os.path.join(os.path.expanduser("~"), ".resultsink", "folders.db")


def _env_bool(value: Optional[str]) -> bool:
    return (value or "").strip().lower() == "true"


@dataclass(frozen=True)
class Config:
    """Settings for one running instance.

    Built once at startup and handed to every component. Nothing in the
    package reads the environment after this point.
    """

    # Google Drive
    credentials_file: str = ""         # Service account key JSON
    parent_id: str = ""                # Folder holding result docs and month folders
    doc_template: str = ""             # string.Template file used to render docs
    is_team_drive: bool = False
    enable_drive_subfolders: bool = False

    # BigQuery
    project_id: str = ""               # Falls back to the service account's project
    dataset_id: str = ""
    table_id: str = ""
    schema_file: str = ""

    # Retry queue
    retry_store: str = "gs:"           # "gs:" or "local:/path/to/dir"
    retry_bucket_uploads: str = ""
    retry_bucket_inserts: str = ""

    # Local state and limits
    state_db: str = DEFAULT_STATE_DB
    request_timeout: float = 60.0      # Seconds per invocation
    debug: bool = False

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Config":
        """Build a Config from environment variables.

        Variable names are the upper-cased field names (PARENT_ID,
        RETRY_BUCKET_UPLOADS, ...). Unset variables keep their defaults.
        """
        env = os.environ if environ is None else environ
        values = {}
        for f in fields(cls):
            raw = env.get(f.name.upper())
            if raw is None or raw == "":
                continue
            if f.type in (bool, "bool"):
                values[f.name] = _env_bool(raw)
            elif f.type in (float, "float"):
                try:
                    values[f.name] = float(raw)
                except ValueError:
                    raise ConfigurationError(f"{f.name.upper()} must be a number, got {raw!r}")
            else:
                values[f.name] = raw
        return cls(**values)

    def missing(self, *names: str) -> list:
        """Return the subset of the given setting names that are empty."""
        return [name for name in names if not getattr(self, name)]

    def require(self, *names: str) -> None:
        """Raise ConfigurationError if any of the named settings is empty."""
        absent = self.missing(*names)
        if absent:
            raise ConfigurationError(
                "missing configuration: " + ", ".join(n.upper() for n in absent)
            )


def setup_logging(debug: bool = False) -> None:
    """Send log records to the console through Rich."""
    from rich.logging import RichHandler

    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(name)s: %(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
        force=True,
    )
    # googleapiclient logs every discovery cache miss at WARNING
    logging.getLogger("googleapiclient.discovery_cache").setLevel(logging.ERROR)
