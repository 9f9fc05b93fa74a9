"""Folder state store.

Keeps the believed-accurate snapshot of the month folders under the Drive
parent (folder name -> Drive folder id) in SQLite, so delivery can find a
folder without listing Drive.
"""

import logging
import os
import sqlite3
from typing import Dict, Optional

from resultsink.errors import StateStoreError

logger = logging.getLogger(__name__)


class FolderStateStore:
    """SQLite table of known folders, one row per folder name."""

    def __init__(self, db_path: str) -> None:
        try:
            db_dir = os.path.dirname(db_path)
            if db_dir and not os.path.exists(db_dir):
                os.makedirs(db_dir)

            self.db_path = db_path
            self.conn = sqlite3.connect(db_path)
            self.conn.row_factory = sqlite3.Row
            self._init_db()
        except (OSError, sqlite3.Error) as e:
            raise StateStoreError(f"Cannot open folder state at {db_path}: {e}")

    def _init_db(self) -> None:
        """Create table if it doesn't exist."""
        cursor = self.conn.cursor()
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS folders (
                name TEXT PRIMARY KEY,
                remote_id TEXT NOT NULL
            )
        """)
        self.conn.commit()

    def load_all(self) -> Dict[str, str]:
        """Return every known folder as {name: remote_id}.

        Rows with an empty name or id are ignored.
        """
        try:
            cursor = self.conn.cursor()
            cursor.execute("SELECT name, remote_id FROM folders")
            rows = cursor.fetchall()
        except sqlite3.Error as e:
            raise StateStoreError(f"Cannot read folder state: {e}")
        return {row["name"]: row["remote_id"] for row in rows
                if row["name"] and row["remote_id"]}

    def get(self, name: str) -> Optional[str]:
        """Look up the folder id for a single name."""
        try:
            cursor = self.conn.cursor()
            cursor.execute("SELECT remote_id FROM folders WHERE name = ?", (name,))
            row = cursor.fetchone()
        except sqlite3.Error as e:
            raise StateStoreError(f"Cannot read folder {name}: {e}")
        return row["remote_id"] if row and row["remote_id"] else None

    def put(self, name: str, remote_id: str) -> None:
        """Insert a folder or replace its id."""
        try:
            self.conn.execute(
                "INSERT OR REPLACE INTO folders (name, remote_id) VALUES (?, ?)",
                (name, remote_id),
            )
            self.conn.commit()
        except sqlite3.Error as e:
            raise StateStoreError(f"Cannot write folder {name}: {e}")

    def delete(self, name: str) -> None:
        try:
            self.conn.execute("DELETE FROM folders WHERE name = ?", (name,))
            self.conn.commit()
        except sqlite3.Error as e:
            raise StateStoreError(f"Cannot remove folder {name}: {e}")

    def close(self) -> None:
        """Close the database connection."""
        self.conn.close()
