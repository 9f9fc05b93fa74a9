"""ResultPayload - a diagnostic report as posted by the collector."""

import json
from dataclasses import dataclass, field
from typing import Any, Dict

from .errors import SerializationError


@dataclass
class ResultPayload:
    """One diagnostic result.

    Only ``start_unix`` matters to delivery: it names the result document,
    picks the month folder and keys the retry entries. Everything else is
    kept in ``body`` exactly as the collector sent it.
    """

    start_unix: int                                   # Epoch seconds, idempotency key
    body: Dict[str, Any] = field(default_factory=dict)

    @property
    def key(self) -> str:
        """Decimal idempotency key used for retry entries."""
        return str(self.start_unix)

    @property
    def start(self) -> str:
        return str(self.body.get("start") or "")

    def section(self, name: str) -> Dict[str, Any]:
        """Return a nested object from the body, or {} if absent or malformed."""
        value = self.body.get(name)
        return value if isinstance(value, dict) else {}

    def items(self, name: str) -> list:
        """Return a list of objects from the body, skipping malformed entries."""
        value = self.body.get(name)
        if not isinstance(value, list):
            return []
        return [v for v in value if isinstance(v, dict)]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ResultPayload":
        """Build a payload from the decoded collector JSON.

        Raises:
            SerializationError: If the document is not an object or
                start_unix is missing or not an integer
        """
        if not isinstance(data, dict):
            raise SerializationError(f"payload must be a JSON object, got {type(data).__name__}")
        raw = data.get("start_unix")
        if isinstance(raw, bool) or raw is None:
            raise SerializationError("payload has no start_unix")
        try:
            start_unix = int(raw)
        except (TypeError, ValueError, OverflowError):
            raise SerializationError(f"invalid start_unix: {raw!r}")
        if isinstance(raw, float) and raw != start_unix:
            raise SerializationError(f"invalid start_unix: {raw!r}")
        body = dict(data)
        body["start_unix"] = start_unix
        return cls(start_unix=start_unix, body=body)

    def to_bytes(self) -> bytes:
        """Serialize for the retry queue."""
        data = dict(self.body)
        data["start_unix"] = self.start_unix
        try:
            return json.dumps(data, sort_keys=True, separators=(",", ":")).encode("utf-8")
        except (TypeError, ValueError) as e:
            raise SerializationError(f"cannot encode payload {self.key}: {e}")

    @classmethod
    def from_bytes(cls, blob: bytes) -> "ResultPayload":
        """Inverse of to_bytes()."""
        try:
            data = json.loads(blob.decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as e:
            raise SerializationError(f"cannot decode payload: {e}")
        return cls.from_dict(data)
