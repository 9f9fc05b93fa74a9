"""Month bucket names for result documents.

Result documents are named ``cnc_result_<epoch seconds>`` and filed into a
folder per month named ``YYYYMM`` (UTC).
"""

import re
from datetime import datetime, timedelta, timezone
from typing import Optional

# Prefix used for result documents
RESULT_PREFIX = "cnc_result_"

# Format used to generate folder names from timestamps
BUCKET_FORMAT = "%Y%m"

# How far ahead the reconciler makes sure a folder exists
NEAR_FUTURE_OFFSET = timedelta(days=2)

_RESULT_NAME = re.compile(re.escape(RESULT_PREFIX) + r"([0-9]+)")


def _as_utc(instant: datetime) -> datetime:
    if instant.tzinfo is None:
        return instant.replace(tzinfo=timezone.utc)
    return instant.astimezone(timezone.utc)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def bucket_name(instant: datetime) -> str:
    """Return the month bucket for an instant; naive datetimes are UTC."""
    return _as_utc(instant).strftime(BUCKET_FORMAT)


def near_future_bucket(now: datetime) -> str:
    """Bucket that will be needed shortly (now + NEAR_FUTURE_OFFSET)."""
    return bucket_name(_as_utc(now) + NEAR_FUTURE_OFFSET)


def result_filename(start_unix: int) -> str:
    return f"{RESULT_PREFIX}{start_unix}"


def bucket_from_filename(filename: str, now: datetime) -> Optional[str]:
    """Return the YYYYMM bucket for a cnc_result_{epoch} filename.

    Returns None if the name doesn't follow the convention, or if the
    embedded epoch is zero, out of range, or later than ``now``.
    """
    match = _RESULT_NAME.fullmatch(filename)
    if not match:
        return None

    seconds = int(match.group(1))
    if seconds == 0:
        return None

    try:
        instant = datetime.fromtimestamp(seconds, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None

    if instant > _as_utc(now):
        return None

    return bucket_name(instant)
