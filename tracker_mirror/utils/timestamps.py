"""Timestamp handling for tracker records and stored rows."""

from datetime import datetime

# Tracker datetime format, e.g. 2023-12-15T12:27:52.000+0300
TRACKER_DATETIME_FORMAT = "%Y-%m-%dT%H:%M:%S.%f%z"

# Column format of every timestamp stored in the mirror
STORAGE_DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S"


def parse_tracker_datetime(value: str) -> datetime:
    """Parse a tracker timestamp.

    Args:
        value: Timestamp in the tracker's fixed format

    Returns:
        Timezone-aware datetime in the tracker's offset

    Raises:
        ValueError: If the value does not match the tracker format

    """
    if not isinstance(value, str):
        msg = f"Expected a tracker timestamp string, got {type(value).__name__}"
        raise ValueError(msg)
    return datetime.strptime(value, TRACKER_DATETIME_FORMAT)


def format_storage_datetime(value: datetime) -> str:
    """Render a datetime in the storage format (wall-clock time, no offset)."""
    return value.strftime(STORAGE_DATETIME_FORMAT)


def parse_storage_datetime(value: str | None) -> datetime | None:
    """Parse a stored timestamp back into a naive datetime."""
    if not value:
        return None
    return datetime.strptime(value, STORAGE_DATETIME_FORMAT)
