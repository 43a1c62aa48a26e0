"""SQLite persistence for the tracker mirror."""

from tracker_mirror.persistence.database import connect, ensure_schema
from tracker_mirror.persistence.repository import Repository

__all__ = ["Repository", "connect", "ensure_schema"]
