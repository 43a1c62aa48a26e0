"""Reconciliation of tracker data into the local mirror."""

from tracker_mirror.sync.tracker_import import HistoryIdSequence, TrackerImportService
from tracker_mirror.sync.user_cache import UserCache

__all__ = ["HistoryIdSequence", "TrackerImportService", "UserCache"]
