"""Models package for data structures used in the application."""

from tracker_mirror.models.entities import Column, Entity, History, Issue, User, UserRole
from tracker_mirror.models.sync_error import (
    IssueTransformationError,
    ProviderContractError,
    SyncError,
)
from tracker_mirror.models.sync_results import IssueOutcome, SyncResult

__all__ = [
    "Column",
    "Entity",
    "History",
    "Issue",
    "IssueOutcome",
    "IssueTransformationError",
    "ProviderContractError",
    "SyncError",
    "SyncResult",
    "User",
    "UserRole",
]
