"""Contract between the synchronization engine and the tracker."""

from typing import Protocol

from tracker_mirror.type_definitions import ChangelogRecord, JiraData, WorkLogRecord


class TrackerDataProvider(Protocol):
    """Source of tracker records.

    Implementations handle transport, authentication and decoding; callers
    only see plain dictionaries shaped like the tracker's REST responses.
    """

    def fetch_issues_page(self, offset: int) -> JiraData:
        """Return ``{"issues": [...], "total": int}`` starting at ``offset``."""
        ...

    def fetch_current_sprint_issue_keys(self) -> list[str]:
        """Return the keys of the issues in the currently open sprint(s)."""
        ...

    def fetch_work_logs(self, issue_key: str) -> list[WorkLogRecord]:
        """Return the worklog entries of an issue."""
        ...

    def fetch_changelog(self, issue_key: str) -> ChangelogRecord:
        """Return ``{"histories": [...]}`` for an issue."""
        ...
