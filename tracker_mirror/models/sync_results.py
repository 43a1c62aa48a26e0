"""Result models for tracking synchronization runs."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from tracker_mirror.type_definitions import IssueRecord


@dataclass(slots=True)
class IssueOutcome:
    """Result of processing one issue record."""

    issue_key: str
    success: bool
    error: str | None = None
    raw: IssueRecord = field(default_factory=dict)

    @classmethod
    def ok(cls, issue_key: str) -> "IssueOutcome":
        return cls(issue_key=issue_key, success=True)

    @classmethod
    def failed(cls, issue_key: str, error: BaseException, raw: IssueRecord) -> "IssueOutcome":
        return cls(
            issue_key=issue_key,
            success=False,
            error=f"{type(error).__name__}: {error}",
            raw=raw,
        )


class SyncResult(BaseModel):
    """Represents the result of one full synchronization run."""

    success: bool = False
    message: str = ""
    started_at: datetime | None = None
    finished_at: datetime | None = None
    total_count: int = 0
    success_count: int = 0
    failed_count: int = 0
    current_sprint_count: int = 0
    failed_issues: list[str] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)
    details: dict[str, Any] = Field(default_factory=dict)

    @property
    def duration_seconds(self) -> float:
        if self.started_at is None or self.finished_at is None:
            return 0.0
        return (self.finished_at - self.started_at).total_seconds()

    def record(self, outcome: IssueOutcome) -> None:
        """Tally one per-issue outcome."""
        self.total_count += 1
        if outcome.success:
            self.success_count += 1
            return
        self.failed_count += 1
        self.failed_issues.append(outcome.issue_key)
        if outcome.error:
            self.errors.append(f"{outcome.issue_key}: {outcome.error}")
