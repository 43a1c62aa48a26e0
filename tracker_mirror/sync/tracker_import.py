"""Reconciliation of tracker issues into the local mirror.

One run fetches every synchronized issue and, for each of them in a fixed
order, upserts the issue, drops its stored history, records the sprint it was
created in, recomputes logged time from worklogs and rebuilds the status and
sprint timeline from the changelog. The current-sprint flag is reconciled for
all issues at the end of the run.
"""

from collections.abc import Iterable
from datetime import UTC, datetime
from itertools import count
from typing import Any

from tracker_mirror.clients.data_provider import TrackerDataProvider
from tracker_mirror.clients.jira_fields import (
    CHANGELOG_FIELD_SPRINT,
    CHANGELOG_FIELD_STATUS,
    FIELD_EPIC_ISSUE_ID,
    FIELD_ESTIMATED_TIME,
    FIELD_ESTIMATIONS_BY_ROLES,
    FIELD_ISSUE_SPRINT_INFO,
    FIELD_REMAINING_TIME,
    FIELD_TESTER,
)
from tracker_mirror.display import configure_logging
from tracker_mirror.models import (
    History,
    Issue,
    IssueOutcome,
    IssueTransformationError,
    ProviderContractError,
    SyncResult,
    User,
    UserRole,
)
from tracker_mirror.persistence import Repository
from tracker_mirror.sync.user_cache import UserCache
from tracker_mirror.type_definitions import IssueRecord, UserRecord, WorkLogRecord
from tracker_mirror.utils.role_estimations import (
    ROLE_DEVELOPERS,
    ROLE_TESTERS,
    parse_estimated,
    parse_remaining,
    select_role,
)
from tracker_mirror.utils.timestamps import format_storage_datetime, parse_tracker_datetime

try:
    from tracker_mirror.config import logger
except Exception:  # noqa: BLE001
    logger = configure_logging("INFO", None)

DEFAULT_USER_ID = "DEFAULT_USER"
DEFAULT_USER_NAME = "Unassigned"
DEFAULT_INITIAL_STATUS = "OPEN"

HISTORY_FIELD_STATUS = "status"
HISTORY_FIELD_SPRINT = "sprint"
HISTORY_FIELD_SPENT_TIME = "spent time"

_DEFAULT_USER_RECORD: UserRecord = {
    "key": DEFAULT_USER_ID,
    "displayName": DEFAULT_USER_NAME,
    "active": False,
}


class HistoryIdSequence:
    """Ids for history facts the tracker does not identify itself.

    Ids are ``<issue key>/<n>`` in derivation order, so re-deriving the same
    upstream data yields the same ids.
    """

    def __init__(self, issue_id: str) -> None:
        self.issue_id = issue_id
        self._counter = count(1)

    def next_id(self) -> str:
        return f"{self.issue_id}/{next(self._counter)}"


class TrackerImportService:
    """Synchronizes tracker issues, users and history into the mirror."""

    def __init__(
        self,
        provider: TrackerDataProvider,
        repository: Repository,
        initial_status: str = DEFAULT_INITIAL_STATUS,
    ) -> None:
        """Initialize the import service.

        Args:
            provider: Source of issue, worklog and changelog records
            repository: Mirror persistence
            initial_status: Status in which estimates may still change

        """
        self.provider = provider
        self.repository = repository
        self.initial_status = initial_status

    # -------------------------------------------------------------------- run

    def run_import(self) -> SyncResult:
        """Run one full synchronization pass.

        Returns:
            Tally of processed and skipped issues

        Raises:
            ProviderContractError: If the issue listing is malformed or its
                pagination does not converge. A malformed worklog or changelog
                only fails its own issue.

        """
        result = SyncResult(started_at=datetime.now(tz=UTC))
        cache = UserCache()

        issues = self.fetch_all_issues()
        logger.info("Fetched %s issues from the tracker", len(issues))

        for issue_data in issues:
            result.record(self.process_issue(issue_data, cache))

        current_keys = self.provider.fetch_current_sprint_issue_keys()
        self.update_is_current_sprint(False)
        result.current_sprint_count = self.update_is_current_sprint(True, current_keys)

        result.finished_at = datetime.now(tz=UTC)
        result.success = True
        result.message = (
            f"Processed {result.success_count} of {result.total_count} issues, "
            f"skipped {result.failed_count}"
        )
        result.details["users_resolved"] = len(cache)

        if result.failed_count:
            logger.warning(
                "Skipped %s issues: %s", result.failed_count, ", ".join(result.failed_issues)
            )
        logger.success(result.message)
        return result

    def fetch_all_issues(self) -> list[IssueRecord]:
        """Fetch every issue page until the reported total is reached.

        Raises:
            ProviderContractError: If a page is malformed or empty before the
                total is reached

        """
        issues: list[IssueRecord] = []
        while True:
            offset = len(issues)
            page = self.provider.fetch_issues_page(offset)
            page_issues = page.get("issues") if isinstance(page, dict) else None
            total = page.get("total") if isinstance(page, dict) else None
            if not isinstance(page_issues, list) or not isinstance(total, int):
                msg = f"Issue page at offset {offset} lacks 'issues' or 'total'"
                raise ProviderContractError(msg)

            issues.extend(page_issues)
            if len(issues) >= total:
                return issues
            if not page_issues:
                msg = f"Issue pagination stalled at offset {offset} of {total}"
                raise ProviderContractError(msg)

    def process_issue(self, issue_data: IssueRecord, cache: UserCache) -> IssueOutcome:
        """Process one issue record inside its own failure boundary."""
        issue_key = str(issue_data.get("key", "")) if isinstance(issue_data, dict) else ""
        try:
            issue = self.upsert_issue(issue_data, cache)
            # Tracker worklogs can be deleted upstream, so history is rebuilt from scratch
            self.repository.delete_history_for_issue(issue.id)
            ids = HistoryIdSequence(issue.id)
            self.add_issue_sprint(issue, issue_data, ids)
            self.update_logged_time(issue, cache)
            self.add_history_issue(issue, cache, ids)
        except Exception as e:  # noqa: BLE001
            logger.exception("Issue %s has a problem, raw record: %s", issue_key, issue_data)
            return IssueOutcome.failed(issue_key, e, issue_data)

        return IssueOutcome.ok(issue_key)

    # ----------------------------------------------------------------- issues

    def upsert_issue(self, issue_data: IssueRecord, cache: UserCache) -> Issue:
        """Map an issue record onto the stored issue and persist it.

        Raises:
            IssueTransformationError: If the record has no key or fields

        """
        if not isinstance(issue_data, dict):
            msg = f"Issue record must be a mapping, got {type(issue_data).__name__}"
            raise IssueTransformationError(msg)
        key = issue_data.get("key")
        fields = issue_data.get("fields")
        if not key or not isinstance(fields, dict):
            msg = "Issue record lacks 'key' or 'fields'"
            raise IssueTransformationError(msg)

        logger.debug("Processing issue %s (id %s)", key, issue_data.get("id"))
        issue = self.repository.find_issue(key) or Issue()
        # Informational only: derived values are recomputed for every issue
        if self.is_issue_exist_and_actual(issue, issue_data):
            logger.debug("Issue %s is up to date in the mirror, re-deriving it anyway", key)

        issue.summary = fields.get("summary") or ""
        issue.created_at = parse_tracker_datetime(fields["created"])
        issue.updated_at = parse_tracker_datetime(fields["updated"])
        issue.developer = self.upsert_user(fields.get("assignee"), cache)
        issue.status_name = fields["status"]["name"]
        issue.epic_id = fields.get(FIELD_EPIC_ISSUE_ID) or ""

        components = fields.get("components") or []
        fix_versions = fields.get("fixVersions") or []
        if len(components) > 1:
            logger.warning("Issue %s has more than one component, using the first", key)
        if len(fix_versions) > 1:
            logger.warning("Issue %s has more than one fix version, using the first", key)
        issue.component_name = components[0].get("name", "") if components else ""
        issue.repository_name = fix_versions[0].get("name", "") if fix_versions else ""

        # Anything but a user object means no tester was assigned
        issue.tester = self.upsert_user(fields.get(FIELD_TESTER), cache)

        role_estimations = fields.get(FIELD_ESTIMATIONS_BY_ROLES)
        if isinstance(role_estimations, str):
            role_estimations = [role_estimations]
        developer_estimation = select_role(ROLE_DEVELOPERS, role_estimations)
        tester_estimation = select_role(ROLE_TESTERS, role_estimations)

        if not issue.id or issue.status_name == self.initial_status:
            issue.developer_estimated = parse_estimated(developer_estimation)
            issue.tester_estimated = parse_estimated(tester_estimation)
            if not role_estimations:
                issue.developer_estimated = int(fields.get(FIELD_ESTIMATED_TIME) or 0)

        issue.developer_remaining = parse_remaining(developer_estimation)
        issue.tester_remaining = parse_remaining(tester_estimation)
        # Also true for genuine all-zero role estimates
        if issue.developer_remaining == 0 and issue.tester_remaining == 0:
            issue.developer_remaining = int(fields.get(FIELD_REMAINING_TIME) or 0)

        # Users must be stored before the issue that references them
        if not issue.id:
            issue.id = key
        self.repository.upsert(issue)
        return issue

    def is_issue_exist_and_actual(self, issue: Issue, issue_data: IssueRecord) -> bool:
        """Whether the stored issue exists and matches the tracker's update time."""
        if not issue.id or issue.updated_at is None:
            return False
        try:
            updated = parse_tracker_datetime(issue_data["fields"]["updated"])
        except (KeyError, TypeError, ValueError):
            return False
        return format_storage_datetime(issue.updated_at) == format_storage_datetime(updated)

    def get_epic_key_id(self, issue_links: Iterable[dict[str, Any]]) -> str:
        """Return the key of the first outward linked issue, or an empty string."""
        for issue_link in issue_links or ():
            outward = issue_link.get("outwardIssue")
            if isinstance(outward, dict) and outward.get("key"):
                return outward["key"]
        return ""

    def update_is_current_sprint(self, value: bool, keys: Iterable[str] | None = None) -> int:
        """Set the current-sprint flag on every issue, or only on ``keys``."""
        updated = self.repository.update_is_current_sprint(value, keys)
        logger.debug("Set is_current_sprint=%s on %s issues", value, updated)
        return updated

    # ------------------------------------------------------------------ users

    def upsert_user(self, user_data: UserRecord | None, cache: UserCache) -> User:
        """Resolve a tracker user once per run, creating it when unknown.

        Anything that is not a user object resolves to the unassigned
        placeholder user. The stored role and enabled flag of a known user
        are kept; only the display name is refreshed.

        Raises:
            IssueTransformationError: If the user object has no key

        """
        if not isinstance(user_data, dict):
            user_data = _DEFAULT_USER_RECORD

        user_key = user_data.get("key") or user_data.get("accountId")
        if not user_key:
            msg = f"User record lacks a key: {user_data}"
            raise IssueTransformationError(msg)

        cached = cache.get(user_key)
        if cached is not None:
            return cached

        user = self.repository.find_user(user_key)
        if user is None:
            user = User(id=user_key, is_enabled=bool(user_data.get("active")))
        user.name = user_data.get("displayName") or ""
        self.repository.upsert(user)
        return cache.put(user)

    # --------------------------------------------------------------- worklogs

    def update_logged_time(self, issue: Issue, cache: UserCache) -> None:
        """Recompute logged time per role from the issue's worklogs."""
        work_logs = self.provider.fetch_work_logs(issue.id)
        if not isinstance(work_logs, list):
            msg = f"Worklogs of {issue.id} must be a list, got {type(work_logs).__name__}"
            raise ProviderContractError(msg)
        if not work_logs:
            return

        for work_log in work_logs:
            self.add_issue_work_log(issue, work_log, cache)

        issue.developer_logged = self.get_logged_time(work_logs, UserRole.DEVELOPER, cache)
        issue.tester_logged = self.get_logged_time(work_logs, UserRole.TESTER, cache)
        self.repository.upsert(issue)

    def add_issue_work_log(self, issue: Issue, work_log: WorkLogRecord, cache: UserCache) -> History:
        history = History(
            id=str(work_log["id"]),
            created_at=parse_tracker_datetime(work_log["started"]),
            user_id=self.upsert_user(work_log.get("author"), cache).id,
            issue_id=issue.id,
            field_name=HISTORY_FIELD_SPENT_TIME,
            field_value=str(int(work_log["timeSpentSeconds"])),
        )
        self.repository.upsert(history)
        return history

    def get_logged_time(
        self,
        work_logs: Iterable[WorkLogRecord],
        role: UserRole,
        cache: UserCache,
    ) -> int:
        """Sum the seconds logged by users holding ``role``."""
        total = 0
        for work_log in work_logs:
            if self.upsert_user(work_log.get("author"), cache).role == role:
                total += int(work_log["timeSpentSeconds"])
        return total

    # ---------------------------------------------------------------- history

    def add_history_issue(
        self,
        issue: Issue,
        cache: UserCache,
        ids: HistoryIdSequence | None = None,
    ) -> None:
        """Rebuild the status and sprint timeline of an issue from its changelog.

        Also stamps ``status_updated_at`` with the last status transition, or
        the creation time when the status never changed.
        """
        ids = ids or HistoryIdSequence(issue.id)
        changelog = self.provider.fetch_changelog(issue.id)
        histories = changelog.get("histories") if isinstance(changelog, dict) else None
        if not isinstance(histories, list):
            msg = f"Changelog of {issue.id} lacks 'histories'"
            raise ProviderContractError(msg)

        status_updated_at = None
        for event in histories:
            for item in event.get("items") or []:
                if item.get("field") != CHANGELOG_FIELD_STATUS:
                    continue
                created_at = parse_tracker_datetime(event["created"])
                self.repository.upsert(
                    History(
                        id=ids.next_id(),
                        created_at=created_at,
                        user_id=self.upsert_user(event.get("author"), cache).id,
                        issue_id=issue.id,
                        field_name=HISTORY_FIELD_STATUS,
                        field_value=str(item.get("toString") or ""),
                    )
                )
                status_updated_at = created_at

        self.add_history_issue_sprint(issue, histories, cache, ids)

        issue.status_updated_at = status_updated_at or issue.created_at
        self.repository.upsert(issue)

    def add_history_issue_sprint(
        self,
        issue: Issue,
        histories: list[dict[str, Any]],
        cache: UserCache,
        ids: HistoryIdSequence | None = None,
    ) -> list[History]:
        """Record the sprints named by the last sprint change of the changelog.

        The last change lists every sprint the issue has been in, e.g.
        ``"Team 7, SEO_7"``.
        """
        ids = ids or HistoryIdSequence(issue.id)
        last_event: dict[str, Any] | None = None
        last_item: dict[str, Any] | None = None
        for event in histories:
            for item in event.get("items") or []:
                if item.get("field") == CHANGELOG_FIELD_SPRINT:
                    last_event, last_item = event, item

        if last_event is None or last_item is None:
            return []

        facts: list[History] = []
        for sprint in str(last_item.get("toString") or "").split(", "):
            if not sprint:
                continue
            history = History(
                id=ids.next_id(),
                created_at=parse_tracker_datetime(last_event["created"]),
                user_id=self.upsert_user(last_event.get("author"), cache).id,
                issue_id=issue.id,
                field_name=HISTORY_FIELD_SPRINT,
                field_value=self.get_issue_history_sprint(sprint),
            )
            self.repository.upsert(history)
            facts.append(history)
        return facts

    def get_issue_history_sprint(self, sprint_names: str | None) -> str:
        """Return the last comma-separated token of a changelog sprint name."""
        if not isinstance(sprint_names, str):
            return ""
        return sprint_names.split(",")[-1].strip()

    # ----------------------------------------------------------------- sprint

    def add_issue_sprint(
        self,
        issue: Issue,
        issue_data: IssueRecord,
        ids: HistoryIdSequence | None = None,
    ) -> History | None:
        """Record the sprint an issue currently belongs to at its creation time.

        Captures the sprint even when the changelog has no sprint change yet.
        """
        descriptors = issue_data["fields"].get(FIELD_ISSUE_SPRINT_INFO) or []
        if isinstance(descriptors, str | dict):
            descriptors = [descriptors]
        descriptor = descriptors[0] if descriptors else None
        if descriptor is None or (isinstance(descriptor, str) and not descriptor.strip()):
            return None

        ids = ids or HistoryIdSequence(issue.id)
        developer = issue.developer or User(id=DEFAULT_USER_ID)
        history = History(
            id=ids.next_id(),
            created_at=issue.created_at,
            user_id=developer.id,
            issue_id=issue.id,
            field_name=HISTORY_FIELD_SPRINT,
            field_value=self.get_issue_sprint(descriptor),
        )
        self.repository.upsert(history)
        return history

    def get_issue_sprint(self, sprint_info: str | dict[str, Any]) -> str:
        """Extract the sprint name from a sprint descriptor.

        Accepts the legacy textual form
        ``"...Sprint@396feb4c[id=3114,rapidViewId=520,state=ACTIVE,name=SEO_7,...]"``
        and sprint objects carrying a ``name`` key.

        Raises:
            IssueTransformationError: If the descriptor names no sprint

        """
        if isinstance(sprint_info, dict):
            name = sprint_info.get("name")
            if not name:
                msg = f"Sprint object has no name: {sprint_info}"
                raise IssueTransformationError(msg)
            return str(name).strip()

        parts = str(sprint_info).split(",name=")
        if len(parts) < 2:  # noqa: PLR2004
            msg = f"Sprint descriptor has no name: {sprint_info}"
            raise IssueTransformationError(msg)
        return parts[1].split(",")[0].strip()
