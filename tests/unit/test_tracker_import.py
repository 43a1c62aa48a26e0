"""Tests for the reconciliation of tracker issues into the mirror."""

import logging
from datetime import datetime
from unittest.mock import MagicMock

import pytest

from tests.utils.fake_provider import (
    SPRINT_DESCRIPTOR,
    FakeTrackerProvider,
    make_event,
    make_issue,
    make_user,
    make_work_log,
    role_estimations,
)
from tracker_mirror.models import (
    History,
    Issue,
    IssueTransformationError,
    ProviderContractError,
    SyncResult,
    User,
    UserRole,
)
from tracker_mirror.persistence import Repository
from tracker_mirror.sync import HistoryIdSequence, TrackerImportService, UserCache
from tracker_mirror.sync.tracker_import import DEFAULT_USER_ID, DEFAULT_USER_NAME

DEV = make_user("dev")
QA = make_user("qa")
LEAD = make_user("lead")


def run(provider: FakeTrackerProvider, repository: Repository) -> SyncResult:
    return TrackerImportService(provider, repository).run_import()


def all_rows(repository: Repository) -> dict[str, list[tuple]]:
    return {
        entity.TABLE_NAME: repository.fetch_rows(entity)
        for entity in (Issue, User, History)
    }


@pytest.fixture
def populated(provider: FakeTrackerProvider) -> FakeTrackerProvider:
    """Tracker holding one fully featured issue."""
    provider.issues = [
        make_issue(
            "SS-1",
            assignee=DEV,
            tester=QA,
            estimations=role_estimations((57600, 28800), (10800, 7200)),
            sprint="SEO_7",
            components=["Backend"],
            fix_versions=["api"],
            epic="SS-100",
        ),
    ]
    provider.work_logs["SS-1"] = [
        make_work_log("101", DEV, 1800),
        make_work_log("102", QA, 1800),
    ]
    provider.changelogs["SS-1"] = [
        make_event(DEV, "2023-12-17T10:00:00.000+0300", ("status", "In Progress")),
        make_event(
            LEAD,
            "2023-12-18T11:00:00.000+0300",
            ("Sprint", "SS Sprint 1, SS Sprint 2"),
            ("status", "Review"),
        ),
    ]
    provider.current_sprint_keys = ["SS-1"]
    return provider


@pytest.mark.unit
def test_run_import_mirrors_issue(populated: FakeTrackerProvider, repository: Repository) -> None:
    result = run(populated, repository)

    assert result.success
    assert (result.total_count, result.success_count, result.failed_count) == (1, 1, 0)
    assert result.current_sprint_count == 1

    issue = repository.find_issue("SS-1")
    assert issue is not None
    assert issue.summary == "Summary of SS-1"
    assert issue.status_name == "OPEN"
    assert issue.epic_id == "SS-100"
    assert issue.created_at == datetime(2023, 12, 15, 12, 27, 52)
    assert issue.updated_at == datetime(2023, 12, 16, 9, 0, 0)
    assert issue.status_updated_at == datetime(2023, 12, 18, 11, 0, 0)
    assert issue.developer == User(id="dev")
    assert issue.tester == User(id="qa")
    assert (issue.developer_estimated, issue.developer_remaining) == (57600, 28800)
    assert (issue.tester_estimated, issue.tester_remaining) == (10800, 7200)
    assert (issue.component_name, issue.repository_name) == ("Backend", "api")
    assert issue.is_current_sprint

    assert [user[:2] for user in repository.fetch_rows(User)] == [
        ("dev", "Dev"),
        ("lead", "Lead"),
        ("qa", "Qa"),
    ]


@pytest.mark.unit
def test_run_import_rebuilds_history(populated: FakeTrackerProvider, repository: Repository) -> None:
    run(populated, repository)

    facts = [
        (h.id, h.created_at, h.user_id, h.field_name, h.field_value)
        for h in repository.history_for_issue("SS-1")
    ]
    assert facts == [
        ("SS-1/1", datetime(2023, 12, 15, 12, 27, 52), "dev", "sprint", "SEO_7"),
        ("SS-1/2", datetime(2023, 12, 17, 10, 0, 0), "dev", "status", "In Progress"),
        ("101", datetime(2023, 12, 18, 10, 0, 0), "dev", "spent time", "1800"),
        ("102", datetime(2023, 12, 18, 10, 0, 0), "qa", "spent time", "1800"),
        ("SS-1/3", datetime(2023, 12, 18, 11, 0, 0), "lead", "status", "Review"),
        ("SS-1/4", datetime(2023, 12, 18, 11, 0, 0), "lead", "sprint", "SS Sprint 1"),
        ("SS-1/5", datetime(2023, 12, 18, 11, 0, 0), "lead", "sprint", "SS Sprint 2"),
    ]


@pytest.mark.unit
def test_rerun_with_unchanged_upstream_is_idempotent(
    populated: FakeTrackerProvider, repository: Repository
) -> None:
    run(populated, repository)
    first = all_rows(repository)

    run(populated, repository)

    assert all_rows(repository) == first


@pytest.mark.unit
def test_history_is_fully_replaced(populated: FakeTrackerProvider, repository: Repository) -> None:
    run(populated, repository)
    assert len(repository.history_for_issue("SS-1")) == 7

    # A worklog was deleted upstream and the sprint field was cleared
    populated.work_logs["SS-1"] = [make_work_log("102", QA, 1800)]
    populated.changelogs["SS-1"] = [
        make_event(DEV, "2023-12-17T10:00:00.000+0300", ("status", "In Progress")),
    ]
    populated.issues[0]["fields"]["customfield_10330"] = None

    run(populated, repository)

    facts = [(h.id, h.field_name) for h in repository.history_for_issue("SS-1")]
    assert facts == [("SS-1/1", "status"), ("102", "spent time")]


@pytest.mark.unit
def test_current_sprint_flag_converges(provider: FakeTrackerProvider, repository: Repository) -> None:
    provider.issues = [make_issue("SS-1"), make_issue("SS-2"), make_issue("SS-3")]
    provider.current_sprint_keys = ["SS-1", "SS-2"]
    run(provider, repository)

    provider.current_sprint_keys = ["SS-2"]
    result = run(provider, repository)

    assert result.current_sprint_count == 1
    assert not repository.find_issue("SS-1").is_current_sprint
    assert repository.find_issue("SS-2").is_current_sprint
    assert not repository.find_issue("SS-3").is_current_sprint


@pytest.mark.unit
def test_empty_current_sprint_clears_every_flag(provider: FakeTrackerProvider, repository: Repository) -> None:
    provider.issues = [make_issue("SS-1")]
    provider.current_sprint_keys = ["SS-1"]
    run(provider, repository)

    provider.current_sprint_keys = []
    result = run(provider, repository)

    assert result.current_sprint_count == 0
    assert not repository.find_issue("SS-1").is_current_sprint


@pytest.mark.unit
def test_estimates_are_frozen_once_work_started(
    provider: FakeTrackerProvider, repository: Repository
) -> None:
    provider.issues = [
        make_issue(
            "SS-1",
            status="In Progress",
            estimations=role_estimations((57600, 28800), (10800, 7200)),
        ),
    ]
    run(provider, repository)

    provider.issues = [
        make_issue(
            "SS-1",
            status="In Progress",
            estimations=role_estimations((72000, 3600), (14400, 1800)),
        ),
    ]
    run(provider, repository)

    issue = repository.find_issue("SS-1")
    assert (issue.developer_estimated, issue.tester_estimated) == (57600, 10800)
    assert (issue.developer_remaining, issue.tester_remaining) == (3600, 1800)


@pytest.mark.unit
def test_estimates_follow_upstream_in_initial_status(
    provider: FakeTrackerProvider, repository: Repository
) -> None:
    provider.issues = [make_issue("SS-1", estimations=role_estimations((57600, 28800), (10800, 7200)))]
    run(provider, repository)

    provider.issues = [make_issue("SS-1", estimations=role_estimations((72000, 3600), (14400, 1800)))]
    run(provider, repository)

    issue = repository.find_issue("SS-1")
    assert (issue.developer_estimated, issue.tester_estimated) == (72000, 14400)


@pytest.mark.unit
def test_custom_initial_status(provider: FakeTrackerProvider, repository: Repository) -> None:
    provider.issues = [make_issue("SS-1", status="To Do", estimations=role_estimations((3600, 3600), (0, 0)))]
    service = TrackerImportService(provider, repository, initial_status="To Do")
    service.run_import()

    provider.issues = [make_issue("SS-1", status="To Do", estimations=role_estimations((7200, 3600), (0, 0)))]
    service.run_import()

    assert repository.find_issue("SS-1").developer_estimated == 7200


@pytest.mark.unit
def test_flat_estimates_when_role_plugin_disabled(
    provider: FakeTrackerProvider, repository: Repository
) -> None:
    provider.issues = [make_issue("SS-1", original_estimate=14400, remaining_estimate=3600)]

    run(provider, repository)

    issue = repository.find_issue("SS-1")
    assert (issue.developer_estimated, issue.tester_estimated) == (14400, 0)
    assert (issue.developer_remaining, issue.tester_remaining) == (3600, 0)


@pytest.mark.unit
def test_remaining_fallback_applies_to_all_zero_role_estimates(
    provider: FakeTrackerProvider, repository: Repository
) -> None:
    provider.issues = [
        make_issue(
            "SS-1",
            estimations=role_estimations((3600, 0), (1800, 0)),
            remaining_estimate=900,
        ),
    ]

    run(provider, repository)

    issue = repository.find_issue("SS-1")
    assert (issue.developer_estimated, issue.tester_estimated) == (3600, 1800)
    assert (issue.developer_remaining, issue.tester_remaining) == (900, 0)


@pytest.mark.unit
def test_logged_time_is_summed_per_role(provider: FakeTrackerProvider, repository: Repository) -> None:
    repository.upsert(User(id="dev", name="Dev", is_enabled=True, role_id=UserRole.DEVELOPER))
    repository.upsert(User(id="qa", name="Qa", is_enabled=True, role_id=UserRole.TESTER))
    provider.issues = [make_issue("SS-1", assignee=DEV)]
    provider.work_logs["SS-1"] = [
        make_work_log("201", DEV, 1800),
        make_work_log("202", QA, 1800),
        make_work_log("203", LEAD, 600),
    ]

    run(provider, repository)

    issue = repository.find_issue("SS-1")
    assert (issue.developer_logged, issue.tester_logged) == (1800, 1800)
    assert repository.find_user("qa").role is UserRole.TESTER


@pytest.mark.unit
def test_logged_time_kept_without_worklogs(provider: FakeTrackerProvider, repository: Repository) -> None:
    repository.upsert(User(id="dev", name="Dev", role_id=UserRole.DEVELOPER))
    provider.issues = [make_issue("SS-1", assignee=DEV)]
    provider.work_logs["SS-1"] = [make_work_log("201", DEV, 1800)]
    run(provider, repository)

    provider.work_logs["SS-1"] = []
    run(provider, repository)

    assert repository.find_issue("SS-1").developer_logged == 1800


@pytest.mark.unit
def test_missing_people_resolve_to_unassigned_user(
    provider: FakeTrackerProvider, repository: Repository
) -> None:
    provider.issues = [make_issue("SS-1", assignee=None, tester="")]

    run(provider, repository)

    issue = repository.find_issue("SS-1")
    assert issue.developer == User(id=DEFAULT_USER_ID)
    assert issue.tester == User(id=DEFAULT_USER_ID)
    assert repository.find_user(DEFAULT_USER_ID) == User(id=DEFAULT_USER_ID, name=DEFAULT_USER_NAME)


@pytest.mark.unit
def test_malformed_issue_is_skipped(provider: FakeTrackerProvider, repository: Repository) -> None:
    broken = make_issue("SS-2")
    del broken["fields"]["created"]
    provider.issues = [make_issue("SS-1"), broken, make_issue("SS-3")]

    result = run(provider, repository)

    assert (result.total_count, result.success_count, result.failed_count) == (3, 2, 1)
    assert result.failed_issues == ["SS-2"]
    assert result.errors and result.errors[0].startswith("SS-2: KeyError")
    assert repository.find_issue("SS-1") is not None
    assert repository.find_issue("SS-3") is not None


@pytest.mark.unit
def test_sprint_descriptor_without_name_fails_issue(
    provider: FakeTrackerProvider, repository: Repository
) -> None:
    issue_data = make_issue("SS-1")
    issue_data["fields"]["customfield_10330"] = ["Sprint@1[id=1,state=ACTIVE]"]
    provider.issues = [issue_data]

    result = run(provider, repository)

    assert result.failed_issues == ["SS-1"]
    assert "IssueTransformationError" in result.errors[0]


@pytest.mark.unit
def test_bare_sprint_descriptor_string_is_accepted(
    provider: FakeTrackerProvider, repository: Repository
) -> None:
    issue_data = make_issue("SS-1", assignee=DEV)
    issue_data["fields"]["customfield_10330"] = SPRINT_DESCRIPTOR.format(name="SEO_7")
    provider.issues = [issue_data]

    result = run(provider, repository)

    assert result.failed_count == 0
    sprint_facts = [
        h.field_value for h in repository.history_for_issue("SS-1") if h.field_name == "sprint"
    ]
    assert sprint_facts == ["SEO_7"]


@pytest.mark.unit
def test_unchanged_issue_is_reported_and_still_rederived(
    populated: FakeTrackerProvider, repository: Repository, caplog: pytest.LogCaptureFixture
) -> None:
    run(populated, repository)
    populated.work_logs["SS-1"].append(make_work_log("103", DEV, 600))

    with caplog.at_level(logging.DEBUG):
        run(populated, repository)

    assert "Issue SS-1 is up to date in the mirror, re-deriving it anyway" in caplog.text
    assert "103" in [h.id for h in repository.history_for_issue("SS-1")]


@pytest.mark.unit
def test_several_components_use_the_first(
    provider: FakeTrackerProvider, repository: Repository, caplog: pytest.LogCaptureFixture
) -> None:
    provider.issues = [make_issue("SS-1", components=["Backend", "Frontend"], fix_versions=["api", "web"])]

    with caplog.at_level(logging.DEBUG):
        run(provider, repository)

    issue = repository.find_issue("SS-1")
    assert (issue.component_name, issue.repository_name) == ("Backend", "api")
    warnings = [record.getMessage() for record in caplog.records if record.levelno == logging.WARNING]
    assert "Issue SS-1 has more than one component, using the first" in warnings
    assert "Issue SS-1 has more than one fix version, using the first" in warnings


@pytest.mark.unit
def test_issue_pages_are_fetched_until_total(repository: Repository) -> None:
    provider = FakeTrackerProvider(page_size=2)
    provider.issues = [make_issue(f"SS-{n}") for n in range(1, 6)]

    issues = TrackerImportService(provider, repository).fetch_all_issues()

    assert [issue["key"] for issue in issues] == ["SS-1", "SS-2", "SS-3", "SS-4", "SS-5"]
    assert provider.page_offsets == [0, 2, 4]


@pytest.mark.unit
def test_empty_tracker_fetches_one_page(provider: FakeTrackerProvider, repository: Repository) -> None:
    result = run(provider, repository)

    assert result.total_count == 0
    assert provider.page_offsets == [0]


@pytest.mark.unit
def test_stalled_pagination_is_fatal(provider: FakeTrackerProvider, repository: Repository) -> None:
    provider.issues = [make_issue("SS-1"), make_issue("SS-2"), make_issue("SS-3")]
    provider.reported_total = 10

    with pytest.raises(ProviderContractError, match="stalled"):
        run(provider, repository)


@pytest.mark.unit
def test_malformed_page_is_fatal(repository: Repository) -> None:
    provider = MagicMock()
    provider.fetch_issues_page.return_value = {"values": []}

    with pytest.raises(ProviderContractError):
        TrackerImportService(provider, repository).run_import()


@pytest.mark.unit
def test_malformed_changelog_skips_only_its_issue(
    provider: FakeTrackerProvider, repository: Repository, monkeypatch: pytest.MonkeyPatch
) -> None:
    provider.issues = [make_issue("SS-1", assignee=DEV), make_issue("SS-2", assignee=DEV)]
    provider.current_sprint_keys = ["SS-2"]
    serve_changelog = provider.fetch_changelog
    monkeypatch.setattr(
        provider,
        "fetch_changelog",
        lambda issue_key: {"nope": 1} if issue_key == "SS-1" else serve_changelog(issue_key),
    )

    result = run(provider, repository)

    assert (result.total_count, result.success_count, result.failed_count) == (2, 1, 1)
    assert result.failed_issues == ["SS-1"]
    assert result.errors[0].startswith("SS-1: ProviderContractError")
    assert "histories" in result.errors[0]
    stored = repository.find_issue("SS-2")
    assert stored is not None
    assert stored.is_current_sprint
    assert result.current_sprint_count == 1


@pytest.mark.unit
def test_malformed_worklogs_skip_only_their_issue(
    provider: FakeTrackerProvider, repository: Repository, monkeypatch: pytest.MonkeyPatch
) -> None:
    provider.issues = [make_issue("SS-1"), make_issue("SS-2")]
    provider.current_sprint_keys = ["SS-1", "SS-2"]
    serve_work_logs = provider.fetch_work_logs
    monkeypatch.setattr(
        provider,
        "fetch_work_logs",
        lambda issue_key: {"worklogs": []} if issue_key == "SS-2" else serve_work_logs(issue_key),
    )

    result = run(provider, repository)

    assert result.failed_issues == ["SS-2"]
    assert "must be a list" in result.errors[0]
    assert repository.find_issue("SS-1").is_current_sprint
    assert result.current_sprint_count == 2


@pytest.mark.unit
def test_upsert_user_resolves_once_per_run(repository: Repository) -> None:
    repository.upsert(User(id="qa", name="Old Name", is_enabled=False, role_id=UserRole.TESTER))
    service = TrackerImportService(FakeTrackerProvider(), repository)
    cache = UserCache()

    first = service.upsert_user({"key": "qa", "displayName": "New Name", "active": True}, cache)
    second = service.upsert_user({"key": "qa", "displayName": "Ignored", "active": True}, cache)

    assert first is second
    assert len(cache) == 1
    assert "qa" in cache
    assert "dev" not in cache
    assert repository.find_user("qa") == User(
        id="qa", name="New Name", is_enabled=False, role_id=UserRole.TESTER
    )


@pytest.mark.unit
def test_upsert_user_accepts_cloud_account_id(repository: Repository) -> None:
    service = TrackerImportService(FakeTrackerProvider(), repository)

    user = service.upsert_user({"accountId": "5b10a2844c20165700ede21g", "displayName": "Ann"}, UserCache())

    assert user.id == "5b10a2844c20165700ede21g"
    assert not user.is_enabled


@pytest.mark.unit
def test_upsert_user_without_key_is_rejected(repository: Repository) -> None:
    service = TrackerImportService(FakeTrackerProvider(), repository)

    with pytest.raises(IssueTransformationError):
        service.upsert_user({"displayName": "Nobody"}, UserCache())


@pytest.mark.unit
@pytest.mark.parametrize(
    ("descriptor", "expected"),
    [
        (
            "com.atlassian.greenhopper.service.sprint.Sprint@396feb4c"
            "[id=3114,rapidViewId=520,state=ACTIVE,name=SEO_7,startDate=2023-12-11]",
            "SEO_7",
        ),
        ("Sprint@1[id=1,name= Team 7 ,goal=]", "Team 7"),
        ({"id": 3114, "name": "SEO_7", "state": "active"}, "SEO_7"),
    ],
)
def test_get_issue_sprint(descriptor: str | dict, expected: str, repository: Repository) -> None:
    service = TrackerImportService(FakeTrackerProvider(), repository)

    assert service.get_issue_sprint(descriptor) == expected


@pytest.mark.unit
def test_get_issue_sprint_without_name(repository: Repository) -> None:
    service = TrackerImportService(FakeTrackerProvider(), repository)

    with pytest.raises(IssueTransformationError):
        service.get_issue_sprint({"id": 1})


@pytest.mark.unit
def test_get_issue_history_sprint(repository: Repository) -> None:
    service = TrackerImportService(FakeTrackerProvider(), repository)

    assert service.get_issue_history_sprint("Team A,SEO_7 ") == "SEO_7"
    assert service.get_issue_history_sprint("SEO_7") == "SEO_7"
    assert service.get_issue_history_sprint(None) == ""


@pytest.mark.unit
def test_history_sprint_facts_use_last_sprint_change(repository: Repository) -> None:
    service = TrackerImportService(FakeTrackerProvider(), repository)
    issue = Issue(id="SS-1")
    histories = [
        make_event(DEV, "2023-12-01T10:00:00.000+0300", ("Sprint", "Old Sprint")),
        make_event(LEAD, "2023-12-08T10:00:00.000+0300", ("Sprint", "Old Sprint, New Sprint")),
        make_event(DEV, "2023-12-09T10:00:00.000+0300", ("status", "Done")),
    ]

    facts = service.add_history_issue_sprint(issue, histories, UserCache(), HistoryIdSequence("SS-1"))

    assert [(f.id, f.field_value, f.user_id) for f in facts] == [
        ("SS-1/1", "Old Sprint", "lead"),
        ("SS-1/2", "New Sprint", "lead"),
    ]
    assert all(f.created_at == facts[0].created_at for f in facts)


@pytest.mark.unit
def test_is_issue_exist_and_actual(repository: Repository) -> None:
    service = TrackerImportService(FakeTrackerProvider(), repository)
    issue_data = make_issue("SS-1", updated="2023-12-16T09:00:00.000+0300")

    assert not service.is_issue_exist_and_actual(Issue(), issue_data)
    assert service.is_issue_exist_and_actual(
        Issue(id="SS-1", updated_at=datetime(2023, 12, 16, 9, 0, 0)), issue_data
    )
    assert not service.is_issue_exist_and_actual(
        Issue(id="SS-1", updated_at=datetime(2023, 12, 15, 9, 0, 0)), issue_data
    )


@pytest.mark.unit
def test_get_epic_key_id(repository: Repository) -> None:
    service = TrackerImportService(FakeTrackerProvider(), repository)
    links = [
        {"type": {"name": "Relates"}, "inwardIssue": {"key": "SS-9"}},
        {"type": {"name": "Epic"}, "outwardIssue": {"key": "SS-100"}},
        {"type": {"name": "Blocks"}, "outwardIssue": {"key": "SS-200"}},
    ]

    assert service.get_epic_key_id(links) == "SS-100"
    assert service.get_epic_key_id([]) == ""


@pytest.mark.unit
def test_history_id_sequence_is_per_issue() -> None:
    ids = HistoryIdSequence("SS-7")

    assert [ids.next_id(), ids.next_id(), ids.next_id()] == ["SS-7/1", "SS-7/2", "SS-7/3"]
