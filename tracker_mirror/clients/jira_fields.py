"""Jira field identifiers consumed by the synchronization.

Custom field ids are instance specific; these match the tracker the mirror
was built for.
"""

# Tester assigned to the issue (user object or empty)
FIELD_TESTER = "customfield_10131"
# Key of the epic the issue belongs to
FIELD_EPIC_ISSUE_ID = "customfield_10933"
# Sprint descriptors of the issue, e.g.
# "com.atlassian.greenhopper.service.sprint.Sprint@396feb4c[id=3114,...,name=SEO_7,...]"
FIELD_ISSUE_SPRINT_INFO = "customfield_10330"
# Estimation-by-roles plugin: ["Role: Developers (57600(16h) | 28800(8h))", ...]
FIELD_ESTIMATIONS_BY_ROLES = "customfield_14946"

# Original estimate in seconds (mirrors aggregatetimeoriginalestimate)
FIELD_ESTIMATED_TIME = "timeoriginalestimate"
# Remaining estimate in seconds (mirrors aggregatetimeestimate)
FIELD_REMAINING_TIME = "timeestimate"

# Changelog item field names
CHANGELOG_FIELD_STATUS = "status"
CHANGELOG_FIELD_SPRINT = "Sprint"

ISSUE_SEARCH_FIELDS: tuple[str, ...] = (
    "summary",
    "status",
    "created",
    "updated",
    "components",
    "fixVersions",
    "assignee",
    "progress",
    "issuelinks",
    FIELD_TESTER,
    FIELD_ESTIMATIONS_BY_ROLES,
    FIELD_EPIC_ISSUE_ID,
    FIELD_ISSUE_SPRINT_INFO,
    FIELD_ESTIMATED_TIME,
    FIELD_REMAINING_TIME,
)
