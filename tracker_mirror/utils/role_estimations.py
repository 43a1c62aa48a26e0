"""Parsing of packed role-estimation strings.

The tracker's estimation-by-roles plugin exposes one string per role, e.g.::

    ["Role: Developers (57600(16h) | 28800(8h))",
     "Role: Testers (7200(2h) | 7200(2h))",
     "Role: Others (null | null)"]

The first number is the estimated time and the second the remaining time, both
in seconds. The field is empty when the plugin is disabled for an issue.
"""

import re
from collections.abc import Iterable

ROLE_DEVELOPERS = "Developers"
ROLE_TESTERS = "Testers"

_LEADING_INTEGER = re.compile(r"-?\d+")


def select_role(role_name: str, candidates: Iterable[str] | None) -> str:
    """Return the first estimation string mentioning ``role_name``.

    Args:
        role_name: Role to look for, matched as a substring
        candidates: Estimation strings of an issue

    Returns:
        The matching string, or an empty string when nothing matches

    """
    for candidate in candidates or ():
        if isinstance(candidate, str) and role_name in candidate:
            return candidate
    return ""


def _to_seconds(token: str) -> int:
    token = token.strip()
    if token == "null":
        return 0
    match = _LEADING_INTEGER.match(token)
    return int(match.group()) if match else 0


def parse_estimated(role_estimate: str) -> int:
    """Return the estimated seconds of a role-estimation string (0 when absent)."""
    if not role_estimate or not role_estimate.strip():
        return 0
    try:
        token = role_estimate.split("(")[1].split("|")[0]
    except IndexError:
        return 0
    return _to_seconds(token)


def parse_remaining(role_estimate: str) -> int:
    """Return the remaining seconds of a role-estimation string (0 when absent)."""
    if not role_estimate or not role_estimate.strip():
        return 0
    try:
        token = role_estimate.split("|")[1].split("(")[0]
    except IndexError:
        return 0
    return _to_seconds(token)
