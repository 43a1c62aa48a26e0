"""Type definitions for the tracker mirror.

This module contains the type aliases and configuration shapes used
throughout the synchronization process.
"""

from typing import Any, Literal, TypeAlias, TypedDict

JiraData: TypeAlias = dict[str, Any]
IssueRecord: TypeAlias = dict[str, Any]
UserRecord: TypeAlias = dict[str, Any]
WorkLogRecord: TypeAlias = dict[str, Any]
ChangelogRecord: TypeAlias = dict[str, Any]

ConfigValue: TypeAlias = str | int | bool | dict[str, Any] | list[Any]


class JiraConfig(TypedDict, total=False):
    """Configuration for the Jira client."""

    url: str
    username: str
    api_token: str
    verify_ssl: bool
    issues_jql: str
    current_sprint_jql: str
    page_size: int


LogLevel: TypeAlias = Literal[
    "DEBUG",
    "INFO",
    "NOTICE",
    "WARNING",
    "ERROR",
    "CRITICAL",
    "SUCCESS",
]


class SyncConfig(TypedDict, total=False):
    """Configuration for the synchronization run."""

    log_level: LogLevel
    initial_status: str


class DatabaseConfig(TypedDict, total=False):
    """Configuration for the local SQLite mirror."""

    path: str


class Config(TypedDict):
    """Configuration for the config loader."""

    jira: JiraConfig
    database: DatabaseConfig
    sync: SyncConfig


SectionName: TypeAlias = Literal["jira", "database", "sync"]

DirType: TypeAlias = Literal[
    "data",
    "logs",
    "root",
]
