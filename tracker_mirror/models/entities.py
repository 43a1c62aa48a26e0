"""Entities mirrored from the tracker and their column schema.

Every entity declares its table and an ordered tuple of ``Column``
descriptors once, at class level. ``to_row()`` renders an entity into the
``(table, column/value pairs, id)`` triple consumed by the repository and
``from_row()`` performs the inverse mapping.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from enum import IntEnum
from typing import Any, ClassVar, Literal, Self, TypeAlias

from tracker_mirror.utils.timestamps import format_storage_datetime, parse_storage_datetime

ColumnKind: TypeAlias = Literal["text", "integer", "boolean", "datetime", "reference"]
RowPairs: TypeAlias = list[tuple[str, Any]]


class UserRole(IntEnum):
    """Functional role of a user in the mirror."""

    UNDEFINED = 0
    DEVELOPER = 1
    TESTER = 2
    TEAM_LEAD = 3
    PROJECT_MANAGER = 4


@dataclass(frozen=True, slots=True)
class Column:
    """Maps one entity attribute to one table column."""

    attribute: str
    kind: ColumnKind = "text"

    @property
    def name(self) -> str:
        if self.kind == "reference":
            return f"{self.attribute}_id"
        return self.attribute

    def render(self, value: Any) -> Any:
        """Render an attribute value into its column value."""
        if value is None:
            return None
        match self.kind:
            case "datetime":
                return format_storage_datetime(value)
            case "reference":
                return value.id
            case "boolean":
                return 1 if value else 0
            case "integer":
                return int(value)
            case _:
                return value

    def hydrate(self, value: Any) -> Any:
        """Convert a stored column value back into an attribute value."""
        match self.kind:
            case "datetime":
                return parse_storage_datetime(value)
            case "reference":
                return User(id=value) if value else None
            case "boolean":
                return bool(value)
            case "integer":
                return int(value or 0)
            case _:
                return "" if value is None else value


class Entity:
    """Base class for persisted entities."""

    __slots__ = ()

    TABLE_NAME: ClassVar[str]
    COLUMNS: ClassVar[tuple[Column, ...]]

    id: str

    @classmethod
    def column_names(cls) -> tuple[str, ...]:
        return tuple(column.name for column in cls.COLUMNS)

    def to_row(self) -> tuple[str, RowPairs, str]:
        """Render the entity as ``(table name, ordered column/value pairs, id)``."""
        pairs = [
            (column.name, column.render(getattr(self, column.attribute)))
            for column in self.COLUMNS
        ]
        return self.TABLE_NAME, pairs, self.id

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> Self:
        """Build an entity from a stored row."""
        values = {column.attribute: column.hydrate(row[column.name]) for column in cls.COLUMNS}
        return cls(**values)


@dataclass(slots=True)
class User(Entity):
    """Tracker user."""

    TABLE_NAME: ClassVar[str] = "it_user"
    COLUMNS: ClassVar[tuple[Column, ...]] = (
        Column("id"),
        Column("name"),
        Column("is_enabled", "boolean"),
        Column("role_id", "integer"),
    )

    id: str = ""
    name: str = ""
    # Whether the user currently works in the company
    is_enabled: bool = False
    role_id: int = UserRole.UNDEFINED

    @property
    def role(self) -> UserRole:
        try:
            return UserRole(self.role_id)
        except ValueError:
            return UserRole.UNDEFINED


@dataclass(slots=True)
class Issue(Entity):
    """Tracker issue with its time-tracking aggregates (seconds)."""

    TABLE_NAME: ClassVar[str] = "it_issue"
    COLUMNS: ClassVar[tuple[Column, ...]] = (
        Column("id"),
        Column("epic_id"),
        Column("created_at", "datetime"),
        Column("updated_at", "datetime"),
        Column("is_current_sprint", "boolean"),
        Column("status_name"),
        Column("status_updated_at", "datetime"),
        Column("summary"),
        Column("developer", "reference"),
        Column("tester", "reference"),
        Column("developer_estimated", "integer"),
        Column("developer_remaining", "integer"),
        Column("developer_logged", "integer"),
        Column("tester_estimated", "integer"),
        Column("tester_remaining", "integer"),
        Column("tester_logged", "integer"),
        Column("component_name"),
        Column("repository_name"),
    )

    id: str = ""
    epic_id: str = ""
    created_at: datetime | None = None
    updated_at: datetime | None = None
    is_current_sprint: bool = False
    status_name: str = "undefined"
    status_updated_at: datetime | None = None
    summary: str = ""
    developer: User | None = None
    tester: User | None = None
    # Estimates only change while the issue is new or in its initial status
    developer_estimated: int = 0
    developer_remaining: int = 0
    developer_logged: int = 0
    tester_estimated: int = 0
    tester_remaining: int = 0
    tester_logged: int = 0
    component_name: str = ""
    repository_name: str = ""


@dataclass(slots=True)
class History(Entity):
    """One point-in-time fact about an issue.

    Several facts may share a timestamp, e.g. a worklog entry and a
    remaining-time update.
    """

    TABLE_NAME: ClassVar[str] = "it_history"
    COLUMNS: ClassVar[tuple[Column, ...]] = (
        Column("id"),
        Column("created_at", "datetime"),
        Column("user_id"),
        Column("issue_id"),
        Column("field_name"),
        Column("field_value"),
    )

    id: str = ""
    created_at: datetime | None = None
    user_id: str = ""
    issue_id: str = ""
    field_name: str = ""
    field_value: str = ""
