"""Keyed, idempotent reads and writes against the mirror tables."""

import re
import sqlite3
from collections.abc import Iterable, Mapping
from typing import Any, TypeVar

from tracker_mirror.display import configure_logging
from tracker_mirror.models.entities import Entity, History, Issue, User

try:
    from tracker_mirror.config import logger
except Exception:  # noqa: BLE001
    logger = configure_logging("INFO", None)

E = TypeVar("E", bound=Entity)

_IDENTIFIER = re.compile(r"^[a-z_][a-z0-9_]*$")
_UNIQUE_ERRORS = frozenset({"SQLITE_CONSTRAINT_PRIMARYKEY", "SQLITE_CONSTRAINT_UNIQUE"})
# Stay well below SQLite's bound-parameter limit
IN_CLAUSE_CHUNK_SIZE = 500


def _quote(identifier: str) -> str:
    if not _IDENTIFIER.match(identifier):
        msg = f"Invalid SQL identifier: {identifier!r}"
        raise ValueError(msg)
    return f'"{identifier}"'


def _is_unique_violation(exc: sqlite3.IntegrityError) -> bool:
    errorname = getattr(exc, "sqlite_errorname", "")
    if errorname:
        return errorname in _UNIQUE_ERRORS
    return "UNIQUE constraint failed" in str(exc)


class Repository:
    """Persistence boundary for issues, users and history facts.

    Writes go through :meth:`upsert_row`, an application-level upsert that
    does not rely on a native ``UPSERT`` statement.
    """

    def __init__(self, connection: sqlite3.Connection) -> None:
        self.connection = connection

    # ----------------------------------------------------------------- writes

    def upsert(self, entity: Entity) -> None:
        """Insert or update an entity keyed by its id."""
        table, pairs, entity_id = entity.to_row()
        self.upsert_row(table, dict(pairs), {"id": entity_id})

    def upsert_row(
        self,
        table: str,
        data: Mapping[str, Any],
        criteria: Mapping[str, Any],
    ) -> None:
        """Update the row matching ``criteria`` or insert it when missing.

        A concurrent writer may insert the same key between the update and
        the insert; the resulting uniqueness conflict is resolved by running
        the update once more, which now finds the row.

        Args:
            table: Table name
            data: Column values to write
            criteria: Key columns identifying the row

        Raises:
            sqlite3.IntegrityError: If the insert fails for a reason other
                than a uniqueness conflict

        """
        if self._update(table, data, criteria) > 0:
            return
        try:
            self._insert(table, data)
        except sqlite3.IntegrityError as exc:
            if not _is_unique_violation(exc):
                raise
            logger.debug(
                "Concurrent insert into %s for %s, retrying as update",
                table,
                dict(criteria),
            )
            self._update(table, data, criteria)

    def _update(
        self,
        table: str,
        data: Mapping[str, Any],
        criteria: Mapping[str, Any],
    ) -> int:
        assignments = ", ".join(f"{_quote(column)} = ?" for column in data)
        conditions = " AND ".join(f"{_quote(column)} = ?" for column in criteria)
        cursor = self.connection.execute(
            f"UPDATE {_quote(table)} SET {assignments} WHERE {conditions}",  # noqa: S608
            (*data.values(), *criteria.values()),
        )
        return cursor.rowcount

    def _insert(self, table: str, data: Mapping[str, Any]) -> None:
        columns = ", ".join(_quote(column) for column in data)
        placeholders = ", ".join("?" for _ in data)
        self.connection.execute(
            f"INSERT INTO {_quote(table)} ({columns}) VALUES ({placeholders})",  # noqa: S608
            tuple(data.values()),
        )

    def delete_history_for_issue(self, issue_id: str) -> int:
        """Delete every history fact of an issue.

        Returns:
            Number of deleted rows

        """
        cursor = self.connection.execute(
            f"DELETE FROM {_quote(History.TABLE_NAME)} WHERE issue_id = ?",  # noqa: S608
            (issue_id,),
        )
        return cursor.rowcount

    def update_is_current_sprint(self, value: bool, ids: Iterable[str] | None = None) -> int:
        """Set the current-sprint flag.

        Args:
            value: New flag value
            ids: Issue ids to update; ``None`` updates every issue, an empty
                collection updates nothing

        Returns:
            Number of updated rows

        """
        table = _quote(Issue.TABLE_NAME)
        flag = 1 if value else 0
        if ids is None:
            cursor = self.connection.execute(
                f"UPDATE {table} SET is_current_sprint = ?",  # noqa: S608
                (flag,),
            )
            return cursor.rowcount

        keys = sorted(set(ids))
        updated = 0
        for start in range(0, len(keys), IN_CLAUSE_CHUNK_SIZE):
            chunk = keys[start : start + IN_CLAUSE_CHUNK_SIZE]
            placeholders = ", ".join("?" for _ in chunk)
            cursor = self.connection.execute(
                f"UPDATE {table} SET is_current_sprint = ? WHERE id IN ({placeholders})",  # noqa: S608
                (flag, *chunk),
            )
            updated += cursor.rowcount
        return updated

    # ------------------------------------------------------------------ reads

    def _find(self, entity_class: type[E], entity_id: str) -> E | None:
        row = self.connection.execute(
            f"SELECT * FROM {_quote(entity_class.TABLE_NAME)} WHERE id = ?",  # noqa: S608
            (entity_id,),
        ).fetchone()
        return None if row is None else entity_class.from_row(row)

    def find_issue(self, issue_id: str) -> Issue | None:
        return self._find(Issue, issue_id)

    def find_user(self, user_id: str) -> User | None:
        return self._find(User, user_id)

    def history_for_issue(self, issue_id: str) -> tuple[History, ...]:
        """Return the history facts of an issue in chronological order."""
        rows = self.connection.execute(
            f"SELECT * FROM {_quote(History.TABLE_NAME)} "  # noqa: S608
            "WHERE issue_id = ? ORDER BY created_at, id",
            (issue_id,),
        ).fetchall()
        return tuple(History.from_row(row) for row in rows)

    def fetch_rows(self, entity_class: type[Entity]) -> list[tuple[Any, ...]]:
        """Return every row of an entity's table as plain tuples, ordered by id."""
        columns = ", ".join(_quote(name) for name in entity_class.column_names())
        rows = self.connection.execute(
            f"SELECT {columns} FROM {_quote(entity_class.TABLE_NAME)} ORDER BY id",  # noqa: S608
        ).fetchall()
        return [tuple(row) for row in rows]

    def count(self, entity_class: type[Entity]) -> int:
        row = self.connection.execute(
            f"SELECT COUNT(*) FROM {_quote(entity_class.TABLE_NAME)}",  # noqa: S608
        ).fetchone()
        return int(row[0])
