"""SQLite-backed record store for the user collection."""
from __future__ import annotations

import logging
import secrets
import sqlite3
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Tuple

from .errors import NotFound, StoreUnavailable, ValidationError
from .models import FIELD_LABELS, SortDirection, UserRecord, normalise_field

logger = logging.getLogger("stagecontrol.database")

# Record field name -> column name.
_COLUMNS: Dict[str, str] = {
    "fullName": "full_name",
    "email": "email",
    "role": "role",
}

_REQUIRED_MESSAGE = "Full Name, Email, and Role are required"
_ID_LENGTH = 24
# Largest integer SQLite can bind.
_SQLITE_MAX_INT = 2**63 - 1


def _ensure_directory(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def resolve_database_path(env_value: Optional[str]) -> Path:
    """Resolve the on-disk path for the user collection."""

    if env_value:
        return Path(env_value).expanduser().resolve(strict=False)
    base_dir = Path(__file__).resolve().parent.parent / "data"
    return (base_dir / "stagecontrol.sqlite3").resolve(strict=False)


def _current_timestamp() -> datetime:
    return datetime.now(timezone.utc)


def _serialize_datetime(value: datetime) -> str:
    return value.isoformat()


def _generate_id() -> str:
    return secrets.token_hex(_ID_LENGTH // 2)


def _is_valid_id(value: str) -> bool:
    if len(value) != _ID_LENGTH:
        return False
    try:
        int(value, 16)
    except ValueError:
        return False
    return True


def _casefold(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    return value.casefold()


def _clean(value: Optional[str]) -> str:
    return value.strip() if isinstance(value, str) else ""


def _bounded(value: int) -> int:
    return min(max(int(value), 0), _SQLITE_MAX_INT)


def _build_where(filters: Mapping[str, str]) -> Tuple[str, List[str]]:
    clauses: List[str] = []
    params: List[str] = []
    for field, text in filters.items():
        column = _COLUMNS[normalise_field(field)]
        if not text:
            continue
        clauses.append(f"instr(casefold({column}), ?) > 0")
        params.append(text.casefold())
    if not clauses:
        return "", params
    return " WHERE " + " AND ".join(clauses), params


class Database:
    """Owns a single SQLite connection holding the user collection.

    The handle is opened once and closed explicitly (or through ``with``).
    Every failure of the underlying driver surfaces as ``StoreUnavailable``.
    """

    def __init__(self, path: Path) -> None:
        self._path = path
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    def open(self) -> "Database":
        """Open the connection if it is not already open."""

        with self._lock:
            if self._conn is not None:
                return self
            try:
                _ensure_directory(self._path)
                conn = sqlite3.connect(self._path, check_same_thread=False)
                conn.row_factory = sqlite3.Row
                conn.create_function("casefold", 1, _casefold, deterministic=True)
            except (OSError, sqlite3.Error) as exc:
                raise StoreUnavailable(f"Database connection failed: {exc}") from exc
            self._conn = conn
        logger.debug("Opened user store at %s", self._path)
        return self

    def close(self) -> None:
        with self._lock:
            conn, self._conn = self._conn, None
        if conn is not None:
            conn.close()
            logger.debug("Closed user store at %s", self._path)

    def __enter__(self) -> "Database":
        return self.open()

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _connection(self) -> sqlite3.Connection:
        if self._conn is None:
            raise StoreUnavailable("Database connection is not open")
        return self._conn

    def initialize(self) -> None:
        """Create the required tables if they do not already exist."""

        self.open()
        with self._lock:
            conn = self._connection()
            try:
                with conn:
                    conn.executescript(
                        """
                        CREATE TABLE IF NOT EXISTS users (
                            seq INTEGER PRIMARY KEY AUTOINCREMENT,
                            id TEXT NOT NULL UNIQUE,
                            full_name TEXT NOT NULL,
                            email TEXT NOT NULL,
                            role TEXT NOT NULL,
                            created_at TEXT NOT NULL,
                            updated_at TEXT NOT NULL
                        );
                        """
                    )
            except sqlite3.Error as exc:
                raise StoreUnavailable(f"Failed to initialise the user store: {exc}") from exc

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def find(
        self,
        filters: Mapping[str, str] | None = None,
        *,
        sort: Tuple[str, SortDirection] = ("fullName", SortDirection.ASC),
        skip: int = 0,
        limit: int | None = None,
    ) -> List[UserRecord]:
        """Return records matching every filter, ordered and sliced.

        Filters are case-insensitive literal substring matches. Ties on the
        sort column keep insertion order so offset pages do not overlap.
        """

        sql, params = self._select(filters, sort, skip, limit)
        return [self._row_to_user(row) for row in self._fetchall(sql, params)]

    def count(self, filters: Mapping[str, str] | None = None) -> int:
        where, params = _build_where(filters or {})
        rows = self._fetchall(f"SELECT COUNT(*) AS total FROM users{where}", params)
        return int(rows[0]["total"])

    def find_page(
        self,
        filters: Mapping[str, str] | None = None,
        *,
        sort: Tuple[str, SortDirection] = ("fullName", SortDirection.ASC),
        skip: int = 0,
        limit: int | None = None,
    ) -> Tuple[List[UserRecord], int]:
        """Return one page and the total match count from a single snapshot."""

        sql, params = self._select(filters, sort, skip, limit)
        where, count_params = _build_where(filters or {})
        with self._lock:
            conn = self._connection()
            try:
                rows = conn.execute(sql, params).fetchall()
                total = conn.execute(
                    f"SELECT COUNT(*) AS total FROM users{where}", count_params
                ).fetchone()["total"]
            except sqlite3.Error as exc:
                raise StoreUnavailable(f"User query failed: {exc}") from exc
        return [self._row_to_user(row) for row in rows], int(total)

    def get(self, user_id: str) -> Optional[UserRecord]:
        if not _is_valid_id(user_id):
            return None
        rows = self._fetchall(
            "SELECT id, full_name, email, role FROM users WHERE id = ?",
            [user_id],
        )
        if not rows:
            return None
        return self._row_to_user(rows[0])

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------
    def insert(self, full_name: Optional[str], email: Optional[str], role: Optional[str]) -> UserRecord:
        """Insert a new record and return it with its assigned identifier."""

        values = (_clean(full_name), _clean(email), _clean(role))
        if not all(values):
            raise ValidationError(_REQUIRED_MESSAGE)

        user_id = _generate_id()
        timestamp = _serialize_datetime(_current_timestamp())
        self._execute(
            """
            INSERT INTO users (id, full_name, email, role, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            [user_id, *values, timestamp, timestamp],
        )
        logger.info("Inserted user %s", user_id)
        return UserRecord(id=user_id, full_name=values[0], email=values[1], role=values[2])

    def update_by_id(self, user_id: str, fields: Mapping[str, Optional[str]]) -> UserRecord:
        """Replace the named fields of an existing record."""

        assignments: List[str] = []
        params: List[object] = []
        for field, value in fields.items():
            try:
                name = normalise_field(field)
            except ValueError as exc:
                raise ValidationError(str(exc), field=field) from exc
            cleaned = _clean(value)
            if not cleaned:
                raise ValidationError(f"{FIELD_LABELS[name]} must not be empty", field=name)
            assignments.append(f"{_COLUMNS[name]} = ?")
            params.append(cleaned)

        if not _is_valid_id(user_id):
            raise NotFound("User not found")

        if assignments:
            assignments.append("updated_at = ?")
            params.append(_serialize_datetime(_current_timestamp()))
            cursor = self._execute(
                f"UPDATE users SET {', '.join(assignments)} WHERE id = ?",
                [*params, user_id],
            )
            if cursor.rowcount == 0:
                raise NotFound("User not found")

        refreshed = self.get(user_id)
        if refreshed is None:
            raise NotFound("User not found")
        logger.info("Updated user %s (%s)", user_id, ", ".join(fields) or "no fields")
        return refreshed

    def delete_by_id(self, user_id: str) -> bool:
        """Delete a record; deleting an unknown identifier is not an error."""

        if not _is_valid_id(user_id):
            return False
        cursor = self._execute("DELETE FROM users WHERE id = ?", [user_id])
        removed = cursor.rowcount > 0
        if removed:
            logger.info("Deleted user %s", user_id)
        return removed

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    @staticmethod
    def _select(
        filters: Mapping[str, str] | None,
        sort: Tuple[str, SortDirection],
        skip: int,
        limit: int | None,
    ) -> Tuple[str, List[object]]:
        sort_field, direction = sort
        column = _COLUMNS[normalise_field(sort_field)]
        order = "DESC" if SortDirection(direction) is SortDirection.DESC else "ASC"
        where, params = _build_where(filters or {})
        sql = (
            "SELECT id, full_name, email, role FROM users"
            f"{where} ORDER BY {column} COLLATE NOCASE {order}, seq ASC"
            " LIMIT ? OFFSET ?"
        )
        # A negative LIMIT means no limit.
        return sql, [*params, -1 if limit is None else _bounded(limit), _bounded(skip)]

    def _fetchall(self, sql: str, params: List[object]) -> List[sqlite3.Row]:
        with self._lock:
            conn = self._connection()
            try:
                return conn.execute(sql, params).fetchall()
            except sqlite3.Error as exc:
                raise StoreUnavailable(f"User query failed: {exc}") from exc

    def _execute(self, sql: str, params: List[object]) -> sqlite3.Cursor:
        with self._lock:
            conn = self._connection()
            try:
                with conn:
                    return conn.execute(sql, params)
            except sqlite3.Error as exc:
                raise StoreUnavailable(f"User write failed: {exc}") from exc

    @staticmethod
    def _row_to_user(row: sqlite3.Row) -> UserRecord:
        return UserRecord(
            id=row["id"],
            full_name=row["full_name"],
            email=row["email"],
            role=row["role"],
        )


__all__ = ["Database", "resolve_database_path"]
