"""
Durable object store shared by the friendship, directory and message components.

Only a small set of primitives is exposed: insert, equality / membership /
case-insensitive pattern filters, ordering by one column, limit, update and
delete. None of the multi-step operations built on top of them are
transactional. Inserted rows are published to ``on_insert`` listeners once
the backend has accepted them, which is what the live delivery channel
listens to.
"""

import logging
import re
import threading
import uuid
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Optional

import httpx
from postgrest.exceptions import APIError
from supabase import Client

from directchat.core.errors import TransientIO

logger = logging.getLogger(__name__)

Row = dict[str, Any]
InsertListener = Callable[[Row], None]


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


def escape_like(value: str) -> str:
    """Escape LIKE wildcards so ``value`` only matches itself."""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _plain(value: Any) -> Any:
    if isinstance(value, uuid.UUID):
        return str(value)
    return value


def _as_rows(rows: Row | Iterable[Row]) -> list[Row]:
    if isinstance(rows, dict):
        return [rows]
    return list(rows)


def _empty_membership(in_: Optional[dict[str, Iterable]]) -> bool:
    return any(not list(values) for values in (in_ or {}).values())


class ObjectStore:
    """Base class for store backends; owns the insert listeners."""

    def __init__(self) -> None:
        self._listeners: dict[str, list[InsertListener]] = defaultdict(list)
        self._listeners_lock = threading.Lock()

    def on_insert(self, table: str, callback: InsertListener) -> None:
        with self._listeners_lock:
            self._listeners[table].append(callback)

    def remove_insert_listener(self, table: str, callback: InsertListener) -> None:
        with self._listeners_lock:
            if callback in self._listeners[table]:
                self._listeners[table].remove(callback)

    def _publish(self, table: str, rows: list[Row]) -> None:
        with self._listeners_lock:
            listeners = list(self._listeners.get(table, ()))

        for row in rows:
            for listener in listeners:
                listener(dict(row))

    def publish_committed(self, table: str, rows: Row | Iterable[Row]) -> None:
        """Hand rows another process has inserted to the insert listeners."""
        self._publish(table, _as_rows(rows))

    def insert(self, table: str, rows: Row | Iterable[Row]) -> list[Row]:
        raise NotImplementedError

    def select(
        self,
        table: str,
        columns: str = "*",
        *,
        eq: Optional[dict[str, Any]] = None,
        in_: Optional[dict[str, Iterable]] = None,
        ilike: Optional[dict[str, str]] = None,
        order: Optional[str] = None,
        desc: bool = False,
        limit: Optional[int] = None,
    ) -> list[Row]:
        raise NotImplementedError

    def select_one(self, table: str, columns: str = "*", **filters) -> Optional[Row]:
        """At most one row, or ``None``."""
        rows = self.select(table, columns, limit=1, **filters)
        return rows[0] if rows else None

    def update(self, table: str, values: Row, *, eq: dict[str, Any]) -> list[Row]:
        raise NotImplementedError

    def delete(self, table: str, *, eq: dict[str, Any]) -> list[Row]:
        raise NotImplementedError


class SupabaseStore(ObjectStore):
    """PostgREST tables reached through the supabase client."""

    def __init__(self, client: Client) -> None:
        super().__init__()
        self.client = client

    def _execute(self, table: str, action: str, query) -> list[Row]:
        try:
            return query.execute().data or []
        except (APIError, httpx.HTTPError) as error:
            logger.error(f"store_error table={table} action={action} error={error}")
            raise TransientIO(
                f"Database error while trying to {action} {table}."
            ) from error

    @staticmethod
    def _filtered(query, eq=None, in_=None, ilike=None):
        for column, value in (eq or {}).items():
            query = query.eq(column, _plain(value))
        for column, values in (in_ or {}).items():
            query = query.in_(column, [_plain(value) for value in values])
        for column, pattern in (ilike or {}).items():
            query = query.ilike(column, pattern)
        return query

    def insert(self, table, rows):
        payload = [
            {key: _plain(value) for key, value in row.items()}
            for row in _as_rows(rows)
        ]
        created = self._execute(
            table, "insert into", self.client.table(table).insert(payload)
        )
        self._publish(table, created)
        return created

    def select(
        self,
        table,
        columns="*",
        *,
        eq=None,
        in_=None,
        ilike=None,
        order=None,
        desc=False,
        limit=None,
    ):
        if _empty_membership(in_):
            return []

        query = self._filtered(
            self.client.table(table).select(columns), eq, in_, ilike
        )
        if order:
            query = query.order(order, desc=desc)
        if limit is not None:
            query = query.limit(limit)

        return self._execute(table, "read", query)

    def update(self, table, values, *, eq):
        query = self.client.table(table).update(
            {key: _plain(value) for key, value in values.items()}
        )
        return self._execute(table, "update", self._filtered(query, eq))

    def delete(self, table, *, eq):
        query = self.client.table(table).delete()
        return self._execute(table, "delete from", self._filtered(query, eq))


def _like_regex(pattern: str) -> re.Pattern:
    parts = []
    escaped = False
    for char in pattern:
        if escaped:
            parts.append(re.escape(char))
            escaped = False
        elif char == "\\":
            escaped = True
        elif char == "%":
            parts.append(".*")
        elif char == "_":
            parts.append(".")
        else:
            parts.append(re.escape(char))
    return re.compile("".join(parts), re.IGNORECASE | re.DOTALL)


def _project(row: Row, columns: str) -> Row:
    if columns.strip() == "*":
        return dict(row)
    names = [name.strip() for name in columns.split(",") if name.strip()]
    return {name: row.get(name) for name in names}


class MemoryStore(ObjectStore):
    """
    In-process tables with the same semantics as the PostgREST backend.

    Missing ``id`` and ``created_at`` columns get database-style defaults on
    insert. Ordering is stable, so rows with equal sort keys keep insertion
    order.
    """

    def __init__(self) -> None:
        super().__init__()
        self._tables: dict[str, list[Row]] = defaultdict(list)
        self._lock = threading.RLock()

    @staticmethod
    def _matches(row: Row, eq=None, in_=None, ilike=None) -> bool:
        for column, value in (eq or {}).items():
            if row.get(column) != _plain(value):
                return False
        for column, values in (in_ or {}).items():
            if row.get(column) not in {_plain(value) for value in values}:
                return False
        for column, pattern in (ilike or {}).items():
            if not _like_regex(pattern).fullmatch(str(row.get(column) or "")):
                return False
        return True

    def insert(self, table, rows):
        created = []
        with self._lock:
            for row in _as_rows(rows):
                record = {key: _plain(value) for key, value in row.items()}
                record.setdefault("id", str(uuid.uuid4()))
                record.setdefault("created_at", utc_now())
                self._tables[table].append(record)
                created.append(dict(record))

        self._publish(table, created)
        return created

    def select(
        self,
        table,
        columns="*",
        *,
        eq=None,
        in_=None,
        ilike=None,
        order=None,
        desc=False,
        limit=None,
    ):
        if _empty_membership(in_):
            return []

        with self._lock:
            rows = [
                dict(row)
                for row in self._tables.get(table, ())
                if self._matches(row, eq, in_, ilike)
            ]

        if order:
            rows.sort(key=lambda row: row.get(order) or "", reverse=desc)
        if limit is not None:
            rows = rows[:limit]

        return [_project(row, columns) for row in rows]

    def update(self, table, values, *, eq):
        updated = []
        with self._lock:
            for row in self._tables.get(table, ()):
                if self._matches(row, eq):
                    row.update({key: _plain(value) for key, value in values.items()})
                    updated.append(dict(row))
        return updated

    def delete(self, table, *, eq):
        with self._lock:
            rows = self._tables.get(table, [])
            removed = [dict(row) for row in rows if self._matches(row, eq)]
            self._tables[table] = [row for row in rows if not self._matches(row, eq)]
        return removed
