"""
Datastore adapter.

The pipeline and the dispatch server only use generic record primitives:
select rows from a table (filtered, ordered, limited, with related rows
attached by foreign key), insert, update, delete. `SQLiteDatastore`
implements them over aiosqlite, one connection per operation.

Columns listed in JSON_COLUMNS hold lists/objects and are JSON-encoded on
write and decoded on read.
"""

import json
import logging
import re
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional, Protocol, Sequence

import aiosqlite

from palliscribe.exceptions import DatastoreError


logger = logging.getLogger(__name__)

Row = dict[str, Any]

INIT_SQL = """
CREATE TABLE IF NOT EXISTS patients(
  id TEXT PRIMARY KEY,
  name TEXT NOT NULL,
  priority TEXT NOT NULL DEFAULT 'medium',
  address TEXT,
  primary_condition TEXT,
  created_at TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS tasks(
  id TEXT PRIMARY KEY,
  patient_id TEXT REFERENCES patients(id),
  title TEXT NOT NULL,
  status TEXT NOT NULL DEFAULT 'pending',
  priority TEXT NOT NULL DEFAULT 'medium',
  due_time TEXT,
  created_at TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS visits(
  id TEXT PRIMARY KEY,
  patient_id TEXT REFERENCES patients(id),
  visit_type TEXT,
  scheduled_time TEXT,
  status TEXT NOT NULL DEFAULT 'scheduled',
  medications_administered TEXT,
  created_at TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS clinical_notes(
  id TEXT PRIMARY KEY,
  visit_id TEXT REFERENCES visits(id),
  patient_id TEXT REFERENCES patients(id),
  created_by TEXT,
  soap_note TEXT,
  visit_summary TEXT,
  recommendations TEXT,
  follow_up_actions TEXT,
  clinical_entities TEXT,
  original_transcription TEXT NOT NULL,
  ai_model_used TEXT,
  note_source TEXT,
  confidence_score REAL,
  status TEXT NOT NULL DEFAULT 'draft',
  missing_fields TEXT,
  created_at TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS care_plan_notes(
  id TEXT PRIMARY KEY,
  patient_id TEXT REFERENCES patients(id),
  note_type TEXT NOT NULL,
  content TEXT NOT NULL,
  priority TEXT NOT NULL DEFAULT 'medium',
  created_by TEXT,
  tags TEXT,
  created_at TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS visit_notes(
  id TEXT PRIMARY KEY,
  visit_id TEXT REFERENCES visits(id),
  assessment_data TEXT,
  next_steps TEXT,
  documentation_type TEXT,
  created_at TEXT NOT NULL
)
"""

JSON_COLUMNS: dict[str, frozenset[str]] = {
    "visits": frozenset({"medications_administered"}),
    "clinical_notes": frozenset({
        "soap_note", "recommendations", "follow_up_actions",
        "clinical_entities", "missing_fields",
    }),
    "care_plan_notes": frozenset({"tags"}),
    "visit_notes": frozenset({"assessment_data"}),
}

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

_OPERATORS = {"eq": "=", "gte": ">=", "lte": "<=", "in": "IN"}


def _ident(name: str) -> str:
    """Quote a table/column name, rejecting anything that is not a plain identifier."""
    if not _IDENTIFIER.match(name):
        raise ValueError(f"Invalid identifier: {name!r}")
    return f'"{name}"'


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class Filter:
    """Column filter. `op` is one of eq, in, gte, lte."""
    field: str
    value: Any
    op: str = "eq"

    def __post_init__(self):
        if self.op not in _OPERATORS:
            raise ValueError(f"Unsupported filter operator: {self.op}")


@dataclass(frozen=True)
class OrderBy:
    field: str
    descending: bool = False


@dataclass(frozen=True)
class Include:
    """
    Attach the related row referenced by `foreign_key`.

    The related row (restricted to `columns`, or all columns when empty) is
    stored under `alias` (defaults to the related table name), or None when
    the reference dangles.
    """
    table: str
    foreign_key: str
    columns: tuple[str, ...] = ()
    alias: Optional[str] = None
    related_key: str = "id"

    @property
    def key(self) -> str:
        return self.alias or self.table


@dataclass
class _Query:
    sql: str
    params: list[Any] = field(default_factory=list)


class DatastoreProtocol(Protocol):
    """Generic record primitives used by the pipeline and the dispatch server."""

    async def select(
        self,
        table: str,
        filters: Sequence[Filter] = (),
        order_by: Optional[OrderBy] = None,
        limit: Optional[int] = None,
        include: Sequence[Include] = (),
    ) -> list[Row]:
        ...

    async def insert(self, table: str, row: Row) -> Row:
        ...

    async def update(self, table: str, match: Sequence[Filter], values: Row) -> int:
        ...

    async def delete(self, table: str, match: Sequence[Filter]) -> int:
        ...


def _where_clause(filters: Sequence[Filter]) -> _Query:
    if not filters:
        return _Query("")
    clauses = []
    params: list[Any] = []
    for f in filters:
        column = _ident(f.field)
        if f.op == "in":
            values = list(f.value)
            if not values:
                clauses.append("0")
                continue
            clauses.append(f"{column} IN ({', '.join('?' for _ in values)})")
            params.extend(values)
        else:
            clauses.append(f"{column} {_OPERATORS[f.op]} ?")
            params.append(f.value)
    return _Query(" WHERE " + " AND ".join(clauses), params)


class SQLiteDatastore:
    """
    SQLite implementation of the datastore primitives.

    Every call opens its own connection; there is no shared connection state
    between requests.
    """

    def __init__(self, database_path: str):
        self.database_path = database_path

    async def initialize(self) -> None:
        """Create the tables this package reads and writes, if missing."""
        async with aiosqlite.connect(self.database_path) as db:
            for stmt in INIT_SQL.strip().split(";"):
                if stmt.strip():
                    await db.execute(stmt)
            await db.commit()
        logger.info(f"Datastore initialized at {self.database_path}")

    async def check_connection(self) -> None:
        """Open a connection and run a trivial query; raises DatastoreError on failure."""
        try:
            async with aiosqlite.connect(self.database_path) as db:
                await db.execute("SELECT 1")
        except Exception as e:
            raise DatastoreError("-", "connect", str(e)) from e

    def _encode(self, table: str, row: Row) -> Row:
        json_columns = JSON_COLUMNS.get(table, frozenset())
        return {
            key: json.dumps(value) if key in json_columns and value is not None else value
            for key, value in row.items()
        }

    def _decode(self, table: str, row: Row) -> Row:
        json_columns = JSON_COLUMNS.get(table, frozenset())
        decoded = dict(row)
        for key in json_columns:
            value = decoded.get(key)
            if isinstance(value, str):
                decoded[key] = json.loads(value)
        return decoded

    async def _fetch(self, table: str, query: _Query) -> list[Row]:
        async with aiosqlite.connect(self.database_path) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(query.sql, query.params)
            rows = await cursor.fetchall()
        return [self._decode(table, dict(row)) for row in rows]

    async def select(
        self,
        table: str,
        filters: Sequence[Filter] = (),
        order_by: Optional[OrderBy] = None,
        limit: Optional[int] = None,
        include: Sequence[Include] = (),
    ) -> list[Row]:
        try:
            where = _where_clause(filters)
            sql = f"SELECT * FROM {_ident(table)}{where.sql}"
            if order_by is not None:
                sql += f" ORDER BY {_ident(order_by.field)} {'DESC' if order_by.descending else 'ASC'}"
            params = list(where.params)
            if limit is not None:
                sql += " LIMIT ?"
                params.append(int(limit))

            rows = await self._fetch(table, _Query(sql, params))
            for relation in include:
                await self._attach(rows, relation)
        except DatastoreError:
            raise
        except Exception as e:
            logger.error(f"Select on '{table}' failed: {e}")
            raise DatastoreError(table, "select", str(e)) from e

        logger.debug(f"Selected {len(rows)} row(s) from '{table}'")
        return rows

    async def _attach(self, rows: list[Row], relation: Include) -> None:
        keys = sorted({row[relation.foreign_key] for row in rows if row.get(relation.foreign_key)})
        related: dict[Any, Row] = {}
        if keys:
            matches = await self._fetch(
                relation.table,
                _Query(
                    f"SELECT * FROM {_ident(relation.table)}"
                    + _where_clause([Filter(relation.related_key, keys, op="in")]).sql,
                    list(keys),
                ),
            )
            related = {match[relation.related_key]: match for match in matches}

        for row in rows:
            match = related.get(row.get(relation.foreign_key))
            if match is not None and relation.columns:
                match = {column: match.get(column) for column in relation.columns}
            row[relation.key] = match

    async def insert(self, table: str, row: Row) -> Row:
        """Insert one row; fills `id` and `created_at` when absent. Returns the stored row."""
        record = {"id": str(uuid.uuid4()), "created_at": utc_now_iso(), **row}
        encoded = self._encode(table, record)
        placeholders = ", ".join("?" for _ in encoded)

        try:
            columns = ", ".join(_ident(column) for column in encoded)
            async with aiosqlite.connect(self.database_path) as db:
                await db.execute(
                    f"INSERT INTO {_ident(table)} ({columns}) VALUES ({placeholders})",
                    list(encoded.values()),
                )
                await db.commit()
        except Exception as e:
            logger.error(f"Insert into '{table}' failed: {e}")
            raise DatastoreError(table, "insert", str(e)) from e

        logger.debug(f"Inserted row {record['id']} into '{table}'")
        return record

    async def update(self, table: str, match: Sequence[Filter], values: Row) -> int:
        """Update matching rows; returns the number of rows changed."""
        if not values:
            return 0
        encoded = self._encode(table, values)

        try:
            assignments = ", ".join(f"{_ident(column)} = ?" for column in encoded)
            where = _where_clause(match)
            async with aiosqlite.connect(self.database_path) as db:
                cursor = await db.execute(
                    f"UPDATE {_ident(table)} SET {assignments}{where.sql}",
                    list(encoded.values()) + where.params,
                )
                await db.commit()
                return cursor.rowcount
        except Exception as e:
            raise DatastoreError(table, "update", str(e)) from e

    async def delete(self, table: str, match: Sequence[Filter]) -> int:
        """Delete matching rows; returns the number of rows removed."""
        try:
            where = _where_clause(match)
            async with aiosqlite.connect(self.database_path) as db:
                cursor = await db.execute(f"DELETE FROM {_ident(table)}{where.sql}", where.params)
                await db.commit()
                return cursor.rowcount
        except Exception as e:
            raise DatastoreError(table, "delete", str(e)) from e
