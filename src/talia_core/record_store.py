"""Record store adapter: Source records and semantic relations in SQLite."""

from __future__ import annotations

import functools
import json
import logging
import sqlite3
from collections.abc import Callable, Generator, Iterable, Mapping
from contextlib import contextmanager
from pathlib import Path
from typing import Any, TypeVar

from talia_core import db as _db
from talia_core.models import ColumnInfo, ObjectType, RelationModel

logger = logging.getLogger(__name__)

_F = TypeVar("_F", bound=Callable[..., Any])

# Columns that are managed by the store rather than by Source content
_MANAGED_COLUMNS = frozenset({"id", "type"})


def _modifies_db(method: _F) -> _F:
    """Decorator: wraps mutation methods in a transaction (joins an open one)."""

    @functools.wraps(method)
    def wrapper(self: RecordStore, *args: Any, **kwargs: Any) -> Any:
        with self.transaction():
            return method(self, *args, **kwargs)

    return wrapper  # type: ignore[return-value]


class RecordStore:
    """CRUD for Source records and their relation rows."""

    def __init__(self, db_path: str | Path = ":memory:") -> None:
        self._db_path = str(db_path)
        self._conn = _db.connect(db_path)
        _db.check_schema_version(self._conn)
        _db.init_db(self._conn)
        self._depth = 0
        self._rollback_hooks: list[Callable[[], None]] = []
        self._columns: list[sqlite3.Row] | None = None

    @property
    def db_path(self) -> str:
        return self._db_path

    @property
    def connection(self) -> sqlite3.Connection:
        return self._conn

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()

    def __enter__(self) -> RecordStore:
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    @contextmanager
    def transaction(self) -> Generator[None, None, None]:
        """Group mutations into a single transaction.

        Nested calls join the outermost transaction; only the outermost
        block commits or rolls back.
        """
        self._depth += 1
        if self._depth == 1 and not self._conn.in_transaction:
            self._conn.execute("BEGIN")
        try:
            yield
        except BaseException:
            self._depth -= 1
            if self._depth == 0:
                self._conn.rollback()
                self._run_rollback_hooks()
            raise
        else:
            self._depth -= 1
            if self._depth == 0:
                self._conn.commit()
                self._rollback_hooks.clear()

    @property
    def in_transaction(self) -> bool:
        return self._depth > 0

    def on_rollback(self, hook: Callable[[], None]) -> None:
        """Register *hook* to run if the open transaction rolls back."""
        if self._depth > 0:
            self._rollback_hooks.append(hook)

    def _run_rollback_hooks(self) -> None:
        hooks, self._rollback_hooks = self._rollback_hooks, []
        for hook in reversed(hooks):
            hook()

    # ------------------------------------------------------------------
    # Schema
    # ------------------------------------------------------------------

    def _table_info(self) -> list[sqlite3.Row]:
        if self._columns is None:
            self._columns = _db.table_columns(self._conn)
        return self._columns

    def column_names(self) -> list[str]:
        """All columns of the source table."""
        return [row["name"] for row in self._table_info()]

    def content_columns(self) -> list[ColumnInfo]:
        """Columns that hold Source content (no keys, no discriminator)."""
        return [
            ColumnInfo(
                name=row["name"],
                type=row["type"],
                notnull=bool(row["notnull"]),
                default=row["dflt_value"],
            )
            for row in self._table_info()
            if row["name"] not in _MANAGED_COLUMNS
            and not row["name"].endswith("_id")
        ]

    # ------------------------------------------------------------------
    # Source records
    # ------------------------------------------------------------------

    def find_by_uri(self, uri: str) -> sqlite3.Row | None:
        return _db.get_source_row(self._conn, str(uri))

    def find_by_id(self, source_id: int) -> sqlite3.Row | None:
        return _db.get_source_row_by_id(self._conn, source_id)

    def find_by_uris(self, uris: Iterable[str]) -> list[sqlite3.Row]:
        return self._conn.execute(
            "SELECT * FROM active_sources "
            "WHERE uri IN (SELECT value FROM json_each(?)) ORDER BY id",
            (json.dumps([str(u) for u in uris]),),
        ).fetchall()

    def exists_by_uri(self, uri: str) -> bool:
        row = self._conn.execute(
            "SELECT 1 FROM active_sources WHERE uri = ?", (str(uri),)
        ).fetchone()
        return row is not None

    @_modifies_db
    def insert_record(self, values: Mapping[str, Any]) -> int:
        columns = list(values)
        placeholders = ", ".join("?" for _ in columns)
        cur = self._conn.execute(
            f"INSERT INTO active_sources ({', '.join(columns)}) "
            f"VALUES ({placeholders})",
            [values[c] for c in columns],
        )
        logger.debug(f"Inserted record {values.get('uri')} as id {cur.lastrowid}")
        return cur.lastrowid

    @_modifies_db
    def update_record(self, source_id: int, values: Mapping[str, Any]) -> None:
        assignments = [f"{c} = ?" for c in values]
        assignments.append("updated_at = strftime('%Y-%m-%dT%H:%M:%f', 'now')")
        self._conn.execute(
            f"UPDATE active_sources SET {', '.join(assignments)} WHERE id = ?",
            [*values.values(), source_id],
        )

    @_modifies_db
    def delete_record(self, source_id: int) -> None:
        self.delete_relations(source_id)
        self.delete_inverse_relations(source_id)
        self._conn.execute("DELETE FROM active_sources WHERE id = ?", (source_id,))

    # ------------------------------------------------------------------
    # Relations
    # ------------------------------------------------------------------

    @_modifies_db
    def create_property(
        self, value: str, datatype: str | None = None, language: str | None = None
    ) -> int:
        cur = self._conn.execute(
            "INSERT INTO semantic_properties (value, datatype, language) "
            "VALUES (?, ?, ?)",
            (value, datatype, language),
        )
        return cur.lastrowid

    @_modifies_db
    def create_relation(
        self,
        subject_id: int,
        predicate_uri: str,
        object_type: ObjectType,
        object_id: int,
        rel_order: int | None = None,
    ) -> int:
        cur = self._conn.execute(
            "INSERT INTO semantic_relations "
            "(subject_id, predicate_uri, object_type, object_id, rel_order) "
            "VALUES (?, ?, ?, ?, ?)",
            (subject_id, str(predicate_uri), ObjectType(object_type).value,
             object_id, rel_order),
        )
        return cur.lastrowid

    def get_relation(self, relation_id: int) -> RelationModel | None:
        row = self._conn.execute(
            "SELECT * FROM semantic_relations WHERE id = ?", (relation_id,)
        ).fetchone()
        if row is None:
            return None
        return RelationModel(
            id=row["id"],
            subject_id=row["subject_id"],
            predicate_uri=row["predicate_uri"],
            object_type=row["object_type"],
            object_id=row["object_id"],
            rel_order=row["rel_order"],
        )

    @_modifies_db
    def delete_relation(self, relation_id: int) -> None:
        _db.delete_property_objects(self._conn, "id = ?", (relation_id,))
        self._conn.execute(
            "DELETE FROM semantic_relations WHERE id = ?", (relation_id,)
        )

    @_modifies_db
    def delete_relations(
        self, subject_id: int, predicate_uri: str | None = None
    ) -> int:
        """Delete the relations of a subject, optionally for one predicate."""
        if predicate_uri is None:
            where, params = "subject_id = ?", (subject_id,)
        else:
            where, params = (
                "subject_id = ? AND predicate_uri = ?",
                (subject_id, str(predicate_uri)),
            )
        _db.delete_property_objects(self._conn, where, params)
        cur = self._conn.execute(
            f"DELETE FROM semantic_relations WHERE {where}", params
        )
        return cur.rowcount

    @_modifies_db
    def delete_inverse_relations(self, object_id: int) -> int:
        """Delete relations that point at the source *object_id*."""
        cur = self._conn.execute(
            "DELETE FROM semantic_relations "
            "WHERE object_type = 'source' AND object_id = ?",
            (object_id,),
        )
        return cur.rowcount

    def count_relations(self, subject_id: int, predicate_uri: str) -> int:
        row = self._conn.execute(
            "SELECT COUNT(*) FROM semantic_relations "
            "WHERE subject_id = ? AND predicate_uri = ?",
            (subject_id, str(predicate_uri)),
        ).fetchone()
        return row[0]

    def fat_relations(
        self, subject_ids: Iterable[int], predicate_uri: str | None = None
    ) -> list[sqlite3.Row]:
        """Relations of the given subjects joined with their objects.

        Object record columns are returned with an ``obj_`` prefix; literal
        columns as ``prop_value``, ``prop_datatype`` and ``prop_language``.
        """
        obj_columns = ", ".join(
            f"o.{name} AS obj_{name}" for name in self.column_names()
        )
        sql = (
            "SELECT r.id AS relation_id, r.subject_id, r.predicate_uri, "
            "r.object_type, r.object_id, r.rel_order, "
            f"{obj_columns}, "
            "p.value AS prop_value, p.datatype AS prop_datatype, "
            "p.language AS prop_language "
            "FROM semantic_relations r "
            "LEFT JOIN active_sources o "
            "ON r.object_type = 'source' AND o.id = r.object_id "
            "LEFT JOIN semantic_properties p "
            "ON r.object_type = 'property' AND p.id = r.object_id "
            "WHERE r.subject_id IN (SELECT value FROM json_each(?))"
        )
        params: list[Any] = [json.dumps(list(subject_ids))]
        if predicate_uri is not None:
            sql += " AND r.predicate_uri = ?"
            params.append(str(predicate_uri))
        sql += " ORDER BY r.subject_id, r.predicate_uri, r.rel_order IS NULL, r.rel_order, r.id"
        return self._conn.execute(sql, params).fetchall()

    def direct_predicates(self, subject_id: int) -> list[str]:
        rows = self._conn.execute(
            "SELECT DISTINCT predicate_uri FROM semantic_relations "
            "WHERE subject_id = ? ORDER BY predicate_uri",
            (subject_id,),
        ).fetchall()
        return [row[0] for row in rows]

    def inverse_predicates(self, object_id: int) -> list[str]:
        rows = self._conn.execute(
            "SELECT DISTINCT predicate_uri FROM semantic_relations "
            "WHERE object_type = 'source' AND object_id = ? "
            "ORDER BY predicate_uri",
            (object_id,),
        ).fetchall()
        return [row[0] for row in rows]

    def subjects_of(self, object_id: int, predicate_uri: str) -> list[sqlite3.Row]:
        """Source records that have *object_id* as object of *predicate_uri*."""
        return self._conn.execute(
            "SELECT DISTINCT s.* FROM active_sources s "
            "JOIN semantic_relations r ON r.subject_id = s.id "
            "WHERE r.object_type = 'source' AND r.object_id = ? "
            "AND r.predicate_uri = ? ORDER BY s.id",
            (object_id, str(predicate_uri)),
        ).fetchall()

    # ------------------------------------------------------------------
    # Raw queries
    # ------------------------------------------------------------------

    def select(self, sql: str, params: Iterable[Any] = ()) -> list[sqlite3.Row]:
        return self._conn.execute(sql, list(params)).fetchall()

    def scalar(self, sql: str, params: Iterable[Any] = ()) -> Any:
        row = self._conn.execute(sql, list(params)).fetchone()
        return None if row is None else row[0]
