"""Database connection, DDL, and low-level row helpers for talia-core."""

from __future__ import annotations

import sqlite3
from pathlib import Path

from talia_core.exceptions import DatabaseError

SCHEMA_VERSION = "1.0"

SOURCE_TABLE = "active_sources"
PROPERTY_TABLE = "semantic_properties"
RELATION_TABLE = "semantic_relations"

# ---------------------------------------------------------------------------
# BOOLEAN converter
# ---------------------------------------------------------------------------

def _convert_boolean(data: bytes) -> bool | None:
    if data is None or data == b"":
        return None
    return bool(int(data))


sqlite3.register_converter("BOOLEAN", _convert_boolean)


# ---------------------------------------------------------------------------
# DDL statements
# ---------------------------------------------------------------------------

_DDL = """
-- Meta table
CREATE TABLE IF NOT EXISTS meta (
    key TEXT NOT NULL,
    value TEXT,
    UNIQUE (key)
);

-- Source records (one table, discriminated by type)
CREATE TABLE IF NOT EXISTS active_sources (
    id INTEGER PRIMARY KEY,
    uri TEXT NOT NULL,
    type TEXT,
    name TEXT,
    workflow_state INTEGER NOT NULL DEFAULT 0,
    primary_source BOOLEAN NOT NULL DEFAULT 0 CHECK( primary_source IN (0, 1) ),
    created_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%f', 'now')),
    updated_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%f', 'now')),
    UNIQUE (uri)
);
CREATE INDEX IF NOT EXISTS active_source_type_index ON active_sources (type);

-- Literal objects of semantic relations
CREATE TABLE IF NOT EXISTS semantic_properties (
    id INTEGER PRIMARY KEY,
    value TEXT,
    datatype TEXT,
    language TEXT
);
CREATE INDEX IF NOT EXISTS semantic_property_value_index
    ON semantic_properties (value);

-- Triples materialized relationally
CREATE TABLE IF NOT EXISTS semantic_relations (
    id INTEGER PRIMARY KEY,
    subject_id INTEGER NOT NULL REFERENCES active_sources (id) ON DELETE CASCADE,
    predicate_uri TEXT NOT NULL,
    object_type TEXT NOT NULL CHECK( object_type IN ('source', 'property') ),
    object_id INTEGER NOT NULL,
    rel_order INTEGER,
    created_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%f', 'now'))
);
CREATE INDEX IF NOT EXISTS semantic_relation_subject_index
    ON semantic_relations (subject_id, predicate_uri);
CREATE INDEX IF NOT EXISTS semantic_relation_object_index
    ON semantic_relations (object_type, object_id);
CREATE INDEX IF NOT EXISTS semantic_relation_predicate_index
    ON semantic_relations (predicate_uri);
"""


# ---------------------------------------------------------------------------
# Connection management
# ---------------------------------------------------------------------------

def connect(db_path: str | Path = ":memory:") -> sqlite3.Connection:
    """Open a database connection with talia-core PRAGMA settings."""
    db_path_str = str(db_path)
    try:
        conn = sqlite3.connect(
            db_path_str,
            detect_types=sqlite3.PARSE_DECLTYPES,
        )
    except sqlite3.Error as e:
        raise DatabaseError(f"Cannot open database {db_path_str}: {e}") from e
    conn.execute("PRAGMA foreign_keys = ON")
    if db_path_str != ":memory:":
        conn.execute("PRAGMA journal_mode = WAL")
    conn.row_factory = sqlite3.Row
    return conn


def init_db(conn: sqlite3.Connection) -> None:
    """Initialize all tables if they don't exist. Set schema version."""
    conn.executescript(_DDL)
    conn.execute(
        "INSERT OR IGNORE INTO meta (key, value) VALUES ('schema_version', ?)",
        (SCHEMA_VERSION,),
    )
    conn.execute(
        "INSERT OR IGNORE INTO meta (key, value) "
        "VALUES ('created_at', strftime('%Y-%m-%dT%H:%M:%f', 'now'))",
    )
    conn.commit()


def check_schema_version(conn: sqlite3.Connection) -> None:
    """Verify the database schema version is compatible."""
    try:
        row = conn.execute(
            "SELECT value FROM meta WHERE key = 'schema_version'"
        ).fetchone()
    except sqlite3.OperationalError:
        # meta table doesn't exist - uninitialized DB
        return
    if row is None:
        return
    version = row[0]
    if version != SCHEMA_VERSION:
        raise DatabaseError(
            f"Incompatible schema version: {version} "
            f"(expected {SCHEMA_VERSION})"
        )


# ---------------------------------------------------------------------------
# Row helpers
# ---------------------------------------------------------------------------

def table_columns(conn: sqlite3.Connection, table: str = SOURCE_TABLE) -> list[sqlite3.Row]:
    """Return PRAGMA table_info rows for *table*."""
    return conn.execute(f"PRAGMA table_info({table})").fetchall()


def get_source_row(conn: sqlite3.Connection, uri: str) -> sqlite3.Row | None:
    return conn.execute(
        "SELECT * FROM active_sources WHERE uri = ?", (uri,)
    ).fetchone()


def get_source_row_by_id(
    conn: sqlite3.Connection, source_id: int
) -> sqlite3.Row | None:
    return conn.execute(
        "SELECT * FROM active_sources WHERE id = ?", (source_id,)
    ).fetchone()


def delete_property_objects(
    conn: sqlite3.Connection, where: str, params: tuple
) -> None:
    """Delete the literal rows referenced by the relations matching *where*."""
    conn.execute(
        "DELETE FROM semantic_properties WHERE id IN ("
        "SELECT object_id FROM semantic_relations "
        f"WHERE object_type = 'property' AND {where})",
        params,
    )
