"""
Storage for the four append-only tables.

Everything above this module talks to `Store`: insert a row, count rows
matching a filter, select rows matching a filter newest-first. The SQLite
file (or ":memory:") comes from app.config["DB_PATH"].
"""
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass, field

from flask import current_app, g

# -----------------------------------------------------------------------------
# Schema
# -----------------------------------------------------------------------------
SCHEMA = {
    "page_views": [
        "page TEXT",
        "user_agent TEXT",
        "referrer TEXT",
        "ip TEXT",
        "utm_source TEXT",
        "utm_medium TEXT",
        "utm_campaign TEXT",
        "created_at TEXT NOT NULL",
    ],
    "quiz_progress": [
        "session_id TEXT",
        "question_number INTEGER",
        "action TEXT",
        "user_agent TEXT",
        "utm_source TEXT",
        "utm_medium TEXT",
        "utm_campaign TEXT",
        "created_at TEXT NOT NULL",
    ],
    "diagnosis_results": [
        "type_code TEXT",
        "type_name TEXT",
        "scores TEXT",
        "user_agent TEXT",
        "created_at TEXT NOT NULL",
    ],
    "feature_events": [
        "event_type TEXT NOT NULL",
        "payload TEXT",
        "created_at TEXT NOT NULL",
    ],
}

COLUMNS = {
    table: {"id"} | {coldef.split()[0] for coldef in coldefs}
    for table, coldefs in SCHEMA.items()
}


class StorageError(Exception):
    """Anything that went wrong talking to the store."""


@dataclass
class Where:
    """
    created_at in [start, end) plus column == value filters.
    Bounds are storage-format instants (see timekeys.day_bounds).
    """
    start: str | None = None
    end: str | None = None
    equals: dict = field(default_factory=dict)


@contextmanager
def _storage_errors():
    try:
        yield
    except sqlite3.Error as exc:
        raise StorageError(str(exc)) from exc


def _check(table, columns=()):
    if table not in COLUMNS:
        raise ValueError(f"unknown table: {table}")
    unknown = set(columns) - COLUMNS[table]
    if unknown:
        raise ValueError(f"unknown columns for {table}: {sorted(unknown)}")


def ensure_columns(db):
    """
    Create tables if missing and try to backfill new columns.
    Safe to run on every connection.
    """
    for table, coldefs in SCHEMA.items():
        db.execute(
            f"CREATE TABLE IF NOT EXISTS {table} ("
            "id INTEGER PRIMARY KEY AUTOINCREMENT, "
            + ", ".join(coldefs)
            + ");"
        )
        existing = {row[1] for row in db.execute(f"PRAGMA table_info({table});")}
        for coldef in coldefs:
            colname = coldef.split()[0]
            if colname not in existing:
                # ALTER TABLE can't add NOT NULL without a default
                db.execute(f"ALTER TABLE {table} ADD COLUMN {coldef.replace(' NOT NULL', '')};")
        db.execute(f"CREATE INDEX IF NOT EXISTS idx_{table}_created_at ON {table} (created_at);")
    db.commit()


def connect(path: str) -> sqlite3.Connection:
    with _storage_errors():
        db = sqlite3.connect(path)
        db.row_factory = sqlite3.Row
        ensure_columns(db)
    return db


def _where_sql(where: Where | None, table: str):
    if where is None:
        return "", []
    clauses, params = [], []
    if where.start is not None:
        clauses.append("created_at >= ?")
        params.append(where.start)
    if where.end is not None:
        clauses.append("created_at < ?")
        params.append(where.end)
    _check(table, where.equals)
    for column, value in where.equals.items():
        clauses.append(f"{column} = ?")
        params.append(value)
    if not clauses:
        return "", []
    return " WHERE " + " AND ".join(clauses), params


class Store:
    """insert / count / select over one connection."""

    def __init__(self, db: sqlite3.Connection):
        self.db = db

    def insert(self, table: str, values: dict) -> int:
        _check(table, values)
        columns = list(values)
        sql = (
            f"INSERT INTO {table} ({', '.join(columns)}) "
            f"VALUES ({', '.join('?' for _ in columns)})"
        )
        with _storage_errors():
            cur = self.db.execute(sql, [values[c] for c in columns])
            self.db.commit()
        return cur.lastrowid

    def count(self, table: str, where: Where | None = None) -> int:
        _check(table)
        clause, params = _where_sql(where, table)
        with _storage_errors():
            row = self.db.execute(f"SELECT COUNT(*) FROM {table}{clause}", params).fetchone()
        return row[0]

    def select(self, table: str, columns, where: Where | None = None,
               newest_first: bool = True, limit: int | None = None) -> list[dict]:
        _check(table, columns)
        clause, params = _where_sql(where, table)
        order = "DESC" if newest_first else "ASC"
        sql = f"SELECT {', '.join(columns)} FROM {table}{clause} ORDER BY created_at {order}, id {order}"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(int(limit))
        with _storage_errors():
            rows = self.db.execute(sql, params).fetchall()
        return [dict(row) for row in rows]


# -----------------------------------------------------------------------------
# Flask glue: one connection per app context
# -----------------------------------------------------------------------------
def get_store() -> Store:
    if "store" not in g:
        g.store = Store(connect(current_app.config["DB_PATH"]))
    return g.store


def close_db(exc):
    store = g.pop("store", None)
    if store:
        store.db.close()
