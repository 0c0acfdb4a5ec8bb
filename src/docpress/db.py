"""State database connections.

SQLite is the default store. When ``DP_DB_URL`` holds a postgres URL the same
storage code runs against PostgreSQL through ``psycopg``; queries are written
with ``?`` placeholders and rewritten for the postgres driver here.
"""

from __future__ import annotations

import os
import re
import sqlite3
from typing import Any

from .migrations import apply_migrations
from .migrations_pg import apply_migrations_pg

_MIGRATED_URLS: set[str] = set()

_QUOTED_OR_PLACEHOLDER = re.compile(r"'(?:[^']|'')*'|\"(?:[^\"]|\"\")*\"|\?")


def get_db_url() -> str | None:
    url = os.environ.get("DP_DB_URL", "").strip()
    return url or None


def is_postgres_url(url: str | None) -> bool:
    return bool(url) and url.split("://", 1)[0] in ("postgres", "postgresql")


class DBConn:
    """Thin connection wrapper shared by the sqlite and postgres backends."""

    def __init__(self, conn: Any, backend: str, integrity_error: type[Exception]) -> None:
        self._conn = conn
        self.backend = backend
        self.integrity_error = integrity_error

    def execute(self, sql: str, params: tuple | list | None = None):
        if self.backend == "postgres":
            sql = _to_pyformat(sql.replace("BEGIN IMMEDIATE", "BEGIN"))
        cursor = self._conn.cursor()
        cursor.execute(sql, params or ())
        return cursor

    def commit(self) -> None:
        self._conn.commit()

    def rollback(self) -> None:
        self._conn.rollback()

    def close(self) -> None:
        self._conn.close()


def connect_db(path: str) -> DBConn:
    url = get_db_url()
    if is_postgres_url(url):
        try:
            import psycopg
        except ImportError as exc:  # pragma: no cover - depends on env
            raise RuntimeError("psycopg is required for PostgreSQL support") from exc
        conn = DBConn(psycopg.connect(url), "postgres", psycopg.IntegrityError)
        if url not in _MIGRATED_URLS:
            apply_migrations_pg(conn)
            _MIGRATED_URLS.add(url)
        return conn

    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    raw = sqlite3.connect(path, check_same_thread=False)
    for pragma in (
        "journal_mode=WAL",
        "synchronous=NORMAL",
        "busy_timeout=5000",
        "foreign_keys=ON",
    ):
        raw.execute(f"PRAGMA {pragma}")
    apply_migrations(raw)
    return DBConn(raw, "sqlite", sqlite3.IntegrityError)


def _to_pyformat(sql: str) -> str:
    return _QUOTED_OR_PLACEHOLDER.sub(
        lambda match: "%s" if match.group(0) == "?" else match.group(0), sql
    )
