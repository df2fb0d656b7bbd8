from __future__ import annotations

import os
import sqlite3
from datetime import datetime, timezone
from typing import Any

from .models import LifecycleStatus, ResourceStatus
from .settings import settings


def utc_now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _resolve_db_path() -> str:
    """Return a file path usable by sqlite.

    If the configured path is a directory (e.g. a bind mount that did not exist
    yet), the DB file is placed inside it.
    """

    p = os.path.abspath(settings.db_path)

    if os.path.isdir(p):
        p = os.path.join(p, "vsr.db")

    parent = os.path.dirname(p)
    if parent and not os.path.exists(parent):
        os.makedirs(parent, exist_ok=True)

    return p


def connect() -> sqlite3.Connection:
    conn = sqlite3.connect(_resolve_db_path(), check_same_thread=False)
    conn.row_factory = sqlite3.Row
    return conn


def init_db() -> None:
    """Create tables if they do not exist."""
    with connect() as conn:
        conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS resource_status (
              subset TEXT NOT NULL,
              name TEXT NOT NULL,
              namespace TEXT NOT NULL,
              status TEXT NOT NULL, -- missing|initializing|running|ignored-missing
              seq INTEGER NOT NULL,
              updated_at TEXT NOT NULL,
              PRIMARY KEY(subset, name)
            );

            CREATE TABLE IF NOT EXISTS events (
              id INTEGER PRIMARY KEY AUTOINCREMENT,
              ts TEXT NOT NULL,
              level TEXT NOT NULL,
              subset TEXT,
              host TEXT,
              message TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_events_ts ON events(ts);
            """
        )


def log_event(level: str, message: str, subset: str | None = None, host: str | None = None) -> None:
    with connect() as conn:
        conn.execute(
            "INSERT INTO events (ts, level, subset, host, message) VALUES (?, ?, ?, ?, ?)",
            (utc_now(), level.upper(), subset, host, message),
        )


def add_status_entry(subset: str, entry: ResourceStatus) -> None:
    """Upsert the status of one object for a subset.

    First-seen order is kept, so a report reads back in the order hosts were
    first reported.
    """
    with connect() as conn:
        conn.execute(
            """
            INSERT INTO resource_status (subset, name, namespace, status, seq, updated_at)
            VALUES (?, ?, ?, ?, (SELECT COALESCE(MAX(seq), 0) + 1 FROM resource_status), ?)
            ON CONFLICT(subset, name) DO UPDATE SET
              namespace=excluded.namespace,
              status=excluded.status,
              updated_at=excluded.updated_at
            """,
            (subset, entry.name, entry.namespace, entry.status.value, utc_now()),
        )


def list_status(subset: str) -> list[ResourceStatus]:
    with connect() as conn:
        rows = conn.execute(
            "SELECT name, namespace, status FROM resource_status WHERE subset=? ORDER BY seq",
            (subset,),
        ).fetchall()
        return [ResourceStatus(name=r["name"], namespace=r["namespace"], status=LifecycleStatus(r["status"])) for r in rows]


def latest_events(limit: int = 100) -> list[dict[str, Any]]:
    with connect() as conn:
        rows = conn.execute("SELECT * FROM events ORDER BY id DESC LIMIT ?", (limit,)).fetchall()
        return [dict(r) for r in rows]
