# storage/migrations.py
"""
Database migration utilities for the expense tracker.

Handles:
- Fresh database initialization
- v1 -> v2 upgrade (insights table, extra expense columns)
- Integrity reporting and row counts
"""
from __future__ import annotations

import sqlite3
from datetime import datetime
from typing import Any, Dict, List

from .schema import (
    ALL_TABLES,
    ALTER_V2,
    CREATE_INDEXES,
    CREATE_INSIGHTS,
    CREATE_SCHEMA_VERSION,
    EXPECTED_TABLES,
    SCHEMA_VERSION,
)


def get_schema_version(conn: sqlite3.Connection) -> int:
    """Get current schema version, or 0 if not initialized."""
    cur = conn.cursor()
    try:
        cur.execute("SELECT MAX(version) FROM schema_version")
        row = cur.fetchone()
        return row[0] if row and row[0] else 0
    except sqlite3.OperationalError:
        # schema_version table doesn't exist
        return 0


def set_schema_version(conn: sqlite3.Connection, version: int) -> None:
    """Record schema version."""
    cur = conn.cursor()
    cur.execute(
        "INSERT OR REPLACE INTO schema_version (version, applied_at) VALUES (?, ?)",
        (version, datetime.utcnow().isoformat()),
    )
    conn.commit()


def table_exists(conn: sqlite3.Connection, table_name: str) -> bool:
    """Check if a table exists."""
    cur = conn.cursor()
    cur.execute(
        "SELECT name FROM sqlite_master WHERE type='table' AND name=?",
        (table_name,),
    )
    return cur.fetchone() is not None


def get_table_columns(conn: sqlite3.Connection, table_name: str) -> List[str]:
    """Get list of column names for a table."""
    cur = conn.cursor()
    cur.execute(f"PRAGMA table_info({table_name})")
    return [row[1] for row in cur.fetchall()]


def create_all_tables(conn: sqlite3.Connection) -> None:
    cur = conn.cursor()
    for ddl in ALL_TABLES:
        cur.execute(ddl)
    conn.commit()


def create_all_indexes(conn: sqlite3.Connection) -> None:
    cur = conn.cursor()
    for ddl in CREATE_INDEXES:
        cur.execute(ddl)
    conn.commit()


def initialize_fresh_db(conn: sqlite3.Connection) -> Dict[str, Any]:
    """Create every table and index on an empty database."""
    create_all_tables(conn)
    create_all_indexes(conn)
    set_schema_version(conn, SCHEMA_VERSION)
    return {"tables_created": len(ALL_TABLES), "indexes_created": len(CREATE_INDEXES)}


def migrate_to_v2(conn: sqlite3.Connection) -> Dict[str, Any]:
    """Bring a v1 database (expenses only) up to v2."""
    stats: Dict[str, Any] = {"tables_created": [], "columns_added": []}
    cur = conn.cursor()
    cur.execute(CREATE_SCHEMA_VERSION)

    existing = set(get_table_columns(conn, "expenses"))
    for stmt in ALTER_V2:
        column = stmt.split("ADD COLUMN", 1)[1].split()[0]
        if column not in existing:
            cur.execute(stmt)
            stats["columns_added"].append(column)

    if not table_exists(conn, "insights"):
        cur.execute(CREATE_INSIGHTS)
        stats["tables_created"].append("insights")

    conn.commit()
    create_all_indexes(conn)
    set_schema_version(conn, SCHEMA_VERSION)
    return stats


def ensure_current_schema(conn: sqlite3.Connection) -> Dict[str, Any]:
    """
    Ensure the database is at SCHEMA_VERSION.
    Returns {"status": "current" | "initialized" | "migrated", ...}.
    """
    current_version = get_schema_version(conn)

    if current_version >= SCHEMA_VERSION:
        return {"status": "current", "version": SCHEMA_VERSION}

    if current_version == 0 and not table_exists(conn, "expenses"):
        stats = initialize_fresh_db(conn)
        return {"status": "initialized", "version": SCHEMA_VERSION, **stats}

    stats = migrate_to_v2(conn)
    return {"status": "migrated", "version": SCHEMA_VERSION, **stats}


def check_integrity(conn: sqlite3.Connection) -> Dict[str, Any]:
    """
    Run integrity checks on the database.
    Returns detailed status report.
    """
    result: Dict[str, Any] = {
        "status": "ok",
        "version": get_schema_version(conn),
        "tables": {},
        "integrity_check": None,
        "issues": [],
    }

    cur = conn.cursor()

    cur.execute("PRAGMA integrity_check")
    integrity = cur.fetchone()[0]
    result["integrity_check"] = integrity
    if integrity != "ok":
        result["status"] = "error"
        result["issues"].append(f"Integrity check failed: {integrity}")

    for table in EXPECTED_TABLES:
        if table_exists(conn, table):
            cur.execute(f"SELECT COUNT(*) FROM {table}")
            count = cur.fetchone()[0]
            result["tables"][table] = {"exists": True, "rows": count, "empty": count == 0}
        else:
            result["tables"][table] = {"exists": False, "rows": 0, "empty": True}
            if result["status"] == "ok":
                result["status"] = "warning"
            result["issues"].append(f"Missing table: {table}")

    if result["version"] < SCHEMA_VERSION:
        if result["status"] == "ok":
            result["status"] = "warning"
        result["issues"].append(
            f"Schema version {result['version']} is behind {SCHEMA_VERSION} - run db --init"
        )

    if table_exists(conn, "expenses"):
        cur.execute(
            "SELECT COUNT(*) FROM expenses WHERE amount < 0 OR amount > 999999.99"
        )
        bad = cur.fetchone()[0]
        if bad:
            result["status"] = "warning" if result["status"] == "ok" else result["status"]
            result["issues"].append(f"{bad} expense(s) with out-of-range amount")

    return result


def get_table_stats(conn: sqlite3.Connection) -> Dict[str, int]:
    """Get row counts for all tables (-1 when a table is missing)."""
    stats = {}
    cur = conn.cursor()
    for table in EXPECTED_TABLES:
        if table_exists(conn, table):
            cur.execute(f"SELECT COUNT(*) FROM {table}")
            stats[table] = cur.fetchone()[0]
        else:
            stats[table] = -1
    return stats
