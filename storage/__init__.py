"""
Storage layer for the expense tracker.

SQLite persistence for user-scoped expenses and assistant insights.
"""

from .sqlite_store import (
    SQLiteStore,
    open_conn,
    generate_expense_id,
)

from .migrations import (
    ensure_current_schema,
    check_integrity,
    get_table_stats,
    initialize_fresh_db,
    migrate_to_v2,
)

from .schema import SCHEMA_VERSION

__all__ = [
    "SQLiteStore",
    "SCHEMA_VERSION",
    "ensure_current_schema",
    "check_integrity",
    "get_table_stats",
    "initialize_fresh_db",
    "migrate_to_v2",
    "open_conn",
    "generate_expense_id",
]
