# storage/sqlite_store.py
"""
SQLite storage layer for the expense tracker.

Every read and write is scoped by user_id: an expense id that belongs to
another user behaves exactly like one that does not exist.
"""
from __future__ import annotations

import json
import sqlite3
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from et_core.models import Expense, Insight

from .migrations import (
    check_integrity,
    ensure_current_schema,
    get_table_stats,
)

# columns a caller may change through update_expense
UPDATABLE_FIELDS = {
    "name",
    "amount",
    "category",
    "subcategory",
    "date",
    "notes",
    "receipt_path",
    "ocr_data",
    "ai_categorized",
    "confidence_score",
    "is_anomaly",
    "anomaly_score",
    "tags",
}
SORTABLE_FIELDS = {"date", "amount", "name", "category", "created_at"}
JSON_FIELDS = {"ocr_data", "tags"}
BOOL_FIELDS = {"ai_categorized", "is_anomaly"}


def open_conn(path: str = "data/expenses.sqlite") -> sqlite3.Connection:
    """Open a database connection with row factory."""
    if path != ":memory:":
        Path(path).parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def generate_expense_id() -> str:
    """Generate a unique expense ID."""
    return str(uuid.uuid4())[:12]


def _to_db(field: str, value: Any) -> Any:
    if field in JSON_FIELDS:
        return json.dumps(value) if value is not None else None
    if field in BOOL_FIELDS:
        return int(bool(value))
    return value


def _row_to_expense(row: sqlite3.Row) -> Expense:
    d = dict(row)
    return Expense(
        expense_id=d["expense_id"],
        user_id=d["user_id"],
        name=d["name"],
        amount=d["amount"],
        category=d["category"],
        subcategory=d.get("subcategory"),
        date=d["date"],
        notes=d.get("notes"),
        receipt_path=d.get("receipt_path"),
        ocr_data=json.loads(d["ocr_data"]) if d.get("ocr_data") else None,
        ai_categorized=bool(d.get("ai_categorized")),
        confidence_score=d.get("confidence_score"),
        is_anomaly=bool(d.get("is_anomaly")),
        anomaly_score=d.get("anomaly_score"),
        tags=json.loads(d["tags"]) if d.get("tags") else [],
        created_at=d.get("created_at"),
        updated_at=d.get("updated_at"),
    )


def _row_to_insight(row: sqlite3.Row) -> Insight:
    d = dict(row)
    return Insight(
        id=d["id"],
        user_id=d["user_id"],
        insight_type=d["insight_type"],
        title=d["title"],
        content=d["content"],
        metadata=json.loads(d["metadata"]) if d.get("metadata") else {},
        created_at=d.get("created_at"),
    )


class SQLiteStore:
    """
    Main storage class.
    Provides user-scoped CRUD for expenses, the aggregate queries used by
    the anomaly detector / forecaster / assistant, and insight history.
    """

    def __init__(self, db_path: str = "data/expenses.sqlite"):
        self.db_path = db_path
        self._conn: Optional[sqlite3.Connection] = None

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = open_conn(self.db_path)
        return self._conn

    def close(self) -> None:
        if self._conn:
            self._conn.close()
            self._conn = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def ensure_schema(self) -> Dict[str, Any]:
        """Ensure database has current schema."""
        return ensure_current_schema(self.conn)

    def check_integrity(self) -> Dict[str, Any]:
        return check_integrity(self.conn)

    def get_stats(self) -> Dict[str, int]:
        return get_table_stats(self.conn)

    # =========================================================================
    # Expense Operations
    # =========================================================================

    def insert_expense(self, expense: Expense) -> Expense:
        """Insert an expense; returns it with expense_id and timestamps set."""
        expense.expense_id = expense.expense_id or generate_expense_id()
        now = datetime.utcnow().isoformat()
        expense.created_at = expense.created_at or now
        expense.updated_at = now

        cur = self.conn.cursor()
        cur.execute(
            """
            INSERT INTO expenses (
                expense_id, user_id, name, amount, category, subcategory, date,
                notes, receipt_path, ocr_data, ai_categorized, confidence_score,
                is_anomaly, anomaly_score, tags, created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                expense.expense_id,
                expense.user_id,
                expense.name,
                expense.amount,
                expense.category,
                expense.subcategory,
                expense.date,
                expense.notes,
                expense.receipt_path,
                _to_db("ocr_data", expense.ocr_data),
                _to_db("ai_categorized", expense.ai_categorized),
                expense.confidence_score,
                _to_db("is_anomaly", expense.is_anomaly),
                expense.anomaly_score,
                _to_db("tags", expense.tags),
                expense.created_at,
                expense.updated_at,
            ),
        )
        self.conn.commit()
        return expense

    def get_expense(self, user_id: str, expense_id: str) -> Optional[Expense]:
        cur = self.conn.cursor()
        cur.execute(
            "SELECT * FROM expenses WHERE user_id = ? AND expense_id = ?",
            (user_id, expense_id),
        )
        row = cur.fetchone()
        return _row_to_expense(row) if row else None

    def update_expense(self, user_id: str, expense_id: str, **fields) -> bool:
        """Update expense fields. Returns True if a row owned by user_id changed."""
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update field(s): {', '.join(sorted(unknown))}")
        if not fields:
            return False

        values = [_to_db(k, v) for k, v in fields.items()]
        set_clause = ", ".join(f"{k} = ?" for k in fields)
        set_clause += ", updated_at = ?"
        values.append(datetime.utcnow().isoformat())

        cur = self.conn.cursor()
        cur.execute(
            f"UPDATE expenses SET {set_clause} WHERE user_id = ? AND expense_id = ?",
            values + [user_id, expense_id],
        )
        self.conn.commit()
        return cur.rowcount > 0

    def delete_expense(self, user_id: str, expense_id: str) -> bool:
        cur = self.conn.cursor()
        cur.execute(
            "DELETE FROM expenses WHERE user_id = ? AND expense_id = ?",
            (user_id, expense_id),
        )
        self.conn.commit()
        return cur.rowcount > 0

    def list_expenses(
        self,
        user_id: str,
        category: Optional[str] = None,
        date_from: Optional[str] = None,
        date_to: Optional[str] = None,
        search: Optional[str] = None,
        page: int = 1,
        limit: int = 50,
        sort_by: str = "date",
        descending: bool = True,
    ) -> Dict[str, Any]:
        """
        Page through a user's expenses.
        Returns {"expenses": [...], "pagination": {page, limit, total, pages}}.
        """
        if sort_by not in SORTABLE_FIELDS:
            raise ValueError(f"Cannot sort by {sort_by!r}")
        page = max(1, int(page))
        limit = max(1, int(limit))

        conditions = ["user_id = ?"]
        params: List[Any] = [user_id]
        if category and category != "all":
            conditions.append("category = ?")
            params.append(category)
        if date_from:
            conditions.append("date >= ?")
            params.append(date_from)
        if date_to:
            conditions.append("date <= ?")
            params.append(date_to)
        if search:
            like = f"%{search}%"
            conditions.append("(name LIKE ? OR notes LIKE ? OR tags LIKE ?)")
            params.extend([like, like, like])

        where = " AND ".join(conditions)
        direction = "DESC" if descending else "ASC"

        cur = self.conn.cursor()
        cur.execute(f"SELECT COUNT(*) FROM expenses WHERE {where}", params)
        total = cur.fetchone()[0]

        cur.execute(
            f"""
            SELECT * FROM expenses
            WHERE {where}
            ORDER BY {sort_by} {direction}, id {direction}
            LIMIT ? OFFSET ?
            """,
            params + [limit, (page - 1) * limit],
        )
        expenses = [_row_to_expense(r) for r in cur.fetchall()]
        return {
            "expenses": expenses,
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "pages": -(-total // limit),
            },
        }

    def recent_expenses(
        self, user_id: str, limit: int = 20, since: Optional[str] = None
    ) -> List[Expense]:
        """Newest first."""
        sql = "SELECT * FROM expenses WHERE user_id = ?"
        params: List[Any] = [user_id]
        if since:
            sql += " AND date >= ?"
            params.append(since)
        sql += " ORDER BY date DESC, id DESC"
        if limit:
            sql += " LIMIT ?"
            params.append(int(limit))
        cur = self.conn.cursor()
        cur.execute(sql, params)
        return [_row_to_expense(r) for r in cur.fetchall()]

    # =========================================================================
    # Aggregates
    # =========================================================================

    def recent_amounts(self, user_id: str, category: str, since: str) -> List[float]:
        """Amounts of a user's expenses in `category` dated on/after `since`, newest first."""
        cur = self.conn.cursor()
        cur.execute(
            """
            SELECT amount FROM expenses
            WHERE user_id = ? AND category = ? AND date >= ?
            ORDER BY date DESC, id DESC
            """,
            (user_id, category, since),
        )
        return [float(r["amount"]) for r in cur.fetchall()]

    def monthly_totals(
        self, user_id: str, category: str, since: str
    ) -> List[Tuple[str, float]]:
        """[(YYYY-MM, total)] for one category, oldest month first."""
        cur = self.conn.cursor()
        cur.execute(
            """
            SELECT substr(date, 1, 7) AS month, SUM(amount) AS total
            FROM expenses
            WHERE user_id = ? AND category = ? AND date >= ?
            GROUP BY month
            ORDER BY month
            """,
            (user_id, category, since),
        )
        return [(r["month"], float(r["total"])) for r in cur.fetchall()]

    def category_totals(
        self,
        user_id: str,
        date_from: Optional[str] = None,
        date_to: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """[{category, total, count}] biggest spend first."""
        sql = """
            SELECT category, SUM(amount) AS total, COUNT(*) AS count
            FROM expenses WHERE user_id = ?
        """
        params: List[Any] = [user_id]
        if date_from:
            sql += " AND date >= ?"
            params.append(date_from)
        if date_to:
            sql += " AND date <= ?"
            params.append(date_to)
        sql += " GROUP BY category ORDER BY total DESC"
        cur = self.conn.cursor()
        cur.execute(sql, params)
        return [
            {"category": r["category"], "total": float(r["total"]), "count": r["count"]}
            for r in cur.fetchall()
        ]

    def spending_stats(
        self,
        user_id: str,
        date_from: Optional[str] = None,
        date_to: Optional[str] = None,
    ) -> Dict[str, Any]:
        breakdown = self.category_totals(user_id, date_from, date_to)
        total = sum(b["total"] for b in breakdown)
        count = sum(b["count"] for b in breakdown)
        return {
            "total_spent": round(total, 2),
            "average_expense": round(total / count, 2) if count else 0,
            "total_expenses": count,
            "category_breakdown": {b["category"]: round(b["total"], 2) for b in breakdown},
        }

    # =========================================================================
    # Insights
    # =========================================================================

    def insert_insight(self, insight: Insight) -> int:
        cur = self.conn.cursor()
        cur.execute(
            """
            INSERT INTO insights (user_id, insight_type, title, content, metadata, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                insight.user_id,
                insight.insight_type,
                insight.title,
                insight.content,
                json.dumps(insight.metadata or {}),
                insight.created_at or datetime.utcnow().isoformat(),
            ),
        )
        self.conn.commit()
        insight.id = cur.lastrowid
        return cur.lastrowid

    def list_insights(
        self, user_id: str, insight_type: Optional[str] = None, limit: int = 10
    ) -> List[Insight]:
        sql = "SELECT * FROM insights WHERE user_id = ?"
        params: List[Any] = [user_id]
        if insight_type and insight_type != "all":
            sql += " AND insight_type = ?"
            params.append(insight_type)
        sql += " ORDER BY created_at DESC, id DESC LIMIT ?"
        params.append(int(limit))
        cur = self.conn.cursor()
        cur.execute(sql, params)
        return [_row_to_insight(r) for r in cur.fetchall()]
