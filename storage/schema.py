"""
Database schema definitions for the expense tracker.

Schema version history:
  v1: expenses table (user-scoped)
  v2: insights table for assistant output, anomaly_score/tags on expenses
"""
from __future__ import annotations

SCHEMA_VERSION = 2

# =============================================================================
# Core Tables
# =============================================================================

CREATE_EXPENSES = """
CREATE TABLE IF NOT EXISTS expenses (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    expense_id TEXT UNIQUE NOT NULL,
    user_id TEXT NOT NULL,
    name TEXT NOT NULL,
    amount REAL NOT NULL CHECK (amount >= 0 AND amount <= 999999.99),
    category TEXT NOT NULL,
    subcategory TEXT,
    date TEXT NOT NULL,
    notes TEXT,
    receipt_path TEXT,
    ocr_data TEXT,
    ai_categorized INTEGER DEFAULT 0,
    confidence_score REAL,
    is_anomaly INTEGER DEFAULT 0,
    anomaly_score REAL,
    tags TEXT,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP,
    updated_at TEXT DEFAULT CURRENT_TIMESTAMP
);
"""

CREATE_INSIGHTS = """
CREATE TABLE IF NOT EXISTS insights (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT NOT NULL,
    insight_type TEXT NOT NULL,
    title TEXT NOT NULL,
    content TEXT NOT NULL,
    metadata TEXT,
    is_read INTEGER DEFAULT 0,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP
);
"""

# Schema version tracking
CREATE_SCHEMA_VERSION = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY,
    applied_at TEXT DEFAULT CURRENT_TIMESTAMP
);
"""

# =============================================================================
# Indexes
# =============================================================================

CREATE_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_expenses_user_date ON expenses(user_id, date);",
    "CREATE INDEX IF NOT EXISTS idx_expenses_user_category ON expenses(user_id, category, date);",
    "CREATE INDEX IF NOT EXISTS idx_expenses_user_amount ON expenses(user_id, amount);",
    "CREATE INDEX IF NOT EXISTS idx_insights_user_created ON insights(user_id, created_at);",
    "CREATE INDEX IF NOT EXISTS idx_insights_type ON insights(insight_type);",
]

# v1 -> v2 column additions
ALTER_V2 = [
    "ALTER TABLE expenses ADD COLUMN anomaly_score REAL;",
    "ALTER TABLE expenses ADD COLUMN tags TEXT;",
]

# =============================================================================
# All DDL statements in order
# =============================================================================

ALL_TABLES = [
    CREATE_SCHEMA_VERSION,
    CREATE_EXPENSES,
    CREATE_INSIGHTS,
]

EXPECTED_TABLES = ["expenses", "insights"]
