# categorizer/service.py
"""
Categorizer service: holds a keyword table and scores expenses against it.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Mapping, Optional, Sequence

import yaml

from categorizer.rules import score_categories, score_expense
from et_core.models import CategoryScore, Expense
from et_utils.categories import DEFAULT_KEYWORDS, KeywordTable, validate_keyword_table

LOGGER = logging.getLogger(__name__)


def load_keywords(path: str | Path) -> KeywordTable:
    """Read a category -> keywords YAML file."""
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    return validate_keyword_table(data)


class CategorizerService:
    """Categorize expenses using a category -> keywords table."""

    def __init__(
        self,
        keywords_path: Optional[str] = None,
        keywords: Optional[Mapping[str, Sequence[str]]] = None,
    ):
        if keywords is not None:
            self.keywords = validate_keyword_table(keywords)
        elif keywords_path and Path(keywords_path).exists():
            self.keywords = load_keywords(keywords_path)
        else:
            if keywords_path:
                LOGGER.info("Keyword file %s not found; using built-in table.", keywords_path)
            self.keywords = dict(DEFAULT_KEYWORDS)

    def categorize(self, name: str, amount: float, notes: str = "") -> CategoryScore:
        return score_expense(name, amount, notes or "", self.keywords)

    def categorize_expense(self, expense: Expense) -> CategoryScore:
        return self.categorize(expense.name, expense.amount, expense.notes or "")

    def explain(self, name: str, amount: float, notes: str = "") -> dict:
        """Raw per-category scores, printed by `tracker add --explain`."""
        return score_categories(name, float(amount or 0), notes or "", self.keywords)

    def get_category_count(self) -> int:
        return sum(1 for c in self.keywords if c != "other")
