# pipeline/expenses.py
"""
Expense creation and maintenance.

Creating an expense runs the categorizer (when the category is "auto") and
the anomaly detector. Neither is allowed to block the write: a failing
categorizer stores "other", a failing detector stores no anomaly.
"""
from __future__ import annotations

import logging
from datetime import date
from typing import Any, Dict, List, Optional, Tuple

from adapters.receipt import ReceiptAdapter
from analytics.anomaly import AnomalyDetector
from categorizer.service import CategorizerService
from et_core.models import (
    CATEGORIES,
    MAX_AMOUNT,
    CategoryScore,
    Expense,
    Insight,
    ParsedReceipt,
)
from et_utils.normalizers import clamp_amount, parse_date_arg

LOGGER = logging.getLogger(__name__)

AUTO = "auto"
MAX_NAME = 255
MAX_SUBCATEGORY = 100
MAX_NOTES = 1000


def _clean_text(value: Optional[str], limit: int, field: str) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    if not value:
        return None
    if len(value) > limit:
        raise ValueError(f"{field} must be at most {limit} characters")
    return value


def _check_amount(amount: Any) -> float:
    try:
        val = float(amount)
    except (TypeError, ValueError):
        raise ValueError(f"Invalid amount: {amount!r}") from None
    if val < 0:
        raise ValueError("amount must not be negative")
    if val > MAX_AMOUNT:
        raise ValueError(f"amount must not exceed {MAX_AMOUNT}")
    return clamp_amount(val)


def _check_category(category: str) -> str:
    if category not in CATEGORIES:
        raise ValueError(
            f"Unknown category {category!r} (choose from {', '.join(CATEGORIES)} or auto)"
        )
    return category


class ExpenseService:
    """Write path for expenses, wired to a store, a categorizer and a detector."""

    def __init__(
        self,
        store,
        categorizer: Optional[CategorizerService] = None,
        detector: Optional[AnomalyDetector] = None,
    ):
        self.store = store
        self.categorizer = categorizer or CategorizerService()
        self.detector = detector or AnomalyDetector(store)
        self.adapter = ReceiptAdapter()

    @classmethod
    def from_config(cls, store, cfg: dict) -> "ExpenseService":
        return cls(
            store,
            categorizer=CategorizerService(
                keywords_path=cfg.get("categorizer", {}).get("keywords_path")
            ),
            detector=AnomalyDetector.from_config(store, cfg),
        )

    # ------------------------------------------------------------------ create

    def categorize(self, name: str, amount: float, notes: Optional[str]) -> CategoryScore:
        """Categorizer result, or "other" when the categorizer blows up."""
        try:
            return self.categorizer.categorize(name, amount, notes or "")
        except Exception:
            LOGGER.warning("Categorization failed for %r; using 'other'", name, exc_info=True)
            return CategoryScore(category="other", confidence=0.0)

    def create(
        self,
        user_id: str,
        name: str,
        amount: Any,
        category: Optional[str] = AUTO,
        date: Any = None,
        notes: Optional[str] = None,
        subcategory: Optional[str] = None,
        receipt_path: Optional[str] = None,
        ocr_data: Optional[Dict[str, Any]] = None,
        tags: Optional[List[str]] = None,
    ) -> Expense:
        name = _clean_text(name, MAX_NAME, "name")
        if not name:
            raise ValueError("name is required")
        amount = _check_amount(amount)
        notes = _clean_text(notes, MAX_NOTES, "notes")
        subcategory = _clean_text(subcategory, MAX_SUBCATEGORY, "subcategory")
        when = parse_date_arg(date) or _today().isoformat()

        ai_categorized = False
        confidence = None
        if not category or category == AUTO:
            score = self.categorize(name, amount, notes)
            category = score.category
            confidence = score.confidence
            ai_categorized = True
        else:
            category = _check_category(category)

        is_anomaly = False
        anomaly_score = None
        reason = None
        try:
            result = self.detector.detect(user_id, amount, category)
            is_anomaly = result.is_anomaly
            anomaly_score = result.z_score
            reason = result.reason
        except Exception:
            LOGGER.warning("Anomaly detection failed for user %s", user_id, exc_info=True)

        expense = self.store.insert_expense(
            Expense(
                user_id=user_id,
                name=name,
                amount=amount,
                category=category,
                subcategory=subcategory,
                date=when,
                notes=notes,
                receipt_path=receipt_path,
                ocr_data=ocr_data,
                ai_categorized=ai_categorized,
                confidence_score=confidence,
                is_anomaly=is_anomaly,
                anomaly_score=anomaly_score,
                tags=list(tags or []),
            )
        )
        LOGGER.info("Expense created: %s for user %s", expense.expense_id, user_id)

        if is_anomaly:
            LOGGER.info("Anomaly detected for user %s, expense %s", user_id, expense.expense_id)
            self._record_anomaly(expense, reason)
        return expense

    def create_from_receipt(
        self, user_id: str, parsed: ParsedReceipt, source_path: Optional[str] = None
    ) -> Expense:
        draft = self.adapter.build(user_id=user_id, parsed=parsed, source_path=source_path)
        return self.create(
            user_id,
            name=draft.name,
            amount=draft.amount,
            category=AUTO,
            date=draft.date,
            notes=draft.notes,
            receipt_path=draft.receipt_path,
            ocr_data=draft.ocr_data,
        )

    def _record_anomaly(self, expense: Expense, reason: Optional[str]) -> None:
        try:
            self.store.insert_insight(
                Insight(
                    user_id=expense.user_id,
                    insight_type="anomaly",
                    title=f"Unusual {expense.category} expense",
                    content=reason or f"{expense.name}: {expense.amount:.2f}",
                    metadata={
                        "expense_id": expense.expense_id,
                        "amount": expense.amount,
                        "z_score": expense.anomaly_score,
                    },
                )
            )
        except Exception:
            LOGGER.warning("Could not record anomaly insight", exc_info=True)

    # -------------------------------------------------------------- read/write

    def get(self, user_id: str, expense_id: str) -> Optional[Expense]:
        return self.store.get_expense(user_id, expense_id)

    def update(self, user_id: str, expense_id: str, **fields) -> Optional[Expense]:
        """Validate and apply field changes; None when the expense is not the user's."""
        changes: Dict[str, Any] = {}
        for key, value in fields.items():
            if value is None:
                continue
            if key == "name":
                value = _clean_text(value, MAX_NAME, "name")
                if not value:
                    raise ValueError("name must not be empty")
            elif key == "amount":
                value = _check_amount(value)
            elif key == "category":
                value = _check_category(value)
                changes["ai_categorized"] = False
                changes["confidence_score"] = None
            elif key == "date":
                value = parse_date_arg(value)
            elif key == "notes":
                value = _clean_text(value, MAX_NOTES, "notes")
            elif key == "subcategory":
                value = _clean_text(value, MAX_SUBCATEGORY, "subcategory")
            changes[key] = value

        if not changes:
            return self.get(user_id, expense_id)
        if not self.store.update_expense(user_id, expense_id, **changes):
            return None
        return self.get(user_id, expense_id)

    def delete(self, user_id: str, expense_id: str) -> bool:
        return self.store.delete_expense(user_id, expense_id)

    def list(self, user_id: str, **filters) -> Dict[str, Any]:
        return self.store.list_expenses(user_id, **filters)

    def stats(
        self, user_id: str, date_from: Any = None, date_to: Any = None
    ) -> Dict[str, Any]:
        return self.store.spending_stats(
            user_id, parse_date_arg(date_from), parse_date_arg(date_to)
        )

    def recategorize(
        self, user_id: str, refresh: bool = False, dry_run: bool = False
    ) -> List[Tuple[Expense, CategoryScore]]:
        """
        Re-run the categorizer over stored expenses. By default only ones the
        categorizer assigned in the first place; `refresh` includes manual ones.
        """
        out: List[Tuple[Expense, CategoryScore]] = []
        for exp in self.store.recent_expenses(user_id, limit=0):
            if not refresh and not exp.ai_categorized:
                continue
            score = self.categorize(exp.name, exp.amount, exp.notes)
            out.append((exp, score))
            if not dry_run:
                self.store.update_expense(
                    user_id,
                    exp.expense_id,
                    category=score.category,
                    confidence_score=score.confidence,
                    ai_categorized=True,
                )
        return out


def _today() -> date:
    return date.today()
