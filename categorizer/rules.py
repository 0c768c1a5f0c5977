# categorizer/rules.py
"""
Keyword-overlap scoring for expense categorization.

For every category except "other" (in keyword-table order):
  score = matched words / scorable words   (words longer than 2 chars)
        + fixed amount bonus                (food <100, transport <50, utilities >50)
The first category to reach the best score wins. A best score under
WEAK_SIGNAL means the text told us nothing useful and the amount band decides.
Confidence is min(best * 2, 1.0).
"""
from __future__ import annotations

import re
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from et_core.models import CategoryScore
from et_utils.categories import DEFAULT_KEYWORDS

WEAK_SIGNAL = 0.1
AMOUNT_BONUS = 0.1

WORD_SPLIT_RX = re.compile(r"[^a-z0-9_]+")

# category -> predicate on amount that earns AMOUNT_BONUS
AMOUNT_RULES: Dict[str, Callable[[float], bool]] = {
    "food": lambda amount: amount < 100,
    "transport": lambda amount: amount < 50,
    "utilities": lambda amount: amount > 50,
}

# (upper bound, category); the last band catches everything else
AMOUNT_BANDS: Sequence[Tuple[Optional[float], str]] = (
    (20, "food"),
    (100, "shopping"),
    (500, "utilities"),
    (None, "other"),
)


def tokenize(text: str) -> List[str]:
    """Lowercase words longer than two characters."""
    return [w for w in WORD_SPLIT_RX.split((text or "").lower()) if len(w) > 2]


def overlap_score(words: List[str], keywords: Sequence[str]) -> float:
    if not words:
        return 0.0
    kw = set(keywords)
    return sum(1 for w in words if w in kw) / len(words)


def amount_bonus(category: str, amount: float) -> float:
    rule = AMOUNT_RULES.get(category)
    return AMOUNT_BONUS if rule is not None and rule(amount) else 0.0


def category_by_amount(amount: float) -> str:
    for upper, category in AMOUNT_BANDS:
        if upper is None or amount < upper:
            return category
    return "other"


def score_categories(
    name: str,
    amount: float,
    notes: str = "",
    keywords: Mapping[str, Sequence[str]] = DEFAULT_KEYWORDS,
) -> Dict[str, float]:
    """Per-category scores in table order; empty when nothing is scorable."""
    words = tokenize(f"{name or ''} {notes or ''}")
    if not words:
        return {}
    return {
        category: overlap_score(words, kws) + amount_bonus(category, amount)
        for category, kws in keywords.items()
        if category != "other"
    }


def score_expense(
    name: str,
    amount: float,
    notes: str = "",
    keywords: Mapping[str, Sequence[str]] = DEFAULT_KEYWORDS,
) -> CategoryScore:
    """Pick a category for an expense. Pure and total."""
    amount = float(amount or 0)
    best_category = "other"
    best_score = 0.0

    for category, score in score_categories(name, amount, notes, keywords).items():
        if score > best_score:
            best_score = score
            best_category = category

    if best_score < WEAK_SIGNAL:
        best_category = category_by_amount(amount)

    return CategoryScore(
        category=best_category, confidence=min(best_score * 2, 1.0)
    )
