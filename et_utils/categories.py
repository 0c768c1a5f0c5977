# et_utils/categories.py
# Built-in category -> keyword table. Order matters: the categorizer walks it
# top to bottom and the first category to reach the best score wins, so
# "gas" lands in transport before utilities and "book" in shopping before
# education. config/keywords.yaml carries the same table for overrides.
from __future__ import annotations

from typing import Dict, List, Mapping

from et_core.models import CATEGORIES

KeywordTable = Dict[str, List[str]]

DEFAULT_KEYWORDS: KeywordTable = {
    "food": [
        "restaurant",
        "cafe",
        "food",
        "dining",
        "lunch",
        "dinner",
        "breakfast",
        "coffee",
        "pizza",
        "burger",
        "sushi",
        "chinese",
        "indian",
        "mexican",
        "grocery",
        "supermarket",
        "market",
    ],
    "transport": [
        "uber",
        "lyft",
        "taxi",
        "gas",
        "fuel",
        "parking",
        "metro",
        "bus",
        "train",
        "flight",
        "airline",
        "car",
        "vehicle",
        "transportation",
    ],
    "utilities": [
        "electric",
        "water",
        "gas",
        "internet",
        "phone",
        "cable",
        "utility",
        "bill",
        "payment",
        "service",
    ],
    "entertainment": [
        "movie",
        "cinema",
        "theater",
        "concert",
        "show",
        "game",
        "gaming",
        "netflix",
        "spotify",
        "subscription",
        "entertainment",
        "fun",
    ],
    "shopping": [
        "amazon",
        "store",
        "shop",
        "mall",
        "clothing",
        "clothes",
        "shoes",
        "electronics",
        "book",
        "purchase",
        "buy",
    ],
    "healthcare": [
        "doctor",
        "hospital",
        "clinic",
        "pharmacy",
        "medicine",
        "medical",
        "health",
        "dental",
        "vision",
        "insurance",
    ],
    "education": [
        "school",
        "university",
        "college",
        "course",
        "book",
        "education",
        "learning",
        "tuition",
        "student",
    ],
    "other": [],
}


def validate_keyword_table(table: Mapping[str, object]) -> KeywordTable:
    """
    Check a category -> keywords mapping and return a clean copy.
    Raises ValueError on unknown categories or non-list values.
    """
    if not isinstance(table, Mapping):
        raise ValueError("keyword table must be a mapping of category -> keywords")
    out: KeywordTable = {}
    for category, words in table.items():
        if category not in CATEGORIES:
            raise ValueError(f"Unknown category in keyword table: {category!r}")
        if words is None:
            words = []
        if not isinstance(words, (list, tuple)):
            raise ValueError(f"Keywords for {category!r} must be a list")
        out[category] = [str(w).strip().lower() for w in words if str(w).strip()]
    return out
