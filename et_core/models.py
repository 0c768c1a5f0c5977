from __future__ import annotations
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional

CATEGORIES = (
    "food",
    "transport",
    "utilities",
    "entertainment",
    "shopping",
    "healthcare",
    "education",
    "other",
)

INSIGHT_TYPES = ("chat", "generated", "anomaly", "forecast")

MAX_AMOUNT = 999999.99
UNKNOWN_MERCHANT = "Unknown Merchant"


@dataclass
class ParsedReceipt:
    merchant: str = UNKNOWN_MERCHANT
    amount: float = 0.0
    date: str = ""  # ISO YYYY-MM-DD
    items: List[str] = field(default_factory=list)
    raw_text: str = ""
    # token the date was read from, None when the extraction date was used
    date_text: Optional[str] = None


@dataclass
class CategoryScore:
    category: str
    confidence: float = 0.0


@dataclass
class AnomalyResult:
    is_anomaly: bool
    reason: str
    z_score: Optional[float] = None
    mean: Optional[float] = None
    std_dev: Optional[float] = None
    sample_size: int = 0


@dataclass
class ForecastPoint:
    month: date  # first day of the month
    predicted_amount: float


@dataclass
class Forecast:
    points: List[ForecastPoint] = field(default_factory=list)
    confidence: str = "low"
    history_months: int = 0


@dataclass
class Expense:
    user_id: str
    name: str
    amount: float
    category: str
    date: str
    expense_id: Optional[str] = None
    subcategory: Optional[str] = None
    notes: Optional[str] = None
    receipt_path: Optional[str] = None
    ocr_data: Optional[Dict[str, Any]] = None
    ai_categorized: bool = False
    confidence_score: Optional[float] = None
    is_anomaly: bool = False
    anomaly_score: Optional[float] = None
    tags: List[str] = field(default_factory=list)
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


@dataclass
class Insight:
    user_id: str
    insight_type: str
    title: str
    content: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    id: Optional[int] = None
    created_at: Optional[str] = None
