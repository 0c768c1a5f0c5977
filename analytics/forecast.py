# analytics/forecast.py
"""
Per-category spend forecast: ordinary least squares over monthly totals,
extrapolated a few months past the last observed month.
"""
from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import List, Optional, Sequence, Tuple

from et_core.models import Forecast, ForecastPoint

LOGGER = logging.getLogger(__name__)

MIN_MONTHS = 3
DEFAULT_LOOKBACK_DAYS = 12 * 30
DEFAULT_HORIZON = 3


def confidence_label(n: int) -> str:
    if n >= 6:
        return "high"
    if n >= MIN_MONTHS:
        return "medium"
    return "low"


def add_months(d: date, months: int) -> date:
    """First day of the month `months` after d's month."""
    idx = d.year * 12 + (d.month - 1) + months
    return date(idx // 12, idx % 12 + 1, 1)


def month_start(raw: str | date) -> date:
    """'2024-03' / '2024-03-17' / date -> date(2024, 3, 1)."""
    if isinstance(raw, date):
        return raw.replace(day=1)
    year, month = str(raw)[:7].split("-")
    return date(int(year), int(month), 1)


def fit_line(values: Sequence[float]) -> Tuple[float, float]:
    """OLS slope and intercept of values against x = 0..n-1 (n >= 2)."""
    n = len(values)
    xs = range(n)
    sum_x = sum(xs)
    sum_y = sum(values)
    sum_xy = sum(x * y for x, y in zip(xs, values))
    sum_xx = sum(x * x for x in xs)
    slope = (n * sum_xy - sum_x * sum_y) / (n * sum_xx - sum_x * sum_x)
    intercept = (sum_y - slope * sum_x) / n
    return slope, intercept


def project_trend(
    monthly: Sequence[Tuple[date, float]], horizon: int = DEFAULT_HORIZON
) -> Forecast:
    """
    monthly: (month, total) pairs in chronological order.
    Fewer than MIN_MONTHS points gives an empty, low-confidence forecast.
    """
    n = len(monthly)
    if n < MIN_MONTHS:
        return Forecast(points=[], confidence="low", history_months=n)

    slope, intercept = fit_line([float(total) for _, total in monthly])
    last_month = month_start(monthly[-1][0])

    points: List[ForecastPoint] = []
    for i in range(1, int(horizon) + 1):
        predicted = slope * (n + i - 1) + intercept
        points.append(
            ForecastPoint(
                month=add_months(last_month, i),
                predicted_amount=round(max(0.0, predicted), 2),
            )
        )
    return Forecast(points=points, confidence=confidence_label(n), history_months=n)


class Forecaster:
    """Aggregates the store's monthly totals and projects them forward."""

    def __init__(self, store, lookback_days: int = DEFAULT_LOOKBACK_DAYS):
        self.store = store
        self.lookback_days = int(lookback_days)

    @classmethod
    def from_config(cls, store, cfg: dict) -> "Forecaster":
        f = cfg.get("forecast", {})
        return cls(store, lookback_days=f.get("lookback_days", DEFAULT_LOOKBACK_DAYS))

    def forecast(
        self,
        user_id: str,
        category: str,
        months: int = DEFAULT_HORIZON,
        today: Optional[date] = None,
    ) -> Forecast:
        """Never raises; a failed aggregate yields an empty low-confidence forecast."""
        today = today or date.today()
        since = (today - timedelta(days=self.lookback_days)).isoformat()
        try:
            rows = self.store.monthly_totals(user_id, category, since)
            monthly = [(month_start(month), total) for month, total in rows]
            return project_trend(monthly, horizon=months)
        except Exception:
            LOGGER.exception(
                "Forecasting failed for user=%s category=%s", user_id, category
            )
            return Forecast(points=[], confidence="low")
