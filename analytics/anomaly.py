# analytics/anomaly.py
"""
Flag an expense amount that sits far from the user's recent spending in the
same category (z-score against the trailing window).
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from statistics import mean, pstdev
from typing import Optional, Sequence

from et_core.models import AnomalyResult

LOGGER = logging.getLogger(__name__)

DEFAULT_WINDOW_DAYS = 90
DEFAULT_THRESHOLD = 2.5
DEFAULT_MIN_HISTORY = 5


def score_amount(
    amount: float,
    history: Sequence[float],
    threshold: float = DEFAULT_THRESHOLD,
    min_history: int = DEFAULT_MIN_HISTORY,
) -> AnomalyResult:
    """
    Population z-score of `amount` against `history`.

    A constant history has no spread, so the z-score is undefined: any
    different amount is flagged, an equal amount is not, and z_score is None.
    """
    n = len(history)
    if n < min_history:
        return AnomalyResult(
            is_anomaly=False, reason="Insufficient data", sample_size=n
        )

    amounts = [float(a) for a in history]
    mu = mean(amounts)
    sigma = pstdev(amounts, mu)

    if sigma == 0:
        differs = float(amount) != mu
        reason = (
            f"Amount {amount} differs from a constant history of {mu:.2f}"
            if differs
            else "Matches constant spending pattern"
        )
        return AnomalyResult(
            is_anomaly=differs,
            reason=reason,
            z_score=None,
            mean=mu,
            std_dev=0.0,
            sample_size=n,
        )

    z = abs(float(amount) - mu) / sigma
    is_anomaly = z > threshold
    reason = (
        f"Amount {amount} is {z:.2f} standard deviations from mean {mu:.2f}"
        if is_anomaly
        else "Normal spending pattern"
    )
    return AnomalyResult(
        is_anomaly=is_anomaly,
        reason=reason,
        z_score=z,
        mean=mu,
        std_dev=sigma,
        sample_size=n,
    )


class AnomalyDetector:
    """Reads the baseline from the store and scores an amount against it."""

    def __init__(
        self,
        store,
        window_days: int = DEFAULT_WINDOW_DAYS,
        threshold: float = DEFAULT_THRESHOLD,
        min_history: int = DEFAULT_MIN_HISTORY,
    ):
        self.store = store
        self.window_days = int(window_days)
        self.threshold = float(threshold)
        self.min_history = int(min_history)

    @classmethod
    def from_config(cls, store, cfg: dict) -> "AnomalyDetector":
        a = cfg.get("anomaly", {})
        return cls(
            store,
            window_days=a.get("window_days", DEFAULT_WINDOW_DAYS),
            threshold=a.get("threshold", DEFAULT_THRESHOLD),
            min_history=a.get("min_history", DEFAULT_MIN_HISTORY),
        )

    def detect(
        self,
        user_id: str,
        amount: float,
        category: str,
        now: Optional[datetime] = None,
    ) -> AnomalyResult:
        """Never raises; a failed lookup reports no anomaly."""
        now = now or datetime.now()
        since = (now - timedelta(days=self.window_days)).date().isoformat()
        try:
            history = self.store.recent_amounts(user_id, category, since)
            return score_amount(
                amount, history, threshold=self.threshold, min_history=self.min_history
            )
        except Exception:
            LOGGER.exception(
                "Anomaly detection failed for user=%s category=%s", user_id, category
            )
            return AnomalyResult(is_anomaly=False, reason="Detection failed")
