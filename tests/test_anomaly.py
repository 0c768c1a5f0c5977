# tests/test_anomaly.py
from datetime import datetime

import pytest

from analytics.anomaly import AnomalyDetector, score_amount


def test_far_amount_is_anomalous():
    r = score_amount(20, [10, 12, 11, 13, 9])
    assert r.is_anomaly
    assert r.mean == pytest.approx(11.0)
    # population standard deviation: sqrt(2)
    assert r.std_dev == pytest.approx(1.41421, rel=1e-4)
    assert r.z_score == pytest.approx(6.364, rel=1e-3)
    assert r.sample_size == 5
    assert "standard deviations" in r.reason


def test_close_amount_is_normal():
    r = score_amount(12, [10, 12, 11, 13, 9])
    assert not r.is_anomaly
    assert r.reason == "Normal spending pattern"


def test_threshold_is_strict():
    # z exactly at the threshold is not an anomaly
    history = [0, 2, 0, 2, 0, 2]  # mean 1, population std 1
    assert not score_amount(3.5, history).is_anomaly
    assert score_amount(3.51, history).is_anomaly


def test_insufficient_history():
    r = score_amount(1000, [10, 20, 30, 40])
    assert r.is_anomaly is False
    assert r.reason == "Insufficient data"
    assert r.z_score is None
    assert r.sample_size == 4


def test_constant_history_flags_a_different_amount():
    r = score_amount(50, [10, 10, 10, 10, 10])
    assert r.is_anomaly is True
    assert r.z_score is None
    assert r.std_dev == 0
    assert "constant" in r.reason


def test_constant_history_accepts_the_same_amount():
    r = score_amount(10, [10, 10, 10, 10, 10])
    assert r.is_anomaly is False
    assert r.z_score is None


def test_detector_reads_user_category_window(store, add_expenses):
    now = datetime(2024, 6, 15, 12, 0)
    add_expenses(
        "alice",
        [
            ("Lunch", 10, "food", "2024-06-01"),
            ("Lunch", 12, "food", "2024-05-20"),
            ("Lunch", 11, "food", "2024-05-02"),
            ("Lunch", 13, "food", "2024-04-10"),
            ("Lunch", 9, "food", "2024-03-30"),
            # outside the 90-day window
            ("Banquet", 900, "food", "2024-01-02"),
            # other category / other user
            ("Taxi", 400, "transport", "2024-06-01"),
        ],
    )
    add_expenses("bob", [("Feast", 5000, "food", "2024-06-01")])

    r = AnomalyDetector(store).detect("alice", 20, "food", now=now)
    assert r.sample_size == 5
    assert r.is_anomaly
    assert r.mean == pytest.approx(11.0)


def test_detector_never_raises():
    class Broken:
        def recent_amounts(self, *a, **k):
            raise RuntimeError("db is gone")

    r = AnomalyDetector(Broken()).detect("alice", 20, "food")
    assert r.is_anomaly is False
    assert r.reason == "Detection failed"


def test_detector_from_config():
    cfg = {"anomaly": {"window_days": 30, "threshold": 3.0, "min_history": 3}}
    det = AnomalyDetector.from_config(object(), cfg)
    assert (det.window_days, det.threshold, det.min_history) == (30, 3.0, 3)
