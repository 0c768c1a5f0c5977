# tests/test_expense_service.py
from datetime import date

import pytest

from analytics.anomaly import AnomalyDetector
from et_core.models import ParsedReceipt
from pipeline.expenses import ExpenseService


@pytest.fixture
def service(store):
    return ExpenseService(store)


def _today():
    return date.today().isoformat()


class TestCreate:
    def test_auto_category_is_marked_as_categorized(self, service, store):
        exp = service.create("alice", "Uber ride home", 22)
        assert exp.category == "transport"
        assert exp.ai_categorized is True
        assert exp.confidence_score > 0
        stored = store.get_expense("alice", exp.expense_id)
        assert stored.category == "transport"
        assert stored.ai_categorized is True
        assert stored.date == _today()

    def test_explicit_category_is_kept(self, service):
        exp = service.create("alice", "Uber ride home", 22, category="other")
        assert exp.category == "other"
        assert exp.ai_categorized is False
        assert exp.confidence_score is None

    def test_date_and_text_are_normalized(self, service):
        exp = service.create("alice", "  Pizza  ", "12.50", date="03/14/2024", notes="  ")
        assert exp.name == "Pizza"
        assert exp.amount == 12.5
        assert exp.date == "2024-03-14"
        assert exp.notes is None

    @pytest.mark.parametrize(
        "kwargs,match",
        [
            ({"name": "", "amount": 5}, "name"),
            ({"name": "   ", "amount": 5}, "name"),
            ({"name": "x" * 256, "amount": 5}, "name"),
            ({"name": "Lunch", "amount": -1}, "negative"),
            ({"name": "Lunch", "amount": "abc"}, "amount"),
            ({"name": "Lunch", "amount": 1_000_000}, "exceed"),
            ({"name": "Lunch", "amount": 5, "category": "groceries"}, "category"),
            ({"name": "Lunch", "amount": 5, "date": "31/31/2024"}, "date"),
        ],
    )
    def test_validation(self, service, kwargs, match):
        with pytest.raises(ValueError, match=match):
            service.create("alice", **kwargs)

    def test_failing_categorizer_falls_back_to_other(self, store):
        class Broken:
            def categorize(self, *a, **k):
                raise RuntimeError("model exploded")

        exp = ExpenseService(store, categorizer=Broken()).create("alice", "Uber", 22)
        assert exp.category == "other"
        assert store.get_expense("alice", exp.expense_id) is not None

    def test_failing_detector_does_not_block_insert(self, store):
        class Broken:
            def detect(self, *a, **k):
                raise RuntimeError("no baseline")

        exp = ExpenseService(store, detector=Broken()).create("alice", "Pizza", 12)
        assert exp.is_anomaly is False
        assert store.get_expense("alice", exp.expense_id) is not None

    def test_anomaly_is_flagged_and_recorded(self, service, store, add_expenses):
        today = _today()
        add_expenses(
            "alice",
            [("Lunch", a, "food", today) for a in (10, 12, 11, 13, 9)],
        )
        exp = service.create("alice", "Lunch", 20, category="food")
        assert exp.is_anomaly is True
        assert exp.anomaly_score == pytest.approx(6.364, rel=1e-3)

        insights = store.list_insights("alice", insight_type="anomaly")
        assert len(insights) == 1
        assert insights[0].metadata["expense_id"] == exp.expense_id

    def test_ordinary_amount_records_nothing(self, service, store, add_expenses):
        today = _today()
        add_expenses("alice", [("Lunch", a, "food", today) for a in (10, 12, 11, 13, 9)])
        exp = service.create("alice", "Lunch", 11, category="food")
        assert exp.is_anomaly is False
        assert store.list_insights("alice") == []


def test_create_from_receipt(service, store):
    parsed = ParsedReceipt(
        merchant="Green Leaf Cafe",
        amount=13.77,
        date="2024-03-14",
        items=["Veggie Wrap 8.50", "Iced Latte 4.25"],
        raw_text="...",
    )
    exp = service.create_from_receipt("alice", parsed, source_path="/tmp/cafe.jpg")
    assert exp.name == "Green Leaf Cafe"
    assert exp.notes == "Veggie Wrap 8.50, Iced Latte 4.25"
    assert exp.category == "food"
    assert exp.ai_categorized is True
    assert exp.receipt_path == "/tmp/cafe.jpg"
    assert store.get_expense("alice", exp.expense_id).ocr_data["merchant"] == "Green Leaf Cafe"


def test_receipt_amount_is_clamped(service):
    parsed = ParsedReceipt(merchant="Odd Receipt", amount=5_000_000, date="2024-03-14")
    assert service.create_from_receipt("alice", parsed).amount == 999999.99


class TestUpdateDelete:
    def test_update_validates_and_resets_auto_flag(self, service):
        exp = service.create("alice", "Uber ride home", 22)
        updated = service.update("alice", exp.expense_id, category="entertainment", amount=25)
        assert updated.category == "entertainment"
        assert updated.amount == 25
        assert updated.ai_categorized is False

        with pytest.raises(ValueError):
            service.update("alice", exp.expense_id, amount=-5)

    def test_update_foreign_expense_is_not_found(self, service):
        exp = service.create("alice", "Pizza", 12)
        assert service.update("bob", exp.expense_id, name="Mine now") is None
        assert service.get("alice", exp.expense_id).name == "Pizza"

    def test_delete(self, service):
        exp = service.create("alice", "Pizza", 12)
        assert service.delete("bob", exp.expense_id) is False
        assert service.delete("alice", exp.expense_id) is True
        assert service.get("alice", exp.expense_id) is None


class TestRecategorize:
    def test_only_auto_categorized_by_default(self, service, store):
        auto = service.create("alice", "Uber ride", 22)
        manual = service.create("alice", "Uber ride", 22, category="other")
        store.update_expense("alice", auto.expense_id, category="shopping")

        results = service.recategorize("alice")
        assert [e.expense_id for e, _ in results] == [auto.expense_id]
        assert service.get("alice", auto.expense_id).category == "transport"
        assert service.get("alice", manual.expense_id).category == "other"

    def test_refresh_dry_run_changes_nothing(self, service):
        manual = service.create("alice", "Uber ride", 22, category="other")
        results = service.recategorize("alice", refresh=True, dry_run=True)
        assert results[0][1].category == "transport"
        assert service.get("alice", manual.expense_id).category == "other"


def test_stats_with_date_range(service):
    service.create("alice", "Pizza", 12, date="2024-01-10")
    service.create("alice", "Taxi", 30, date="2024-02-10")
    assert service.stats("alice", "2024-02-01", "2024-02-28")["total_spent"] == 30.0
    assert service.stats("alice")["total_expenses"] == 2


def test_from_config_wires_collaborators(store):
    cfg = {"categorizer": {"keywords_path": None}, "anomaly": {"threshold": 4.0}}
    svc = ExpenseService.from_config(store, cfg)
    assert isinstance(svc.detector, AnomalyDetector)
    assert svc.detector.threshold == 4.0
