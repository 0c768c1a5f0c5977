# tests/test_sqlite_store.py
import pytest

from et_core.models import Expense, Insight


def _exp(user="alice", name="Lunch", amount=12.5, category="food", date="2024-03-01", **kw):
    return Expense(user_id=user, name=name, amount=amount, category=category, date=date, **kw)


class TestExpenseCrud:
    def test_insert_assigns_id_and_timestamps(self, store):
        exp = store.insert_expense(_exp(tags=["work"], ocr_data={"merchant": "Cafe"}))
        assert len(exp.expense_id) == 12
        assert exp.created_at and exp.updated_at

        got = store.get_expense("alice", exp.expense_id)
        assert got.name == "Lunch"
        assert got.tags == ["work"]
        assert got.ocr_data == {"merchant": "Cafe"}
        assert got.ai_categorized is False

    def test_update_changes_only_given_fields(self, store):
        exp = store.insert_expense(_exp())
        assert store.update_expense("alice", exp.expense_id, amount=20.0, is_anomaly=True)
        got = store.get_expense("alice", exp.expense_id)
        assert got.amount == 20.0
        assert got.is_anomaly is True
        assert got.name == "Lunch"

    def test_update_rejects_unknown_fields(self, store):
        exp = store.insert_expense(_exp())
        with pytest.raises(ValueError, match="created_at"):
            store.update_expense("alice", exp.expense_id, created_at="2000-01-01")
        assert store.get_expense("alice", exp.expense_id).created_at == exp.created_at

    def test_delete(self, store):
        exp = store.insert_expense(_exp())
        assert store.delete_expense("alice", exp.expense_id) is True
        assert store.get_expense("alice", exp.expense_id) is None
        assert store.delete_expense("alice", exp.expense_id) is False


class TestUserIsolation:
    def test_other_users_cannot_see_or_touch(self, store):
        mine = store.insert_expense(_exp(user="alice"))
        store.insert_expense(_exp(user="bob", name="Bob's lunch"))

        assert store.get_expense("bob", mine.expense_id) is None
        assert store.update_expense("bob", mine.expense_id, amount=1.0) is False
        assert store.delete_expense("bob", mine.expense_id) is False
        assert store.get_expense("alice", mine.expense_id).amount == 12.5

        listed = store.list_expenses("alice")["expenses"]
        assert [e.user_id for e in listed] == ["alice"]
        assert store.recent_amounts("alice", "food", "2000-01-01") == [12.5]
        assert store.spending_stats("bob")["total_expenses"] == 1


class TestListing:
    @pytest.fixture
    def seeded(self, store, add_expenses):
        add_expenses(
            "alice",
            [
                ("Coffee beans", 18.0, "food", "2024-01-10"),
                ("Uber to airport", 42.0, "transport", "2024-02-03"),
                ("Electric bill", 120.0, "utilities", "2024-02-15"),
                ("Pizza night", 30.0, "food", "2024-03-01"),
                ("Movie tickets", 24.0, "entertainment", "2024-03-09"),
            ],
        )
        return store

    def test_default_sort_is_newest_first(self, seeded):
        names = [e.name for e in seeded.list_expenses("alice")["expenses"]]
        assert names[0] == "Movie tickets"
        assert names[-1] == "Coffee beans"

    def test_filters(self, seeded):
        food = seeded.list_expenses("alice", category="food")
        assert {e.name for e in food["expenses"]} == {"Coffee beans", "Pizza night"}
        feb = seeded.list_expenses("alice", date_from="2024-02-01", date_to="2024-02-29")
        assert feb["pagination"]["total"] == 2
        hit = seeded.list_expenses("alice", search="airport")
        assert [e.name for e in hit["expenses"]] == ["Uber to airport"]

    def test_pagination_and_sort(self, seeded):
        page = seeded.list_expenses("alice", page=2, limit=2, sort_by="amount", descending=False)
        assert [e.amount for e in page["expenses"]] == [30.0, 42.0]
        assert page["pagination"] == {"page": 2, "limit": 2, "total": 5, "pages": 3}

    def test_bad_sort_field(self, seeded):
        with pytest.raises(ValueError):
            seeded.list_expenses("alice", sort_by="amount; DROP TABLE expenses")

    def test_recent_amounts_newest_first(self, seeded):
        assert seeded.recent_amounts("alice", "food", "2024-01-01") == [30.0, 18.0]
        assert seeded.recent_amounts("alice", "food", "2024-02-01") == [30.0]

    def test_monthly_totals(self, seeded, add_expenses):
        add_expenses("alice", [("Bagel", 2.0, "food", "2024-03-20")])
        assert seeded.monthly_totals("alice", "food", "2024-01-01") == [
            ("2024-01", 18.0),
            ("2024-03", 32.0),
        ]

    def test_spending_stats(self, seeded):
        stats = seeded.spending_stats("alice")
        assert stats["total_spent"] == 234.0
        assert stats["total_expenses"] == 5
        assert stats["average_expense"] == 46.8
        assert list(stats["category_breakdown"]) == ["utilities", "food", "transport", "entertainment"]
        ranged = seeded.spending_stats("alice", "2024-03-01", "2024-03-31")
        assert ranged["total_spent"] == 54.0

    def test_stats_for_unknown_user(self, store):
        assert store.spending_stats("nobody") == {
            "total_spent": 0,
            "average_expense": 0,
            "total_expenses": 0,
            "category_breakdown": {},
        }


class TestInsights:
    def test_insert_and_list(self, store):
        store.insert_insight(Insight("alice", "chat", "Q", "A", {"user_message": "hi"}))
        store.insert_insight(Insight("alice", "anomaly", "Unusual", "big"))
        store.insert_insight(Insight("bob", "chat", "Q", "secret"))

        all_alice = store.list_insights("alice")
        assert len(all_alice) == 2
        chats = store.list_insights("alice", insight_type="chat")
        assert [i.content for i in chats] == ["A"]
        assert chats[0].metadata == {"user_message": "hi"}
        assert chats[0].id is not None
