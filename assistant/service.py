# assistant/service.py
"""
LLM-backed assistant over a user's expenses: free-form chat, generated
spending insights, and natural-language search.

Every call builds its own prompt from one or two store reads; the backend
is injected so tests (and other providers) can stand in for Gemini.
"""
from __future__ import annotations

import logging
import re
from datetime import date, timedelta
from typing import Any, Dict, List, Optional

from et_core.models import Expense, Insight
from et_utils.timeouts import call_with_timeout

from . import AssistantError, ChatBackend

LOGGER = logging.getLogger(__name__)

CURRENCY = "₹"
CHAT_HISTORY = 20
CHAT_WINDOW_DAYS = 30
INSIGHT_WINDOW_DAYS = 90
MIN_INSIGHT_EXPENSES = 5
MAX_MESSAGE = 1000
MIN_QUERY = 3


def _line(exp: Expense, with_notes: bool = False) -> str:
    s = f"{exp.date}: {exp.name} - {CURRENCY}{exp.amount:.2f} ({exp.category})"
    if with_notes and exp.notes:
        s += f" - {exp.notes}"
    return s


def parse_indices(reply: str, count: int) -> List[int]:
    """
    "3, 1, x, 9" -> [2, 0] for count=5: 1-based numbers to 0-based indices,
    dropping anything unparsable or out of range. "none" -> [].
    """
    reply = reply.strip()
    if reply.lower().strip(".") == "none":
        return []
    out: List[int] = []
    for part in reply.split(","):
        m = re.search(r"\d+", part)
        if not m:
            continue
        idx = int(m.group(0)) - 1
        if 0 <= idx < count and idx not in out:
            out.append(idx)
    return out


class AssistantService:
    def __init__(
        self,
        store,
        backend: ChatBackend,
        timeout: Optional[float] = 30,
        max_chars: int = 5000,
    ):
        self.store = store
        self.backend = backend
        self.timeout = timeout
        self.max_chars = max_chars

    @classmethod
    def from_config(cls, store, cfg: dict, backend: Optional[ChatBackend] = None):
        from . import create_backend

        section = cfg.get("assistant", {})
        return cls(
            store,
            backend or create_backend(cfg),
            timeout=section.get("timeout_seconds", 30),
            max_chars=int(section.get("max_response_chars", 5000)),
        )

    def _ask(self, prompt: str) -> str:
        try:
            reply = call_with_timeout(self.backend.generate, self.timeout, prompt)
        except TimeoutError as e:
            raise AssistantError(f"AI service did not answer within {self.timeout}s") from e
        reply = reply or ""
        if len(reply) > self.max_chars:
            LOGGER.info("Truncating %d-char reply to %d", len(reply), self.max_chars)
            reply = reply[: self.max_chars]
        return reply

    # -------------------------------------------------------------------- chat

    def chat(
        self,
        user_id: str,
        message: str,
        context: str = "",
        today: Optional[date] = None,
    ) -> Dict[str, Any]:
        message = (message or "").strip()
        if not message:
            raise ValueError("message is required")
        if len(message) > MAX_MESSAGE:
            raise ValueError(f"message must be at most {MAX_MESSAGE} characters")

        today = today or date.today()
        expenses = self.store.recent_expenses(user_id, limit=CHAT_HISTORY)
        since = (today - timedelta(days=CHAT_WINDOW_DAYS)).isoformat()
        breakdown = self.store.category_totals(user_id, date_from=since)

        total = sum(b["total"] for b in breakdown)
        count = sum(b["count"] for b in breakdown)
        average = total / count if count else 0.0

        prompt = "\n".join(
            [
                "You are a financial assistant for an expense tracking app.",
                f"Use {CURRENCY} for all amounts. Help the user understand their spending.",
                "",
                f"User's recent expenses (last {CHAT_HISTORY}):",
                "\n".join(_line(e) for e in expenses) or "(none)",
                "",
                f"Spending by category (last {CHAT_WINDOW_DAYS} days):",
                "\n".join(f"{b['category']}: {CURRENCY}{b['total']:.2f}" for b in breakdown)
                or "(none)",
                "",
                f"Total spent: {CURRENCY}{total:.2f}",
                f"Average expense: {CURRENCY}{average:.2f}",
                "",
                f"Extra context: {context}" if context else "",
                f"User question: {message}",
            ]
        )
        reply = self._ask(prompt)

        self.store.insert_insight(
            Insight(
                user_id=user_id,
                insight_type="chat",
                title="AI Chat Response",
                content=reply,
                metadata={"user_message": message, "context": context or ""},
            )
        )
        return {
            "response": reply,
            "context": {
                "recent_expenses": expenses[:5],
                "total_spent": round(total, 2),
                "category_breakdown": breakdown,
            },
        }

    # ---------------------------------------------------------------- insights

    def generate_insights(self, user_id: str, today: Optional[date] = None) -> Dict[str, Any]:
        """
        Summarise the last 90 days and have the model comment on it.
        Fewer than 5 expenses: metadata only, the model is not called.
        """
        today = today or date.today()
        since = (today - timedelta(days=INSIGHT_WINDOW_DAYS)).isoformat()
        expenses = self.store.recent_expenses(user_id, limit=0, since=since)

        total = sum(e.amount for e in expenses)
        by_category: Dict[str, float] = {}
        for e in expenses:
            by_category[e.category] = by_category.get(e.category, 0.0) + e.amount
        top = max(by_category.items(), key=lambda kv: kv[1])[0] if by_category else "other"
        metadata = {
            "total_spent": round(total, 2),
            "avg_daily": round(total / INSIGHT_WINDOW_DAYS, 2),
            "top_category": top,
            "expense_count": len(expenses),
        }

        if len(expenses) < MIN_INSIGHT_EXPENSES:
            return {
                "insights": None,
                "message": "Need more expense data to generate AI-written insights",
                "metadata": metadata,
            }

        prompt = "\n".join(
            [
                f"Analyze this user's spending data ({CURRENCY}) and provide 3-5 key insights:",
                "",
                f"Total spent ({INSIGHT_WINDOW_DAYS} days): {CURRENCY}{total:.2f}",
                f"Average daily spending: {CURRENCY}{metadata['avg_daily']:.2f}",
                f"Top category: {top}",
                "",
                "Recent expenses:",
                "\n".join(_line(e) for e in expenses[:10]),
                "",
                "Provide actionable insights about spending patterns, potential savings, "
                "and recommendations.",
            ]
        )
        text = self._ask(prompt)
        self.store.insert_insight(
            Insight(
                user_id=user_id,
                insight_type="generated",
                title="Monthly Spending Analysis",
                content=text,
                metadata=metadata,
            )
        )
        return {"insights": text, "message": None, "metadata": metadata}

    # ------------------------------------------------------------------ search

    def semantic_search(self, user_id: str, query: str) -> List[Expense]:
        query = (query or "").strip()
        if len(query) < MIN_QUERY:
            raise ValueError(f"Search query must be at least {MIN_QUERY} characters")

        expenses = self.store.recent_expenses(user_id, limit=0)
        if not expenses:
            return []

        listing = "\n".join(f"{i}. {_line(e, with_notes=True)}" for i, e in enumerate(expenses, 1))
        prompt = (
            f'Find expenses that match this search query: "{query}"\n\n'
            f"Available expenses:\n{listing}\n\n"
            "Return only the numbers of matching expenses, separated by commas. "
            'If no matches, return "none".'
        )
        reply = self._ask(prompt)
        return [expenses[i] for i in parse_indices(reply, len(expenses))]

    def list_insights(
        self, user_id: str, insight_type: Optional[str] = None, limit: int = 10
    ) -> List[Insight]:
        return self.store.list_insights(user_id, insight_type=insight_type, limit=limit)
