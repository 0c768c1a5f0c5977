from abc import ABC, abstractmethod

from et_core.models import Expense, ParsedReceipt


class BaseAdapter(ABC):
    """Turn a parsed receipt into a draft Expense for one user."""

    @abstractmethod
    def build(
        self,
        *,
        user_id: str,
        parsed: ParsedReceipt,
        source_path: str | None = None,
    ) -> Expense: ...
