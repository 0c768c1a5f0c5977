# adapters/receipt.py
from __future__ import annotations

from dataclasses import asdict

from adapters.base import BaseAdapter
from et_core.models import Expense, ParsedReceipt, UNKNOWN_MERCHANT
from et_utils.normalizers import clamp_amount

MAX_NAME = 255
MAX_NOTES = 1000


class ReceiptAdapter(BaseAdapter):
    """
    Receipt -> draft expense:
      name   = merchant
      notes  = line items joined with ", "
      amount = parsed amount clamped into the storable range
    Category is left as "auto" so the expense service classifies it.
    """

    def build(
        self,
        *,
        user_id: str,
        parsed: ParsedReceipt,
        source_path: str | None = None,
    ) -> Expense:
        name = (parsed.merchant or UNKNOWN_MERCHANT)[:MAX_NAME]
        notes = ", ".join(parsed.items)[:MAX_NOTES] if parsed.items else ""
        return Expense(
            user_id=user_id,
            name=name,
            amount=clamp_amount(parsed.amount),
            category="auto",
            date=parsed.date,
            notes=notes or None,
            receipt_path=source_path,
            ocr_data=asdict(parsed),
        )
