# parser/receipt.py
"""
Best-effort receipt parser: raw OCR text -> ParsedReceipt.

Every lookup has a fallback, so any input (including None or "") yields a
result. The amount is "the largest number on the receipt", which is right for
most till slips and wrong for ones that print a larger reference number or
percentage; that trade-off is deliberate and kept stable.

Usage (CLI):
  python -m parser.receipt --input data/interim/ocr_text/lunch.txt
"""
from __future__ import annotations

import argparse
import json
import math
import re
from dataclasses import asdict
from datetime import date
from pathlib import Path
from typing import List, Optional

from et_core.models import ParsedReceipt, UNKNOWN_MERCHANT
from et_utils.normalizers import to_iso_date

BUSINESS_WORDS = (
    "restaurant",
    "cafe",
    "store",
    "shop",
    "market",
    "pharmacy",
    "gas",
    "station",
)
MERCHANT_SCAN_LINES = 5
MAX_ITEMS = 10

AMOUNT_RX = re.compile(r"([$₹€£])?\s*(\d+\.?\d*)")
DATE_RX = re.compile(
    r"(\d{1,2}[/\-]\d{1,2}[/\-]\d{2,4})|(\d{4}[/\-]\d{1,2}[/\-]\d{1,2})"
)
NON_ITEM_RX = re.compile(
    r"^(total|subtotal|tax|discount|amount|date|time|receipt|thank|you)", re.I
)
NUMERIC_ONLY_RX = re.compile(r"^[\d\s$₹€£.]+$")


def split_lines(text: Optional[str]) -> List[str]:
    return [ln.strip() for ln in (text or "").splitlines() if ln.strip()]


def find_merchant(lines: List[str]) -> str:
    for line in lines[:MERCHANT_SCAN_LINES]:
        low = line.lower()
        if any(w in low for w in BUSINESS_WORDS) or 5 < len(line) < 50:
            return line
    return UNKNOWN_MERCHANT


def find_amount(lines: List[str]) -> float:
    amounts: List[float] = []
    for line in lines:
        for m in AMOUNT_RX.finditer(line):
            try:
                num = float(m.group(2))
            except ValueError:
                continue
            if num > 0 and math.isfinite(num):
                amounts.append(num)
    return max(amounts) if amounts else 0.0


def find_date_token(lines: List[str]) -> Optional[str]:
    for line in lines:
        m = DATE_RX.search(line)
        if m:
            return m.group(0)
    return None


def find_items(lines: List[str]) -> List[str]:
    items: List[str] = []
    for line in lines:
        if NON_ITEM_RX.match(line):
            continue
        if NUMERIC_ONLY_RX.match(line):
            continue
        if not 3 <= len(line) < 100:
            continue
        items.append(line)
        if len(items) == MAX_ITEMS:
            break
    return items


def parse_receipt(text: Optional[str], today: Optional[date] = None) -> ParsedReceipt:
    """Parse OCR text into a ParsedReceipt. Never raises."""
    today = today or date.today()
    lines = split_lines(text)

    token = find_date_token(lines)
    iso = to_iso_date(token) if token else None

    return ParsedReceipt(
        merchant=find_merchant(lines),
        amount=find_amount(lines),
        date=iso or today.isoformat(),
        items=find_items(lines),
        raw_text=text or "",
        date_text=token,
    )


def _cli():
    p = argparse.ArgumentParser(description="Parse an OCR text file into receipt JSON")
    p.add_argument("--input", required=True, help="Path to OCR .txt file")
    args = p.parse_args()

    inp = Path(args.input)
    if not inp.exists():
        raise FileNotFoundError(f"Input not found: {inp}")

    parsed = parse_receipt(inp.read_text(encoding="utf-8", errors="ignore"))
    print(json.dumps(asdict(parsed), indent=2, ensure_ascii=False))


if __name__ == "__main__":
    _cli()
