# pipeline/receipt.py
from __future__ import annotations

import logging
from datetime import date
from pathlib import Path
from typing import Optional

from et_core.errors import ExtractionError
from et_core.models import ParsedReceipt
from et_utils.timeouts import call_with_timeout
from parser.receipt import parse_receipt

LOGGER = logging.getLogger(__name__)

TXT_EXTS = {".txt"}


def scan_receipt(
    inp: Path | str,
    reader=None,
    timeout: Optional[float] = None,
    today: Optional[date] = None,
) -> ParsedReceipt:
    """
    Receipt file -> ParsedReceipt.

    .txt files are parsed as-is; images and PDFs go through the OCR reader on
    a worker thread bounded by `timeout`. OCR problems surface as
    ExtractionError; parsing itself never fails.
    """
    inp = Path(inp)
    if not inp.exists():
        raise FileNotFoundError(f"Input not found: {inp}")

    if inp.suffix.lower() in TXT_EXTS:
        raw_text = inp.read_text(encoding="utf-8", errors="ignore")
    else:
        raw_text = _extract(lambda r: r.extract_text(inp), reader, timeout, str(inp))

    LOGGER.info("Extracted %d characters from %s", len(raw_text), inp.name)
    parsed = parse_receipt(raw_text, today=today)
    LOGGER.info(
        "Parsed receipt: merchant=%r amount=%.2f items=%d",
        parsed.merchant,
        parsed.amount,
        len(parsed.items),
    )
    return parsed


def scan_upload(
    data: bytes,
    kind: str,
    reader=None,
    timeout: Optional[float] = None,
    today: Optional[date] = None,
) -> ParsedReceipt:
    """Same as scan_receipt for an in-memory upload (kind = extension or MIME type)."""
    raw_text = _extract(lambda r: r.extract_bytes(data, kind), reader, timeout, kind)
    return parse_receipt(raw_text, today=today)


def _extract(call, reader, timeout: Optional[float], label: str) -> str:
    from ocr.reader import Reader

    reader = reader or Reader()
    try:
        return call_with_timeout(call, timeout, reader) or ""
    except TimeoutError as e:
        raise ExtractionError(f"Text extraction timed out after {timeout}s: {label}") from e
