from __future__ import annotations

import re
from datetime import date, datetime
from typing import Optional, Union

from et_core.models import MAX_AMOUNT


# ---------------- Amounts ----------------


def clamp_amount(value: Union[str, float, int, None]) -> float:
    """Coerce to float and clamp into [0, MAX_AMOUNT]; garbage becomes 0."""
    try:
        val = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return 0.0
    if val != val:  # NaN
        return 0.0
    return round(min(max(val, 0.0), MAX_AMOUNT), 2)


# ---------------- Dates ----------------

# 12/31/2020, 31-12-20
DMY_RX = re.compile(r"^\s*(\d{1,2})[/-](\d{1,2})[/-](\d{2,4})\s*$")
# 2020-12-31, 2020/1/5
YMD_RX = re.compile(r"^\s*(\d{4})[/-](\d{1,2})[/-](\d{1,2})\s*$")


def _clip_year(y: int) -> int:
    if y < 100:
        return 2000 + y if y < 70 else 1900 + y
    return y


def _safe_date(y: int, m: int, d: int) -> Optional[str]:
    try:
        return date(y, m, d).isoformat()
    except ValueError:
        return None


def to_iso_date(raw: Optional[str]) -> Optional[str]:
    """
    Turn a receipt date token into YYYY-MM-DD.
    Slashed/dashed short dates are read month-first unless the first field
    cannot be a month. Returns None for anything that is not a real date.
    """
    if not raw:
        return None
    s = raw.strip()

    m = YMD_RX.match(s)
    if m:
        return _safe_date(int(m.group(1)), int(m.group(2)), int(m.group(3)))

    m = DMY_RX.match(s)
    if m:
        a, b = int(m.group(1)), int(m.group(2))
        y = _clip_year(int(m.group(3)))
        if a > 12 and b <= 12:
            d, mon = a, b
        else:
            mon, d = a, b
        return _safe_date(y, mon, d)

    return None


def parse_date_arg(raw: Union[str, date, datetime, None]) -> Optional[str]:
    """Accept ISO strings, receipt-style dates or date objects; None passes through."""
    if raw is None or raw == "":
        return None
    if isinstance(raw, datetime):
        return raw.date().isoformat()
    if isinstance(raw, date):
        return raw.isoformat()
    iso = to_iso_date(str(raw))
    if iso is None:
        raise ValueError(f"Invalid date: {raw!r}")
    return iso
