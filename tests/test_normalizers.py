# tests/test_normalizers.py
from datetime import date, datetime

import pytest

from et_utils.normalizers import clamp_amount, parse_date_arg, to_iso_date
from et_utils.timeouts import call_with_timeout


@pytest.mark.parametrize(
    "raw,expected",
    [
        (12.5, 12.5),
        ("7.129", 7.13),
        (-3, 0.0),
        (5_000_000, 999999.99),
        (None, 0.0),
        ("n/a", 0.0),
        (float("nan"), 0.0),
    ],
)
def test_clamp_amount(raw, expected):
    assert clamp_amount(raw) == expected


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("2024-03-14", "2024-03-14"),
        ("2024/3/4", "2024-03-04"),
        ("03/14/2024", "2024-03-14"),
        ("04/03/2024", "2024-04-03"),  # month first when ambiguous
        ("14/03/2024", "2024-03-14"),  # day first when it must be
        ("1-2-99", "1999-01-02"),
        ("02/29/2023", None),
        ("13/13/2024", None),
        ("yesterday", None),
        ("", None),
        (None, None),
    ],
)
def test_to_iso_date(raw, expected):
    assert to_iso_date(raw) == expected


def test_parse_date_arg():
    assert parse_date_arg(None) is None
    assert parse_date_arg(date(2024, 1, 2)) == "2024-01-02"
    assert parse_date_arg(datetime(2024, 1, 2, 23, 59)) == "2024-01-02"
    assert parse_date_arg("12/25/2023") == "2023-12-25"
    with pytest.raises(ValueError, match="Invalid date"):
        parse_date_arg("someday")


def test_call_with_timeout_runs_inline_without_timeout():
    assert call_with_timeout(lambda a, b=0: a + b, None, 2, b=3) == 5


def test_call_with_timeout_raises_on_slow_call():
    import threading

    gate = threading.Event()
    try:
        with pytest.raises(TimeoutError):
            call_with_timeout(gate.wait, 0.05, 5)
    finally:
        gate.set()
