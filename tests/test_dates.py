from datetime import datetime, timedelta, timezone

import pytest

from kalavara.domain.dates import extract_date, is_recent, parse_date, to_naive


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("05-01-25", datetime(2025, 1, 5)),
        ("05/01/2025", datetime(2025, 1, 5)),
        ("05-Jan-25", datetime(2025, 1, 5)),
        ("2025-01-05", datetime(2025, 1, 5)),
        ("Jan 05, 2025", datetime(2025, 1, 5)),
        ("5 Jan 2025", datetime(2025, 1, 5)),
    ],
)
def test_parse_date_formats(raw: str, expected: datetime) -> None:
    assert parse_date(raw) == expected


def test_two_digit_year_is_this_century() -> None:
    parsed = parse_date("05-01-25")
    assert parsed is not None
    assert (parsed.day, parsed.month, parsed.year) == (5, 1, 2025)


def test_parse_date_invalid() -> None:
    assert parse_date("") is None
    assert parse_date(None) is None
    assert parse_date("not a date") is None


def test_extract_date_does_not_split_iso_dates() -> None:
    assert extract_date("Txn on 2025-03-14 at store") == datetime(2025, 3, 14)


def test_extract_date_from_text() -> None:
    assert extract_date("debited on 04-01-26 via UPI") == datetime(2026, 1, 4)
    assert extract_date("nothing here") is None


def test_to_naive_converts_to_utc() -> None:
    aware = datetime(2025, 1, 5, 10, 0, tzinfo=timezone(timedelta(hours=5, minutes=30)))
    assert to_naive(aware) == datetime(2025, 1, 5, 4, 30)


def test_is_recent() -> None:
    now = datetime(2026, 1, 10)
    assert is_recent(datetime(2026, 1, 1), now=now)
    assert not is_recent(datetime(2024, 1, 1), now=now)
    assert not is_recent(datetime(2026, 2, 1), now=now)
