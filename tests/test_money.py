import pytest

from kalavara.domain.money import extract_amount, format_amount, parse_amount, to_minor_units


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("Rs.169.00", 16900),
        ("INR 1,234.56", 123456),
        ("₹ 12,34,567.89", 123456789),
        ("500", 50000),
        ("0.005", 1),
    ],
)
def test_parse_amount(raw: str, expected: int) -> None:
    assert parse_amount(raw) == expected


@pytest.mark.parametrize("raw", [None, "", "Rs.", "abc", "1.2.3"])
def test_parse_amount_rejects_garbage(raw: str | None) -> None:
    assert parse_amount(raw) is None


def test_parse_amount_rejects_values_too_large_to_store() -> None:
    assert parse_amount("Rs.999999999999999999999.00") is None
    assert parse_amount("1e30") is None
    assert extract_amount("Rs.999999999999999999999.00 debited") is None
    assert parse_amount("92233720368547758.07") == 2**63 - 1


def test_to_minor_units_rounds_half_up() -> None:
    assert to_minor_units(0.125) == 13
    assert to_minor_units("19.999") == 2000
    assert isinstance(to_minor_units(1.5), int)


def test_extract_amount_prefers_currency_marked_value() -> None:
    text = "Balance 9,999.00. Rs.250.50 debited from your account"
    assert extract_amount(text) == 25050


def test_extract_amount_falls_back_to_bare_decimal() -> None:
    assert extract_amount("Amount 1,200.00 transferred") == 120000
    assert extract_amount("No amount here") is None


def test_format_amount() -> None:
    assert format_amount(123456789) == "₹12,34,567.89"
    assert format_amount(16900) == "₹169.00"
    assert format_amount(-5) == "-₹0.05"
    assert format_amount(123456, currency="USD") == "USD 1,234.56"
