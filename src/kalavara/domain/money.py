import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from kalavara.models import MAX_MINOR_UNITS

_CURRENCY_TOKENS_RE = re.compile(r"(?:rs\.?|inr|[₹$€£¥])", re.IGNORECASE)

# Tried in order; the first pattern yielding a positive amount wins.
AMOUNT_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"Rs\.?\s*([\d,]+\.?\d*)", re.IGNORECASE),
    re.compile(r"INR\s*([\d,]+\.?\d*)", re.IGNORECASE),
    re.compile(r"₹\s*([\d,]+\.?\d*)"),
    re.compile(r"([\d,]+\.\d{2})\b"),
)


def to_minor_units(value: float | str | Decimal) -> int:
    """Major units to integer minor units, rounding half up."""
    amount = Decimal(str(value)) * 100
    return int(amount.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def parse_amount(raw: str | None) -> int | None:
    if not raw:
        return None
    cleaned = _CURRENCY_TOKENS_RE.sub("", raw)
    cleaned = re.sub(r"[,\s]", "", cleaned)
    if not cleaned:
        return None
    try:
        decimal_value = Decimal(cleaned)
    except InvalidOperation:
        return None
    if not decimal_value.is_finite() or abs(decimal_value) * 100 > MAX_MINOR_UNITS:
        return None
    return to_minor_units(decimal_value)


def extract_amount(text: str) -> int | None:
    for pattern in AMOUNT_PATTERNS:
        match = pattern.search(text)
        if not match:
            continue
        amount = parse_amount(match.group(1))
        if amount is not None and amount > 0:
            return amount
    return None


def _group_indian(digits: str) -> str:
    if len(digits) <= 3:
        return digits
    head, tail = digits[:-3], digits[-3:]
    groups = []
    while len(head) > 2:
        groups.insert(0, head[-2:])
        head = head[:-2]
    if head:
        groups.insert(0, head)
    return ",".join(groups) + "," + tail


def format_amount(minor_units: int, currency: str = "INR") -> str:
    sign = "-" if minor_units < 0 else ""
    whole, fraction = divmod(abs(minor_units), 100)
    if currency == "INR":
        return f"{sign}₹{_group_indian(str(whole))}.{fraction:02d}"
    return f"{sign}{currency} {whole:,}.{fraction:02d}"
