import re
from datetime import datetime, timezone

from dateutil import parser as date_parser

# Explicit formats, four-digit years before their two-digit twins.
DATE_FORMATS: tuple[str, ...] = (
    "%d-%b-%Y",   # 05-Jan-2025
    "%d-%b-%y",   # 05-Jan-25
    "%d/%b/%Y",
    "%d/%b/%y",
    "%d/%m/%Y",   # 05/01/2025
    "%d-%m-%Y",   # 05-01-2025
    "%d/%m/%y",   # 05/01/25
    "%d-%m-%y",   # 05-01-25
    "%Y-%m-%d",   # 2025-01-05
    "%Y/%m/%d",
    "%b %d, %Y",  # Jan 05, 2025
    "%b %d %Y",
    "%d %b %Y",   # 05 Jan 2025
    "%d %b %y",   # 05 Jan 25
)

# Shapes searched for in free text, in priority order.
DATE_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"(?<!\d)(\d{1,2}[-/][A-Za-z]{3}[-/]\d{2,4})(?!\d)"),
    re.compile(r"(?<!\d)(\d{1,2}[-/]\d{1,2}[-/]\d{2,4})(?!\d)"),
    re.compile(r"(?<!\d)(\d{4}[-/]\d{1,2}[-/]\d{1,2})(?!\d)"),
    re.compile(r"\b([A-Za-z]{3}\s+\d{1,2},?\s+\d{4})(?!\d)"),
    re.compile(r"(?<!\d)(\d{1,2}\s+[A-Za-z]{3}\s+\d{2,4})(?!\d)"),
)


def _fix_two_digit_year(value: datetime) -> datetime:
    year = value.year
    if year < 100:
        return value.replace(year=year + 2000)
    if 1900 <= year < 2000:
        return value.replace(year=year + 100)
    if year < 1900:
        return value.replace(year=year + 2000)
    return value


def to_naive(value: datetime) -> datetime:
    """Drop timezone info, converting aware values to UTC first."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def parse_date(raw: str | None) -> datetime | None:
    if not raw:
        return None
    cleaned = raw.strip()
    if not cleaned:
        return None

    for fmt in DATE_FORMATS:
        try:
            parsed = datetime.strptime(cleaned, fmt)
        except ValueError:
            continue
        try:
            return _fix_two_digit_year(parsed)
        except ValueError:
            # 29 Feb shifted into a non-leap year
            continue

    try:
        return to_naive(date_parser.parse(cleaned, dayfirst=True))
    except (ValueError, OverflowError):
        return None


def extract_date(text: str) -> datetime | None:
    for pattern in DATE_PATTERNS:
        match = pattern.search(text)
        if not match:
            continue
        parsed = parse_date(match.group(1))
        if parsed is not None:
            return parsed
    return None


def is_recent(value: datetime, *, days: int = 365, now: datetime | None = None) -> bool:
    """True when ``value`` lies within the last ``days`` days (not in the future)."""
    reference = now or datetime.now()
    age_days = (to_naive(reference) - to_naive(value)).total_seconds() / 86400
    return 0 <= age_days < days
