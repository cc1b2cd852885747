import re
from datetime import datetime

from kalavara.domain.dates import is_recent
from kalavara.models import UNKNOWN_MERCHANT, clamp_confidence

MAX_MERCHANT_LENGTH = 100

_ACCOUNT_TOKEN_RE = re.compile(r"a/c\s*(?:no\.?\s*)?[x*\d]+", re.IGNORECASE)
_MASKED_NUMBER_RE = re.compile(r"(?:[x*]{2,}|\*+)\d+", re.IGNORECASE)
_HONORIFIC_RE = re.compile(r"^(?:mr|mrs|ms|dr)(?:\.\s*|\s+)", re.IGNORECASE)


def clean_merchant_name(name: str | None) -> str:
    if not name or name == UNKNOWN_MERCHANT:
        return UNKNOWN_MERCHANT
    cleaned = _ACCOUNT_TOKEN_RE.sub("", name)
    cleaned = _MASKED_NUMBER_RE.sub("", cleaned)
    cleaned = cleaned.replace("*", "")
    cleaned = re.sub(r"\s+", " ", cleaned).strip()
    cleaned = _HONORIFIC_RE.sub("", cleaned)
    cleaned = re.sub(r"[<>]", "", cleaned).strip()
    cleaned = cleaned[:MAX_MERCHANT_LENGTH].strip()
    return cleaned or UNKNOWN_MERCHANT


def score_confidence(
    *,
    base: float,
    amount: int,
    amount_weight: float,
    merchant: str,
    merchant_min_length: int = 0,
    date: datetime,
    bonus: float = 0.0,
) -> float:
    """Sum the fixed increments for the fields a parser managed to resolve."""
    confidence = base
    if amount > 0:
        confidence += amount_weight
    if merchant != UNKNOWN_MERCHANT and len(merchant) > merchant_min_length:
        confidence += 0.2
    if is_recent(date):
        confidence += 0.1
    confidence += bonus
    return round(clamp_confidence(confidence), 4)
