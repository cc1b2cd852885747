import re
from datetime import datetime

from kalavara.domain.dates import extract_date, to_naive
from kalavara.domain.merchants import clean_merchant_name, score_confidence
from kalavara.domain.money import extract_amount
from kalavara.domain.text import extract_email_text
from kalavara.models import UNKNOWN_MERCHANT, Bank, ParsedTransaction, ParseOutcome
from kalavara.parsers.base import ERROR_NO_AMOUNT, ERROR_NO_TYPE, classify_type

DEBIT_KEYWORDS = ("debited", "debit", "withdrawn", "spent", "purchase", "payment of", "paid")
CREDIT_KEYWORDS = ("credited", "credit", "received", "deposited", "refund")
BANKING_KEYWORDS = ("account", "balance", "transaction", "bank")

MERCHANT_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"\bUPI[:\-\s]+(?:[^\s/]+/)?([^\n\r/]+?)(?:\s+on|\s+ref|\n|$)", re.IGNORECASE),
    re.compile(r"\bVPA[:\s]+([^\n\r]+)", re.IGNORECASE),
    re.compile(
        r"\b(?:at|to|from|paid to|received from)\s+(?!your\b|you\b)([A-Za-z0-9\s&.,'-]+?)"
        r"(?:\s+on|\s+via|\s+ref|\s+for|\n|$)",
        re.IGNORECASE,
    ),
    re.compile(r"\bInfo[:\s]+([^\n\r]+)", re.IGNORECASE),
    re.compile(r"\bmerchant[:\s]+([^\n\r]+)", re.IGNORECASE),
    re.compile(r"\bpayee[:\s]+([^\n\r]+)", re.IGNORECASE),
)

REFERENCE_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"\b(?:ref(?:erence)?|txn|transaction|rrn)[:\s#]*([A-Z0-9]*\d[A-Z0-9]{5,})", re.IGNORECASE),
    re.compile(r"\bUPI[:\s]+([A-Z0-9]*\d[A-Z0-9]*)\b", re.IGNORECASE),
    re.compile(r"\b(IMPS|NEFT|RTGS)[:\s]*([A-Z0-9]*\d[A-Z0-9]*)", re.IGNORECASE),
)


def _extract_merchant(text: str) -> str:
    for pattern in MERCHANT_PATTERNS:
        match = pattern.search(text)
        if not match:
            continue
        extracted = match.group(1).strip()
        if 2 < len(extracted) < 100:
            return extracted
    return UNKNOWN_MERCHANT


def _extract_reference(text: str) -> str | None:
    for pattern in REFERENCE_PATTERNS:
        match = pattern.search(text)
        if not match:
            continue
        if pattern.groups == 2:
            return f"{match.group(1).upper()}/{match.group(2)}"
        return match.group(1)
    return None


def parse_generic_email(
    body: str, subject: str, email_date: datetime, bank: Bank = Bank.UNKNOWN
) -> ParseOutcome:
    text = extract_email_text(body)

    tx_type = classify_type([text, subject or ""], DEBIT_KEYWORDS, CREDIT_KEYWORDS)
    if tx_type is None:
        return ParseOutcome.fail(ERROR_NO_TYPE)

    amount = extract_amount(text) or extract_amount(subject or "")
    if not amount:
        return ParseOutcome.fail(ERROR_NO_AMOUNT)

    date = extract_date(text) or to_naive(email_date)
    merchant = clean_merchant_name(_extract_merchant(text))

    lower_text = text.lower()
    keyword_hits = sum(1 for keyword in BANKING_KEYWORDS if keyword in lower_text)

    return ParseOutcome.ok(ParsedTransaction(
        amount=amount,
        type=tx_type,
        merchant=merchant,
        date=date,
        reference=_extract_reference(text),
        bank=bank,
        confidence=score_confidence(
            base=0.4,
            amount=amount,
            amount_weight=0.15,
            merchant=merchant,
            merchant_min_length=3,
            date=date,
            bonus=0.05 * keyword_hits,
        ),
    ))
