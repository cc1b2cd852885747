import re
from datetime import datetime

from kalavara.domain.dates import extract_date, to_naive
from kalavara.domain.merchants import clean_merchant_name, score_confidence
from kalavara.domain.money import extract_amount
from kalavara.domain.text import extract_email_text
from kalavara.models import UNKNOWN_MERCHANT, Bank, ParsedTransaction, ParseOutcome
from kalavara.parsers.base import ERROR_NO_AMOUNT, ERROR_NO_TYPE, classify_type

DEBIT_KEYWORDS = ("debited", "debit", "withdrawn", "purchase")
CREDIT_KEYWORDS = ("credited", "credit", "received", "deposit")

UPI_RE = re.compile(r"\bUPI[:\s]+([^\n\r]+)", re.IGNORECASE)
TO_FROM_RE = re.compile(
    r"\b(?:to|from|at|by)\s+(?!your\b|you\b)([A-Za-z0-9\s&.-]+?)"
    r"(?:\s+on|\s+for|\s+via|\s+through|\s+ref|\n|$)",
    re.IGNORECASE,
)
REFERENCE_RE = re.compile(
    r"\b(?:ref(?:erence)?(?:\s+no\.?)?|txn|transaction\s+id)[:\s#]*([A-Z0-9]*\d[A-Z0-9]*)",
    re.IGNORECASE,
)
IMPS_NEFT_RE = re.compile(r"\b(IMPS|NEFT)\b[:\s]*([A-Z0-9]*\d[A-Z0-9]*)?", re.IGNORECASE)


def _extract_merchant(text: str) -> tuple[str, str | None]:
    match = UPI_RE.search(text)
    if match:
        parts = [part.strip() for part in match.group(1).split("/")]
        if len(parts) > 1 and parts[-1]:
            return parts[-1], f"UPI/{parts[0]}"
        if parts[0]:
            return parts[0], "UPI"

    match = TO_FROM_RE.search(text)
    if match and match.group(1).strip():
        return match.group(1).strip(), None

    return UNKNOWN_MERCHANT, None


def _extract_reference(text: str, reference: str | None) -> str | None:
    match = IMPS_NEFT_RE.search(text)
    if match:
        channel = match.group(1).upper()
        return f"{channel}/{match.group(2)}" if match.group(2) else channel
    if reference:
        return reference
    match = REFERENCE_RE.search(text)
    if match:
        return match.group(1)
    return None


def parse_sib_email(
    body: str, subject: str, email_date: datetime, bank: Bank = Bank.SIB
) -> ParseOutcome:
    text = extract_email_text(body)

    tx_type = classify_type([text], DEBIT_KEYWORDS, CREDIT_KEYWORDS)
    if tx_type is None:
        return ParseOutcome.fail(ERROR_NO_TYPE)

    amount = extract_amount(text)
    if not amount:
        return ParseOutcome.fail(ERROR_NO_AMOUNT)

    date = extract_date(text) or to_naive(email_date)

    merchant, reference = _extract_merchant(text)
    reference = _extract_reference(text, reference)
    merchant = clean_merchant_name(merchant)

    return ParseOutcome.ok(ParsedTransaction(
        amount=amount,
        type=tx_type,
        merchant=merchant,
        date=date,
        reference=reference,
        bank=Bank.SIB,
        confidence=score_confidence(
            base=0.5,
            amount=amount,
            amount_weight=0.2,
            merchant=merchant,
            date=date,
        ),
    ))
