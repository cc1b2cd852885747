import re
from datetime import datetime

from kalavara.domain.dates import extract_date, to_naive
from kalavara.domain.merchants import clean_merchant_name, score_confidence
from kalavara.domain.money import extract_amount, parse_amount
from kalavara.domain.text import extract_email_text
from kalavara.models import UNKNOWN_MERCHANT, Bank, ParsedTransaction, ParseOutcome
from kalavara.parsers.base import ERROR_NO_AMOUNT, ERROR_NO_TYPE, classify_type

ERROR_DECLINED = "Declined/failed transaction - skipping"

DECLINE_MARKERS = ("was declined", "failed", "unsuccessful")
DEBIT_KEYWORDS = ("debited",)
CREDIT_KEYWORDS = ("credited", "received")

AMOUNT_RE = re.compile(r"(?:Rs\.?|INR)\s*([\d,]+(?:\.\d{2})?)", re.IGNORECASE)

# "to pinelabs.10372375@pineaxis ZEPTO MARKETPLACE PRIVATE LIMITED on 04-01-26"
UPI_TO_MERCHANT_RE = re.compile(
    r"to\s+([a-zA-Z0-9._-]+@[a-zA-Z0-9._-]+)\s+([A-Z][A-Za-z0-9\s&.,()-]+?)\s+on\s+\d",
    re.IGNORECASE,
)
# "VPA someone@okaxis (Merchant Name)"
VPA_RE = re.compile(r"VPA\s+([a-zA-Z0-9._-]+@[a-zA-Z0-9._-]+)\s*\(([^)]+)\)", re.IGNORECASE)
# "Info: UPI/xyz@upi/Merchant Name"
UPI_INFO_RE = re.compile(r"Info[:\s]+UPI/([^/]+)/([^\n\r]+)", re.IGNORECASE)
TRANSFER_RE = re.compile(r"(?:transferred|sent|paid)\s+(?:to|from)\s+([^\n\r.]+)", re.IGNORECASE)

UPI_REFERENCE_RE = re.compile(
    r"UPI\s+(?:transaction\s+)?reference\s+(?:number\s+)?(?:is\s+)?(\d+)", re.IGNORECASE
)
NEFT_IMPS_RE = re.compile(r"\b(NEFT|IMPS)[:\s]*([A-Z0-9]+)", re.IGNORECASE)


def _extract_amount(text: str) -> int | None:
    match = AMOUNT_RE.search(text)
    if match:
        amount = parse_amount(match.group(1))
        if amount:
            return amount
    return extract_amount(text)


def _extract_merchant(text: str) -> tuple[str, str | None]:
    match = UPI_TO_MERCHANT_RE.search(text)
    if match:
        return match.group(2).strip(), f"UPI/{match.group(1)}"

    match = VPA_RE.search(text)
    if match:
        return match.group(2).strip(), f"UPI/{match.group(1)}"

    match = UPI_INFO_RE.search(text)
    if match:
        return match.group(2).strip(), f"UPI/{match.group(1).strip()}"

    match = TRANSFER_RE.search(text)
    if match:
        return match.group(1).strip(), None

    return UNKNOWN_MERCHANT, None


def _extract_reference(text: str) -> str | None:
    match = UPI_REFERENCE_RE.search(text)
    if match:
        return f"UPI/{match.group(1)}"
    match = NEFT_IMPS_RE.search(text)
    if match:
        return f"{match.group(1).upper()}/{match.group(2)}"
    return None


def parse_hdfc_email(
    body: str, subject: str, email_date: datetime, bank: Bank = Bank.HDFC
) -> ParseOutcome:
    text = extract_email_text(body)
    lower_text = text.lower()

    if any(marker in lower_text for marker in DECLINE_MARKERS):
        return ParseOutcome.fail(ERROR_DECLINED)

    tx_type = classify_type([text], DEBIT_KEYWORDS, CREDIT_KEYWORDS)
    if tx_type is None:
        return ParseOutcome.fail(ERROR_NO_TYPE)

    amount = _extract_amount(text)
    if not amount:
        return ParseOutcome.fail(ERROR_NO_AMOUNT)

    date = extract_date(text) or to_naive(email_date)

    merchant, reference = _extract_merchant(text)
    reference = reference or _extract_reference(text)
    merchant = clean_merchant_name(merchant)

    return ParseOutcome.ok(ParsedTransaction(
        amount=amount,
        type=tx_type,
        merchant=merchant,
        date=date,
        reference=reference,
        bank=Bank.HDFC,
        confidence=score_confidence(
            base=0.5,
            amount=amount,
            amount_weight=0.2,
            merchant=merchant,
            date=date,
        ),
    ))
