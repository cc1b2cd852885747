import math
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime

from kalavara.core.settings import PipelineConfig
from kalavara.domain.dates import parse_date, to_naive
from kalavara.domain.money import to_minor_units
from kalavara.domain.text import extract_email_text
from kalavara.logger import get_logger
from kalavara.models import (
    MAX_MINOR_UNITS,
    Bank,
    ParsedTransaction,
    ParseOutcome,
    TransactionType,
)
from kalavara.oracle.client import OracleClient, iter_batches
from kalavara.oracle.replies import ParsedEmailRecord, RejectedRecord, decode_records

logger = get_logger(__name__)

LLM_PARSE_CONFIDENCE = 0.7
SINGLE_EMAIL_CHAR_LIMIT = 2000

ERROR_NOT_CONFIGURED = "OpenAI API key not configured"
ERROR_MISSING_FIELDS = "LLM could not extract required fields"
ERROR_NOT_IN_REPLY = "Email not in LLM response"

_FIELDS_HELP = """- amount: number in rupees (e.g., 1234.56, not paise)
- type: "debit" or "credit"
- merchant: the recipient/sender name (clean, human-readable). Look for names after "to VPA", "transferred to", "paid to", etc.
- date: transaction date in YYYY-MM-DD format
- reference: transaction reference/ID if found, null otherwise"""

BATCH_INSTRUCTIONS = f"""You are a financial transaction parser. Extract transaction details from multiple bank email notifications.

For each email, extract:
- id: the email ID provided
{_FIELDS_HELP}

Return a JSON object with a "results" array containing one object per email.
Example: {{"results": [{{"id": "abc123", "amount": 500, "type": "debit", "merchant": "John Doe", "date": "2026-01-05", "reference": "UPI123456"}}]}}"""

SINGLE_INSTRUCTIONS = f"""You are a financial transaction parser. Extract transaction details from a bank email notification.

Return a JSON object with a "results" array holding exactly one object with:
- id: the email ID provided
{_FIELDS_HELP}

Only return the JSON object, no other text."""


@dataclass(frozen=True)
class EmailToParse:
    id: str
    body: str
    subject: str
    email_date: datetime
    bank: Bank


def _format_email(index: int, email: EmailToParse, char_limit: int) -> str:
    text = extract_email_text(email.body)[:char_limit]
    return (
        f"--- Email {index} (ID: {email.id}) ---\n"
        f"Subject: {email.subject}\n"
        f"Bank: {email.bank.value}\n"
        f"Body:\n{text}"
    )


def _resolve_date(raw: str | None, fallback: datetime) -> datetime:
    if raw:
        try:
            return datetime.strptime(raw[:10], "%Y-%m-%d")
        except ValueError:
            parsed = parse_date(raw)
            if parsed is not None:
                return parsed
    return to_naive(fallback)


def record_to_outcome(record: ParsedEmailRecord, email: EmailToParse) -> ParseOutcome:
    tx_type = (record.type or "").lower()
    if (
        record.amount is None
        or not math.isfinite(record.amount)
        or abs(record.amount) * 100 > MAX_MINOR_UNITS
        or not record.merchant
        or tx_type not in {TransactionType.DEBIT.value, TransactionType.CREDIT.value}
    ):
        return ParseOutcome.fail(ERROR_MISSING_FIELDS, used_llm=True)

    amount = to_minor_units(record.amount)
    if amount <= 0:
        return ParseOutcome.fail(ERROR_MISSING_FIELDS, used_llm=True)

    return ParseOutcome.ok(
        ParsedTransaction(
            amount=amount,
            type=TransactionType(tx_type),
            merchant=record.merchant,
            date=_resolve_date(record.date, email.email_date),
            reference=record.reference,
            bank=email.bank,
            confidence=LLM_PARSE_CONFIDENCE,
        ),
        used_llm=True,
    )


def _parse_batch(
    batch: Sequence[EmailToParse],
    oracle: OracleClient,
    config: PipelineConfig,
) -> dict[str, ParseOutcome]:
    """One oracle request for the whole batch. Raises on transport errors."""
    email_list = "\n\n".join(
        _format_email(index, email, config.llm_body_char_limit)
        for index, email in enumerate(batch, start=1)
    )
    content = oracle.complete_json(
        BATCH_INSTRUCTIONS,
        f"Parse these {len(batch)} bank transaction emails:\n\n{email_list}",
    )
    records, problem = decode_records(content, ParsedEmailRecord)
    if problem is not None:
        message = str(problem)
        logger.warning("[LLM] Batch reply rejected: %s", message)
        return {email.id: ParseOutcome.fail(message, used_llm=True) for email in batch}

    by_id = {email.id: email for email in batch}
    outcomes: dict[str, ParseOutcome] = {}
    for record in records:
        email = by_id.get(record.id)
        if email is None or record.id in outcomes:
            continue
        if isinstance(record, RejectedRecord):
            logger.warning("[LLM] Record for %s rejected: %s", record.id, record.problem)
            outcomes[record.id] = ParseOutcome.fail(ERROR_MISSING_FIELDS, used_llm=True)
        else:
            outcomes[record.id] = record_to_outcome(record, email)

    for email in batch:
        if email.id not in outcomes:
            outcomes[email.id] = ParseOutcome.fail(ERROR_NOT_IN_REPLY, used_llm=True)
    return outcomes


def batch_parse_llm_fallback(
    emails: Sequence[EmailToParse],
    oracle: OracleClient | None,
    config: PipelineConfig | None = None,
) -> dict[str, ParseOutcome]:
    """
    Parse emails the regex parsers could not handle, one oracle call per batch.

    Every input id gets exactly one outcome. A batch that fails as a whole
    marks each of its emails failed without touching the other batches.
    """
    config = config or PipelineConfig()
    if oracle is None:
        return {email.id: ParseOutcome.fail(ERROR_NOT_CONFIGURED, used_llm=True) for email in emails}

    results: dict[str, ParseOutcome] = {}
    total_batches = math.ceil(len(emails) / config.llm_batch_size)
    for number, batch in iter_batches(emails, config.llm_batch_size):
        logger.info(
            "[LLM] Batch parsing %d emails (batch %d/%d)...",
            len(batch),
            number,
            total_batches,
        )
        try:
            outcomes = _parse_batch(batch, oracle, config)
        except Exception as exc:
            logger.error("[LLM] Batch %d/%d failed: %s", number, total_batches, exc)
            error = str(exc) or "Batch LLM parsing failed"
            outcomes = {email.id: ParseOutcome.fail(error, used_llm=True) for email in batch}

        for email in batch:
            results.setdefault(email.id, outcomes[email.id])
    return results


def parse_llm_fallback(
    body: str,
    subject: str,
    email_date: datetime,
    bank: Bank,
    oracle: OracleClient | None,
) -> ParseOutcome:
    """Single-email variant used by the one-off parse path."""
    if oracle is None:
        return ParseOutcome.fail(ERROR_NOT_CONFIGURED, used_llm=True)

    email = EmailToParse(id="1", body=body, subject=subject, email_date=email_date, bank=bank)
    prompt = f"Subject: {subject}\n\nBody:\n{extract_email_text(body)[:SINGLE_EMAIL_CHAR_LIMIT]}"
    try:
        content = oracle.complete_json(SINGLE_INSTRUCTIONS, f"Email ID: {email.id}\n{prompt}")
    except Exception as exc:
        logger.error("[LLM] Parsing error: %s", exc)
        return ParseOutcome.fail(str(exc) or "LLM parsing failed", used_llm=True)

    records, problem = decode_records(content, ParsedEmailRecord)
    if problem is not None:
        return ParseOutcome.fail(str(problem), used_llm=True)
    if not records or isinstance(records[0], RejectedRecord):
        return ParseOutcome.fail(ERROR_MISSING_FIELDS, used_llm=True)
    return record_to_outcome(records[0], email)
