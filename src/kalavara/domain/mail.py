import base64
import binascii
import re
from collections.abc import Iterable
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any

from kalavara.domain.dates import to_naive
from kalavara.logger import get_logger
from kalavara.models import BANK_SENDERS, Bank, RawEmail

logger = get_logger(__name__)

SUBJECT_KEYWORDS = (
    "transaction",
    "debit",
    "credit",
    "debited",
    "credited",
    "spent",
    "received",
    "payment",
    "purchase",
    "UPI",
    "NEFT",
    "IMPS",
    "ATM",
    "withdrawal",
)

FULL_SYNC_WINDOW = "newer_than:6m"
INCREMENTAL_WINDOW = "newer_than:7d"

_ADDRESS_RE = re.compile(r"<([^>]+)>")


def all_bank_senders() -> list[str]:
    return [sender for senders in BANK_SENDERS.values() for sender in senders]


def build_transaction_query(
    banks: Iterable[Bank] | None = None,
    since: datetime | None = None,
    full_sync: bool = False,
) -> str:
    senders = [sender for bank in banks or () for sender in BANK_SENDERS.get(bank, ())]
    if not senders:
        senders = all_bank_senders()

    from_query = " OR ".join(f"from:{sender}" for sender in senders)
    subject_query = " OR ".join(f"subject:{keyword}" for keyword in SUBJECT_KEYWORDS)

    if since is not None:
        date_query = f"after:{since:%Y/%m/%d}"
    elif full_sync:
        date_query = FULL_SYNC_WINDOW
    else:
        date_query = INCREMENTAL_WINDOW

    return f"({from_query}) ({subject_query}) {date_query}".strip()


def detect_bank_from_sender(sender: str) -> Bank:
    address = sender.lower()
    for bank, senders in BANK_SENDERS.items():
        if any(candidate.lower() in address for candidate in senders):
            return bank
    return Bank.UNKNOWN


def decode_base64url(data: str) -> str:
    padded = data + "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(padded).decode("utf-8", errors="replace")


def _part_data(part: dict[str, Any] | None) -> str | None:
    if not part:
        return None
    data = (part.get("body") or {}).get("data")
    return decode_base64url(data) if data else None


def _find_part(parts: list[dict[str, Any]], mime_type: str) -> str | None:
    for part in parts:
        if part.get("mimeType") == mime_type:
            data = _part_data(part)
            if data:
                return data
    return None


def extract_body(message: dict[str, Any]) -> str:
    payload = message.get("payload") or {}

    direct = _part_data(payload)
    if direct:
        return direct

    parts = payload.get("parts") or []
    for mime_type in ("text/plain", "text/html"):
        found = _find_part(parts, mime_type)
        if found:
            return found

    for part in parts:
        nested = part.get("parts") or []
        for mime_type in ("text/plain", "text/html"):
            found = _find_part(nested, mime_type)
            if found:
                return found

    return message.get("snippet") or ""


def _header(headers: list[dict[str, str]], name: str) -> str | None:
    for header in headers:
        if header.get("name", "").lower() == name:
            return header.get("value")
    return None


def _message_date(date_header: str | None, internal_date: str | int | None) -> datetime:
    if date_header:
        try:
            return to_naive(parsedate_to_datetime(date_header))
        except (TypeError, ValueError):
            logger.debug("[GMAIL] Unparseable Date header: %r", date_header)
    if internal_date is not None:
        epoch = datetime.fromtimestamp(int(internal_date) / 1000, tz=timezone.utc)
        return to_naive(epoch)
    return datetime.now()


def decode_message(message: dict[str, Any]) -> RawEmail | None:
    """Gmail API message resource -> RawEmail, or None if it is unusable."""
    try:
        headers = (message.get("payload") or {}).get("headers") or []
        from_header = _header(headers, "from") or ""
        match = _ADDRESS_RE.search(from_header)
        sender = match.group(1) if match else from_header.strip()

        return RawEmail(
            message_id=message["id"],
            sender=sender,
            subject=_header(headers, "subject") or "",
            body=extract_body(message),
            date=_message_date(_header(headers, "date"), message.get("internalDate")),
            bank=detect_bank_from_sender(sender),
        )
    except (KeyError, ValueError, binascii.Error) as exc:
        logger.error("[GMAIL] Error decoding message %s: %s", message.get("id"), exc)
        return None
