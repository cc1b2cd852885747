import base64
from datetime import datetime

from kalavara.domain.mail import (
    build_transaction_query,
    decode_base64url,
    decode_message,
    detect_bank_from_sender,
    extract_body,
)
from kalavara.models import Bank


def _b64(text: str) -> str:
    return base64.urlsafe_b64encode(text.encode()).decode().rstrip("=")


def test_query_incremental_default() -> None:
    query = build_transaction_query(banks=[Bank.HDFC])
    assert query.startswith("(from:alerts@hdfcbank.net OR from:alerts@hdfcbank.com)")
    assert "subject:UPI" in query
    assert query.endswith("newer_than:7d")


def test_query_full_sync_and_watermark() -> None:
    assert build_transaction_query(full_sync=True).endswith("newer_than:6m")
    since = datetime(2026, 1, 5, 14, 0)
    assert build_transaction_query(since=since, full_sync=True).endswith("after:2026/01/05")


def test_query_without_banks_uses_every_sender() -> None:
    query = build_transaction_query()
    assert "from:alerts@sib.co.in" in query
    assert "from:alerts@yesbank.in" in query


def test_detect_bank_from_sender() -> None:
    assert detect_bank_from_sender("HDFC Bank <ALERTS@hdfcbank.net>") == Bank.HDFC
    assert detect_bank_from_sender("noreply@sib.co.in") == Bank.SIB
    assert detect_bank_from_sender("someone@example.com") == Bank.UNKNOWN


def test_decode_base64url_without_padding() -> None:
    assert decode_base64url(_b64("Rs.10 debited?")) == "Rs.10 debited?"


def test_extract_body_prefers_plain_then_html_then_nested() -> None:
    plain_and_html = {
        "payload": {
            "parts": [
                {"mimeType": "text/html", "body": {"data": _b64("<p>html</p>")}},
                {"mimeType": "text/plain", "body": {"data": _b64("plain")}},
            ]
        }
    }
    assert extract_body(plain_and_html) == "plain"

    nested = {
        "payload": {
            "parts": [
                {"mimeType": "multipart/alternative", "parts": [
                    {"mimeType": "text/html", "body": {"data": _b64("<b>nested</b>")}},
                ]},
            ]
        }
    }
    assert extract_body(nested) == "<b>nested</b>"
    assert extract_body({"payload": {}, "snippet": "short"}) == "short"


def test_decode_message() -> None:
    message = {
        "id": "abc",
        "internalDate": "1767520800000",
        "payload": {
            "headers": [
                {"name": "From", "value": "HDFC Bank InstaAlerts <alerts@hdfcbank.net>"},
                {"name": "Subject", "value": "UPI txn"},
                {"name": "Date", "value": "Sun, 04 Jan 2026 10:00:00 +0000"},
            ],
            "body": {"data": _b64("Rs.169.00 debited")},
        },
    }

    email = decode_message(message)

    assert email is not None
    assert email.message_id == "abc"
    assert email.sender == "alerts@hdfcbank.net"
    assert email.bank == Bank.HDFC
    assert email.subject == "UPI txn"
    assert email.body == "Rs.169.00 debited"
    assert email.date == datetime(2026, 1, 4, 10, 0)


def test_decode_message_falls_back_to_internal_date() -> None:
    message = {
        "id": "x",
        "internalDate": "1767520800000",
        "payload": {"headers": [{"name": "From", "value": "alerts@sib.co.in"}]},
        "snippet": "",
    }
    email = decode_message(message)
    assert email is not None
    assert email.date == datetime(2026, 1, 4, 10, 0)


def test_decode_message_without_id_is_dropped() -> None:
    assert decode_message({"payload": {}}) is None
