import json
from datetime import datetime, timedelta
from unittest.mock import MagicMock, patch

from kalavara.core.settings import PipelineConfig
from kalavara.models import UNKNOWN_MERCHANT, Bank, ParsedTransaction, ParseOutcome, TransactionType
from kalavara.parsers.generic import parse_generic_email
from kalavara.parsers.hdfc import parse_hdfc_email
from kalavara.parsers.registry import (
    get_parser,
    needs_llm_fallback,
    parse_email_with_regex,
    parse_transaction_email,
    prefer_regex,
)


def _outcome(confidence: float, merchant: str = "Acme", *, used_llm: bool = False) -> ParseOutcome:
    return ParseOutcome.ok(
        ParsedTransaction(
            amount=1000,
            type=TransactionType.DEBIT,
            merchant=merchant,
            date=datetime(2026, 1, 1),
            bank=Bank.HDFC,
            confidence=confidence,
        ),
        used_llm=used_llm,
    )


def _oracle_reply(payload: dict) -> MagicMock:
    oracle = MagicMock()
    oracle.complete_json.return_value = json.dumps(payload)
    return oracle


def test_get_parser_dispatch() -> None:
    assert get_parser(Bank.HDFC) is parse_hdfc_email
    assert get_parser(Bank.AXIS) is parse_generic_email
    assert get_parser(Bank.UNKNOWN) is parse_generic_email


def test_needs_llm_fallback() -> None:
    assert needs_llm_fallback(ParseOutcome.fail("nope"), 0.7)
    assert needs_llm_fallback(_outcome(0.6), 0.7)
    assert needs_llm_fallback(_outcome(0.9, UNKNOWN_MERCHANT), 0.7)
    assert not needs_llm_fallback(_outcome(0.7), 0.7)


def test_deterministic_result_kept_when_more_confident() -> None:
    regex = _outcome(0.9, "Acme")
    llm = _outcome(0.7, "Acme Corp", used_llm=True)
    assert prefer_regex(regex, llm)


def test_llm_wins_ties_and_unknown_merchants() -> None:
    assert not prefer_regex(_outcome(0.7), _outcome(0.7, used_llm=True))
    assert not prefer_regex(_outcome(0.9, UNKNOWN_MERCHANT), _outcome(0.7, used_llm=True))
    assert not prefer_regex(ParseOutcome.fail("x"), _outcome(0.7, used_llm=True))


def test_parse_email_with_regex_flags_fallback() -> None:
    body = "Rs.1,000.00 debited from your account. NEFT: N123456789"
    outcome = parse_email_with_regex(body, "", datetime.now(), Bank.HDFC)

    assert outcome.success
    assert not outcome.used_llm
    assert outcome.needs_llm_fallback


def test_lower_threshold_still_flags_unknown_merchant() -> None:
    body = "Rs.1,000.00 debited from your account. NEFT: N123456789"
    config = PipelineConfig(confidence_threshold=0.5)
    outcome = parse_email_with_regex(body, "", datetime.now() - timedelta(days=2), Bank.HDFC, config)
    # Merchant is still unresolved, so the oracle is still wanted.
    assert outcome.needs_llm_fallback


def test_parse_email_with_regex_applies_configured_threshold() -> None:
    parser = MagicMock(return_value=_outcome(0.6))
    with patch("kalavara.parsers.registry.get_parser", return_value=parser):
        lenient = parse_email_with_regex("body", "", datetime.now(), Bank.HDFC, PipelineConfig(confidence_threshold=0.5))
        strict = parse_email_with_regex("body", "", datetime.now(), Bank.HDFC, PipelineConfig(confidence_threshold=0.7))

    assert lenient.success
    assert not lenient.needs_llm_fallback
    assert strict.needs_llm_fallback
    assert strict.transaction is not None
    assert strict.transaction.confidence == 0.6


def test_parse_transaction_email_without_oracle_returns_regex() -> None:
    outcome = parse_transaction_email("Your statement is ready", "", datetime.now(), Bank.HDFC)
    assert not outcome.success
    assert not outcome.used_llm


def test_parse_transaction_email_uses_llm_when_regex_is_weak() -> None:
    oracle = _oracle_reply({
        "results": [{
            "id": "1",
            "amount": 1000,
            "type": "debit",
            "merchant": "Acme Traders",
            "date": "2026-01-02",
            "reference": "N123456789",
        }]
    })
    body = "Rs.1,000.00 debited from your account. NEFT: N123456789"
    outcome = parse_transaction_email(body, "", datetime(2026, 1, 2), Bank.HDFC, oracle)

    assert outcome.success
    assert outcome.used_llm
    assert outcome.transaction is not None
    assert outcome.transaction.merchant == "Acme Traders"
    assert outcome.transaction.amount == 100000
    assert outcome.transaction.confidence == 0.7
    oracle.complete_json.assert_called_once()


def test_parse_transaction_email_skips_oracle_for_confident_regex() -> None:
    oracle = MagicMock()
    body = (
        "Rs.169.00 debited from your account to pinelabs.10372375@pineaxis "
        "ZEPTO MARKETPLACE PRIVATE LIMITED on 04-01-26"
    )
    with patch("kalavara.domain.merchants.is_recent", return_value=True):
        outcome = parse_transaction_email(body, "", datetime(2026, 1, 4), Bank.HDFC, oracle)

    assert outcome.success
    assert not outcome.used_llm
    oracle.complete_json.assert_not_called()


def test_parse_transaction_email_keeps_regex_when_llm_fails() -> None:
    oracle = MagicMock()
    oracle.complete_json.side_effect = RuntimeError("boom")
    body = "Rs.1,000.00 debited from your account. NEFT: N123456789"
    outcome = parse_transaction_email(body, "", datetime(2026, 1, 2), Bank.HDFC, oracle)

    assert outcome.success
    assert not outcome.used_llm
    assert outcome.transaction is not None
    assert outcome.transaction.merchant == UNKNOWN_MERCHANT
