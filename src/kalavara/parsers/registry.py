from datetime import datetime

from kalavara.core.settings import PipelineConfig
from kalavara.logger import get_logger
from kalavara.models import Bank, ParseOutcome
from kalavara.oracle.client import OracleClient
from kalavara.oracle.fallback import parse_llm_fallback
from kalavara.parsers.base import EmailParser
from kalavara.parsers.generic import parse_generic_email
from kalavara.parsers.hdfc import parse_hdfc_email
from kalavara.parsers.sib import parse_sib_email

logger = get_logger(__name__)

PARSERS: dict[Bank, EmailParser] = {
    Bank.HDFC: parse_hdfc_email,
    Bank.SIB: parse_sib_email,
}


def get_parser(bank: Bank) -> EmailParser:
    return PARSERS.get(bank, parse_generic_email)


def needs_llm_fallback(outcome: ParseOutcome, threshold: float) -> bool:
    transaction = outcome.transaction
    if not outcome.success or transaction is None:
        return True
    return transaction.confidence < threshold or not transaction.has_merchant


def fallback_reason(outcome: ParseOutcome) -> str:
    if not outcome.success or outcome.transaction is None:
        return "regex failed"
    if not outcome.transaction.has_merchant:
        return "merchant unknown"
    return f"low confidence: {outcome.transaction.confidence:.2f}"


def parse_email_with_regex(
    body: str,
    subject: str,
    email_date: datetime,
    bank: Bank,
    config: PipelineConfig | None = None,
) -> ParseOutcome:
    """Deterministic pass only; flags results that should go to the oracle."""
    config = config or PipelineConfig()
    outcome = get_parser(bank)(body, subject, email_date, bank)
    return outcome.model_copy(update={
        "used_llm": False,
        "needs_llm_fallback": needs_llm_fallback(outcome, config.confidence_threshold),
    })


def prefer_regex(regex: ParseOutcome, llm: ParseOutcome) -> bool:
    """Keep the deterministic result only when it is strictly more confident and named."""
    regex_tx = regex.transaction
    llm_tx = llm.transaction
    if not regex.success or regex_tx is None or not regex_tx.has_merchant:
        return False
    if llm_tx is None:
        return True
    return regex_tx.confidence > llm_tx.confidence


def parse_transaction_email(
    body: str,
    subject: str,
    email_date: datetime,
    bank: Bank,
    oracle: OracleClient | None = None,
    config: PipelineConfig | None = None,
) -> ParseOutcome:
    """Single-email parse: regex first, oracle when the regex result is not trustworthy."""
    config = config or PipelineConfig()
    regex = parse_email_with_regex(body, subject, email_date, bank, config)

    if regex.success and regex.transaction:
        logger.debug(
            "[PARSE] %s parser: %s (confidence %.2f)",
            bank.value,
            regex.transaction.merchant,
            regex.transaction.confidence,
        )
    else:
        logger.debug("[PARSE] %s parser failed: %s", bank.value, regex.error)

    if not regex.needs_llm_fallback or oracle is None:
        return regex.model_copy(update={"needs_llm_fallback": False})

    logger.info("[PARSE] Using LLM fallback (%s)...", fallback_reason(regex))
    llm = parse_llm_fallback(body, subject, email_date, bank, oracle)
    if not llm.success or llm.transaction is None:
        logger.info("[PARSE] LLM fallback failed: %s", llm.error)
        return regex.model_copy(update={"needs_llm_fallback": False})

    if prefer_regex(regex, llm):
        return regex.model_copy(update={"needs_llm_fallback": False})
    return llm
