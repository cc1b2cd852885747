from collections.abc import Iterable
from datetime import datetime
from typing import Protocol

from kalavara.models import Bank, ParseOutcome, TransactionType

ERROR_NO_TYPE = "Could not determine transaction type"
ERROR_NO_AMOUNT = "Could not extract amount"


class EmailParser(Protocol):
    def __call__(self, body: str, subject: str, email_date: datetime, bank: Bank) -> ParseOutcome:
        """Parse one notification email into a transaction candidate."""
        ...


def classify_type(
    haystacks: Iterable[str],
    debit_keywords: Iterable[str],
    credit_keywords: Iterable[str],
) -> TransactionType | None:
    """First matching keyword wins; every debit keyword is tried before any credit one."""
    lowered = [value.lower() for value in haystacks]
    for keyword in debit_keywords:
        if any(keyword in value for value in lowered):
            return TransactionType.DEBIT
    for keyword in credit_keywords:
        if any(keyword in value for value in lowered):
            return TransactionType.CREDIT
    return None
