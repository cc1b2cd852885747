from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field, field_validator

UNKNOWN_MERCHANT = "Unknown"
OTHER_CATEGORY_NAME = "Other"
# Largest amount a signed 64-bit INTEGER column can hold.
MAX_MINOR_UNITS = 2**63 - 1


class Bank(str, Enum):
    HDFC = "HDFC"
    SIB = "SIB"
    ICICI = "ICICI"
    AXIS = "AXIS"
    KOTAK = "KOTAK"
    YES = "YES"
    UNKNOWN = "UNKNOWN"


class TransactionType(str, Enum):
    DEBIT = "debit"
    CREDIT = "credit"


class TransactionSource(str, Enum):
    EMAIL = "email"
    MANUAL = "manual"


BANK_SENDERS: dict[Bank, tuple[str, ...]] = {
    Bank.HDFC: ("alerts@hdfcbank.net", "alerts@hdfcbank.com"),
    Bank.SIB: ("alerts@sib.co.in", "noreply@sib.co.in", "alerts@southindianbank.com"),
    Bank.ICICI: ("alerts@icicibank.com", "creditcard@icicibank.com"),
    Bank.AXIS: ("alerts@axisbank.com",),
    Bank.KOTAK: ("alerts@kotak.com",),
    Bank.YES: ("alerts@yesbank.in",),
    Bank.UNKNOWN: (),
}

# (name, icon, color)
DEFAULT_CATEGORIES: tuple[tuple[str, str, str], ...] = (
    ("Food & Dining", "🍽️", "#ef4444"),
    ("Transport", "🚗", "#f97316"),
    ("Shopping", "🛒", "#eab308"),
    ("Utilities", "💡", "#22c55e"),
    ("Entertainment", "🎬", "#06b6d4"),
    ("Healthcare", "🏥", "#3b82f6"),
    ("Education", "📚", "#8b5cf6"),
    ("Travel", "✈️", "#ec4899"),
    ("Subscriptions", "📱", "#6366f1"),
    ("Transfers", "💸", "#64748b"),
    ("Income", "💰", "#10b981"),
    (OTHER_CATEGORY_NAME, "📦", "#94a3b8"),
)


def clamp_confidence(value: float) -> float:
    return max(0.0, min(1.0, float(value)))


class RawEmail(BaseModel):
    model_config = {"frozen": True}

    message_id: str
    sender: str
    subject: str
    body: str
    date: datetime
    bank: Bank = Bank.UNKNOWN


class ParsedTransaction(BaseModel):
    amount: int = Field(gt=0, le=MAX_MINOR_UNITS)  # minor units (paise)
    type: TransactionType
    merchant: str = UNKNOWN_MERCHANT
    date: datetime
    reference: str | None = None
    bank: Bank
    confidence: float

    @field_validator("confidence")
    @classmethod
    def clamp_value(cls, value: float) -> float:
        return clamp_confidence(value)

    @property
    def has_merchant(self) -> bool:
        return self.merchant != UNKNOWN_MERCHANT


class ParseOutcome(BaseModel):
    success: bool
    transaction: ParsedTransaction | None = None
    error: str | None = None
    used_llm: bool = False
    needs_llm_fallback: bool = False

    @classmethod
    def ok(cls, transaction: ParsedTransaction, *, used_llm: bool = False) -> "ParseOutcome":
        return cls(success=True, transaction=transaction, used_llm=used_llm)

    @classmethod
    def fail(cls, error: str, *, used_llm: bool = False) -> "ParseOutcome":
        return cls(success=False, error=error, used_llm=used_llm)


class Category(BaseModel):
    id: str
    name: str
    icon: str = ""
    color: str = ""
    is_system: bool = False
    parent_id: str | None = None


class CategorizationResult(BaseModel):
    category_id: str | None
    clean_merchant: str
    subcategory: str | None = None
    confidence: float

    @field_validator("confidence")
    @classmethod
    def clamp_value(cls, value: float) -> float:
        return clamp_confidence(value)


class Transaction(BaseModel):
    id: str
    user_id: str
    amount: int
    currency: str = "INR"
    type: TransactionType
    raw_merchant: str
    clean_merchant: str
    category_id: str | None = None
    subcategory: str | None = None
    description: str | None = None
    transaction_date: datetime
    source: TransactionSource = TransactionSource.EMAIL
    source_bank: str
    source_ref: str | None = None
    email_message_id: str | None = None
    raw_email_subject: str | None = None
    confidence: float
    is_verified: bool = False
    created_at: datetime
    updated_at: datetime


class ParsingStats(BaseModel):
    regex: int = 0
    llm: int = 0
    llm_percentage: float = 0.0


class SyncResult(BaseModel):
    success: bool
    new_transactions: int = 0
    duplicates: int = 0
    errors: int = 0
    total_processed: int = 0
    parsing: ParsingStats = Field(default_factory=ParsingStats)
    last_sync_at: datetime | None = None
    error: str | None = None
