from datetime import datetime

from pydantic import BaseModel

from kalavara.models import Bank, ParseOutcome, Transaction


class SyncRequest(BaseModel):
    user_id: str
    full_sync: bool = False


class SyncStatus(BaseModel):
    user_id: str
    last_sync_at: datetime | None = None


class ParseRequest(BaseModel):
    body: str
    subject: str = ""
    sender: str = ""
    date: datetime | None = None


class ParseResponse(BaseModel):
    bank: str
    outcome: ParseOutcome


class SettingsView(BaseModel):
    user_id: str
    openai_api_key: str | None = None
    has_api_key: bool = False
    default_currency: str = "INR"
    enabled_banks: list[Bank] = []
    auto_sync_on_load: bool = True


class SettingsUpdate(BaseModel):
    user_id: str
    openai_api_key: str | None = None
    enabled_banks: list[Bank] | None = None


class TransactionPage(BaseModel):
    transactions: list[Transaction]
    total: int
    page: int
    limit: int
