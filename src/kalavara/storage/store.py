import json
import uuid
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy import create_engine, func, select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from kalavara.errors import UserNotFoundError
from kalavara.logger import get_logger
from kalavara.models import DEFAULT_CATEGORIES, Bank, Category, Transaction, TransactionType
from kalavara.storage.tables import Base, CategoryRow, SettingsRow, TransactionRow, UserRow

logger = get_logger(__name__)

DEFAULT_ENABLED_BANKS = (Bank.HDFC, Bank.SIB, Bank.ICICI, Bank.AXIS, Bank.KOTAK, Bank.YES)


@dataclass
class UserSettings:
    openai_api_key: str | None = None
    default_currency: str = "INR"
    enabled_banks: list[Bank] = field(default_factory=lambda: list(DEFAULT_ENABLED_BANKS))
    auto_sync_on_load: bool = True


def _parse_banks(raw: str | None) -> list[Bank]:
    try:
        values = json.loads(raw or "[]")
    except json.JSONDecodeError:
        logger.warning("[STORE] Invalid enabled_banks value %r; using all banks.", raw)
        return list(DEFAULT_ENABLED_BANKS)
    banks = []
    for value in values if isinstance(values, list) else []:
        try:
            banks.append(Bank(value))
        except ValueError:
            logger.debug("[STORE] Ignoring unknown bank %r", value)
    return banks


def _row_to_transaction(row: TransactionRow) -> Transaction:
    return Transaction(
        id=row.id,
        user_id=row.user_id,
        amount=row.amount,
        currency=row.currency,
        type=TransactionType(row.type),
        raw_merchant=row.raw_merchant,
        clean_merchant=row.clean_merchant,
        category_id=row.category_id,
        subcategory=row.subcategory,
        description=row.description,
        transaction_date=row.transaction_date,
        source=row.source,
        source_bank=row.source_bank,
        source_ref=row.source_ref,
        email_message_id=row.email_message_id,
        raw_email_subject=row.raw_email_subject,
        confidence=row.confidence,
        is_verified=row.is_verified,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


class LedgerStore:
    """Relational persistence for users, categories and transactions."""

    def __init__(self, engine: Engine):
        self.engine = engine
        self._sessions = sessionmaker(bind=engine, expire_on_commit=False)

    @classmethod
    def from_url(cls, url: str) -> "LedgerStore":
        if url in {"sqlite://", "sqlite:///:memory:"}:
            engine = create_engine(
                url,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        else:
            engine = create_engine(url)
        return cls(engine)

    def session(self) -> Session:
        return self._sessions()

    def create_all(self) -> None:
        Base.metadata.create_all(self.engine)

    def seed_default_categories(self) -> int:
        with self.session() as session:
            existing = set(session.scalars(select(CategoryRow.name)))
            added = 0
            for name, icon, color in DEFAULT_CATEGORIES:
                if name in existing:
                    continue
                session.add(CategoryRow(
                    id=str(uuid.uuid4()), name=name, icon=icon, color=color, is_system=True
                ))
                added += 1
            session.commit()
        if added:
            logger.info("[STORE] Seeded %d default categories.", added)
        return added

    def ensure_user(
        self,
        user_id: str,
        email: str,
        *,
        name: str | None = None,
        access_token: str | None = None,
    ) -> None:
        with self.session() as session:
            user = session.get(UserRow, user_id)
            if user is None:
                session.add(UserRow(
                    id=user_id, email=email, name=name, google_access_token=access_token
                ))
            elif access_token:
                user.google_access_token = access_token
            session.commit()

    def get_user(self, user_id: str) -> UserRow:
        with self.session() as session:
            user = session.get(UserRow, user_id)
            if user is None:
                raise UserNotFoundError(user_id)
            return user

    def get_user_settings(self, user_id: str) -> UserSettings:
        with self.session() as session:
            row = session.get(SettingsRow, user_id)
            if row is None:
                if session.get(UserRow, user_id) is None:
                    raise UserNotFoundError(user_id)
                row = SettingsRow(
                    user_id=user_id,
                    default_currency="INR",
                    enabled_banks=json.dumps([bank.value for bank in DEFAULT_ENABLED_BANKS]),
                    auto_sync_on_load=True,
                )
                session.add(row)
                session.commit()
            return UserSettings(
                openai_api_key=row.openai_api_key,
                default_currency=row.default_currency,
                enabled_banks=_parse_banks(row.enabled_banks),
                auto_sync_on_load=row.auto_sync_on_load,
            )

    def update_user_settings(
        self,
        user_id: str,
        *,
        openai_api_key: str | None = None,
        enabled_banks: list[Bank] | None = None,
    ) -> UserSettings:
        self.get_user_settings(user_id)
        with self.session() as session:
            row = session.get(SettingsRow, user_id)
            if openai_api_key is not None:
                row.openai_api_key = openai_api_key or None
            if enabled_banks is not None:
                row.enabled_banks = json.dumps([bank.value for bank in enabled_banks])
            session.commit()
        return self.get_user_settings(user_id)

    def is_email_processed(self, user_id: str, message_id: str) -> bool:
        with self.session() as session:
            stmt = select(TransactionRow.id).where(
                TransactionRow.user_id == user_id,
                TransactionRow.email_message_id == message_id,
            ).limit(1)
            return session.scalar(stmt) is not None

    def has_content_duplicate(
        self,
        user_id: str,
        amount: int,
        raw_merchant: str,
        transaction_date: datetime,
    ) -> bool:
        with self.session() as session:
            stmt = select(TransactionRow.id).where(
                TransactionRow.user_id == user_id,
                TransactionRow.amount == amount,
                TransactionRow.raw_merchant == raw_merchant,
                TransactionRow.transaction_date == transaction_date,
            ).limit(1)
            return session.scalar(stmt) is not None

    def list_categories(self) -> list[Category]:
        with self.session() as session:
            rows = session.scalars(select(CategoryRow).order_by(CategoryRow.name))
            return [
                Category(
                    id=row.id,
                    name=row.name,
                    icon=row.icon,
                    color=row.color,
                    is_system=row.is_system,
                    parent_id=row.parent_id,
                )
                for row in rows
            ]

    def insert_transaction(self, transaction: Transaction) -> None:
        """Insert and commit immediately so later duplicate checks see the row."""
        with self.session() as session:
            session.add(TransactionRow(
                id=transaction.id,
                user_id=transaction.user_id,
                amount=transaction.amount,
                currency=transaction.currency,
                type=transaction.type.value,
                raw_merchant=transaction.raw_merchant,
                clean_merchant=transaction.clean_merchant,
                category_id=transaction.category_id,
                subcategory=transaction.subcategory,
                description=transaction.description,
                transaction_date=transaction.transaction_date,
                source=transaction.source.value,
                source_bank=transaction.source_bank,
                source_ref=transaction.source_ref,
                email_message_id=transaction.email_message_id,
                raw_email_subject=transaction.raw_email_subject,
                confidence=transaction.confidence,
                is_verified=transaction.is_verified,
                created_at=transaction.created_at,
                updated_at=transaction.updated_at,
            ))
            session.commit()

    def update_last_sync(self, user_id: str, when: datetime) -> None:
        with self.session() as session:
            user = session.get(UserRow, user_id)
            if user is None:
                raise UserNotFoundError(user_id)
            user.last_sync_at = when
            session.commit()

    def list_transactions(
        self, user_id: str, *, limit: int | None = None, offset: int = 0
    ) -> list[Transaction]:
        """Newest first."""
        with self.session() as session:
            stmt = (
                select(TransactionRow)
                .where(TransactionRow.user_id == user_id)
                .order_by(TransactionRow.transaction_date.desc(), TransactionRow.created_at.desc())
                .offset(offset)
                .limit(limit)
            )
            rows = session.scalars(stmt)
            return [_row_to_transaction(row) for row in rows]

    def count_transactions(self, user_id: str) -> int:
        with self.session() as session:
            stmt = select(func.count()).select_from(TransactionRow).where(
                TransactionRow.user_id == user_id
            )
            return session.scalar(stmt) or 0
