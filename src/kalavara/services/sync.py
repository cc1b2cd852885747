import asyncio
import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime

from kalavara.core import settings
from kalavara.core.settings import PipelineConfig
from kalavara.errors import MailTransportError, UserNotFoundError
from kalavara.integration.gmail import GmailClient
from kalavara.logger import SyncLog, get_logger
from kalavara.models import (
    CategorizationResult,
    ParsedTransaction,
    ParseOutcome,
    ParsingStats,
    RawEmail,
    SyncResult,
    Transaction,
    TransactionSource,
)
from kalavara.oracle.categorize import TransactionToCategorize, batch_categorize
from kalavara.oracle.client import OracleClient
from kalavara.oracle.fallback import EmailToParse, batch_parse_llm_fallback
from kalavara.parsers.registry import fallback_reason, parse_email_with_regex
from kalavara.storage.store import LedgerStore

logger = get_logger(__name__)

OracleFactory = Callable[..., OracleClient | None]


@dataclass
class Candidate:
    email: RawEmail
    parsed: ParsedTransaction
    used_llm: bool


@dataclass
class RunCounters:
    new_transactions: int = 0
    duplicates: int = 0
    errors: int = 0
    regex: int = 0
    llm: int = 0
    candidates: list[Candidate] = field(default_factory=list)

    def parsing_stats(self) -> ParsingStats:
        parsed = self.regex + self.llm
        percentage = round(self.llm / parsed * 100, 1) if parsed else 0.0
        return ParsingStats(regex=self.regex, llm=self.llm, llm_percentage=percentage)


class SyncController:
    """
    One mailbox sync: fetch, parse, categorize and persist.

    Runs are processed sequentially. Content duplicate checks go to the store
    for every candidate, so they observe rows inserted earlier in the same run.
    """

    def __init__(
        self,
        store: LedgerStore,
        gmail: GmailClient,
        *,
        config: PipelineConfig | None = None,
        oracle_factory: OracleFactory = OracleClient.from_api_key,
        max_results: int | None = None,
    ) -> None:
        self.store = store
        self.gmail = gmail
        self.config = config or PipelineConfig()
        self.oracle_factory = oracle_factory
        self.max_results = max_results or settings.GMAIL_MAX_RESULTS

    async def run(
        self,
        user_id: str,
        *,
        full_sync: bool = False,
        sync_log: SyncLog | None = None,
    ) -> SyncResult:
        sync_log = sync_log or SyncLog(logger)
        started_at = datetime.now()
        sync_log.log(f"Sync run for user {user_id} (full_sync={full_sync})")

        try:
            user = await asyncio.to_thread(self.store.get_user, user_id)
            user_settings = await asyncio.to_thread(self.store.get_user_settings, user_id)
            emails = await self.gmail.fetch_transaction_emails(
                user.google_access_token or "",
                banks=user_settings.enabled_banks,
                since=None if full_sync else user.last_sync_at,
                full_sync=full_sync,
                max_results=self.max_results,
            )
        except (MailTransportError, UserNotFoundError) as exc:
            sync_log.error(f"Sync aborted: {exc}")
            return SyncResult(success=False, error=str(exc))

        sync_log.log(f"Fetched {len(emails)} emails")
        oracle = self.oracle_factory(
            user_settings.openai_api_key, timeout=self.config.oracle_timeout
        )
        if oracle is None:
            sync_log.log("No OpenAI API key configured; LLM fallback and categorization disabled")

        counters = RunCounters()
        pending = await asyncio.to_thread(self._triage, user_id, emails, counters, sync_log)
        await self._resolve_fallbacks(pending, oracle, counters, sync_log)
        await self._categorize_and_persist(user_id, oracle, counters, sync_log)

        await asyncio.to_thread(self.store.update_last_sync, user_id, started_at)
        stats = counters.parsing_stats()
        sync_log.log(
            f"Done: {counters.new_transactions} new, {counters.duplicates} duplicates, "
            f"{counters.errors} errors (regex {stats.regex}, llm {stats.llm})"
        )
        return SyncResult(
            success=True,
            new_transactions=counters.new_transactions,
            duplicates=counters.duplicates,
            errors=counters.errors,
            total_processed=len(emails),
            parsing=stats,
            last_sync_at=started_at,
        )

    def _triage(
        self,
        user_id: str,
        emails: list[RawEmail],
        counters: RunCounters,
        sync_log: SyncLog,
    ) -> list[tuple[RawEmail, ParseOutcome]]:
        """Message-level dedup and the regex pass. Returns emails needing the oracle."""
        pending: list[tuple[RawEmail, ParseOutcome]] = []
        for email in emails:
            try:
                if self.store.is_email_processed(user_id, email.message_id):
                    counters.duplicates += 1
                    continue
                outcome = parse_email_with_regex(
                    email.body, email.subject, email.date, email.bank, self.config
                )
            except Exception as exc:
                counters.errors += 1
                sync_log.error(f"{email.message_id}: could not process email: {exc}")
                continue

            if outcome.needs_llm_fallback or outcome.transaction is None:
                sync_log.log(
                    f"{email.message_id}: {email.bank.value} needs fallback ({fallback_reason(outcome)})",
                    level=logging.DEBUG,
                )
                pending.append((email, outcome))
                continue

            counters.regex += 1
            counters.candidates.append(Candidate(email, outcome.transaction, used_llm=False))

        sync_log.log(
            f"Regex accepted {len(counters.candidates)} emails, {len(pending)} need fallback"
        )
        return pending

    async def _resolve_fallbacks(
        self,
        pending: list[tuple[RawEmail, ParseOutcome]],
        oracle: OracleClient | None,
        counters: RunCounters,
        sync_log: SyncLog,
    ) -> None:
        if not pending:
            return

        llm_outcomes: dict[str, ParseOutcome] = {}
        if oracle is not None:
            requests = [
                EmailToParse(
                    id=email.message_id,
                    body=email.body,
                    subject=email.subject,
                    email_date=email.date,
                    bank=email.bank,
                )
                for email, _ in pending
            ]
            llm_outcomes = await asyncio.to_thread(
                batch_parse_llm_fallback, requests, oracle, self.config
            )

        for email, regex in pending:
            llm = llm_outcomes.get(email.message_id)
            if llm is not None and llm.success and llm.transaction is not None:
                counters.llm += 1
                counters.candidates.append(Candidate(email, llm.transaction, used_llm=True))
            elif regex.success and regex.transaction is not None:
                counters.regex += 1
                counters.candidates.append(Candidate(email, regex.transaction, used_llm=False))
            else:
                counters.errors += 1
                reason = (llm.error if llm is not None else None) or regex.error
                sync_log.warning(f"{email.message_id}: could not parse ({reason})")

    async def _categorize_and_persist(
        self,
        user_id: str,
        oracle: OracleClient | None,
        counters: RunCounters,
        sync_log: SyncLog,
    ) -> None:
        if not counters.candidates:
            return

        categories = await asyncio.to_thread(self.store.list_categories)
        items = [
            TransactionToCategorize(
                id=candidate.email.message_id,
                merchant=candidate.parsed.merchant,
                amount=candidate.parsed.amount,
                type=candidate.parsed.type,
            )
            for candidate in counters.candidates
        ]
        categorized = await asyncio.to_thread(
            batch_categorize, items, categories, oracle, self.config
        )
        await asyncio.to_thread(self._persist, user_id, categorized, counters, sync_log)

    def _persist(
        self,
        user_id: str,
        categorized: dict[str, CategorizationResult],
        counters: RunCounters,
        sync_log: SyncLog,
    ) -> None:
        for candidate in counters.candidates:
            message_id = candidate.email.message_id
            try:
                stored = self._store_candidate(user_id, candidate, categorized[message_id])
            except Exception as exc:
                counters.errors += 1
                sync_log.error(f"{message_id}: could not store transaction: {exc}")
                continue
            if stored:
                counters.new_transactions += 1
            else:
                counters.duplicates += 1

    def _store_candidate(
        self,
        user_id: str,
        candidate: Candidate,
        category: CategorizationResult,
    ) -> bool:
        """Insert one transaction. Returns False when the same content is already stored."""
        parsed = candidate.parsed
        if self.store.has_content_duplicate(user_id, parsed.amount, parsed.merchant, parsed.date):
            return False

        now = datetime.now()
        self.store.insert_transaction(Transaction(
            id=str(uuid.uuid4()),
            user_id=user_id,
            amount=parsed.amount,
            type=parsed.type,
            raw_merchant=parsed.merchant,
            clean_merchant=category.clean_merchant,
            category_id=category.category_id,
            subcategory=category.subcategory,
            transaction_date=parsed.date,
            source=TransactionSource.EMAIL,
            source_bank=parsed.bank.value,
            source_ref=parsed.reference,
            email_message_id=candidate.email.message_id,
            raw_email_subject=candidate.email.subject,
            confidence=min(parsed.confidence, category.confidence),
            created_at=now,
            updated_at=now,
        ))
        return True
