import math
from collections.abc import Sequence
from dataclasses import dataclass

from kalavara.core.settings import PipelineConfig
from kalavara.domain.money import format_amount
from kalavara.logger import get_logger
from kalavara.models import OTHER_CATEGORY_NAME, CategorizationResult, Category, TransactionType
from kalavara.oracle.client import OracleClient, iter_batches
from kalavara.oracle.replies import CategorizedRecord, RejectedRecord, decode_records

logger = get_logger(__name__)

DEFAULT_CONFIDENCE = 0.3
UNSCORED_CONFIDENCE = 0.7
INVALID_CATEGORY_CONFIDENCE_CAP = 0.5

INSTRUCTIONS_TEMPLATE = """You are a financial transaction categorizer. Given a list of transactions, categorize each one.

Available categories (id:name):
{category_list}

For each transaction, determine:
- categoryId: the category ID from the list above
- cleanMerchant: ONLY the merchant/business name, cleaned up (e.g., "Amazon" not "AMAZON.IN*MKT", "Zepto" not "ZEPTO MARKETPLACE PRIVATE LIMITED"). Do NOT include subcategory in this field.
- subcategory: optional subcategory as a SEPARATE field (e.g., "Groceries", "Fuel", "Coffee"). Keep this separate from cleanMerchant.
- confidence: your confidence (0-1)

IMPORTANT: cleanMerchant should ONLY contain the merchant name. subcategory is a separate field.

Return a JSON object with a "results" array where each item has: id, categoryId, cleanMerchant, subcategory, confidence.
Example: {{"results": [{{"id": "abc", "categoryId": "xyz", "cleanMerchant": "Zepto", "subcategory": "Groceries", "confidence": 0.95}}]}}"""


@dataclass(frozen=True)
class TransactionToCategorize:
    id: str
    merchant: str
    amount: int
    type: TransactionType


def find_other_category_id(categories: Sequence[Category]) -> str | None:
    for category in categories:
        if category.name == OTHER_CATEGORY_NAME:
            return category.id
    return None


def default_categorization(merchant: str, other_id: str | None) -> CategorizationResult:
    return CategorizationResult(
        category_id=other_id,
        clean_merchant=merchant,
        subcategory=None,
        confidence=DEFAULT_CONFIDENCE,
    )


def _record_to_result(
    record: CategorizedRecord,
    item: TransactionToCategorize,
    valid_ids: set[str],
    other_id: str | None,
) -> CategorizationResult:
    confidence = record.confidence if record.confidence is not None else UNSCORED_CONFIDENCE
    if not math.isfinite(confidence):
        confidence = UNSCORED_CONFIDENCE
    category_id = record.category_id
    if category_id not in valid_ids:
        logger.debug(
            "[CATEGORIZE] Unknown category id %r for '%s'; using Other.",
            category_id,
            item.merchant,
        )
        category_id = other_id
        confidence = min(confidence, INVALID_CATEGORY_CONFIDENCE_CAP)

    return CategorizationResult(
        category_id=category_id,
        clean_merchant=record.clean_merchant or item.merchant,
        subcategory=record.subcategory,
        confidence=confidence,
    )


def _categorize_batch(
    batch: Sequence[TransactionToCategorize],
    oracle: OracleClient,
    instructions: str,
    valid_ids: set[str],
    other_id: str | None,
) -> dict[str, CategorizationResult]:
    transaction_list = "\n".join(
        f"{index}. ID: {item.id} | Merchant: {item.merchant} | "
        f"Amount: {format_amount(item.amount)} | Type: {item.type.value}"
        for index, item in enumerate(batch, start=1)
    )
    content = oracle.complete_json(
        instructions,
        f"Categorize these {len(batch)} transactions:\n{transaction_list}",
    )
    records, problem = decode_records(content, CategorizedRecord)
    if problem is not None:
        logger.warning("[CATEGORIZE] Batch reply rejected: %s", problem)
        return {}

    by_id = {item.id: item for item in batch}
    results: dict[str, CategorizationResult] = {}
    for record in records:
        item = by_id.get(record.id)
        if item is None or record.id in results:
            continue
        if isinstance(record, RejectedRecord):
            logger.debug("[CATEGORIZE] Record for %s rejected: %s", record.id, record.problem)
            continue
        results[record.id] = _record_to_result(record, item, valid_ids, other_id)
    return results


def batch_categorize(
    transactions: Sequence[TransactionToCategorize],
    categories: Sequence[Category],
    oracle: OracleClient | None,
    config: PipelineConfig | None = None,
) -> dict[str, CategorizationResult]:
    """
    Categorize transactions against the live category catalog.

    Never fails: anything the oracle cannot answer for falls back to the
    "Other" category with a low confidence.
    """
    config = config or PipelineConfig()
    other_id = find_other_category_id(categories)

    if oracle is None or not transactions:
        return {item.id: default_categorization(item.merchant, other_id) for item in transactions}

    valid_ids = {category.id for category in categories}
    category_list = "\n".join(f"{category.id}:{category.name}" for category in categories)
    instructions = INSTRUCTIONS_TEMPLATE.format(category_list=category_list)

    results: dict[str, CategorizationResult] = {}
    total_batches = math.ceil(len(transactions) / config.categorize_batch_size)
    for number, batch in iter_batches(transactions, config.categorize_batch_size):
        logger.info(
            "[CATEGORIZE] Batch categorizing %d transactions (batch %d/%d)...",
            len(batch),
            number,
            total_batches,
        )
        try:
            batch_results = _categorize_batch(batch, oracle, instructions, valid_ids, other_id)
        except Exception as exc:
            logger.error("[CATEGORIZE] Batch %d/%d failed: %s", number, total_batches, exc)
            batch_results = {}

        for item in batch:
            results.setdefault(
                item.id,
                batch_results.get(item.id) or default_categorization(item.merchant, other_id),
            )
    return results


def categorize_transaction(
    merchant: str,
    amount: int,
    tx_type: TransactionType,
    categories: Sequence[Category],
    oracle: OracleClient | None,
) -> CategorizationResult:
    item = TransactionToCategorize(id="1", merchant=merchant, amount=amount, type=tx_type)
    return batch_categorize([item], categories, oracle)[item.id]
