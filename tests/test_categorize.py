import json
from unittest.mock import MagicMock

import pytest

from kalavara.core.settings import PipelineConfig
from kalavara.models import Category, TransactionType
from kalavara.oracle.categorize import (
    DEFAULT_CONFIDENCE,
    TransactionToCategorize,
    batch_categorize,
    categorize_transaction,
)

CATEGORIES = [
    Category(id="food", name="Food & Dining"),
    Category(id="travel", name="Travel"),
    Category(id="other", name="Other"),
]


def _items(count: int) -> list[TransactionToCategorize]:
    return [
        TransactionToCategorize(id=f"t{index}", merchant=f"SHOP {index}", amount=10000, type=TransactionType.DEBIT)
        for index in range(1, count + 1)
    ]


@pytest.fixture
def oracle() -> MagicMock:
    return MagicMock()


def test_safe_default_without_oracle() -> None:
    results = batch_categorize(_items(2), CATEGORIES, None)

    assert set(results) == {"t1", "t2"}
    for item_id, result in results.items():
        assert result.category_id == "other"
        assert result.confidence == DEFAULT_CONFIDENCE
        assert result.subcategory is None
    assert results["t1"].clean_merchant == "SHOP 1"


def test_safe_default_without_other_category() -> None:
    results = batch_categorize(_items(1), CATEGORIES[:2], None)
    assert results["t1"].category_id is None


def test_valid_reply(oracle: MagicMock) -> None:
    oracle.complete_json.return_value = json.dumps({
        "results": [
            {"id": "t1", "categoryId": "food", "cleanMerchant": "Zepto", "subcategory": "Groceries", "confidence": 0.95},
        ]
    })

    results = batch_categorize(_items(1), CATEGORIES, oracle)

    result = results["t1"]
    assert result.category_id == "food"
    assert result.clean_merchant == "Zepto"
    assert result.subcategory == "Groceries"
    assert result.confidence == 0.95
    instructions, prompt = oracle.complete_json.call_args.args
    assert "food:Food & Dining" in instructions
    assert "₹100.00" in prompt


def test_unknown_category_is_coerced_to_other(oracle: MagicMock) -> None:
    oracle.complete_json.return_value = json.dumps({
        "results": [
            {"id": "t1", "categoryId": "made-up", "cleanMerchant": "X", "confidence": 0.9},
            {"id": "t2", "categoryId": "nope", "cleanMerchant": "Y", "confidence": 0.2},
        ]
    })

    results = batch_categorize(_items(2), CATEGORIES, oracle)

    assert results["t1"].category_id == "other"
    assert results["t1"].confidence == 0.5
    assert results["t2"].confidence == 0.2


def test_confidence_is_clamped(oracle: MagicMock) -> None:
    oracle.complete_json.return_value = json.dumps({
        "results": [{"id": "t1", "categoryId": "travel", "cleanMerchant": "IRCTC", "confidence": 4}]
    })
    assert batch_categorize(_items(1), CATEGORIES, oracle)["t1"].confidence == 1.0


def test_missing_ids_and_failed_batches_get_default(oracle: MagicMock) -> None:
    replies = iter([
        json.dumps({"results": [{"id": "t1", "categoryId": "food", "cleanMerchant": "A", "confidence": 0.8}]}),
        RuntimeError("rate limited"),
    ])

    def reply(*_args: str) -> str:
        value = next(replies)
        if isinstance(value, Exception):
            raise value
        return value

    oracle.complete_json.side_effect = reply

    results = batch_categorize(_items(4), CATEGORIES, oracle, PipelineConfig(categorize_batch_size=2))

    assert results["t1"].category_id == "food"
    assert results["t2"].confidence == DEFAULT_CONFIDENCE
    assert results["t3"].category_id == "other"
    assert results["t4"].confidence == DEFAULT_CONFIDENCE
    assert oracle.complete_json.call_count == 2


def test_one_bad_record_only_defaults_itself(oracle: MagicMock) -> None:
    oracle.complete_json.return_value = json.dumps({
        "results": [
            {"id": "t1", "categoryId": "food", "cleanMerchant": "Swiggy", "confidence": 0.9},
            {"id": "t2", "categoryId": "travel", "cleanMerchant": "Uber", "confidence": "very sure"},
            {"id": "t3", "categoryId": "travel", "cleanMerchant": "Ola", "confidence": 0.85},
        ]
    })

    results = batch_categorize(_items(3), CATEGORIES, oracle)

    assert results["t1"].category_id == "food"
    assert results["t2"].category_id == "other"
    assert results["t2"].confidence == DEFAULT_CONFIDENCE
    assert results["t3"].clean_merchant == "Ola"
    assert results["t3"].confidence == 0.85


def test_categorize_transaction_single(oracle: MagicMock) -> None:
    oracle.complete_json.return_value = json.dumps({
        "results": [{"id": "1", "categoryId": "travel", "cleanMerchant": "Uber"}]
    })

    result = categorize_transaction("UBER INDIA", 25000, TransactionType.DEBIT, CATEGORIES, oracle)

    assert result.category_id == "travel"
    assert result.clean_merchant == "Uber"
    assert result.confidence == 0.7
