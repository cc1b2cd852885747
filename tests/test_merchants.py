from datetime import datetime, timedelta

from kalavara.domain.merchants import clean_merchant_name, score_confidence
from kalavara.models import UNKNOWN_MERCHANT


def test_clean_merchant_strips_account_noise() -> None:
    assert clean_merchant_name("A/c XX1234 John  Doe") == "John Doe"
    assert clean_merchant_name("AMAZON*MKT") == "AMAZONMKT"
    assert clean_merchant_name("<Swiggy>") == "Swiggy"


def test_clean_merchant_honorifics() -> None:
    assert clean_merchant_name("Mr. John") == "John"
    assert clean_merchant_name("Dr Rao") == "Rao"
    # Names that merely start with the letters are left alone.
    assert clean_merchant_name("Drishti Stores") == "Drishti Stores"


def test_clean_merchant_empty_and_long() -> None:
    assert clean_merchant_name("") == UNKNOWN_MERCHANT
    assert clean_merchant_name(None) == UNKNOWN_MERCHANT
    assert clean_merchant_name("***") == UNKNOWN_MERCHANT
    assert len(clean_merchant_name("A" * 150)) == 100


def test_score_confidence_increments() -> None:
    recent = datetime.now() - timedelta(days=1)
    old = datetime.now() - timedelta(days=800)

    full = score_confidence(
        base=0.5, amount=100, amount_weight=0.2, merchant="Acme", date=recent
    )
    no_merchant = score_confidence(
        base=0.5, amount=100, amount_weight=0.2, merchant=UNKNOWN_MERCHANT, date=old
    )

    assert full == 1.0
    assert no_merchant == 0.7


def test_score_confidence_is_clamped() -> None:
    value = score_confidence(
        base=0.4,
        amount=100,
        amount_weight=0.15,
        merchant="Acme Corp",
        merchant_min_length=3,
        date=datetime.now(),
        bonus=0.2,
    )
    assert value == 1.0
