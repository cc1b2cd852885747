"""
Typed views of the JSON the oracle sends back.

Replies are decoded with pydantic and nothing here raises. ``decode_reply``
hands back either the model or a ``ReplyValidationError`` describing what was
wrong with the payload. ``decode_records`` checks the ``results`` envelope
once and then validates each record on its own, so one bad record is
reported as a ``RejectedRecord`` while its neighbours still decode.
"""
from dataclasses import dataclass
from typing import Any, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

ModelT = TypeVar("ModelT", bound=BaseModel)


@dataclass(frozen=True)
class ReplyValidationError:
    message: str
    details: tuple[str, ...] = ()

    def __str__(self) -> str:
        if not self.details:
            return self.message
        return f"{self.message}: {'; '.join(self.details)}"


def _coerce_id(value: Any) -> Any:
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return value


class ParsedEmailRecord(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    amount: float | None = None
    type: str | None = None
    merchant: str | None = None
    date: str | None = None
    reference: str | None = None

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, value: Any) -> Any:
        return _coerce_id(value)

    @field_validator("amount", mode="before")
    @classmethod
    def strip_amount(cls, value: Any) -> Any:
        if isinstance(value, str):
            cleaned = value.replace(",", "").replace("₹", "").strip()
            return cleaned or None
        return value

    @field_validator("type", "merchant", "date", "reference", mode="before")
    @classmethod
    def blank_to_none(cls, value: Any) -> Any:
        if value is None:
            return None
        text = str(value).strip()
        return text or None


class CategorizedRecord(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: str
    category_id: str | None = Field(default=None, alias="categoryId")
    clean_merchant: str | None = Field(default=None, alias="cleanMerchant")
    subcategory: str | None = None
    confidence: float | None = None

    @field_validator("id", "category_id", mode="before")
    @classmethod
    def coerce_ids(cls, value: Any) -> Any:
        return _coerce_id(value)

    @field_validator("clean_merchant", "subcategory", mode="before")
    @classmethod
    def blank_to_none(cls, value: Any) -> Any:
        if value is None:
            return None
        text = str(value).strip()
        return text or None


class ReplyEnvelope(BaseModel):
    results: list[Any] = Field(default_factory=list)


@dataclass(frozen=True)
class RejectedRecord:
    """A reply record that failed validation; ``id`` is kept when it was readable."""

    id: str | None
    problem: ReplyValidationError


def _describe(exc: ValidationError) -> tuple[str, ...]:
    details = tuple(
        f"{'.'.join(str(part) for part in error['loc']) or '<root>'}: {error['msg']}"
        for error in exc.errors()
    )
    return details[:5]


def _readable_id(item: Any) -> str | None:
    raw_id = _coerce_id(item.get("id")) if isinstance(item, dict) else None
    return raw_id if isinstance(raw_id, str) else None


def decode_reply(
    content: str | None, model: type[ModelT]
) -> tuple[ModelT | None, ReplyValidationError | None]:
    if not content or not content.strip():
        return None, ReplyValidationError("Empty LLM response")
    try:
        return model.model_validate_json(content), None
    except ValidationError as exc:
        return None, ReplyValidationError("Malformed LLM response", _describe(exc))


def decode_records(
    content: str | None, model: type[ModelT]
) -> tuple[list[ModelT | RejectedRecord], ReplyValidationError | None]:
    envelope, problem = decode_reply(content, ReplyEnvelope)
    if envelope is None:
        return [], problem

    records: list[ModelT | RejectedRecord] = []
    for item in envelope.results:
        try:
            records.append(model.model_validate(item))
        except ValidationError as exc:
            records.append(RejectedRecord(
                id=_readable_id(item),
                problem=ReplyValidationError("Malformed LLM record", _describe(exc)),
            ))
    return records, None
