import os
from collections.abc import Iterator, Sequence
from typing import TypeVar

from openai import OpenAI

from kalavara.core.settings import DEFAULT_OPENAI_MODEL
from kalavara.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class OracleClient:
    """Thin wrapper around an OpenAI-compatible client returning JSON text."""

    def __init__(
        self,
        api_key: str,
        model: str | None = None,
        base_url: str | None = None,
        timeout: float = 60.0,
    ):
        self.client = OpenAI(
            api_key=api_key,
            base_url=base_url or os.getenv("OPENAI_BASE_URL") or None,
            timeout=timeout,
            max_retries=1,
        )
        self.model = model or os.getenv("OPENAI_MODEL") or DEFAULT_OPENAI_MODEL

    @classmethod
    def from_api_key(cls, api_key: str | None, *, timeout: float = 60.0) -> "OracleClient | None":
        key = api_key or os.getenv("OPENAI_API_KEY")
        if not key:
            return None
        return cls(api_key=key, timeout=timeout)

    def complete_json(self, instructions: str, prompt: str) -> str | None:
        """Run one completion in JSON mode. Errors propagate to the caller."""
        logger.debug("[LLM] Request to %s (%d prompt chars)", self.model, len(prompt))
        response = self.client.responses.create(
            model=self.model,
            instructions=instructions,
            input=prompt,
            temperature=0.0,
            text={"format": {"type": "json_object"}},
        )
        return self._extract_output_text(response)

    @staticmethod
    def _extract_output_text(response: object) -> str | None:
        output_text = getattr(response, "output_text", None)
        if output_text:
            return output_text

        output = getattr(response, "output", None)
        if not output:
            return None

        parts: list[str] = []
        for item in output:
            content = getattr(item, "content", None)
            if not content:
                continue
            for block in content:
                block_type = getattr(block, "type", None)
                if block_type in {"output_text", "text"}:
                    text = getattr(block, "text", None)
                    if text:
                        parts.append(text)

        if parts:
            return "".join(parts)
        return None


def iter_batches(items: Sequence[T], size: int) -> Iterator[tuple[int, Sequence[T]]]:
    """Yield ``(batch_number, batch)`` pairs, numbering from 1."""
    for number, start in enumerate(range(0, len(items), size), start=1):
        yield number, items[start:start + size]
