from collections.abc import Generator
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

from kalavara.oracle.client import OracleClient, iter_batches


@pytest.fixture
def mock_openai_client() -> Generator[MagicMock, None, None]:
    with patch("kalavara.oracle.client.OpenAI") as mock:
        yield mock


def test_complete_json(mock_openai_client: MagicMock) -> None:
    mock_instance = mock_openai_client.return_value
    mock_instance.responses.create.return_value = SimpleNamespace(output_text='{"results": []}')

    oracle = OracleClient(api_key="sk-fake", model="gpt-4o-mini")
    content = oracle.complete_json("instructions", "prompt")

    assert content == '{"results": []}'
    kwargs = mock_instance.responses.create.call_args.kwargs
    assert kwargs["model"] == "gpt-4o-mini"
    assert kwargs["text"] == {"format": {"type": "json_object"}}
    assert kwargs["temperature"] == 0.0


def test_output_blocks_are_joined(mock_openai_client: MagicMock) -> None:
    mock_instance = mock_openai_client.return_value
    mock_instance.responses.create.return_value = SimpleNamespace(
        output_text=None,
        output=[SimpleNamespace(content=[
            SimpleNamespace(type="output_text", text='{"a":'),
            SimpleNamespace(type="output_text", text=" 1}"),
        ])],
    )

    oracle = OracleClient(api_key="sk-fake")
    assert oracle.complete_json("i", "p") == '{"a": 1}'


def test_from_api_key(mock_openai_client: MagicMock, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    assert OracleClient.from_api_key(None) is None
    assert OracleClient.from_api_key("sk-user") is not None

    monkeypatch.setenv("OPENAI_API_KEY", "sk-env")
    assert OracleClient.from_api_key(None) is not None
    assert mock_openai_client.call_args.kwargs["api_key"] == "sk-env"


def test_iter_batches() -> None:
    batches = list(iter_batches(list(range(5)), 2))
    assert batches == [(1, [0, 1]), (2, [2, 3]), (3, [4])]
    assert list(iter_batches([], 3)) == []
