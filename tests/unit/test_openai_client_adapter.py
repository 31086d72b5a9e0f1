from unittest.mock import MagicMock, patch

import httpx
import openai
import pytest

from doclink.analysis.exceptions import AnalysisFormatError, AnalysisTransportError
from doclink.analysis.openai_client_adapter import OpenAIClientAdapter


def _make_mock_response(content: str | None) -> MagicMock:
    choice = MagicMock()
    choice.message.content = content
    response = MagicMock()
    response.choices = [choice]
    return response


def _call(adapter: OpenAIClientAdapter) -> str:
    return adapter.create_chat_completion(
        model="m",
        temperature=0.1,
        system_prompt="system",
        user_prompt="user",
        json_schema={"type": "object"},
    )


def _make_adapter(mock_client: MagicMock) -> OpenAIClientAdapter:
    with patch(
        "doclink.analysis.openai_client_adapter.openai.OpenAI",
        return_value=mock_client,
    ):
        return OpenAIClientAdapter(api_key="k", timeout_seconds=30, base_url=None)


class TestOpenAIClientAdapter:
    def test_returns_content(self) -> None:
        mock_client = MagicMock()
        mock_client.chat.completions.create.return_value = _make_mock_response('{"ok": true}')
        adapter = _make_adapter(mock_client)
        assert _call(adapter) == '{"ok": true}'

    def test_requests_strict_json_schema(self) -> None:
        mock_client = MagicMock()
        mock_client.chat.completions.create.return_value = _make_mock_response("{}")
        adapter = _make_adapter(mock_client)
        _call(adapter)
        kwargs = mock_client.chat.completions.create.call_args.kwargs
        assert kwargs["response_format"]["type"] == "json_schema"
        assert kwargs["response_format"]["json_schema"]["strict"] is True
        assert kwargs["messages"][0] == {"role": "system", "content": "system"}

    def test_disables_sdk_retries(self) -> None:
        with patch("doclink.analysis.openai_client_adapter.openai.OpenAI") as mock_cls:
            OpenAIClientAdapter(api_key="k", timeout_seconds=30)
        assert mock_cls.call_args.kwargs["max_retries"] == 0

    def test_raises_format_error_for_empty_content(self) -> None:
        mock_client = MagicMock()
        mock_client.chat.completions.create.return_value = _make_mock_response(None)
        adapter = _make_adapter(mock_client)
        with pytest.raises(AnalysisFormatError, match="empty response"):
            _call(adapter)

    def test_raises_format_error_for_no_choices(self) -> None:
        mock_client = MagicMock()
        response = MagicMock()
        response.choices = []
        mock_client.chat.completions.create.return_value = response
        adapter = _make_adapter(mock_client)
        with pytest.raises(AnalysisFormatError, match="no choices"):
            _call(adapter)

    def test_raises_transport_error_on_connection_failure(self) -> None:
        mock_client = MagicMock()
        mock_client.chat.completions.create.side_effect = openai.APIConnectionError(
            request=MagicMock()
        )
        adapter = _make_adapter(mock_client)
        with pytest.raises(AnalysisTransportError, match="network error"):
            _call(adapter)

    def test_raises_transport_error_on_timeout(self) -> None:
        mock_client = MagicMock()
        mock_client.chat.completions.create.side_effect = httpx.TimeoutException("timeout")
        adapter = _make_adapter(mock_client)
        with pytest.raises(AnalysisTransportError, match="network error"):
            _call(adapter)

    def test_raises_transport_error_on_api_error(self) -> None:
        mock_client = MagicMock()
        mock_client.chat.completions.create.side_effect = openai.APIError(
            message="server error",
            request=MagicMock(),
            body=None,
        )
        adapter = _make_adapter(mock_client)
        with pytest.raises(AnalysisTransportError, match="API error"):
            _call(adapter)
