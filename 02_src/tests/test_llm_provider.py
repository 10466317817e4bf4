"""Tests for LLMProvider."""

from unittest.mock import AsyncMock, Mock, patch

import pytest

from agent_core.llm import LLMProvider
from agent_core.models import ChatMessage, ChatRequest

CLIENT_PATH = "agent_core.llm.llm_provider.anthropic.AsyncAnthropic"


def request(*messages: tuple[str, str], **kwargs) -> ChatRequest:
    return ChatRequest(messages=[ChatMessage(role=r, content=c) for r, c in messages], **kwargs)


def api_response(text: str, stop_reason: str = "end_turn", input_tokens: int = 10, output_tokens: int = 5):
    response = Mock()
    response.content = [Mock(text=text)]
    response.stop_reason = stop_reason
    response.usage = Mock(input_tokens=input_tokens, output_tokens=output_tokens)
    return response


class FakeStream:
    """Async context manager mimicking messages.stream()."""

    def __init__(self, texts):
        self._texts = texts

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    @property
    async def text_stream(self):
        for text in self._texts:
            yield text


@pytest.fixture
def mock_client(monkeypatch):
    """Patch the Anthropic client and set an API key."""
    monkeypatch.setenv("ANTHROPIC_API_KEY", "test_key")
    monkeypatch.delenv("LLM_MODEL", raising=False)
    client = Mock()
    client.messages.create = AsyncMock(return_value=api_response("Test response"))
    with patch(CLIENT_PATH, return_value=client):
        yield client


class TestLLMProviderInit:
    """Tests for LLMProvider initialization."""

    def test_init_with_api_key(self, monkeypatch):
        """Test initialization with API key."""
        monkeypatch.setenv("ANTHROPIC_API_KEY", "test_key")

        with patch(CLIENT_PATH) as client_cls:
            provider = LLMProvider()
            assert provider is not None
            client_cls.assert_called_once_with(api_key="test_key")

    def test_init_without_api_key(self, monkeypatch):
        """Test initialization without API key raises error."""
        monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)

        with patch(CLIENT_PATH):
            with pytest.raises(ValueError, match="ANTHROPIC_API_KEY"):
                LLMProvider()


class TestLLMProviderComplete:
    """Tests for LLMProvider.complete() method."""

    @pytest.mark.asyncio
    async def test_complete_returns_response(self, mock_client):
        """Test that complete() wraps the text in a ChatResponse."""
        provider = LLMProvider()

        response = await provider.complete(request(("user", "Hello")))

        assert response.content == "Test response"
        assert response.choices[0].finish_reason == "stop"
        assert response.usage.prompt_tokens == 10
        assert response.usage.completion_tokens == 5
        assert response.usage.total_tokens == 15

    @pytest.mark.asyncio
    async def test_complete_sends_correct_format(self, mock_client):
        """Test that system messages are split out and params are passed."""
        provider = LLMProvider(model="claude-test")

        await provider.complete(
            request(
                ("system", "You are helpful"),
                ("user", "Hello"),
                ("assistant", "Hi"),
                ("user", "Bye"),
                max_tokens=2048,
                temperature=0.5,
            )
        )

        params = mock_client.messages.create.call_args.kwargs
        assert params["system"] == "You are helpful"
        assert params["messages"] == [
            {"role": "user", "content": "Hello"},
            {"role": "assistant", "content": "Hi"},
            {"role": "user", "content": "Bye"},
        ]
        assert params["max_tokens"] == 2048
        assert params["temperature"] == 0.5
        assert params["model"] == "claude-test"

    @pytest.mark.asyncio
    async def test_default_model_placeholder_is_replaced(self, mock_client):
        """Test that model 'default' resolves to the provider model."""
        provider = LLMProvider(model="claude-test")

        response = await provider.complete(request(("user", "Hello"), model="default"))

        assert mock_client.messages.create.call_args.kwargs["model"] == "claude-test"
        assert response.model == "claude-test"

    @pytest.mark.asyncio
    async def test_max_tokens_stop_maps_to_length(self, mock_client):
        """Test stop_reason mapping."""
        mock_client.messages.create.return_value = api_response("cut", stop_reason="max_tokens")
        provider = LLMProvider()

        response = await provider.complete(request(("user", "Hello")))

        assert response.choices[0].finish_reason == "length"

    @pytest.mark.asyncio
    async def test_complete_handles_api_error(self, mock_client):
        """Test that API errors are wrapped in RuntimeError."""
        mock_client.messages.create.side_effect = Exception("API Error")
        provider = LLMProvider()

        with pytest.raises(RuntimeError, match="LLM API error"):
            await provider.complete(request(("user", "Hello")))

    @pytest.mark.asyncio
    async def test_empty_content(self, mock_client):
        """Test a response without content blocks."""
        empty = api_response("")
        empty.content = []
        mock_client.messages.create.return_value = empty
        provider = LLMProvider()

        response = await provider.complete(request(("user", "Hello")))

        assert response.content == ""


class TestLLMProviderStream:
    """Tests for LLMProvider.complete_stream()."""

    @pytest.mark.asyncio
    async def test_stream_yields_text_then_stop(self, mock_client):
        """Test that streamed text arrives as chunks followed by a stop chunk."""
        mock_client.messages.stream = Mock(return_value=FakeStream(["Hel", "lo"]))
        provider = LLMProvider()

        chunks = [c async for c in provider.complete_stream(request(("user", "Hi")))]

        assert [c.choices[0].delta.content for c in chunks[:-1]] == ["Hel", "lo"]
        assert chunks[-1].choices[0].finish_reason == "stop"
        assert len({c.id for c in chunks}) == 1
