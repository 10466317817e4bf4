"""LLM Provider implementation using Anthropic Claude API."""

import os
from typing import AsyncIterator, Protocol

import anthropic

from ..logging_config import get_logger
from ..models import (
    ChatChoice,
    ChatDelta,
    ChatMessage,
    ChatRequest,
    ChatResponse,
    ChatStreamChunk,
    StreamChoice,
    Usage,
    new_id,
)

logger = get_logger(__name__)

DEFAULT_MODEL = "claude-3-5-sonnet-20241022"

_STOP_REASONS = {
    "end_turn": "stop",
    "stop_sequence": "stop",
    "max_tokens": "length",
    "tool_use": "tool_calls",
}


class ILLMService(Protocol):
    """Abstraction for LLM access."""

    async def complete(self, request: ChatRequest) -> ChatResponse:
        """Generate a completion."""
        ...

    def complete_stream(self, request: ChatRequest) -> AsyncIterator[ChatStreamChunk]:
        """Generate a completion incrementally."""
        ...


class LLMProvider:
    """Anthropic Claude API provider."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        max_tokens: int = 1024,
    ):
        self._api_key = api_key or os.getenv("ANTHROPIC_API_KEY")
        if not self._api_key:
            raise ValueError("ANTHROPIC_API_KEY environment variable not set")

        self._model = model or os.getenv("LLM_MODEL") or DEFAULT_MODEL
        self._max_tokens = max_tokens
        self._client = anthropic.AsyncAnthropic(api_key=self._api_key)

    async def complete(self, request: ChatRequest) -> ChatResponse:
        """Generate completion using Claude API."""
        params = self._build_params(request)
        try:
            response = await self._client.messages.create(**params)
        except Exception as e:
            # Re-raise for handling by caller
            raise RuntimeError(f"LLM API error: {e}") from e

        text = response.content[0].text if response.content else ""
        usage = self._usage(response)

        return ChatResponse(
            id=new_id("chatcmpl"),
            model=params["model"],
            choices=[
                ChatChoice(
                    index=0,
                    message=ChatMessage(role="assistant", content=text),
                    finish_reason=_STOP_REASONS.get(getattr(response, "stop_reason", None), "stop"),
                )
            ],
            usage=usage,
        )

    async def complete_stream(self, request: ChatRequest) -> AsyncIterator[ChatStreamChunk]:
        """Stream completion text chunks from Claude API."""
        params = self._build_params(request)
        chunk_id = new_id("chatcmpl")
        try:
            async with self._client.messages.stream(**params) as stream:
                async for text in stream.text_stream:
                    yield ChatStreamChunk(
                        id=chunk_id,
                        model=params["model"],
                        choices=[StreamChoice(index=0, delta=ChatDelta(content=text))],
                    )
        except Exception as e:
            raise RuntimeError(f"LLM API error: {e}") from e

        yield ChatStreamChunk(
            id=chunk_id,
            model=params["model"],
            choices=[StreamChoice(index=0, delta=ChatDelta(), finish_reason="stop")],
        )

    def _build_params(self, request: ChatRequest) -> dict:
        # Anthropic takes system prompts separately and only user/assistant turns
        system_parts = []
        messages = []
        for msg in request.messages:
            if msg.role == "system":
                system_parts.append(msg.text)
            elif msg.role == "tool":
                messages.append({"role": "user", "content": f"Tool result: {msg.text}"})
            else:
                messages.append({"role": msg.role, "content": msg.text})

        params = {
            "model": request.model if request.model and request.model != "default" else self._model,
            "messages": messages,
            "max_tokens": request.max_tokens or self._max_tokens,
        }
        if system_parts:
            params["system"] = "\n\n".join(system_parts)
        if request.temperature is not None:
            params["temperature"] = request.temperature
        return params

    @staticmethod
    def _usage(response) -> Usage:
        usage = getattr(response, "usage", None)
        prompt = getattr(usage, "input_tokens", 0)
        completion = getattr(usage, "output_tokens", 0)
        prompt = prompt if isinstance(prompt, int) else 0
        completion = completion if isinstance(completion, int) else 0
        return Usage(
            prompt_tokens=prompt,
            completion_tokens=completion,
            total_tokens=prompt + completion,
        )
