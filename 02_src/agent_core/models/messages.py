"""Chat message and OpenAI-compatible request/response models."""

import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Literal

Role = Literal["system", "user", "assistant", "tool"]


def now_ms() -> int:
    """Current time as epoch milliseconds."""
    return int(time.time() * 1000)


def new_id(prefix: str = "") -> str:
    """Generate a unique id, optionally prefixed."""
    value = uuid.uuid4().hex
    return f"{prefix}-{value}" if prefix else value


@dataclass(frozen=True)
class ContentPart:
    """One part of multimodal message content."""

    type: Literal["text", "image_url", "file"]
    text: str | None = None
    image_url: dict | None = None  # {"url": ..., "detail": ...}
    file: dict | None = None  # {"name": ..., "content": ..., "mime_type": ...}

    def to_dict(self) -> dict:
        data: dict[str, Any] = {"type": self.type}
        for key in ("text", "image_url", "file"):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        return data


@dataclass(frozen=True)
class ToolCall:
    """A function call requested by the model."""

    id: str
    name: str
    arguments: str  # JSON-encoded
    type: Literal["function"] = "function"


@dataclass(frozen=True)
class ChatMessage:
    """A single message in a session."""

    role: Role
    content: str | tuple[ContentPart, ...]
    id: str = field(default_factory=lambda: new_id("msg"))
    name: str | None = None
    tool_calls: tuple[ToolCall, ...] | None = None
    tool_call_id: str | None = None
    metadata: dict | None = None
    timestamp: int = field(default_factory=now_ms)

    @property
    def text(self) -> str:
        return extract_text(self.content)

    def to_dict(self) -> dict:
        content = (
            self.content
            if isinstance(self.content, str)
            else [part.to_dict() for part in self.content]
        )
        data: dict[str, Any] = {
            "id": self.id,
            "role": self.role,
            "content": content,
            "timestamp": self.timestamp,
        }
        if self.name:
            data["name"] = self.name
        if self.tool_calls:
            data["toolCalls"] = [
                {"id": c.id, "type": c.type, "function": {"name": c.name, "arguments": c.arguments}}
                for c in self.tool_calls
            ]
        if self.tool_call_id:
            data["toolCallId"] = self.tool_call_id
        if self.metadata:
            data["metadata"] = self.metadata
        return data


def extract_text(content: str | tuple[ContentPart, ...] | list[ContentPart]) -> str:
    """Concatenate the text parts of message content."""
    if isinstance(content, str):
        return content
    return "".join(part.text or "" for part in content if part.type == "text")


@dataclass
class ChatRequest:
    """OpenAI-compatible chat request."""

    messages: list[ChatMessage]
    model: str | None = None
    stream: bool = False
    temperature: float | None = None
    max_tokens: int | None = None
    tools: list[dict] | None = None
    session_id: str | None = None


@dataclass
class Usage:
    """Token usage of one completion."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    def to_dict(self) -> dict:
        return {
            "promptTokens": self.prompt_tokens,
            "completionTokens": self.completion_tokens,
            "totalTokens": self.total_tokens,
        }


@dataclass
class ChatChoice:
    """A completion choice."""

    index: int
    message: ChatMessage
    finish_reason: str | None


@dataclass
class ChatResponse:
    """OpenAI-compatible chat completion."""

    id: str
    model: str
    choices: list[ChatChoice]
    usage: Usage = field(default_factory=Usage)
    created: int = field(default_factory=lambda: int(time.time()))
    object: str = "chat.completion"

    @property
    def content(self) -> str:
        """Text of the first choice, empty when there is none."""
        if not self.choices:
            return ""
        return self.choices[0].message.text

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "object": self.object,
            "created": self.created,
            "model": self.model,
            "choices": [
                {
                    "index": c.index,
                    "message": c.message.to_dict(),
                    "finishReason": c.finish_reason,
                }
                for c in self.choices
            ],
            "usage": self.usage.to_dict(),
        }


@dataclass
class ChatDelta:
    """Incremental message content of a stream chunk."""

    role: Role | None = None
    content: str | None = None


@dataclass
class StreamChoice:
    """A completion choice of a stream chunk."""

    index: int
    delta: ChatDelta
    finish_reason: str | None = None


@dataclass
class ChatStreamChunk:
    """OpenAI-compatible streaming chunk."""

    id: str
    model: str
    choices: list[StreamChoice]
    created: int = field(default_factory=lambda: int(time.time()))
    object: str = "chat.completion.chunk"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "object": self.object,
            "created": self.created,
            "model": self.model,
            "choices": [
                {
                    "index": c.index,
                    "delta": {
                        key: value
                        for key, value in (("role", c.delta.role), ("content", c.delta.content))
                        if value is not None
                    },
                    "finishReason": c.finish_reason,
                }
                for c in self.choices
            ],
        }
