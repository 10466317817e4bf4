"""Skill, tool and memory contract models."""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any

from .messages import new_id, now_ms


@dataclass(frozen=True)
class ErrorInfo:
    """Structured error reported by a tool or skill."""

    code: str
    message: str = ""
    recoverable: bool = True

    @classmethod
    def from_value(cls, value: Any) -> "ErrorInfo":
        """Normalize a dict, string or exception into ErrorInfo."""
        if isinstance(value, ErrorInfo):
            return value
        if isinstance(value, dict):
            return cls(
                code=str(value.get("code", "UNKNOWN")),
                message=str(value.get("message", "")),
                recoverable=bool(value.get("recoverable", True)),
            )
        if isinstance(value, BaseException):
            return cls(
                code=getattr(value, "code", type(value).__name__),
                message=str(value),
                recoverable=getattr(value, "recoverable", True),
            )
        return cls(code="UNKNOWN", message=str(value))

    def describe(self) -> str:
        return f"[{self.code}] {self.message}" if self.message else f"[{self.code}]"


@dataclass
class ToolResult:
    """Result of Tool.run()."""

    success: bool
    data: Any = None
    error: ErrorInfo | None = None
    meta: dict | None = None


@dataclass
class SkillResult:
    """Result of Skill.execute()."""

    success: bool
    data: Any = None
    error: ErrorInfo | None = None
    metadata: dict | None = None


@dataclass
class ToolContext:
    """Per-call execution context handed to a tool."""

    execution_id: str
    agent: str
    log: logging.Logger


@dataclass
class SkillContext:
    """Per-call execution context handed to a skill."""

    execution_id: str
    agent_id: str
    input: Any
    logger: logging.Logger
    llm: Any
    memory: Any
    tools: Any
    session_id: str | None = None
    signal: asyncio.Event | None = None


@dataclass
class MemoryEntry:
    """A single memory record."""

    content: str
    type: str = "message"
    importance: float = 0.5
    id: str = field(default_factory=lambda: new_id("memory"))
    timestamp: int = field(default_factory=now_ms)
    metadata: dict = field(default_factory=dict)
