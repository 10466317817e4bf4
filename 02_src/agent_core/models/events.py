"""Event models published on the EventBus."""

from dataclasses import dataclass, field
from typing import Any

from .messages import now_ms

WILDCARD = "*"


class EventType:
    """Event type names."""

    # Lifecycle
    STATE_CHANGED = "state:changed"
    AGENT_INITIALIZED = "agent:initialized"
    AGENT_RESET = "agent:reset"
    AGENT_DESTROYED = "agent:destroyed"
    AGENT_ERROR = "agent:error"

    # Chat
    CHAT_STARTED = "chat:started"
    CHAT_COMPLETED = "chat:completed"
    CHAT_ERROR = "chat:error"

    # Thinking
    THINKING_STARTED = "thinking:started"
    THINKING_STEP = "thinking:step"
    THINKING_REFLECTED = "thinking:reflected"
    THINKING_COMPLETED = "thinking:completed"
    THINKING_ABORTED = "thinking:aborted"
    THINKING_FAILED = "thinking:failed"
    THINKING_ERROR = "thinking:error"

    # Tools / skills
    TOOL_INVOKING = "tool:invoking"
    TOOL_COMPLETED = "tool:completed"
    TOOL_FAILED = "tool:failed"
    SKILL_EXECUTING = "skill:executing"
    SKILL_COMPLETED = "skill:completed"
    SKILL_FAILED = "skill:failed"

    # Planning / execution
    PLAN_CREATED = "plan:created"
    PLAN_EXECUTED = "plan:executed"
    EXECUTION_STARTED = "execution:started"
    EXECUTION_STEP_START = "execution:step:start"
    EXECUTION_STEP_COMPLETE = "execution:step:complete"
    EXECUTION_STEP_ERROR = "execution:step:error"
    EXECUTION_RETRY = "execution:retry"
    EXECUTION_COMPLETED = "execution:completed"
    EXECUTION_ERROR = "execution:error"

    # Memory
    MEMORY_STORED = "memory:stored"


@dataclass(frozen=True)
class EventMetadata:
    """Identifiers attached to every event."""

    agent_id: str
    session_id: str | None = None
    execution_id: str | None = None

    def to_dict(self) -> dict:
        data = {"agentId": self.agent_id}
        if self.session_id is not None:
            data["sessionId"] = self.session_id
        if self.execution_id is not None:
            data["executionId"] = self.execution_id
        return data


@dataclass(frozen=True)
class UnifiedEvent:
    """An immutable, fire-and-forget event."""

    type: str
    payload: dict[str, Any]
    metadata: EventMetadata
    timestamp: int = field(default_factory=now_ms)

    def to_wire(self) -> dict:
        """Stable external shape for CLI/telemetry consumers."""
        return {
            "type": self.type,
            "timestamp": self.timestamp,
            "payload": self.payload,
            "metadata": self.metadata.to_dict(),
        }
