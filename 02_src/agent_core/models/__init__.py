"""Core data models for the agent runtime."""

from .agents import (
    Action,
    ActionType,
    AgentState,
    FinishReason,
    ThinkContext,
    ThinkingResult,
    ThinkingStep,
    ThinkingStreamEvent,
)
from .capabilities import (
    ErrorInfo,
    MemoryEntry,
    SkillContext,
    SkillResult,
    ToolContext,
    ToolResult,
)
from .events import WILDCARD, EventMetadata, EventType, UnifiedEvent
from .messages import (
    ChatChoice,
    ChatDelta,
    ChatMessage,
    ChatRequest,
    ChatResponse,
    ChatStreamChunk,
    ContentPart,
    StreamChoice,
    ToolCall,
    Usage,
    extract_text,
    new_id,
    now_ms,
)
from .planning import Plan, PlanResult, PlanStep, PlanningStrategy
from .tracing import TraceEvent

__all__ = [
    # Agents
    "Action",
    "ActionType",
    "AgentState",
    "FinishReason",
    "ThinkContext",
    "ThinkingResult",
    "ThinkingStep",
    "ThinkingStreamEvent",
    # Capabilities
    "ErrorInfo",
    "MemoryEntry",
    "SkillContext",
    "SkillResult",
    "ToolContext",
    "ToolResult",
    # Events
    "WILDCARD",
    "EventMetadata",
    "EventType",
    "UnifiedEvent",
    # Messages
    "ChatChoice",
    "ChatDelta",
    "ChatMessage",
    "ChatRequest",
    "ChatResponse",
    "ChatStreamChunk",
    "ContentPart",
    "StreamChoice",
    "ToolCall",
    "Usage",
    "extract_text",
    "new_id",
    "now_ms",
    # Planning
    "Plan",
    "PlanResult",
    "PlanStep",
    "PlanningStrategy",
    # Tracing
    "TraceEvent",
]
