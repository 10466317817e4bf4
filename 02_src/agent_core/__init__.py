"""Agent runtime core module."""

from .agent import AgentStateMachine
from .app import Application, IApplication
from .config import AgentConfig, ContextConfig, ThinkingConfig
from .context import ContextWindowManager
from .errors import (
    AgentError,
    ExecutionError,
    InvalidStateError,
    SkillError,
    ToolError,
)
from .event_bus import EventBus, IEventBus, Subscription
from .llm import ILLMService, LLMProvider
from .memory import IMemoryService, MemoryService
from .models import (
    Action,
    ActionType,
    AgentState,
    ChatMessage,
    ChatRequest,
    ChatResponse,
    ChatStreamChunk,
    EventType,
    FinishReason,
    Plan,
    PlanResult,
    PlanStep,
    PlanningStrategy,
    SkillResult,
    ThinkContext,
    ThinkingResult,
    ThinkingStep,
    ToolResult,
    TraceEvent,
    UnifiedEvent,
)
from .planning import PlanningCoordinator
from .storage import IStorage, Storage
from .thinking import ThinkingEngine, ThinkingStream
from .tools import ISkill, ITool, ToolInvocationDispatcher
from .tracker import ITracker, Tracker

__all__ = [
    # Application
    "Application",
    "IApplication",
    # Config
    "AgentConfig",
    "ContextConfig",
    "ThinkingConfig",
    # Errors
    "AgentError",
    "ExecutionError",
    "InvalidStateError",
    "SkillError",
    "ToolError",
    # Models
    "Action",
    "ActionType",
    "AgentState",
    "ChatMessage",
    "ChatRequest",
    "ChatResponse",
    "ChatStreamChunk",
    "EventType",
    "FinishReason",
    "Plan",
    "PlanResult",
    "PlanStep",
    "PlanningStrategy",
    "SkillResult",
    "ThinkContext",
    "ThinkingResult",
    "ThinkingStep",
    "ToolResult",
    "TraceEvent",
    "UnifiedEvent",
    # Components
    "AgentStateMachine",
    "ContextWindowManager",
    "EventBus",
    "IEventBus",
    "Subscription",
    "ILLMService",
    "LLMProvider",
    "IMemoryService",
    "MemoryService",
    "PlanningCoordinator",
    "IStorage",
    "Storage",
    "ThinkingEngine",
    "ThinkingStream",
    "ISkill",
    "ITool",
    "ToolInvocationDispatcher",
    "ITracker",
    "Tracker",
]
