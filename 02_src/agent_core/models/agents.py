"""Agent lifecycle and reasoning-loop data models."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .messages import ChatMessage


class AgentState(str, Enum):
    """Lifecycle states of an agent."""

    IDLE = "idle"
    INITIALIZING = "initializing"
    READY = "ready"
    THINKING = "thinking"
    EXECUTING = "executing"
    CHATTING = "chatting"
    ERROR = "error"
    DESTROYED = "destroyed"


class ActionType(str, Enum):
    """Kinds of action the model can choose."""

    TOOL = "tool"
    SKILL = "skill"
    THINK = "think"
    FINISH = "finish"
    REFLECT = "reflect"


class FinishReason(str, Enum):
    """Why a reasoning episode ended."""

    STOP = "stop"
    LENGTH = "length"
    ABORTED = "aborted"
    ERROR = "error"


@dataclass(frozen=True)
class Action:
    """A decision produced by the model for one step."""

    type: ActionType
    name: str
    parameters: dict = field(default_factory=dict)

    @property
    def executable(self) -> bool:
        """Whether the action is dispatched to a tool or skill."""
        return self.type in (ActionType.TOOL, ActionType.SKILL)

    def label(self) -> str:
        return f"{self.type.value}:{self.name}"

    def to_dict(self) -> dict:
        return {"type": self.type.value, "name": self.name, "parameters": self.parameters}


@dataclass(frozen=True)
class ThinkingStep:
    """Record of one loop iteration."""

    step: int
    thought: str
    action: Action
    observation: str
    duration: int  # ms

    def to_dict(self) -> dict:
        return {
            "step": self.step,
            "thought": self.thought,
            "action": self.action.to_dict(),
            "observation": self.observation,
            "duration": self.duration,
        }


@dataclass
class ThinkingResult:
    """Terminal artifact of one reasoning episode."""

    success: bool
    answer: str
    steps: list[ThinkingStep]
    total_steps: int
    total_duration: int  # ms
    tools_used: list[str]
    finish_reason: FinishReason
    reflections: list[str] = field(default_factory=list)
    error: str | None = None

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "answer": self.answer,
            "steps": [s.to_dict() for s in self.steps],
            "totalSteps": self.total_steps,
            "totalDuration": self.total_duration,
            "toolsUsed": list(self.tools_used),
            "reflections": list(self.reflections),
            "finishReason": self.finish_reason.value,
            "error": self.error,
        }


@dataclass
class ThinkContext:
    """Identifiers and prior conversation for one episode."""

    agent_id: str
    execution_id: str
    session_id: str | None = None
    history: list[ChatMessage] = field(default_factory=list)
    # Completion cap per LLM call, as requested by the client
    max_tokens: int | None = None

    def metadata(self) -> dict[str, Any]:
        return {
            "agent_id": self.agent_id,
            "session_id": self.session_id,
            "execution_id": self.execution_id,
        }


@dataclass(frozen=True)
class ThinkingStreamEvent:
    """Incremental output of a streamed episode."""

    type: str  # start | thought | actions | observations | reflection | complete | error
    step: int | None = None
    data: Any = None
