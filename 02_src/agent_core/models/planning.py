"""Planning data models."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Literal

StepStatus = Literal["pending", "ready", "running", "completed", "failed"]
StepType = Literal["skill", "tool", "llm"]


class PlanningStrategy(str, Enum):
    """Planning strategies selectable for a goal."""

    REACT = "react"
    MCTS = "mcts"
    TOT = "tot"
    HTN = "htn"
    HYBRID = "hybrid"


@dataclass
class PlanStep:
    """A single step of a plan, mutated in place while executing."""

    id: str
    description: str
    type: StepType
    target: str | None = None
    input: dict | None = None
    dependencies: list[str] = field(default_factory=list)
    status: StepStatus = "pending"
    result: Any = None
    error: str | None = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "description": self.description,
            "type": self.type,
            "target": self.target,
            "input": self.input,
            "dependencies": list(self.dependencies),
            "status": self.status,
            "result": self.result,
            "error": self.error,
        }


@dataclass
class Plan:
    """An ordered list of steps toward a goal."""

    id: str
    goal: str
    steps: list[PlanStep]
    strategy: PlanningStrategy
    created_at: datetime

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "goal": self.goal,
            "strategy": self.strategy.value,
            "createdAt": self.created_at.isoformat(),
            "steps": [s.to_dict() for s in self.steps],
        }


@dataclass
class PlanResult:
    """Outcome of executing a plan."""

    success: bool
    plan: Plan
    steps: list[PlanStep]
    output: Any = None
    error: str | None = None
    adjusted: bool = False
