"""Project-level configuration, path helpers and the validated agent config."""

import os
from pathlib import Path
from typing import Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
DATA_DIR = PROJECT_ROOT / "03_data"
LOGS_DIR = PROJECT_ROOT / "04_logs"
DEFAULT_DB_PATH = DATA_DIR / "agent_runtime.db"
DEFAULT_LOG_PATH = LOGS_DIR / "app.log"

DATA_DIR.mkdir(parents=True, exist_ok=True)
LOGS_DIR.mkdir(parents=True, exist_ok=True)


PathLike = Union[str, Path]

DEFAULT_CONTEXT_WINDOW = 128000
DEFAULT_RESERVED_TOKENS = 4096


def resolve_db_path(env_value: PathLike | None = None) -> PathLike:
    """Resolve DATABASE_URL to an absolute path."""
    if not env_value:
        return DEFAULT_DB_PATH

    if str(env_value) == ":memory:":
        return ":memory:"

    candidate = Path(env_value)
    return candidate if candidate.is_absolute() else PROJECT_ROOT / candidate


class ThinkingConfig(BaseModel):
    """Settings of the ReAct loop."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    max_steps: int = Field(default=10, ge=1, le=100)
    enable_reflection: bool = True
    enable_parallel_tools: bool = False
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    system_prompt: str | None = None


class ContextConfig(BaseModel):
    """Token budget of the context window."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    max_tokens: int = Field(default=DEFAULT_CONTEXT_WINDOW, gt=0)
    reserved_tokens: int = Field(default=DEFAULT_RESERVED_TOKENS, ge=0)
    chars_per_token: int = Field(default=4, ge=1)


class AgentConfig(BaseModel):
    """Validated agent configuration.

    Built once at agent construction; everything downstream reads the typed
    fields without re-checking them.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str | None = None
    name: str = Field(default="agent", min_length=1)
    description: str | None = None
    model: str = "default"
    thinking: ThinkingConfig = Field(default_factory=ThinkingConfig)
    context: ContextConfig = Field(default_factory=ContextConfig)
    invocation_history_limit: int = Field(default=100, ge=1)

    @model_validator(mode="after")
    def _check_budget(self) -> "AgentConfig":
        if self.context.reserved_tokens >= self.context.max_tokens:
            raise ValueError("context.reserved_tokens must be below context.max_tokens")
        return self

    @classmethod
    def from_env(cls, **overrides) -> "AgentConfig":
        """Build config from AGENT_* environment variables."""
        thinking = {
            "max_steps": int(os.getenv("AGENT_MAX_STEPS", "10")),
            "enable_reflection": os.getenv("AGENT_ENABLE_REFLECTION", "true").lower() == "true",
            "enable_parallel_tools": os.getenv("AGENT_PARALLEL_TOOLS", "false").lower() == "true",
        }
        context = {
            "max_tokens": int(os.getenv("AGENT_CONTEXT_TOKENS", str(DEFAULT_CONTEXT_WINDOW))),
        }
        data = {
            "name": os.getenv("AGENT_NAME", "agent"),
            "model": os.getenv("LLM_MODEL", "default"),
            "thinking": thinking,
            "context": context,
        }
        data.update(overrides)
        return cls.model_validate(data)
