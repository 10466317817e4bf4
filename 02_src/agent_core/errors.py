"""Error taxonomy of the agent runtime."""


class AgentError(Exception):
    """Base class for runtime errors."""

    code = "AGENT_ERROR"
    recoverable = False

    def __init__(self, message: str, *, code: str | None = None, recoverable: bool | None = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if recoverable is not None:
            self.recoverable = recoverable

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message, "recoverable": self.recoverable}


class InvalidStateError(AgentError):
    """An operation or transition is not legal in the current agent state."""

    code = "INVALID_STATE"

    def __init__(self, message: str, *, current: str | None = None, target: str | None = None):
        super().__init__(message)
        self.current = current
        self.target = target


class ToolError(AgentError):
    """A tool invocation failed. Recoverable errors become loop observations."""

    code = "TOOL_ERROR"
    recoverable = True


class SkillError(AgentError):
    """A skill execution failed. Recoverable errors become loop observations."""

    code = "SKILL_ERROR"
    recoverable = True


class ExecutionError(AgentError):
    """Top-level failure of a chat/think/execute call. Never recoverable."""

    code = "EXECUTION_ERROR"

    def __init__(self, message: str, *, code: str | None = None):
        super().__init__(message, code=code, recoverable=False)
