"""ToolInvocationDispatcher: runs tool/skill contracts and reports them as events."""

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Literal, Union

from ..errors import SkillError, ToolError
from ..event_bus import IEventBus
from ..logging_config import get_logger
from ..models import (
    ErrorInfo,
    EventMetadata,
    EventType,
    SkillContext,
    SkillResult,
    ToolContext,
    ToolResult,
    new_id,
    now_ms,
)
from .registry import SkillRegistry, ToolRegistry

logger = get_logger(__name__)

InvocationKind = Literal["tool", "skill"]
InvocationResult = Union[ToolResult, SkillResult]


@dataclass
class InvocationCall:
    """A single call for invoke_many()."""

    name: str
    parameters: dict = field(default_factory=dict)
    kind: InvocationKind = "tool"


@dataclass
class InvocationOutcome:
    """Per-call result of invoke_many(); exactly one of result/error is meaningful."""

    name: str
    result: InvocationResult | None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.result is not None and self.result.success


@dataclass
class InvocationRecord:
    """History entry of one invocation."""

    kind: InvocationKind
    tool: str
    input: Any
    output: Any
    success: bool
    start_time: int
    end_time: int
    duration: int
    error: str | None = None


class ToolInvocationDispatcher:
    """Invokes tools and skills for one agent.

    Every call gets a fresh execution context, lands in a bounded history
    and is published as tool:* / skill:* events.
    """

    def __init__(
        self,
        event_bus: IEventBus,
        agent_id: str,
        tools: ToolRegistry,
        skills: SkillRegistry,
        llm: Any = None,
        memory: Any = None,
        history_limit: int = 100,
        agent_logger: logging.Logger | None = None,
    ):
        self._event_bus = event_bus
        self._agent_id = agent_id
        self._tools = tools
        self._skills = skills
        self._llm = llm
        self._memory = memory
        self._logger = agent_logger or logger
        self._history: deque[InvocationRecord] = deque(maxlen=history_limit)

    @property
    def history(self) -> list[InvocationRecord]:
        return list(self._history)

    def clear_history(self) -> None:
        self._history.clear()

    async def invoke(
        self,
        name: str,
        parameters: Any = None,
        kind: InvocationKind = "tool",
        session_id: str | None = None,
        signal: asyncio.Event | None = None,
    ) -> InvocationResult:
        """Invoke one tool or skill.

        A result with success=False is returned as-is. A missing target or a
        raising implementation is reported as ToolError/SkillError.
        """
        if kind == "skill":
            return await self._invoke_skill(name, parameters, session_id, signal)
        return await self._invoke_tool(name, parameters)

    async def invoke_many(
        self,
        calls: list[InvocationCall],
        session_id: str | None = None,
        signal: asyncio.Event | None = None,
    ) -> list[InvocationOutcome]:
        """Invoke calls concurrently; same length and order as calls, never raises."""

        async def captured(call: InvocationCall) -> InvocationOutcome:
            try:
                result = await self.invoke(
                    call.name, call.parameters, call.kind, session_id=session_id, signal=signal
                )
                return InvocationOutcome(name=call.name, result=result)
            except Exception as e:
                return InvocationOutcome(name=call.name, result=None, error=e)

        return list(await asyncio.gather(*(captured(c) for c in calls)))

    async def _invoke_tool(self, name: str, parameters: Any) -> ToolResult:
        execution_id = new_id("exec")
        metadata = EventMetadata(agent_id=self._agent_id, execution_id=execution_id)

        tool = self._tools.get(name)
        if tool is None:
            error = ToolError(f"Tool '{name}' not found", code="TOOL_NOT_FOUND")
            self._event_bus.publish(
                EventType.TOOL_FAILED, {"tool": name, "error": error.to_dict()}, metadata
            )
            raise error

        context = ToolContext(execution_id=execution_id, agent=self._agent_id, log=self._logger)
        self._event_bus.publish(
            EventType.TOOL_INVOKING, {"tool": tool.name, "input": parameters}, metadata
        )

        start = now_ms()
        try:
            result = await tool.run(parameters, context)
        except Exception as e:
            end = now_ms()
            info = ErrorInfo.from_value(e)
            self._record("tool", tool.name, parameters, None, False, start, end, info.message)
            self._event_bus.publish(
                EventType.TOOL_FAILED,
                {"tool": tool.name, "error": _error_dict(info), "duration": end - start},
                metadata,
            )
            self._logger.warning("Tool %s raised: %s", tool.name, e)
            if isinstance(e, ToolError):
                raise
            raise ToolError(str(e), code="TOOL_EXECUTION_FAILED") from e

        end = now_ms()
        result = _normalize_tool_result(result)
        error_text = result.error.describe() if result.error else None
        self._record("tool", tool.name, parameters, result.data, result.success, start, end, error_text)

        if result.success:
            self._event_bus.publish(
                EventType.TOOL_COMPLETED,
                {"tool": tool.name, "success": True, "duration": end - start},
                metadata,
            )
        else:
            self._event_bus.publish(
                EventType.TOOL_FAILED,
                {
                    "tool": tool.name,
                    "error": _error_dict(result.error),
                    "duration": end - start,
                },
                metadata,
            )
        return result

    async def _invoke_skill(
        self,
        name: str,
        parameters: Any,
        session_id: str | None,
        signal: asyncio.Event | None,
    ) -> SkillResult:
        execution_id = new_id("exec")
        metadata = EventMetadata(
            agent_id=self._agent_id, session_id=session_id, execution_id=execution_id
        )

        skill = self._skills.get(name)
        if skill is None:
            error = SkillError(f"Skill '{name}' not found", code="SKILL_NOT_FOUND")
            self._event_bus.publish(
                EventType.SKILL_FAILED, {"skill": name, "error": error.to_dict()}, metadata
            )
            raise error

        context = SkillContext(
            execution_id=execution_id,
            agent_id=self._agent_id,
            session_id=session_id,
            input=parameters,
            logger=self._logger,
            llm=self._llm,
            memory=self._memory,
            tools=self._tools,
            signal=signal,
        )
        self._event_bus.publish(
            EventType.SKILL_EXECUTING, {"skill": skill.name, "input": parameters}, metadata
        )

        start = now_ms()
        try:
            result = await skill.execute(parameters, context)
        except Exception as e:
            end = now_ms()
            info = ErrorInfo.from_value(e)
            self._record("skill", skill.name, parameters, None, False, start, end, info.message)
            self._event_bus.publish(
                EventType.SKILL_FAILED,
                {"skill": skill.name, "error": _error_dict(info), "duration": end - start},
                metadata,
            )
            self._logger.warning("Skill %s raised: %s", skill.name, e)
            if isinstance(e, SkillError):
                raise
            raise SkillError(str(e), code="SKILL_EXECUTION_FAILED") from e

        end = now_ms()
        result = _normalize_skill_result(result)
        error_text = result.error.describe() if result.error else None
        self._record("skill", skill.name, parameters, result.data, result.success, start, end, error_text)

        event_type = EventType.SKILL_COMPLETED if result.success else EventType.SKILL_FAILED
        payload = {"skill": skill.name, "success": result.success, "duration": end - start}
        if result.error:
            payload["error"] = _error_dict(result.error)
        self._event_bus.publish(event_type, payload, metadata)
        return result

    def _record(
        self,
        kind: InvocationKind,
        name: str,
        parameters: Any,
        output: Any,
        success: bool,
        start: int,
        end: int,
        error: str | None,
    ) -> None:
        self._history.append(
            InvocationRecord(
                kind=kind,
                tool=name,
                input=parameters,
                output=output,
                success=success,
                start_time=start,
                end_time=end,
                duration=end - start,
                error=error,
            )
        )


def _error_dict(info: ErrorInfo | None) -> dict | None:
    if info is None:
        return None
    return {"code": info.code, "message": info.message, "recoverable": info.recoverable}


def _normalize_tool_result(result: Any) -> ToolResult:
    if isinstance(result, ToolResult):
        if result.error is not None and not isinstance(result.error, ErrorInfo):
            result.error = ErrorInfo.from_value(result.error)
        return result
    if isinstance(result, dict) and "success" in result:
        error = result.get("error")
        return ToolResult(
            success=bool(result["success"]),
            data=result.get("data"),
            error=ErrorInfo.from_value(error) if error is not None else None,
            meta=result.get("meta"),
        )
    return ToolResult(success=True, data=result)


def _normalize_skill_result(result: Any) -> SkillResult:
    if isinstance(result, SkillResult):
        if result.error is not None and not isinstance(result.error, ErrorInfo):
            result.error = ErrorInfo.from_value(result.error)
        return result
    if isinstance(result, dict) and "success" in result:
        error = result.get("error")
        return SkillResult(
            success=bool(result["success"]),
            data=result.get("data"),
            error=ErrorInfo.from_value(error) if error is not None else None,
            metadata=result.get("metadata"),
        )
    return SkillResult(success=True, data=result)
