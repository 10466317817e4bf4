"""ThinkingEngine: the bounded ReAct reasoning loop."""

import asyncio
import json
from dataclasses import dataclass, field
from typing import Any, Callable

from ..config import ThinkingConfig
from ..context import ContextWindowManager
from ..errors import AgentError
from ..event_bus import IEventBus
from ..llm import ILLMService
from ..logging_config import get_logger
from ..memory import IMemoryService
from ..models import (
    Action,
    ActionType,
    ChatMessage,
    ChatRequest,
    EventMetadata,
    EventType,
    FinishReason,
    MemoryEntry,
    SkillResult,
    ThinkContext,
    ThinkingResult,
    ThinkingStep,
    ThinkingStreamEvent,
    ToolResult,
    now_ms,
)
from ..tools import InvocationCall, SkillRegistry, ToolInvocationDispatcher, ToolRegistry
from .parser import parse_response
from .prompts import DEFAULT_SYSTEM_PROMPT, build_reflection_prompt, build_step_prompt

logger = get_logger(__name__)

MEMORY_SEARCH_LIMIT = 5
MEMORY_MIN_IMPORTANCE = 0.5
TURN_IMPORTANCE = 0.7
STEP_IMPORTANCE = 0.8
REFLECTION_TEMPERATURE = 0.5

StreamSink = Callable[[ThinkingStreamEvent], None]


@dataclass
class EngineState:
    """Snapshot of the current (or last) episode."""

    running: bool = False
    aborted: bool = False
    current_step: int = 0
    steps: list[ThinkingStep] = field(default_factory=list)
    tools_used: list[str] = field(default_factory=list)
    reflections: list[str] = field(default_factory=list)


class _Halt(Exception):
    """An unrecoverable tool or skill error ends the episode."""


class ThinkingEngine:
    """Drives one reasoning episode at a time: think, act, observe, reflect."""

    def __init__(
        self,
        llm: ILLMService,
        event_bus: IEventBus,
        dispatcher: ToolInvocationDispatcher,
        tools: ToolRegistry,
        skills: SkillRegistry,
        context_manager: ContextWindowManager,
        config: ThinkingConfig | None = None,
        memory: IMemoryService | None = None,
        model: str | None = None,
    ):
        self._llm = llm
        self._event_bus = event_bus
        self._dispatcher = dispatcher
        self._tools = tools
        self._skills = skills
        self._context = context_manager
        self._config = config or ThinkingConfig()
        self._memory = memory
        self._model = model

        self._state = EngineState()
        self._signal = asyncio.Event()

    @property
    def state(self) -> EngineState:
        return EngineState(
            running=self._state.running,
            aborted=self._state.aborted,
            current_step=self._state.current_step,
            steps=list(self._state.steps),
            tools_used=list(self._state.tools_used),
            reflections=list(self._state.reflections),
        )

    @property
    def running(self) -> bool:
        return self._state.running

    def abort(self) -> None:
        """Request the running episode to stop at its next checkpoint."""
        if self._state.running:
            logger.info(f"Abort requested at step {self._state.current_step}")
        self._signal.set()

    async def think(self, input: str, ctx: ThinkContext) -> ThinkingResult:
        """Run one episode to completion, abort or step exhaustion."""
        return await self._run(input, ctx, None)

    def think_stream(self, input: str, ctx: ThinkContext) -> "ThinkingStream":
        """Run one episode, yielding ThinkingStreamEvents as it progresses."""
        return ThinkingStream(self, input, ctx)

    async def remember_turn(self, user_text: str, answer: str, ctx: ThinkContext) -> None:
        """Persist a finished chat turn to memory. Failures are logged."""
        if self._memory is None:
            return
        entry = MemoryEntry(
            content=f"User: {user_text}\nAssistant: {answer}",
            type="message",
            importance=TURN_IMPORTANCE,
            metadata={"sessionId": ctx.session_id, "executionId": ctx.execution_id},
        )
        try:
            await self._memory.store(entry)
        except Exception as e:
            logger.warning(f"Failed to store chat turn in memory: {e}")
            return
        self._event_bus.publish(
            EventType.MEMORY_STORED,
            {"id": entry.id, "type": entry.type, "importance": entry.importance},
            EventMetadata(**ctx.metadata()),
        )

    # Episode

    async def _run(self, input: str, ctx: ThinkContext, sink: StreamSink | None) -> ThinkingResult:
        self._signal = asyncio.Event()
        self._state = EngineState(running=True)
        state = self._state
        metadata = EventMetadata(**ctx.metadata())
        started = now_ms()

        def emit(event_type: str, step: int | None = None, data: Any = None) -> None:
            if sink is not None:
                sink(ThinkingStreamEvent(type=event_type, step=step, data=data))

        logger.info(f"Thinking started: {input[:100]}")
        self._event_bus.publish(
            EventType.THINKING_STARTED,
            {"input": input, "maxSteps": self._config.max_steps},
            metadata,
        )
        emit("start", data={"input": input})

        try:
            memories = await self._recall(input)

            for step in range(1, self._config.max_steps + 1):
                if self._signal.is_set():
                    return self._aborted(state, started, metadata, emit)

                state.current_step = step
                step_started = now_ms()

                try:
                    response = await self._llm.complete(self._build_request(input, step, ctx, memories))
                except Exception as e:
                    logger.error(
                        f"LLM call failed at step {step}: {e}",
                        exc_info=True,
                        extra={"context": metadata.to_dict()},
                    )
                    self._event_bus.publish(
                        EventType.THINKING_FAILED, {"step": step, "error": str(e)}, metadata
                    )
                    emit("error", step, {"error": str(e)})
                    raise

                if self._signal.is_set():
                    return self._aborted(state, started, metadata, emit)

                parsed = parse_response(response.content)
                emit("thought", step, {"thought": parsed.thought})
                emit("actions", step, {"actions": [a.to_dict() for a in parsed.actions]})

                finish = next((a for a in parsed.actions if a.type == ActionType.FINISH), None)
                if finish is not None:
                    answer = _answer_text(finish.parameters.get("answer"))
                    self._record_step(
                        state, step, parsed.thought, finish, answer, step_started, metadata
                    )
                    emit("observations", step, {"observations": [answer]})
                    result = self._result(state, started, True, answer, FinishReason.STOP)
                    return await self._complete(result, ctx, metadata, emit)

                try:
                    observations = await self._execute(parsed.actions, step, ctx)
                except _Halt as halt:
                    if self._signal.is_set():
                        return self._aborted(state, started, metadata, emit)
                    primary = _primary_action(parsed.actions)
                    self._record_step(
                        state, step, parsed.thought, primary, str(halt), step_started, metadata
                    )
                    emit("observations", step, {"observations": [str(halt)]})
                    result = self._result(
                        state, started, False, _partial_answer(state.steps),
                        FinishReason.ERROR, error=str(halt),
                    )
                    return await self._complete(result, ctx, metadata, emit)

                if self._signal.is_set():
                    return self._aborted(state, started, metadata, emit)

                observation = "\n".join(observations)
                primary = _primary_action(parsed.actions)
                self._record_step(
                    state, step, parsed.thought, primary, observation, step_started, metadata
                )
                emit("observations", step, {"observations": observations})
                await self._remember_step(step, parsed.thought, parsed.actions, observations)

            result = self._result(
                state, started, False, _partial_answer(state.steps),
                FinishReason.LENGTH, error="Max steps reached",
            )
            return await self._complete(result, ctx, metadata, emit)
        finally:
            state.running = False

    async def _recall(self, input: str) -> list[str]:
        if self._memory is None:
            return []
        try:
            entries = await self._memory.search(input, MEMORY_SEARCH_LIMIT)
        except Exception as e:
            logger.warning(f"Memory search failed: {e}")
            return []
        return [e.content for e in entries if e.importance > MEMORY_MIN_IMPORTANCE]

    async def _remember_step(
        self, step: int, thought: str, actions: list[Action], observations: list[str]
    ) -> None:
        if self._memory is None:
            return
        entry = MemoryEntry(
            content=(
                f"Step {step}: {thought}\n"
                f"Actions: {', '.join(a.label() for a in actions)}\n"
                f"Observations: {'; '.join(observations)}"
            ),
            type="thought",
            importance=STEP_IMPORTANCE,
        )
        try:
            await self._memory.store(entry)
        except Exception as e:
            logger.warning(f"Failed to store step {step} in memory: {e}")

    def _build_request(
        self, input: str, step: int, ctx: ThinkContext, memories: list[str]
    ) -> ChatRequest:
        prompt = build_step_prompt(
            input,
            step,
            self._state.steps,
            self._tools.values(),
            self._skills.values(),
            memories,
        )
        conversation = self._context.manage([*ctx.history, ChatMessage(role="user", content=prompt)])
        system = ChatMessage(role="system", content=self._config.system_prompt or DEFAULT_SYSTEM_PROMPT)
        return ChatRequest(
            messages=[system, *conversation],
            model=self._model,
            temperature=self._config.temperature,
            max_tokens=ctx.max_tokens,
        )

    async def _execute(self, actions: list[Action], step: int, ctx: ThinkContext) -> list[str]:
        executable = [a for a in actions if a.executable]
        if self._config.enable_parallel_tools and len(executable) > 1:
            return await self._execute_parallel(actions, step, ctx)

        observations = []
        for action in actions:
            observations.append(await self._execute_one(action, step, ctx))
            if self._signal.is_set():
                break
        return observations

    async def _execute_parallel(
        self, actions: list[Action], step: int, ctx: ThinkContext
    ) -> list[str]:
        executable = [a for a in actions if a.executable]
        logger.info(f"Step {step}: executing {len(executable)} actions in parallel")
        for action in executable:
            self._track_tool(action.name)

        outcomes = await self._dispatcher.invoke_many(
            [InvocationCall(a.name, a.parameters, a.type.value) for a in executable],
            session_id=ctx.session_id,
            signal=self._signal,
        )

        # Outcomes come back in call order, so walk them alongside the actions
        pending = iter(outcomes)
        observations = []
        for action in actions:
            if not action.executable:
                observations.append(_passive_observation(action))
                continue
            outcome = next(pending)
            if outcome.error is not None:
                self._check_recoverable(outcome.error)
                observations.append(f"Error: {outcome.error}")
            else:
                observations.append(self._observe(outcome.result))
        return observations

    async def _execute_one(self, action: Action, step: int, ctx: ThinkContext) -> str:
        if not action.executable:
            return _passive_observation(action)

        logger.info(f"Step {step}: executing {action.label()}")
        self._track_tool(action.name)
        try:
            result = await self._dispatcher.invoke(
                action.name,
                action.parameters,
                action.type.value,
                session_id=ctx.session_id,
                signal=self._signal,
            )
        except Exception as e:
            logger.warning(f"Action {action.label()} failed: {e}")
            self._check_recoverable(e)
            return f"Error: {e}"
        return self._observe(result)

    def _observe(self, result: ToolResult | SkillResult) -> str:
        if result.success:
            data = result.data if result.data is not None else {"success": True}
            return json.dumps(data, ensure_ascii=False, default=str)
        if result.error is not None:
            if not result.error.recoverable:
                raise _Halt(f"Error: {result.error.describe()}")
            return f"Error: {result.error.describe()}"
        return "Error: action failed"

    def _check_recoverable(self, error: Exception) -> None:
        if isinstance(error, AgentError) and not error.recoverable:
            raise _Halt(f"Error: {error}") from error

    def _track_tool(self, name: str) -> None:
        if name not in self._state.tools_used:
            self._state.tools_used.append(name)

    def _record_step(
        self,
        state: EngineState,
        step: int,
        thought: str,
        action: Action,
        observation: str,
        step_started: int,
        metadata: EventMetadata,
    ) -> ThinkingStep:
        record = ThinkingStep(
            step=step,
            thought=thought,
            action=action,
            observation=observation,
            duration=now_ms() - step_started,
        )
        state.steps.append(record)
        logger.debug(f"Step {step} recorded: {action.label()}")
        self._event_bus.publish(EventType.THINKING_STEP, {"step": record.to_dict()}, metadata)
        return record

    # Termination

    def _result(
        self,
        state: EngineState,
        started: int,
        success: bool,
        answer: str,
        finish_reason: FinishReason,
        error: str | None = None,
    ) -> ThinkingResult:
        return ThinkingResult(
            success=success,
            answer=answer,
            steps=list(state.steps),
            total_steps=len(state.steps),
            total_duration=now_ms() - started,
            tools_used=list(state.tools_used),
            finish_reason=finish_reason,
            reflections=state.reflections,
            error=error,
        )

    async def _complete(
        self,
        result: ThinkingResult,
        ctx: ThinkContext,
        metadata: EventMetadata,
        emit: Callable[..., None],
    ) -> ThinkingResult:
        if self._config.enable_reflection and result.steps:
            reflection = await self._reflect(result.steps, ctx, metadata)
            if reflection:
                emit("reflection", len(result.steps), {"reflection": reflection})

        logger.info(
            f"Thinking finished: reason={result.finish_reason.value}, "
            f"steps={result.total_steps}, duration={result.total_duration}ms"
        )
        self._event_bus.publish(EventType.THINKING_COMPLETED, {"result": result.to_dict()}, metadata)
        emit("complete", result.total_steps, {"result": result})
        return result

    async def _reflect(
        self, steps: list[ThinkingStep], ctx: ThinkContext, metadata: EventMetadata
    ) -> str | None:
        request = ChatRequest(
            messages=[
                ChatMessage(role="system", content=self._config.system_prompt or DEFAULT_SYSTEM_PROMPT),
                ChatMessage(role="user", content=build_reflection_prompt(steps)),
            ],
            model=self._model,
            temperature=REFLECTION_TEMPERATURE,
        )
        try:
            response = await self._llm.complete(request)
        except Exception as e:
            logger.warning(f"Reflection failed: {e}")
            return None

        reflection = response.content.strip()
        if not reflection:
            return None
        self._state.reflections.append(reflection)
        self._event_bus.publish(
            EventType.THINKING_REFLECTED, {"step": len(steps), "reflection": reflection}, metadata
        )
        return reflection

    def _aborted(
        self,
        state: EngineState,
        started: int,
        metadata: EventMetadata,
        emit: Callable[..., None],
    ) -> ThinkingResult:
        state.aborted = True
        result = self._result(
            state, started, False, _partial_answer(state.steps),
            FinishReason.ABORTED, error="Thinking process aborted",
        )
        logger.info(f"Thinking aborted after {result.total_steps} steps")
        self._event_bus.publish(
            EventType.THINKING_ABORTED, {"step": state.current_step, "result": result.to_dict()}, metadata
        )
        emit("complete", result.total_steps, {"result": result})
        return result


class ThinkingStream:
    """A finite, non-restartable stream of one episode's events.

    The episode starts on first iteration. aclose() aborts it and waits for
    it to settle. An exception raised by the episode is re-raised after its
    "error" event has been yielded.
    """

    _DONE = object()

    def __init__(self, engine: ThinkingEngine, input: str, ctx: ThinkContext):
        self._engine = engine
        self._input = input
        self._ctx = ctx
        self._queue: asyncio.Queue = asyncio.Queue()
        self._task: asyncio.Task | None = None
        self._finished = False
        self.result: ThinkingResult | None = None

    def __aiter__(self) -> "ThinkingStream":
        return self

    async def __anext__(self) -> ThinkingStreamEvent:
        if self._finished:
            raise StopAsyncIteration
        if self._task is None:
            self._task = asyncio.create_task(self._drive())

        item = await self._queue.get()
        if item is self._DONE:
            self._finished = True
            await asyncio.wait({self._task})
            error = self._task.exception()
            if error is not None:
                raise error
            raise StopAsyncIteration
        return item

    async def aclose(self) -> None:
        """Abort the episode and release the stream."""
        if self._finished:
            return
        self._finished = True
        if self._task is None:
            return
        self._engine.abort()
        try:
            await self._task
        except Exception as e:
            logger.debug(f"Stream closed after episode error: {e}")

    async def _drive(self) -> None:
        try:
            self.result = await self._engine._run(self._input, self._ctx, self._queue.put_nowait)
        finally:
            self._queue.put_nowait(self._DONE)


def _answer_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False, default=str)


def _primary_action(actions: list[Action]) -> Action:
    return next((a for a in actions if a.executable), actions[0])


def _passive_observation(action: Action) -> str:
    if action.type == ActionType.REFLECT:
        return f"Reflection: {action.parameters.get('reflection', '')}"
    return f"Thought: {action.parameters.get('thought') or action.name}"


def _partial_answer(steps: list[ThinkingStep]) -> str:
    if not steps:
        return "No progress made."
    return f"Partial result after {len(steps)} steps: {steps[-1].observation}"
