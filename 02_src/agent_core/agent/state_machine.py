"""AgentStateMachine: lifecycle controller of a single agent."""

from typing import Any, AsyncIterator, Callable

from ..config import AgentConfig
from ..context import ContextWindowManager, TokenEstimator, make_char_estimator
from ..errors import ExecutionError, InvalidStateError
from ..event_bus import EventBus, EventHandler, IEventBus
from ..llm import ILLMService
from ..logging_config import get_logger
from ..memory import IMemoryService
from ..models import (
    AgentState,
    ChatChoice,
    ChatDelta,
    ChatMessage,
    ChatRequest,
    ChatResponse,
    ChatStreamChunk,
    EventMetadata,
    EventType,
    PlanningStrategy,
    PlanResult,
    PlanStep,
    SkillResult,
    StreamChoice,
    ThinkContext,
    ThinkingResult,
    ThinkingStreamEvent,
    Usage,
    new_id,
)
from ..planning import PlanAdjuster, PlanningCoordinator
from ..thinking import ThinkingEngine
from ..tools import ISkill, ITool, SkillRegistry, ToolInvocationDispatcher, ToolRegistry

logger = get_logger(__name__)

_NON_TERMINAL = frozenset(s for s in AgentState if s != AgentState.DESTROYED)

TRANSITIONS: dict[AgentState, frozenset[AgentState]] = {
    AgentState.IDLE: frozenset({AgentState.INITIALIZING}),
    AgentState.INITIALIZING: frozenset({AgentState.READY}),
    AgentState.READY: frozenset(
        {AgentState.THINKING, AgentState.EXECUTING, AgentState.CHATTING, AgentState.IDLE}
    ),
    AgentState.THINKING: frozenset({AgentState.READY}),
    AgentState.EXECUTING: frozenset({AgentState.READY}),
    AgentState.CHATTING: frozenset({AgentState.READY}),
    AgentState.ERROR: frozenset({AgentState.INITIALIZING, AgentState.IDLE}),
    AgentState.DESTROYED: frozenset(),
}


def can_transition(current: AgentState, target: AgentState) -> bool:
    """Whether current -> target is a legal lifecycle transition."""
    if current in _NON_TERMINAL and target in (AgentState.ERROR, AgentState.DESTROYED):
        return True
    return target in TRANSITIONS[current]


class AgentStateMachine:
    """Top-level agent controller.

    Owns the lifecycle state, sessions and skill/tool registries, and wires
    the event bus, dispatcher, thinking engine and planner together. One
    entry point runs at a time: chat, think and execute calls are only
    accepted in READY (an IDLE agent is initialized first).
    """

    def __init__(
        self,
        llm: ILLMService,
        config: AgentConfig | dict | None = None,
        event_bus: IEventBus | None = None,
        memory: IMemoryService | None = None,
        estimator: TokenEstimator | None = None,
        plan_adjuster: PlanAdjuster | None = None,
    ):
        if config is None:
            config = AgentConfig()
        elif isinstance(config, dict):
            config = AgentConfig.model_validate(config)
        self._config = config

        self._id = config.id or new_id("agent")
        self._state = AgentState.IDLE
        self._owns_bus = event_bus is None
        self._event_bus = event_bus or EventBus()
        self._llm = llm
        self._memory = memory
        self._sessions: dict[str, list[ChatMessage]] = {}

        self._tools = ToolRegistry()
        self._skills = SkillRegistry()
        self._context = ContextWindowManager(
            context_limit=config.context.max_tokens,
            reserved_tokens=config.context.reserved_tokens,
            estimator=estimator or make_char_estimator(config.context.chars_per_token),
        )
        self._dispatcher = ToolInvocationDispatcher(
            self._event_bus,
            self._id,
            self._tools,
            self._skills,
            llm=llm,
            memory=memory,
            history_limit=config.invocation_history_limit,
        )
        self._engine = ThinkingEngine(
            llm,
            self._event_bus,
            self._dispatcher,
            self._tools,
            self._skills,
            self._context,
            config=config.thinking,
            memory=memory,
            model=self._model_name(None),
        )
        self._planner = PlanningCoordinator(
            self._event_bus,
            self._dispatcher,
            self._id,
            llm=llm,
            adjuster=plan_adjuster,
            model=self._model_name(None),
        )

    # Properties

    @property
    def id(self) -> str:
        return self._id

    @property
    def name(self) -> str:
        return self._config.name

    @property
    def config(self) -> AgentConfig:
        return self._config

    @property
    def state(self) -> AgentState:
        return self._state

    @property
    def event_bus(self) -> IEventBus:
        return self._event_bus

    @property
    def context_manager(self) -> ContextWindowManager:
        return self._context

    @property
    def dispatcher(self) -> ToolInvocationDispatcher:
        return self._dispatcher

    @property
    def engine(self) -> ThinkingEngine:
        return self._engine

    @property
    def planner(self) -> PlanningCoordinator:
        return self._planner

    @property
    def tools(self) -> ToolRegistry:
        return self._tools

    @property
    def skills(self) -> SkillRegistry:
        return self._skills

    @property
    def sessions(self) -> list[str]:
        return list(self._sessions)

    # State

    def set_state(self, target: AgentState) -> None:
        """Move to target, publishing state:changed. Same-state is a no-op."""
        current = self._state
        if current == target:
            return
        if not can_transition(current, target):
            raise InvalidStateError(
                f"Illegal transition {current.value} -> {target.value}",
                current=current.value,
                target=target.value,
            )
        self._state = target
        logger.debug(f"Agent {self._id} state: {current.value} -> {target.value}")
        self._event_bus.publish(
            EventType.STATE_CHANGED,
            {"from": current.value, "to": target.value},
            self._metadata(),
        )

    def on(self, event_type: str, handler: EventHandler) -> Callable[[], None]:
        """Subscribe to bus events; returns an unsubscribe callable."""
        return self._event_bus.subscribe(event_type, handler).unsubscribe

    # Lifecycle

    async def initialize(self) -> None:
        """IDLE/ERROR -> INITIALIZING -> READY. No-op when already READY."""
        if self._state == AgentState.READY:
            return
        if self._state not in (AgentState.IDLE, AgentState.ERROR):
            raise InvalidStateError(
                f"Cannot initialize agent in state {self._state.value}",
                current=self._state.value,
                target=AgentState.INITIALIZING.value,
            )

        self.set_state(AgentState.INITIALIZING)
        try:
            logger.info(
                f"Initializing agent {self._id} ({self.name}): "
                f"{len(self._tools)} tools, {len(self._skills)} skills"
            )
            self.set_state(AgentState.READY)
        except Exception as e:
            raise self._fail(EventType.AGENT_ERROR, e, self._metadata()) from e

        self._event_bus.publish(
            EventType.AGENT_INITIALIZED,
            {"name": self.name, "tools": len(self._tools), "skills": len(self._skills)},
            self._metadata(),
        )

    async def reset(self) -> None:
        """READY/ERROR -> IDLE, dropping sessions and invocation history."""
        self.set_state(AgentState.IDLE)
        self._sessions.clear()
        self._dispatcher.clear_history()
        logger.info(f"Agent {self._id} reset")
        self._event_bus.publish(EventType.AGENT_RESET, {}, self._metadata())

    async def destroy(self) -> None:
        """Abort in-flight work, drop sessions and enter DESTROYED (terminal)."""
        if self._state == AgentState.DESTROYED:
            return

        self._engine.abort()
        self._sessions.clear()
        self.set_state(AgentState.DESTROYED)
        logger.info(f"Agent {self._id} destroyed")
        self._event_bus.publish(EventType.AGENT_DESTROYED, {}, self._metadata())
        if self._owns_bus:
            self._event_bus.clear()

    # Registries

    def register_skill(self, skill: ISkill) -> None:
        self._skills.register(skill)
        logger.info(f"Skill registered: {skill.name} ({skill.id})")

    def unregister_skill(self, skill_id: str) -> None:
        self._skills.unregister(skill_id)

    def register_tool(self, tool: ITool) -> None:
        self._tools.register(tool)
        logger.info(f"Tool registered: {tool.name} ({tool.id})")

    def unregister_tool(self, tool_id: str) -> None:
        self._tools.unregister(tool_id)

    # Sessions

    def create_session(self, session_id: str | None = None) -> str:
        session_id = session_id or new_id("session")
        self._sessions.setdefault(session_id, [])
        return session_id

    def get_session_history(self, session_id: str) -> list[ChatMessage]:
        return list(self._sessions.get(session_id, []))

    def clear_session(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)

    # Entry points

    async def chat(self, request: ChatRequest) -> ChatResponse:
        """Answer the request's last user message through a reasoning episode."""
        await self._enter(AgentState.CHATTING)

        chat_id = new_id("chat")
        session_id = self.create_session(request.session_id)
        metadata = self._metadata(session_id=session_id, execution_id=chat_id)

        try:
            user_text, context = self._prepare_chat(request, chat_id, metadata)
            ctx = ThinkContext(
                agent_id=self._id,
                execution_id=chat_id,
                session_id=session_id,
                history=context[:-1],
                max_tokens=request.max_tokens,
            )
            result = await self._engine.think(user_text, ctx)
            response = await self._finish_chat(request, chat_id, ctx, user_text, context, result, metadata)
        except Exception as e:
            raise self._fail(EventType.CHAT_ERROR, e, metadata) from e
        finally:
            self._leave(AgentState.CHATTING)
        return response

    async def chat_stream(self, request: ChatRequest) -> AsyncIterator[ChatStreamChunk]:
        """Stream a chat turn as OpenAI-style chunks.

        Closing the iterator early aborts the underlying episode.
        """
        await self._enter(AgentState.CHATTING)

        chat_id = new_id("chat")
        model = self._model_name(request.model)
        session_id = self.create_session(request.session_id)
        metadata = self._metadata(session_id=session_id, execution_id=chat_id)
        stream = None

        try:
            user_text, context = self._prepare_chat(request, chat_id, metadata)
            ctx = ThinkContext(
                agent_id=self._id,
                execution_id=chat_id,
                session_id=session_id,
                history=context[:-1],
                max_tokens=request.max_tokens,
            )
            stream = self._engine.think_stream(user_text, ctx)
            async for event in stream:
                chunk = _stream_chunk(chat_id, model, event)
                if chunk is not None:
                    yield chunk

            if stream.result is not None:
                await self._finish_chat(
                    request, chat_id, ctx, user_text, context, stream.result, metadata
                )
        except Exception as e:
            raise self._fail(EventType.CHAT_ERROR, e, metadata) from e
        finally:
            if stream is not None:
                await stream.aclose()
            self._leave(AgentState.CHATTING)

    async def think(self, input: str, ctx: ThinkContext | None = None) -> ThinkingResult:
        """Run one reasoning episode outside of a chat."""
        await self._enter(AgentState.THINKING)

        ctx = ctx or ThinkContext(agent_id=self._id, execution_id=new_id("exec"))
        metadata = self._metadata(session_id=ctx.session_id, execution_id=ctx.execution_id)
        try:
            result = await self._engine.think(input, ctx)
        except Exception as e:
            raise self._fail(EventType.THINKING_ERROR, e, metadata) from e
        finally:
            self._leave(AgentState.THINKING)
        return result

    def abort(self) -> None:
        """Abort the running reasoning episode, if any."""
        self._engine.abort()

    async def execute_skill(
        self, skill_id: str, input: Any = None, session_id: str | None = None
    ) -> SkillResult:
        """Execute one registered skill directly."""
        await self._enter(AgentState.EXECUTING)

        metadata = self._metadata(session_id=session_id)
        try:
            result = await self._dispatcher.invoke(skill_id, input, "skill", session_id=session_id)
        except Exception as e:
            raise self._fail(EventType.EXECUTION_ERROR, e, metadata) from e
        finally:
            self._leave(AgentState.EXECUTING)
        return result

    async def execute_plan(
        self,
        goal: str,
        steps: list[PlanStep | dict] | None = None,
        strategy: PlanningStrategy | None = None,
        session_id: str | None = None,
    ) -> PlanResult:
        """Plan toward goal and execute the plan."""
        await self._enter(AgentState.EXECUTING)

        execution_id = new_id("exec")
        metadata = self._metadata(session_id=session_id, execution_id=execution_id)
        try:
            self._event_bus.publish(EventType.EXECUTION_STARTED, {"goal": goal}, metadata)
            plan = self._planner.create_plan(goal, steps, strategy, session_id=session_id)
            result = await self._planner.execute_plan(plan, session_id=session_id)
            self._event_bus.publish(
                EventType.EXECUTION_COMPLETED,
                {"planId": result.plan.id, "success": result.success, "adjusted": result.adjusted},
                metadata,
            )
        except Exception as e:
            raise self._fail(EventType.EXECUTION_ERROR, e, metadata) from e
        finally:
            self._leave(AgentState.EXECUTING)
        return result

    # Internals

    async def _enter(self, target: AgentState) -> None:
        if self._state == AgentState.IDLE:
            await self.initialize()
        if self._state != AgentState.READY:
            raise InvalidStateError(
                f"Agent is {self._state.value}, cannot start {target.value}",
                current=self._state.value,
                target=target.value,
            )
        self.set_state(target)

    def _leave(self, working: AgentState) -> None:
        # Destroy or a failure may already have moved the agent on
        if self._state == working:
            self.set_state(AgentState.READY)

    def _fail(self, event_type: str, error: Exception, metadata: EventMetadata) -> ExecutionError:
        logger.error(
            f"Agent {self._id} failed ({event_type}): {error}",
            exc_info=True,
            extra={"context": metadata.to_dict()},
        )
        if self._state != AgentState.DESTROYED:
            self.set_state(AgentState.ERROR)
        self._event_bus.publish(
            event_type, {"error": str(error), "type": type(error).__name__}, metadata
        )
        return ExecutionError(str(error), code=getattr(error, "code", None))

    def _prepare_chat(
        self, request: ChatRequest, chat_id: str, metadata: EventMetadata
    ) -> tuple[str, list[ChatMessage]]:
        if not request.messages or request.messages[-1].role != "user":
            raise ValueError("Last message must be from user")

        self._event_bus.publish(
            EventType.CHAT_STARTED,
            {"chatId": chat_id, "messages": [m.to_dict() for m in request.messages]},
            metadata,
        )
        history = self._sessions.get(metadata.session_id, [])
        context = self._context.manage([*history, *request.messages])
        return request.messages[-1].text, context

    async def _finish_chat(
        self,
        request: ChatRequest,
        chat_id: str,
        ctx: ThinkContext,
        user_text: str,
        context: list[ChatMessage],
        result: ThinkingResult,
        metadata: EventMetadata,
    ) -> ChatResponse:
        message = ChatMessage(
            role="assistant",
            content=result.answer,
            metadata={
                "thinkingSteps": result.total_steps,
                "toolsUsed": list(result.tools_used),
                "reflections": list(result.reflections),
            },
        )
        destroyed = self._state == AgentState.DESTROYED
        if not destroyed:
            self._sessions.setdefault(ctx.session_id, []).extend([*request.messages, message])
            await self._engine.remember_turn(user_text, result.answer, ctx)

        prompt_tokens = self._context.estimate(context)
        completion_tokens = self._context.estimate([message])
        usage = Usage(
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            total_tokens=prompt_tokens + completion_tokens,
        )

        if not destroyed:
            self._event_bus.publish(
                EventType.CHAT_COMPLETED,
                {
                    "chatId": chat_id,
                    "response": result.answer,
                    "finishReason": result.finish_reason.value,
                    "tokensUsed": usage.total_tokens,
                },
                metadata,
            )
        return ChatResponse(
            id=chat_id,
            model=self._model_name(request.model),
            choices=[ChatChoice(index=0, message=message, finish_reason=result.finish_reason.value)],
            usage=usage,
        )

    def _metadata(self, session_id: str | None = None, execution_id: str | None = None) -> EventMetadata:
        return EventMetadata(agent_id=self._id, session_id=session_id, execution_id=execution_id)

    def _model_name(self, requested: str | None) -> str:
        return requested or self._config.model


def _stream_chunk(chat_id: str, model: str, event: ThinkingStreamEvent) -> ChatStreamChunk | None:
    data = event.data or {}
    finish_reason = None

    if event.type == "start":
        delta = ChatDelta(role="assistant", content="")
    elif event.type == "thought":
        delta = ChatDelta(content=f"[thinking] {data['thought']}\n")
    elif event.type == "actions":
        labels = [f"{a['type']}:{a['name']}" for a in data["actions"] if a["type"] != "finish"]
        if not labels:
            return None
        delta = ChatDelta(content=f"[executing] {', '.join(labels)}\n")
    elif event.type == "observations":
        delta = ChatDelta(content=f"[result] {'; '.join(data['observations'])}\n")
    elif event.type == "complete":
        result: ThinkingResult = data["result"]
        delta = ChatDelta(content=f"\n{result.answer}")
        finish_reason = result.finish_reason.value
    else:
        return None

    return ChatStreamChunk(
        id=chat_id,
        model=model,
        choices=[StreamChoice(index=0, delta=delta, finish_reason=finish_reason)],
    )
