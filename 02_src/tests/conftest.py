"""Pytest configuration and fixtures."""

import inspect
import sys
from pathlib import Path
from typing import Any, Callable
from unittest.mock import AsyncMock, Mock

import pytest
import pytest_asyncio

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from agent_core.models import (  # noqa: E402
    ChatChoice,
    ChatMessage,
    ChatResponse,
    SkillResult,
    ToolResult,
)


def llm_response(text: str) -> ChatResponse:
    """Build a ChatResponse carrying text."""
    return ChatResponse(
        id="resp-test",
        model="test-model",
        choices=[
            ChatChoice(
                index=0,
                message=ChatMessage(role="assistant", content=text),
                finish_reason="stop",
            )
        ],
    )


class StubTool:
    """Tool whose behaviour is a plain function of its input."""

    def __init__(self, name: str, handler: Callable[[Any], Any], description: str = "stub tool"):
        self.id = f"tool-{name}"
        self.name = name
        self.description = description
        self.calls: list = []
        self._handler = handler

    async def run(self, input, context):
        self.calls.append((input, context))
        result = self._handler(input)
        if inspect.isawaitable(result):
            result = await result
        return result


class StubSkill:
    """Skill whose behaviour is a plain function of its input."""

    def __init__(self, name: str, handler: Callable[[Any], Any], description: str = "stub skill"):
        self.id = f"skill-{name}"
        self.name = name
        self.description = description
        self.calls: list = []
        self._handler = handler

    async def execute(self, input, context):
        self.calls.append((input, context))
        result = self._handler(input)
        if inspect.isawaitable(result):
            result = await result
        return result


@pytest_asyncio.fixture
async def storage():
    """Create in-memory storage for testing."""
    from agent_core.storage import Storage

    st = Storage(":memory:")
    await st.init()
    yield st
    await st.close()


@pytest.fixture
def event_bus():
    """Create a fresh EventBus per test."""
    from agent_core.event_bus import EventBus

    return EventBus()


@pytest.fixture
def recorded(event_bus):
    """Every event published on event_bus, in order."""
    from agent_core.models import WILDCARD

    events = []
    event_bus.subscribe(WILDCARD, events.append)
    return events


@pytest.fixture
def tracker(storage, event_bus):
    """Create Tracker with storage and event bus."""
    from agent_core.tracker import Tracker

    return Tracker(event_bus=event_bus, storage=storage)


@pytest.fixture
def make_llm():
    """Factory for a mock LLM replying with the given texts in order.

    The last reply is repeated once the others are used up.
    """

    def factory(*replies: str) -> Mock:
        queue = list(replies)

        async def complete(request):
            text = queue.pop(0) if len(queue) > 1 else queue[0]
            return llm_response(text)

        llm = Mock()
        llm.complete = AsyncMock(side_effect=complete)
        return llm

    return factory


@pytest.fixture
def mock_llm(make_llm):
    """Create mock LLM that always finishes with 'Test response'."""
    return make_llm("Thought: done\nAction: finish:Test response")


@pytest.fixture
def make_tool():
    """Factory for StubTool."""
    return StubTool


@pytest.fixture
def make_skill():
    """Factory for StubSkill."""
    return StubSkill


@pytest.fixture
def echo_tool():
    """Tool returning its input as data."""
    return StubTool("echo", lambda input: ToolResult(success=True, data=input), "Echo the input")


@pytest.fixture
def echo_skill():
    """Skill returning its input as data."""
    return StubSkill("echo_skill", lambda input: SkillResult(success=True, data=input))


@pytest.fixture
def registries():
    """Empty tool and skill registries."""
    from agent_core.tools import SkillRegistry, ToolRegistry

    return ToolRegistry(), SkillRegistry()


@pytest.fixture
def dispatcher(event_bus, registries):
    """Create ToolInvocationDispatcher over empty registries."""
    from agent_core.tools import ToolInvocationDispatcher

    tools, skills = registries
    return ToolInvocationDispatcher(event_bus, "agent-test", tools, skills)


@pytest.fixture
def make_engine(event_bus, registries, dispatcher):
    """Factory for ThinkingEngine sharing the test bus and registries."""
    from agent_core.config import ThinkingConfig
    from agent_core.context import ContextWindowManager
    from agent_core.thinking import ThinkingEngine

    def factory(llm, memory=None, **thinking):
        thinking.setdefault("enable_reflection", False)
        tools, skills = registries
        return ThinkingEngine(
            llm,
            event_bus,
            dispatcher,
            tools,
            skills,
            ContextWindowManager(),
            config=ThinkingConfig(**thinking),
            memory=memory,
        )

    return factory


@pytest.fixture
def make_agent(event_bus):
    """Factory for AgentStateMachine on the test bus."""
    from agent_core.agent import AgentStateMachine

    def factory(llm, memory=None, **thinking):
        thinking.setdefault("enable_reflection", False)
        return AgentStateMachine(
            llm,
            config={"id": "agent-test", "name": "test", "thinking": thinking},
            event_bus=event_bus,
            memory=memory,
        )

    return factory


@pytest.fixture
def think_context():
    """ThinkContext for engine tests."""
    from agent_core.models import ThinkContext

    return ThinkContext(agent_id="agent-test", execution_id="exec-test", session_id="session-test")


@pytest.fixture
def mock_memory():
    """Create mock memory service."""
    memory = Mock()
    memory.store = AsyncMock()
    memory.search = AsyncMock(return_value=[])
    return memory
