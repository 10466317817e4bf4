"""Wires storage, bus, tracker, memory and the agent into one runtime."""

import os
from typing import Protocol, TypeVar

from .agent import AgentStateMachine
from .config import AgentConfig, resolve_db_path
from .event_bus import EventBus
from .llm import ILLMService, LLMProvider
from .logging_config import get_logger
from .memory import IMemoryService, MemoryService
from .storage import IStorage, Storage
from .tracker import ITracker, Tracker

logger = get_logger(__name__)

T = TypeVar("T")


class IApplication(Protocol):
    """Runtime lifecycle as seen by the HTTP layer."""

    async def start(self) -> None:
        ...

    async def stop(self) -> None:
        ...

    async def reset(self) -> None:
        """Return the agent to a fresh READY state with empty storage."""
        ...

    @property
    def storage(self) -> IStorage: ...

    @property
    def agent(self) -> AgentStateMachine: ...


class Application:
    """
    Agent runtime.

    ``llm`` and ``config`` are injectable for tests. Without them the
    Anthropic provider and ``AgentConfig.from_env()`` are used, and the
    database comes from DATABASE_URL.
    """

    def __init__(
        self,
        db_path: str | None = None,
        llm: ILLMService | None = None,
        config: AgentConfig | None = None,
    ):
        self._db_path = resolve_db_path(os.getenv("DATABASE_URL") if db_path is None else db_path)
        self._config = config
        self._llm: ILLMService | None = llm

        self._storage: IStorage | None = None
        self._event_bus: EventBus | None = None
        self._tracker: ITracker | None = None
        self._memory: IMemoryService | None = None
        self._agent: AgentStateMachine | None = None

    async def start(self) -> None:
        logger.info(f"Starting agent runtime (db: {self._db_path})")

        self._storage = Storage(self._db_path)
        await self._storage.init()

        # Tracker subscribes before anything can publish
        self._event_bus = EventBus()
        self._tracker = Tracker(self._event_bus, self._storage)
        await self._tracker.start()

        if self._llm is None:
            self._llm = LLMProvider()
        self._memory = MemoryService(self._storage)

        self._agent = AgentStateMachine(
            self._llm,
            config=self._config or AgentConfig.from_env(),
            event_bus=self._event_bus,
            memory=self._memory,
        )
        await self._agent.initialize()
        logger.info(f"Agent runtime started, agent {self._agent.id} is {self._agent.state.value}")

    async def stop(self) -> None:
        if self._agent:
            await self._agent.destroy()
        if self._tracker:
            await self._tracker.stop()
        # Flush trace writes still in flight before the connection goes
        if self._event_bus:
            await self._event_bus.wait_pending()
        if self._storage:
            await self._storage.close()
        logger.info("Agent runtime stopped")

    async def reset(self) -> None:
        # Raises InvalidStateError while the agent is busy
        if self._agent:
            await self._agent.reset()

        if self._event_bus:
            await self._event_bus.wait_pending()
        if self._storage:
            await self._storage.clear()

        if self._agent:
            await self._agent.initialize()
        logger.info("Agent runtime reset")

    @property
    def storage(self) -> IStorage:
        return _require(self._storage)

    @property
    def agent(self) -> AgentStateMachine:
        return _require(self._agent)


def _require(component: T | None) -> T:
    if component is None:
        raise RuntimeError("Application not started")
    return component
