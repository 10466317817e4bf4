"""Skill and tool contracts and their per-agent registries."""

from typing import Any, Generic, Protocol, TypeVar

from ..models import SkillContext, SkillResult, ToolContext, ToolResult


class ITool(Protocol):
    """A tool the agent can invoke."""

    id: str
    name: str
    description: str

    async def run(self, input: Any, context: ToolContext) -> ToolResult:
        """Run the tool."""
        ...


class ISkill(Protocol):
    """A skill the agent can execute."""

    id: str
    name: str
    description: str

    async def execute(self, input: Any, context: SkillContext) -> SkillResult:
        """Execute the skill."""
        ...


T = TypeVar("T")


class _Registry(Generic[T]):
    """Id-keyed map owned by a single agent."""

    def __init__(self, items: list[T] | None = None):
        self._items: dict[str, T] = {}
        for item in items or []:
            self.register(item)

    def register(self, item: T) -> None:
        self._items[item.id] = item

    def unregister(self, item_id: str) -> None:
        self._items.pop(item_id, None)

    def get(self, key: str) -> T | None:
        """Look up by id, then by name."""
        item = self._items.get(key)
        if item is not None:
            return item
        for candidate in self._items.values():
            if candidate.name == key:
                return candidate
        return None

    def values(self) -> list[T]:
        return list(self._items.values())

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None

    def __len__(self) -> int:
        return len(self._items)


class ToolRegistry(_Registry[ITool]):
    """Tools available to one agent."""


class SkillRegistry(_Registry[ISkill]):
    """Skills available to one agent."""
