"""Tools and skills module."""

from .dispatcher import (
    InvocationCall,
    InvocationOutcome,
    InvocationRecord,
    ToolInvocationDispatcher,
)
from .registry import ISkill, ITool, SkillRegistry, ToolRegistry

__all__ = [
    "ISkill",
    "ITool",
    "InvocationCall",
    "InvocationOutcome",
    "InvocationRecord",
    "SkillRegistry",
    "ToolInvocationDispatcher",
    "ToolRegistry",
]
