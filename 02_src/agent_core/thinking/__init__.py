"""Thinking module: the ReAct reasoning loop."""

from .engine import EngineState, ThinkingEngine, ThinkingStream
from .parser import ActionParseError, ParsedOutput, parse_action_line, parse_response, validate_action

__all__ = [
    "ActionParseError",
    "EngineState",
    "ParsedOutput",
    "ThinkingEngine",
    "ThinkingStream",
    "parse_action_line",
    "parse_response",
    "validate_action",
]
