"""Agent module."""

from .state_machine import TRANSITIONS, AgentStateMachine, can_transition

__all__ = ["TRANSITIONS", "AgentStateMachine", "can_transition"]
