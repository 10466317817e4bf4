"""Prompt templates of the reasoning loop."""

from ..models import ThinkingStep
from ..tools import ISkill, ITool

DEFAULT_SYSTEM_PROMPT = """You are an AI assistant that solves problems through reasoning and acting.
You follow the ReAct pattern: Thought, Action, Observation.

Guidelines:
1. Think step by step about the problem
2. Use tools and skills to gather information
3. Independent tools may be executed in parallel
4. When you have enough information, provide the final answer

Answer with one "Thought:" line followed by one or more "Action:" lines:
- For tools: Action: tool:tool_name({"param1": "value1"})
- For skills: Action: skill:skill_name({"param1": "value1"})
- To finish: Action: finish:{"answer": "your final answer"}
- To think more: Action: think:{"thought": "your reasoning"}

Example:
Thought: I need to check the current weather in Tokyo.
Action: tool:weather({"city": "Tokyo"})"""

STEP_PROMPT = """Task: {task}{memory}

Available capabilities:
{capabilities}

Previous steps:
{history}

Step {step}: decide what to do next."""

REFLECTION_PROMPT = """Based on the execution history so far, reflect on:
1. Did we make progress toward the goal?
2. Were there any mistakes or inefficiencies?
3. What should be done differently?

History:
{history}

Provide a brief reflection:"""


def format_history(steps: list[ThinkingStep]) -> str:
    if not steps:
        return "No previous steps."
    return "\n\n".join(
        f"Step {s.step}:\n"
        f"Thought: {s.thought}\n"
        f"Action: {s.action.label()}\n"
        f"Observation: {s.observation}"
        for s in steps
    )


def format_capabilities(tools: list[ITool], skills: list[ISkill]) -> str:
    lines = ["Tools:"]
    lines.extend(f"- {t.name}: {t.description}" for t in tools)
    if not tools:
        lines.append("- (none)")
    lines.append("Skills:")
    lines.extend(f"- {s.name}: {s.description}" for s in skills)
    if not skills:
        lines.append("- (none)")
    return "\n".join(lines)


def format_memory(contents: list[str]) -> str:
    if not contents:
        return ""
    return "\n\nRelevant memories:\n" + "\n".join(f"- {c}" for c in contents)


def build_step_prompt(
    task: str,
    step: int,
    steps: list[ThinkingStep],
    tools: list[ITool],
    skills: list[ISkill],
    memories: list[str],
) -> str:
    return STEP_PROMPT.format(
        task=task,
        memory=format_memory(memories),
        capabilities=format_capabilities(tools, skills),
        history=format_history(steps),
        step=step,
    )


def build_reflection_prompt(steps: list[ThinkingStep]) -> str:
    return REFLECTION_PROMPT.format(history=format_history(steps))
