"""PlanningCoordinator: strategy selection, step execution and plan adjustment."""

import inspect
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Literal, Union

from ..event_bus import IEventBus
from ..llm import ILLMService
from ..logging_config import get_logger
from ..models import (
    ChatMessage,
    ChatRequest,
    EventMetadata,
    EventType,
    Plan,
    PlanResult,
    PlanStep,
    PlanningStrategy,
    new_id,
)
from ..tools import ToolInvocationDispatcher

logger = get_logger(__name__)

Complexity = Literal["high", "structured", "medium", "low", "none"]
PlanAdjuster = Callable[
    [Plan, PlanStep, str | None], Union[Plan | None, Awaitable[Plan | None]]
]

# Checked in this order; the first bucket with a matching keyword wins.
COMPLEXITY_KEYWORDS: dict[str, tuple[str, ...]] = {
    "high": ("multi-step", "complex", "coordinate", "optimize", "design", "architect"),
    "structured": ("step by step", "decompose", "hierarchical", "workflow", "procedure"),
    "medium": ("analyze", "compare", "evaluate", "search", "filter", "transform"),
    "low": ("simple", "quick", "basic", "get", "show", "list"),
}

STRATEGY_BY_COMPLEXITY: dict[str, PlanningStrategy] = {
    "high": PlanningStrategy.TOT,
    "structured": PlanningStrategy.HTN,
    "medium": PlanningStrategy.MCTS,
    "low": PlanningStrategy.REACT,
    "none": PlanningStrategy.HYBRID,
}

STEP_TEMPLATES: dict[PlanningStrategy, tuple[tuple[str, str], ...]] = {
    PlanningStrategy.REACT: (
        ("Think: analyze the goal", "llm"),
        ("Act: execute action", "skill"),
        ("Observe: check result", "skill"),
    ),
    PlanningStrategy.MCTS: (
        ("Analyze goal using MCTS", "skill"),
        ("Execute optimal path", "skill"),
    ),
    PlanningStrategy.TOT: (
        ("Generate thought branches", "skill"),
        ("Evaluate thoughts", "skill"),
        ("Select best thought path", "skill"),
    ),
    PlanningStrategy.HTN: (
        ("Decompose task hierarchically", "skill"),
        ("Order subtasks", "skill"),
        ("Execute primitive tasks", "skill"),
    ),
    PlanningStrategy.HYBRID: (
        ("Initial planning with MCTS", "skill"),
        ("Refine with Tree of Thoughts", "skill"),
        ("Execute with HTN", "skill"),
    ),
}


class PlanningCoordinator:
    """Builds step plans for goals and executes them in declaration order.

    Dependencies between steps are recorded but not resolved. A failed step
    consults adjust_plan() once; a returned plan is executed once more with
    adjusted=True and is never adjusted again.
    """

    def __init__(
        self,
        event_bus: IEventBus,
        dispatcher: ToolInvocationDispatcher,
        agent_id: str,
        llm: ILLMService | None = None,
        adjuster: PlanAdjuster | None = None,
        model: str | None = None,
    ):
        self._event_bus = event_bus
        self._dispatcher = dispatcher
        self._agent_id = agent_id
        self._llm = llm
        self._adjuster = adjuster
        self._model = model

        self._current_plan: Plan | None = None
        self._plan_history: list[Plan] = []

    @property
    def current_plan(self) -> Plan | None:
        return self._current_plan

    @property
    def plan_history(self) -> list[Plan]:
        return list(self._plan_history)

    def assess_complexity(self, goal: str) -> Complexity:
        lower = goal.lower()
        for complexity, keywords in COMPLEXITY_KEYWORDS.items():
            if any(k in lower for k in keywords):
                return complexity
        return "none"

    def select_strategy(self, goal: str) -> PlanningStrategy:
        return STRATEGY_BY_COMPLEXITY[self.assess_complexity(goal)]

    def create_plan(
        self,
        goal: str,
        steps: list[PlanStep | dict] | None = None,
        strategy: PlanningStrategy | None = None,
        session_id: str | None = None,
    ) -> Plan:
        """Create a plan for goal, from explicit steps or the strategy template."""
        strategy = strategy or self.select_strategy(goal)
        if steps is None:
            plan_steps = [
                PlanStep(id=new_id("step"), description=description, type=step_type)
                for description, step_type in STEP_TEMPLATES[strategy]
            ]
        else:
            plan_steps = [_to_step(s) for s in steps]

        plan = Plan(
            id=new_id("plan"),
            goal=goal,
            steps=plan_steps,
            strategy=strategy,
            created_at=datetime.now(timezone.utc),
        )
        self._track(plan)

        logger.info(f"Plan created: {plan.id} strategy={strategy.value} steps={len(plan_steps)}")
        self._event_bus.publish(
            EventType.PLAN_CREATED,
            {"plan": plan.to_dict()},
            EventMetadata(agent_id=self._agent_id, session_id=session_id),
        )
        return plan

    async def execute_plan(self, plan: Plan, session_id: str | None = None) -> PlanResult:
        """Execute plan steps sequentially; step failures never raise."""
        return await self._execute(plan, session_id, adjusted=False)

    async def adjust_plan(
        self, plan: Plan, failed_step: PlanStep, error: str | None
    ) -> Plan | None:
        """Return a replacement plan after a step failure, or None to give up."""
        logger.warning(f"Adjusting plan {plan.id} after step failure: {failed_step.id} ({error})")
        if self._adjuster is None:
            return None

        adjusted = self._adjuster(plan, failed_step, error)
        if inspect.isawaitable(adjusted):
            adjusted = await adjusted
        return adjusted

    async def _execute(self, plan: Plan, session_id: str | None, adjusted: bool) -> PlanResult:
        metadata = EventMetadata(
            agent_id=self._agent_id, session_id=session_id, execution_id=new_id("exec")
        )
        executed: list[PlanStep] = []

        for step in plan.steps:
            if step.status not in ("pending", "ready"):
                continue

            step.status = "running"
            self._event_bus.publish(
                EventType.EXECUTION_STEP_START,
                {"planId": plan.id, "stepId": step.id, "description": step.description, "type": step.type},
                metadata,
            )

            await self._execute_step(step, session_id)
            executed.append(step)

            if step.status == "completed":
                self._event_bus.publish(
                    EventType.EXECUTION_STEP_COMPLETE,
                    {"planId": plan.id, "stepId": step.id, "result": step.result},
                    metadata,
                )
                continue

            self._event_bus.publish(
                EventType.EXECUTION_STEP_ERROR,
                {"planId": plan.id, "stepId": step.id, "error": step.error},
                metadata,
            )

            if not adjusted:
                new_plan = await self.adjust_plan(plan, step, step.error)
                if new_plan is not None:
                    if new_plan is not self._current_plan:
                        self._track(new_plan)
                    self._event_bus.publish(
                        EventType.EXECUTION_RETRY,
                        {"planId": plan.id, "adjustedPlanId": new_plan.id, "failedStepId": step.id},
                        metadata,
                    )
                    return await self._execute(new_plan, session_id, adjusted=True)

            self._event_bus.publish(
                EventType.PLAN_EXECUTED,
                {"planId": plan.id, "success": False, "error": step.error, "adjusted": adjusted},
                metadata,
            )
            return PlanResult(
                success=False, plan=plan, steps=executed, error=step.error, adjusted=adjusted
            )

        output = aggregate_results(executed)
        logger.info(f"Plan executed: {plan.id} ({len(executed)} steps)")
        self._event_bus.publish(
            EventType.PLAN_EXECUTED,
            {"planId": plan.id, "success": True, "adjusted": adjusted},
            metadata,
        )
        return PlanResult(success=True, plan=plan, steps=executed, output=output, adjusted=adjusted)

    async def _execute_step(self, step: PlanStep, session_id: str | None) -> None:
        try:
            if step.type in ("skill", "tool") and step.target:
                result = await self._dispatcher.invoke(
                    step.target, step.input or {}, step.type, session_id=session_id
                )
                step.result = result.data
                if result.success:
                    step.status = "completed"
                else:
                    step.status = "failed"
                    step.error = result.error.describe() if result.error else "step failed"
            elif step.type == "llm" and self._llm is not None:
                prompt = (step.input or {}).get("prompt") or step.description
                response = await self._llm.complete(
                    ChatRequest(messages=[ChatMessage(role="user", content=prompt)], model=self._model)
                )
                step.result = response.content
                step.status = "completed"
            else:
                step.status = "completed"
        except Exception as e:
            logger.warning(f"Plan step {step.id} failed: {e}")
            step.status = "failed"
            step.error = str(e)
            step.result = {"error": str(e)}

    def _track(self, plan: Plan) -> None:
        self._current_plan = plan
        self._plan_history.append(plan)


def aggregate_results(steps: list[PlanStep]) -> Any:
    """Results of completed steps; a single result is returned unwrapped."""
    results = [s.result for s in steps if s.status == "completed" and s.result is not None]
    if len(results) == 1:
        return results[0]
    return results


def _to_step(value: PlanStep | dict) -> PlanStep:
    if isinstance(value, PlanStep):
        return value
    return PlanStep(
        id=value.get("id") or new_id("step"),
        description=value.get("description", ""),
        type=value.get("type", "skill"),
        target=value.get("target"),
        input=value.get("input"),
        dependencies=list(value.get("dependencies", [])),
    )
