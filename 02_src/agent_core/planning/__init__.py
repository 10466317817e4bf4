"""Planning module."""

from .coordinator import (
    COMPLEXITY_KEYWORDS,
    STRATEGY_BY_COMPLEXITY,
    PlanAdjuster,
    PlanningCoordinator,
    aggregate_results,
)

__all__ = [
    "COMPLEXITY_KEYWORDS",
    "STRATEGY_BY_COMPLEXITY",
    "PlanAdjuster",
    "PlanningCoordinator",
    "aggregate_results",
]
