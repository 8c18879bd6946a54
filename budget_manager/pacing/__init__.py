"""Budget pacing package."""

from budget_manager.pacing.calculator import (
    BudgetPacingCalculator,
    Clock,
    classify_status,
    plan_budget_copy,
    previous_month,
)

__all__ = [
    "BudgetPacingCalculator",
    "Clock",
    "classify_status",
    "plan_budget_copy",
    "previous_month",
]
