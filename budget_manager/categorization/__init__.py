"""Rule-based categorisation package."""

from budget_manager.categorization.matcher import RuleMatcher

__all__ = ["RuleMatcher"]
