"""Import duplicate detection package."""

from budget_manager.dedup.checker import DuplicateChecker, normalize_description, round_amount

__all__ = ["DuplicateChecker", "normalize_description", "round_amount"]
