"""Import validation package."""

from budget_manager.validation.validator import ImportRowValidator, parse_amount, parse_date

__all__ = ["ImportRowValidator", "parse_amount", "parse_date"]
