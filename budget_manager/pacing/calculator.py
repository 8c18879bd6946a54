"""
Budget Pacing Calculator

Compares actual spend-to-date against a linearly prorated expectation
for the elapsed part of the month.

DESIGN DECISION: "Today" comes from an injected clock.
The calculator never reads the wall clock itself, so a test can pin
any date and the same inputs always give the same summary.

A month other than the clock's current month counts as fully elapsed:
past months are judged on the whole budget, and so are future ones.

Status precedence, evaluated in order:
1. OVER  - spent more than the whole budget
2. WATCH - spent more than the prorated expectation
3. OK    - everything else, including every zero-budget category
"""

import calendar
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Callable, Iterable, Optional, Sequence

from budget_manager.models.ledger import (
    BudgetPacing,
    BudgetStatus,
    Category,
    CategoryBudgetSummary,
    MonthlyBudget,
    Transaction,
)


ZERO = Decimal("0")
HUNDRED = Decimal("100")

Clock = Callable[[], date]


def previous_month(year: int, month: int) -> tuple[int, int]:
    """(year, month) of the calendar month before, rolling January back a year."""
    if month == 1:
        return year - 1, 12
    return year, month - 1


def classify_status(
    budget_amount: Decimal,
    spent_amount: Decimal,
    expected_to_date: Decimal,
) -> BudgetStatus:
    if budget_amount > 0 and spent_amount > budget_amount:
        return BudgetStatus.OVER
    if budget_amount > 0 and spent_amount > expected_to_date:
        return BudgetStatus.WATCH
    return BudgetStatus.OK


def percent_used(budget_amount: Decimal, spent_amount: Decimal) -> Decimal:
    return spent_amount / budget_amount * HUNDRED if budget_amount > 0 else ZERO


def plan_budget_copy(
    previous_budgets: Iterable[MonthlyBudget],
    current_budgets: Iterable[MonthlyBudget],
) -> list[MonthlyBudget]:
    """
    Previous-month budgets whose category has no budget in the target month.

    Categories already budgeted in the target month are never overwritten.
    """
    already_budgeted = {b.category_id for b in current_budgets}
    return [b for b in previous_budgets if b.category_id not in already_budgeted]


@dataclass(frozen=True)
class MonthPosition:
    """Where "today" falls inside a given month."""
    days_in_month: int
    current_day: int

    @property
    def remaining_days(self) -> int:
        return self.days_in_month - self.current_day + 1


class BudgetPacingCalculator:
    """
    Per-category and whole-month pacing math.

    Usage:
        calculator = BudgetPacingCalculator(clock=lambda: date(2024, 5, 15))
        pacing = calculator.summarize_month(2024, 5, categories, budgets, transactions)
    """

    def __init__(self, clock: Optional[Clock] = None):
        self._clock = clock or date.today

    def today(self) -> date:
        return self._clock()

    @staticmethod
    def days_in_month(year: int, month: int) -> int:
        return calendar.monthrange(year, month)[1]

    def position(self, year: int, month: int) -> MonthPosition:
        days = self.days_in_month(year, month)
        today = self._clock()
        if today.year == year and today.month == month:
            return MonthPosition(days_in_month=days, current_day=today.day)
        return MonthPosition(days_in_month=days, current_day=days)

    def _pace(
        self,
        budget_amount: Decimal,
        spent_amount: Decimal,
        position: MonthPosition,
    ) -> tuple[Decimal, Decimal, Decimal, BudgetStatus]:
        """Returns (remaining, expected_to_date, safe_to_spend_today, status)."""
        remaining = budget_amount - spent_amount
        expected_to_date = budget_amount * position.current_day / position.days_in_month

        if position.remaining_days > 0:
            safe_to_spend = remaining / position.remaining_days
        else:
            safe_to_spend = ZERO

        status = classify_status(budget_amount, spent_amount, expected_to_date)
        return remaining, expected_to_date, max(ZERO, safe_to_spend), status

    def summarize_category(
        self,
        category_id: int,
        category_name: str,
        budget_amount: Decimal,
        spent_amount: Decimal,
        year: int,
        month: int,
    ) -> CategoryBudgetSummary:
        """Pacing for one category whose totals are already known."""
        position = self.position(year, month)
        remaining, expected, safe, status = self._pace(budget_amount, spent_amount, position)

        return CategoryBudgetSummary(
            category_id=category_id,
            category_name=category_name,
            budget_amount=budget_amount,
            spent_amount=spent_amount,
            remaining=remaining,
            expected_to_date=expected,
            safe_to_spend_today=safe,
            status=status,
            percent_used=percent_used(budget_amount, spent_amount),
        )

    def summarize_categories(
        self,
        year: int,
        month: int,
        categories: Sequence[Category],
        budgets: Iterable[MonthlyBudget],
        transactions: Iterable[Transaction],
    ) -> list[CategoryBudgetSummary]:
        """
        One summary per category, in the order the categories are given.

        Budgets and transactions outside (year, month) are ignored.
        Spent counts expenses only, as positive numbers.
        """
        budget_totals: dict[int, Decimal] = {}
        for budget in budgets:
            if budget.year == year and budget.month == month:
                budget_totals[budget.category_id] = (
                    budget_totals.get(budget.category_id, ZERO) + budget.budget_amount
                )

        spent_totals: dict[int, Decimal] = {}
        for txn in transactions:
            if txn.date.year == year and txn.date.month == month and txn.amount < 0:
                spent_totals[txn.category_id] = (
                    spent_totals.get(txn.category_id, ZERO) + abs(txn.amount)
                )

        return [
            self.summarize_category(
                category_id=category.id,
                category_name=category.name,
                budget_amount=budget_totals.get(category.id, ZERO),
                spent_amount=spent_totals.get(category.id, ZERO),
                year=year,
                month=month,
            )
            for category in categories
        ]

    def summarize_month(
        self,
        year: int,
        month: int,
        categories: Sequence[Category],
        budgets: Iterable[MonthlyBudget],
        transactions: Iterable[Transaction],
    ) -> BudgetPacing:
        """Whole-month pacing: the category formulas applied to the totals."""
        summaries = self.summarize_categories(year, month, categories, budgets, transactions)
        return self.aggregate(year, month, summaries)

    def aggregate(
        self,
        year: int,
        month: int,
        summaries: list[CategoryBudgetSummary],
    ) -> BudgetPacing:
        total_budget = sum((s.budget_amount for s in summaries), ZERO)
        total_spent = sum((s.spent_amount for s in summaries), ZERO)

        position = self.position(year, month)
        remaining, expected, safe, status = self._pace(total_budget, total_spent, position)

        return BudgetPacing(
            year=year,
            month=month,
            total_budget=total_budget,
            total_spent=total_spent,
            total_remaining=remaining,
            expected_to_date=expected,
            safe_to_spend_today=safe,
            days_in_month=position.days_in_month,
            current_day=position.current_day,
            remaining_days=position.remaining_days,
            overall_status=status,
            percent_used=percent_used(total_budget, total_spent),
            category_summaries=summaries,
        )
