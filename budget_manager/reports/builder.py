"""
Report Builder

DESIGN DECISION: Reports are DETERMINISTIC aggregates over stored rows.
Nothing here estimates or formats: amounts come back as Decimal and
presentation (charts, colours, currency symbols) is the caller's job.

Expenses are always reported as positive numbers.
"""

from decimal import Decimal
from typing import Optional

from budget_manager.ledger.budgets import BudgetService
from budget_manager.ledger.transactions import TransactionService
from budget_manager.models.ledger import (
    BudgetVsActualLine,
    BudgetVsActualReport,
    MonthOverMonthPoint,
    MonthOverMonthReport,
    TopExpense,
)
from budget_manager.services.storage import LedgerStorageInterface


ZERO = Decimal("0")


class ReportBuilder:
    """
    Builds the budget-vs-actual, month-over-month and top-expense reports.

    GUARANTEES:
    - Only returns real data from storage
    - Months with no transactions are left out, not zero-filled
    """

    def __init__(
        self,
        storage: LedgerStorageInterface,
        budget_service: BudgetService,
        transaction_service: TransactionService,
        uncategorized_label: str = "Uncategorized",
    ):
        self._storage = storage
        self._budgets = budget_service
        self._transactions = transaction_service
        self._uncategorized_label = uncategorized_label

    async def budget_vs_actual(self, year: int, month: int) -> BudgetVsActualReport:
        """
        Budget against spend for each active category.

        Lines are kept only for categories with a budget or some spend;
        the totals cover every active category.
        """
        summary = await self._budgets.get_budget_summary(year, month)

        lines = [
            BudgetVsActualLine(
                category_id=s.category_id,
                category_name=s.category_name,
                budget=s.budget_amount,
                actual=s.spent_amount,
            )
            for s in summary
            if s.budget_amount > 0 or s.spent_amount > 0
        ]

        return BudgetVsActualReport(
            year=year,
            month=month,
            categories=lines,
            total_budget=sum((s.budget_amount for s in summary), ZERO),
            total_actual=sum((s.spent_amount for s in summary), ZERO),
        )

    async def month_over_month(self, year: int) -> MonthOverMonthReport:
        """Income, expenses and per-category spend for each month of a year."""
        names = {c.id: c.name for c in await self._storage.list_categories()}

        points = []
        for month in range(1, 13):
            transactions = await self._storage.transactions_in_month(year, month)
            if not transactions:
                continue

            income = ZERO
            expenses = ZERO
            category_totals: dict[str, Decimal] = {}
            for txn in transactions:
                if txn.amount > 0:
                    income += txn.amount
                elif txn.amount < 0:
                    expenses += -txn.amount
                    name = names.get(txn.category_id, self._uncategorized_label)
                    category_totals[name] = category_totals.get(name, ZERO) - txn.amount

            points.append(MonthOverMonthPoint(
                year=year,
                month=month,
                total_income=income,
                total_expenses=expenses,
                category_totals=category_totals,
            ))

        categories = sorted({name for p in points for name in p.category_totals})
        return MonthOverMonthReport(year=year, data_points=points, categories=categories)

    async def top_expenses(
        self,
        year: int,
        month: int,
        count: Optional[int] = None,
    ) -> list[TopExpense]:
        return await self._transactions.get_top_expenses(year, month, count)
