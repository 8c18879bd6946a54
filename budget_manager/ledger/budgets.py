"""
Budget Service

Monthly budgets per category, pacing summaries, and copying last
month's budgets forward.

All of the arithmetic lives in BudgetPacingCalculator; this service
only fetches the rows and hands them over.
"""

from decimal import Decimal
from typing import Optional

from budget_manager.audit import AuditLogger
from budget_manager.models.audit import AuditEntity
from budget_manager.models.ledger import (
    BudgetPacing,
    CategoryBudgetSummary,
    MonthlyBudget,
    OperationResult,
    utcnow,
)
from budget_manager.pacing.calculator import (
    BudgetPacingCalculator,
    plan_budget_copy,
    previous_month,
)
from budget_manager.services.storage import DuplicateError, LedgerStorageInterface


class BudgetService:
    def __init__(
        self,
        storage: LedgerStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
        calculator: Optional[BudgetPacingCalculator] = None,
    ):
        self._storage = storage
        self._audit_logger = audit_logger or AuditLogger()
        self._calculator = calculator or BudgetPacingCalculator()

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    async def get_budgets_for_month(self, year: int, month: int) -> list[MonthlyBudget]:
        return await self._storage.list_budgets(year, month)

    async def get_budget(self, budget_id: int) -> Optional[MonthlyBudget]:
        return await self._storage.get_budget(budget_id)

    async def find_budget(self, year: int, month: int, category_id: int) -> Optional[MonthlyBudget]:
        return await self._storage.find_budget(year, month, category_id)

    async def get_budget_summary(self, year: int, month: int) -> list[CategoryBudgetSummary]:
        """One summary per active category, ordered by name."""
        categories = await self._storage.list_categories(active_only=True)
        budgets = await self._storage.list_budgets(year, month)
        transactions = await self._storage.transactions_in_month(year, month)
        return self._calculator.summarize_categories(year, month, categories, budgets, transactions)

    async def get_budget_pacing(self, year: int, month: int) -> BudgetPacing:
        summaries = await self.get_budget_summary(year, month)
        return self._calculator.aggregate(year, month, summaries)

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    async def create_or_update_budget(
        self,
        year: int,
        month: int,
        category_id: int,
        amount: Decimal,
        actor: Optional[str] = None,
    ) -> OperationResult:
        """Set the budget for one category in one month, creating it if needed."""
        if amount < 0:
            return OperationResult.fail("Budget amount cannot be negative.")
        if await self._storage.get_category(category_id) is None:
            return OperationResult.fail("Category not found.")

        existing = await self._storage.find_budget(year, month, category_id)
        if existing is None:
            try:
                saved = await self._storage.add_budget(MonthlyBudget(
                    year=year,
                    month=month,
                    category_id=category_id,
                    budget_amount=amount,
                ))
            except DuplicateError:
                # Created concurrently; fall through to the update path
                existing = await self._storage.find_budget(year, month, category_id)
            else:
                await self._audit_logger.log_created(
                    AuditEntity.MONTHLY_BUDGET,
                    saved.id,
                    f"Created budget for category {category_id} ({year}/{month}): {amount:.2f}",
                    {
                        "year": year,
                        "month": month,
                        "category_id": category_id,
                        "amount": str(amount),
                    },
                    actor,
                )
                return OperationResult.ok("Budget saved.", saved.id)

        old_amount = existing.budget_amount
        updated = existing.model_copy(update={"budget_amount": amount, "updated_at": utcnow()})
        await self._storage.update_budget(updated)

        await self._audit_logger.log_updated(
            AuditEntity.MONTHLY_BUDGET,
            existing.id,
            (
                f"Updated budget for category {category_id} ({year}/{month}): "
                f"{old_amount:.2f} -> {amount:.2f}"
            ),
            {"amount": str(old_amount)},
            {"amount": str(amount)},
            actor,
        )
        return OperationResult.ok("Budget saved.", existing.id)

    async def delete_budget(
        self,
        budget_id: int,
        actor: Optional[str] = None,
    ) -> OperationResult:
        budget = await self._storage.get_budget(budget_id)
        if budget is None:
            return OperationResult.fail("Budget not found.")

        await self._storage.delete_budget(budget_id)
        await self._audit_logger.log_deleted(
            AuditEntity.MONTHLY_BUDGET,
            budget_id,
            f"Deleted budget for category {budget.category_id} ({budget.year}/{budget.month})",
            {
                "year": budget.year,
                "month": budget.month,
                "category_id": budget.category_id,
                "amount": str(budget.budget_amount),
            },
            actor,
        )
        return OperationResult.ok("Budget deleted.", budget_id)

    async def copy_budgets_from_previous_month(
        self,
        year: int,
        month: int,
        actor: Optional[str] = None,
    ) -> int:
        """
        Fill in the target month from the month before.

        Categories already budgeted in the target month keep their amount.

        Returns:
            Number of budgets copied
        """
        source_year, source_month = previous_month(year, month)

        to_copy = plan_budget_copy(
            await self._storage.list_budgets(source_year, source_month),
            await self._storage.list_budgets(year, month),
        )

        copied = 0
        for budget in to_copy:
            result = await self.create_or_update_budget(
                year, month, budget.category_id, budget.budget_amount, actor
            )
            if result.success:
                copied += 1

        if copied > 0:
            await self._audit_logger.log_budgets_copied(
                source_year, source_month, year, month, copied, actor
            )

        return copied
