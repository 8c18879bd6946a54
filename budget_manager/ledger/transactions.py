"""
Transaction Service

Every create, edit and delete goes through the locking gate first.
Adjustments bypass the gate; ordinary transactions in a locked month
are refused with a message, never an exception.

For edits the gate looks at the transaction both as it is stored and
as it would be saved, so a locked transaction cannot be freed by
editing its date and an open one cannot be moved into a locked month.
"""

from datetime import date
from decimal import Decimal
from typing import Optional

from budget_manager.audit import AuditLogger
from budget_manager.config import LedgerSettings, get_settings
from budget_manager.ledger.locking import LockingService
from budget_manager.models.audit import AuditEntity
from budget_manager.models.ledger import (
    OperationResult,
    TopExpense,
    Transaction,
    TransactionFilter,
    utcnow,
)
from budget_manager.services.storage import LedgerStorageInterface


class TransactionService:
    def __init__(
        self,
        storage: LedgerStorageInterface,
        locking_service: Optional[LockingService] = None,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[LedgerSettings] = None,
    ):
        self._storage = storage
        self._audit_logger = audit_logger or AuditLogger()
        self._locking = locking_service or LockingService(storage, self._audit_logger)
        self._settings = settings or get_settings().ledger

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    async def get_transaction(self, transaction_id: int) -> Optional[Transaction]:
        return await self._storage.get_transaction(transaction_id)

    async def list_transactions(
        self,
        filters: Optional[TransactionFilter] = None,
    ) -> list[Transaction]:
        """
        One page of transactions, newest first.

        Page size falls back to the configured default.
        """
        filters = filters or TransactionFilter()
        page_size = filters.page_size or self._settings.transaction_page_size
        offset = (filters.page - 1) * page_size
        return await self._storage.list_transactions(filters, limit=page_size, offset=offset)

    async def count_transactions(self, filters: Optional[TransactionFilter] = None) -> int:
        return await self._storage.count_transactions(filters)

    async def get_transactions_for_month(self, year: int, month: int) -> list[Transaction]:
        return await self._storage.transactions_in_month(year, month)

    async def get_total_spent(
        self,
        year: int,
        month: int,
        category_id: Optional[int] = None,
        account_id: Optional[int] = None,
    ) -> Decimal:
        """Sum of expenses in the month, as a positive number."""
        total = Decimal("0")
        for txn in await self._storage.transactions_in_month(year, month):
            if category_id is not None and txn.category_id != category_id:
                continue
            if account_id is not None and txn.account_id != account_id:
                continue
            if txn.amount < 0:
                total += -txn.amount
        return total

    async def get_top_expenses(
        self,
        year: int,
        month: int,
        count: Optional[int] = None,
    ) -> list[TopExpense]:
        """Largest expenses first, amounts shown positive."""
        count = count or self._settings.top_expenses_count
        names = {c.id: c.name for c in await self._storage.list_categories()}

        expenses = [
            t for t in await self._storage.transactions_in_month(year, month)
            if t.amount < 0
        ]
        expenses.sort(key=lambda t: t.amount)

        return [
            TopExpense(
                transaction_id=t.id,
                date=t.date,
                description=t.description,
                amount=-t.amount,
                category_name=names.get(t.category_id, self._settings.default_category_name),
            )
            for t in expenses[:count]
        ]

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    async def _missing_reference(self, transaction: Transaction) -> Optional[OperationResult]:
        if await self._storage.get_category(transaction.category_id) is None:
            return OperationResult.fail("Category not found.")
        if await self._storage.get_account(transaction.account_id) is None:
            return OperationResult.fail("Account not found.")
        return None

    async def create_transaction(
        self,
        transaction: Transaction,
        actor: Optional[str] = None,
    ) -> OperationResult:
        gate = await self._locking.gate()
        if not gate.can_create(transaction):
            return OperationResult.fail(
                "Cannot create transaction in a locked month. Mark as adjustment if needed."
            )

        missing = await self._missing_reference(transaction)
        if missing is not None:
            return missing

        to_save = transaction.model_copy(update={
            "id": None,
            "user_id": actor,
            "created_at": utcnow(),
            "updated_at": None,
        })
        saved = await self._storage.add_transaction(to_save)

        await self._audit_logger.log_created(
            AuditEntity.TRANSACTION,
            saved.id,
            f"Created transaction: {saved.description} ({saved.amount:.2f})",
            saved.snapshot(),
            actor,
        )
        return OperationResult.ok("Transaction created successfully.", saved.id)

    async def update_transaction(
        self,
        transaction: Transaction,
        actor: Optional[str] = None,
    ) -> OperationResult:
        existing = (
            await self._storage.get_transaction(transaction.id)
            if transaction.id is not None else None
        )
        if existing is None:
            return OperationResult.fail("Transaction not found.")

        if not await self._locking.can_edit_transaction(existing):
            return OperationResult.fail("Cannot edit transaction in a locked month.")

        updated = existing.model_copy(update={
            "date": transaction.date,
            "description": transaction.description,
            "amount": transaction.amount,
            "category_id": transaction.category_id,
            "account_id": transaction.account_id,
            "notes": transaction.notes,
            "is_adjustment": transaction.is_adjustment,
            "updated_at": utcnow(),
        })
        if not await self._locking.can_edit_transaction(updated):
            return OperationResult.fail("Cannot edit transaction in a locked month.")

        missing = await self._missing_reference(updated)
        if missing is not None:
            return missing

        await self._storage.update_transaction(updated)

        await self._audit_logger.log_updated(
            AuditEntity.TRANSACTION,
            existing.id,
            f"Updated transaction: {updated.description}",
            existing.snapshot(),
            updated.snapshot(),
            actor,
        )
        return OperationResult.ok("Transaction updated successfully.", existing.id)

    async def delete_transaction(
        self,
        transaction_id: int,
        actor: Optional[str] = None,
    ) -> OperationResult:
        existing = await self._storage.get_transaction(transaction_id)
        if existing is None:
            return OperationResult.fail("Transaction not found.")

        if not await self._locking.can_delete_transaction(existing):
            return OperationResult.fail("Cannot delete transaction in a locked month.")

        await self._storage.delete_transaction(transaction_id)

        await self._audit_logger.log_deleted(
            AuditEntity.TRANSACTION,
            transaction_id,
            f"Deleted transaction: {existing.description} ({existing.amount:.2f})",
            existing.snapshot(),
            actor,
        )
        return OperationResult.ok("Transaction deleted successfully.", transaction_id)

    async def transactions_on(self, day: date, account_id: int) -> list[Transaction]:
        """Same-day transactions in one account, the candidate set for duplicate checks."""
        return await self._storage.transactions_on(day, account_id)
