"""
Locking Service

Storage-backed month locking. The (year, month) unique constraint is
what actually stops two concurrent lock requests from both succeeding;
the existence check in front of it only produces the friendly message.
"""

from typing import Optional

import structlog

from budget_manager.audit import AuditLogger
from budget_manager.locking.gate import LockingGate, month_label
from budget_manager.models.ledger import LockedMonth, OperationResult, Transaction
from budget_manager.services.storage import DuplicateError, LedgerStorageInterface


logger = structlog.get_logger(__name__)


class LockingService:
    def __init__(
        self,
        storage: LedgerStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._storage = storage
        self._audit_logger = audit_logger or AuditLogger()

    async def is_month_locked(self, year: int, month: int) -> bool:
        return await self._storage.get_locked_month(year, month) is not None

    async def get_locked_month(self, year: int, month: int) -> Optional[LockedMonth]:
        return await self._storage.get_locked_month(year, month)

    async def list_locked_months(self) -> list[LockedMonth]:
        """Newest month first."""
        return await self._storage.list_locked_months()

    async def gate(self) -> LockingGate:
        """Snapshot of the current locks for pure checks."""
        return LockingGate(await self._storage.list_locked_months())

    async def can_edit_transaction(self, transaction: Transaction) -> bool:
        if transaction.is_adjustment:
            return True
        return not await self.is_month_locked(transaction.date.year, transaction.date.month)

    async def can_delete_transaction(self, transaction: Transaction) -> bool:
        return await self.can_edit_transaction(transaction)

    async def lock_month(
        self,
        year: int,
        month: int,
        actor: Optional[str] = None,
    ) -> OperationResult:
        label = month_label(year, month)
        already_locked = OperationResult.fail(f"{label} is already locked.")

        if await self.is_month_locked(year, month):
            return already_locked

        try:
            locked = await self._storage.add_locked_month(
                LockedMonth(year=year, month=month, locked_by_user=actor)
            )
        except DuplicateError:
            # Lost the race to a concurrent lock of the same month
            logger.info("lock_month_conflict", year=year, month=month)
            return already_locked

        await self._audit_logger.log_month_locked(locked.id, year, month, actor)
        return OperationResult.ok(f"{label} has been locked.", locked.id)

    async def unlock_month(
        self,
        year: int,
        month: int,
        actor: Optional[str] = None,
    ) -> OperationResult:
        label = month_label(year, month)

        locked = await self._storage.get_locked_month(year, month)
        if locked is None:
            return OperationResult.fail(f"{label} is not locked.")

        if not await self._storage.delete_locked_month(year, month):
            return OperationResult.fail(f"{label} is not locked.")

        await self._audit_logger.log_month_unlocked(locked.id, year, month, actor)
        return OperationResult.ok(f"{label} has been unlocked.", locked.id)
