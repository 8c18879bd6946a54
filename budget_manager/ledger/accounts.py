"""
Account Service

CRUD over accounts with an audit event after each successful change.
An account that still has transactions cannot be deleted; it can only
be deactivated.
"""

from typing import Optional

from budget_manager.audit import AuditLogger
from budget_manager.models.audit import AuditEntity
from budget_manager.models.ledger import Account, OperationResult
from budget_manager.services.storage import DuplicateError, LedgerStorageInterface


def _snapshot(account: Account) -> dict:
    return {"name": account.name, "type": account.type, "is_active": account.is_active}


class AccountService:
    def __init__(
        self,
        storage: LedgerStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._storage = storage
        self._audit_logger = audit_logger or AuditLogger()

    async def list_accounts(self, active_only: bool = False) -> list[Account]:
        return await self._storage.list_accounts(active_only=active_only)

    async def get_account(self, account_id: int) -> Optional[Account]:
        return await self._storage.get_account(account_id)

    async def get_account_by_name(self, name: str) -> Optional[Account]:
        return await self._storage.get_account_by_name(name)

    async def create_account(
        self,
        account: Account,
        actor: Optional[str] = None,
    ) -> OperationResult:
        try:
            saved = await self._storage.add_account(account)
        except DuplicateError:
            return OperationResult.fail(f"An account named '{account.name}' already exists.")

        await self._audit_logger.log_created(
            AuditEntity.ACCOUNT,
            saved.id,
            f"Created account: {saved.name} ({saved.type})",
            _snapshot(saved),
            actor,
        )
        return OperationResult.ok("Account created successfully.", saved.id)

    async def update_account(
        self,
        account: Account,
        actor: Optional[str] = None,
    ) -> OperationResult:
        existing = await self._storage.get_account(account.id) if account.id is not None else None
        if existing is None:
            return OperationResult.fail("Account not found.")

        updated = existing.model_copy(update={
            "name": account.name,
            "type": account.type,
            "is_active": account.is_active,
        })
        try:
            await self._storage.update_account(updated)
        except DuplicateError:
            return OperationResult.fail(f"An account named '{account.name}' already exists.")

        await self._audit_logger.log_updated(
            AuditEntity.ACCOUNT,
            existing.id,
            f"Updated account: {updated.name}",
            _snapshot(existing),
            _snapshot(updated),
            actor,
        )
        return OperationResult.ok("Account updated successfully.", existing.id)

    async def delete_account(
        self,
        account_id: int,
        actor: Optional[str] = None,
    ) -> OperationResult:
        account = await self._storage.get_account(account_id)
        if account is None:
            return OperationResult.fail("Account not found.")

        if await self._storage.account_has_transactions(account_id):
            return OperationResult.fail(
                "Cannot delete account with existing transactions. "
                "Consider deactivating it instead."
            )

        await self._storage.delete_account(account_id)
        await self._audit_logger.log_deleted(
            AuditEntity.ACCOUNT,
            account_id,
            f"Deleted account: {account.name}",
            _snapshot(account),
            actor,
        )
        return OperationResult.ok("Account deleted successfully.", account_id)
