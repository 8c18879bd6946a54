"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Run against any relational database SQLAlchemy speaks to
2. Use in-memory storage for testing
3. Keep business logic decoupled from storage implementation

The interface is intentionally simple - we're not building a full ORM.
Just the operations the ledger services need.

CONSTRAINTS every implementation must enforce (raise DuplicateError):
- category names and account names are unique
- (year, month, category_id) is unique for monthly budgets
- (year, month) is unique for locked months

Duplicate transactions are NOT a storage constraint; they are a soft
warning raised by the import preview.
"""

from abc import ABC, abstractmethod
from datetime import date
from typing import Optional

from budget_manager.models.audit import AuditEntity, AuditEvent
from budget_manager.models.ledger import (
    Account,
    CategorizationRule,
    Category,
    LockedMonth,
    MonthlyBudget,
    Transaction,
    TransactionFilter,
)


class LedgerStorageInterface(ABC):
    """
    Abstract interface for ledger storage operations.

    Any storage implementation (SQLAlchemy, in-memory, etc.)
    must implement these methods. Listing methods return
    copies; mutating the returned models does not touch storage.
    """

    # -------------------------------------------------------------------------
    # Accounts
    # -------------------------------------------------------------------------

    @abstractmethod
    async def list_accounts(self, active_only: bool = False) -> list[Account]:
        """List accounts ordered by name."""
        pass

    @abstractmethod
    async def get_account(self, account_id: int) -> Optional[Account]:
        pass

    @abstractmethod
    async def get_account_by_name(self, name: str) -> Optional[Account]:
        """Case-insensitive lookup by name."""
        pass

    @abstractmethod
    async def add_account(self, account: Account) -> Account:
        """
        Insert an account and return it with its new id.

        Raises:
            DuplicateError: If the name is taken
        """
        pass

    @abstractmethod
    async def update_account(self, account: Account) -> Account:
        """
        Raises:
            NotFoundError: If the account doesn't exist
            DuplicateError: If the new name is taken
        """
        pass

    @abstractmethod
    async def delete_account(self, account_id: int) -> bool:
        """Returns True if a row was removed."""
        pass

    @abstractmethod
    async def account_has_transactions(self, account_id: int) -> bool:
        pass

    # -------------------------------------------------------------------------
    # Categories
    # -------------------------------------------------------------------------

    @abstractmethod
    async def list_categories(self, active_only: bool = False) -> list[Category]:
        """List categories ordered by name."""
        pass

    @abstractmethod
    async def get_category(self, category_id: int) -> Optional[Category]:
        pass

    @abstractmethod
    async def get_category_by_name(self, name: str) -> Optional[Category]:
        """Case-insensitive lookup by name."""
        pass

    @abstractmethod
    async def add_category(self, category: Category) -> Category:
        """
        Raises:
            DuplicateError: If the name is taken
        """
        pass

    @abstractmethod
    async def update_category(self, category: Category) -> Category:
        """
        Raises:
            NotFoundError: If the category doesn't exist
            DuplicateError: If the new name is taken
        """
        pass

    @abstractmethod
    async def delete_category(self, category_id: int) -> bool:
        """
        Delete a category together with its budgets and rules.

        Returns True if a row was removed.
        """
        pass

    @abstractmethod
    async def category_has_transactions(self, category_id: int) -> bool:
        pass

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    @abstractmethod
    async def list_transactions(
        self,
        filters: Optional[TransactionFilter] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> list[Transaction]:
        """
        List transactions, newest first (date, then created_at).

        Args:
            filters: Optional filter criteria; paging fields are ignored here
            limit: Maximum number of results (None = all)
            offset: Number of results to skip
        """
        pass

    @abstractmethod
    async def count_transactions(self, filters: Optional[TransactionFilter] = None) -> int:
        pass

    @abstractmethod
    async def get_transaction(self, transaction_id: int) -> Optional[Transaction]:
        pass

    @abstractmethod
    async def add_transaction(self, transaction: Transaction) -> Transaction:
        pass

    @abstractmethod
    async def add_transactions(self, transactions: list[Transaction]) -> list[Transaction]:
        """Insert a batch in a single commit."""
        pass

    @abstractmethod
    async def update_transaction(self, transaction: Transaction) -> Transaction:
        """
        Raises:
            NotFoundError: If the transaction doesn't exist
        """
        pass

    @abstractmethod
    async def update_transactions(self, transactions: list[Transaction]) -> int:
        """Write a batch of updates in a single commit. Returns rows written."""
        pass

    @abstractmethod
    async def delete_transaction(self, transaction_id: int) -> bool:
        pass

    @abstractmethod
    async def transactions_on(self, day: date, account_id: int) -> list[Transaction]:
        """Transactions posted to an account on one calendar day."""
        pass

    @abstractmethod
    async def transactions_in_month(self, year: int, month: int) -> list[Transaction]:
        """Transactions dated inside a calendar month, newest first."""
        pass

    # -------------------------------------------------------------------------
    # Monthly budgets
    # -------------------------------------------------------------------------

    @abstractmethod
    async def list_budgets(self, year: int, month: int) -> list[MonthlyBudget]:
        pass

    @abstractmethod
    async def get_budget(self, budget_id: int) -> Optional[MonthlyBudget]:
        pass

    @abstractmethod
    async def find_budget(
        self,
        year: int,
        month: int,
        category_id: int,
    ) -> Optional[MonthlyBudget]:
        pass

    @abstractmethod
    async def add_budget(self, budget: MonthlyBudget) -> MonthlyBudget:
        """
        Raises:
            DuplicateError: If (year, month, category_id) already has a budget
        """
        pass

    @abstractmethod
    async def update_budget(self, budget: MonthlyBudget) -> MonthlyBudget:
        pass

    @abstractmethod
    async def delete_budget(self, budget_id: int) -> bool:
        pass

    # -------------------------------------------------------------------------
    # Categorisation rules
    # -------------------------------------------------------------------------

    @abstractmethod
    async def list_rules(self, active_only: bool = False) -> list[CategorizationRule]:
        """List rules ordered by (priority, id)."""
        pass

    @abstractmethod
    async def get_rule(self, rule_id: int) -> Optional[CategorizationRule]:
        pass

    @abstractmethod
    async def add_rule(self, rule: CategorizationRule) -> CategorizationRule:
        pass

    @abstractmethod
    async def update_rule(self, rule: CategorizationRule) -> CategorizationRule:
        pass

    @abstractmethod
    async def delete_rule(self, rule_id: int) -> bool:
        pass

    @abstractmethod
    async def set_rule_priorities(self, priorities: dict[int, int]) -> int:
        """
        Apply {rule_id: priority} in one commit.

        Unknown ids are skipped. Returns the number of rules changed.
        """
        pass

    # -------------------------------------------------------------------------
    # Locked months
    # -------------------------------------------------------------------------

    @abstractmethod
    async def get_locked_month(self, year: int, month: int) -> Optional[LockedMonth]:
        pass

    @abstractmethod
    async def list_locked_months(self) -> list[LockedMonth]:
        """Newest month first."""
        pass

    @abstractmethod
    async def add_locked_month(self, locked_month: LockedMonth) -> LockedMonth:
        """
        Raises:
            DuplicateError: If the month is already locked
        """
        pass

    @abstractmethod
    async def delete_locked_month(self, year: int, month: int) -> bool:
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: AuditEntity,
        entity_id: int,
    ) -> list[AuditEvent]:
        """
        Get all events for a specific entity, newest first.
        """
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 50,
        offset: int = 0,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events (newest first).
        """
        pass

    @abstractmethod
    async def count_events(self) -> int:
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
