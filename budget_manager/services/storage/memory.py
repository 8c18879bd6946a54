"""
In-Memory Storage Implementation

Used by the test-suite and for throwaway sessions. It mirrors the
relational constraints of the SQL backend (unique names, unique budget
triples, unique locked months) so services behave the same on both.

Every read returns a deep copy; every write stores a deep copy.
Callers can never mutate stored state by holding on to a model.
"""

from datetime import date
from itertools import count
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
from budget_manager.services.storage.interface import (
    AuditStorageInterface,
    DuplicateError,
    LedgerStorageInterface,
    NotFoundError,
)


def transaction_matches(txn: Transaction, filters: Optional[TransactionFilter]) -> bool:
    """Apply a TransactionFilter to a single transaction."""
    if filters is None:
        return True

    if filters.start_date and txn.date < filters.start_date:
        return False
    if filters.end_date and txn.date > filters.end_date:
        return False
    if filters.category_id is not None and txn.category_id != filters.category_id:
        return False
    if filters.account_id is not None and txn.account_id != filters.account_id:
        return False
    if filters.search_term and filters.search_term.strip():
        term = filters.search_term.lower()
        in_notes = txn.notes is not None and term in txn.notes.lower()
        if term not in txn.description.lower() and not in_notes:
            return False
    # Amount bounds compare absolute values so expenses and income filter alike
    if filters.min_amount is not None and abs(txn.amount) < filters.min_amount:
        return False
    if filters.max_amount is not None and abs(txn.amount) > filters.max_amount:
        return False
    if filters.is_adjustment is not None and txn.is_adjustment != filters.is_adjustment:
        return False

    return True


def _newest_first(transactions: list[Transaction]) -> list[Transaction]:
    return sorted(
        transactions,
        key=lambda t: (t.date, t.created_at, t.id or 0),
        reverse=True,
    )


class InMemoryLedgerStorage(LedgerStorageInterface):
    """Dictionary-backed ledger storage."""

    def __init__(self):
        self._accounts: dict[int, Account] = {}
        self._categories: dict[int, Category] = {}
        self._transactions: dict[int, Transaction] = {}
        self._budgets: dict[int, MonthlyBudget] = {}
        self._rules: dict[int, CategorizationRule] = {}
        self._locked_months: dict[int, LockedMonth] = {}
        self._ids = {
            "account": count(1),
            "category": count(1),
            "transaction": count(1),
            "budget": count(1),
            "rule": count(1),
            "locked_month": count(1),
        }

    def _next_id(self, kind: str) -> int:
        return next(self._ids[kind])

    @staticmethod
    def _copy(model):
        return model.model_copy(deep=True) if model is not None else None

    # -------------------------------------------------------------------------
    # Accounts
    # -------------------------------------------------------------------------

    def _account_name_taken(self, name: str, exclude_id: Optional[int] = None) -> bool:
        return any(
            a.name.lower() == name.lower() and a.id != exclude_id
            for a in self._accounts.values()
        )

    async def list_accounts(self, active_only: bool = False) -> list[Account]:
        accounts = [
            a for a in self._accounts.values()
            if a.is_active or not active_only
        ]
        return [self._copy(a) for a in sorted(accounts, key=lambda a: a.name.lower())]

    async def get_account(self, account_id: int) -> Optional[Account]:
        return self._copy(self._accounts.get(account_id))

    async def get_account_by_name(self, name: str) -> Optional[Account]:
        for account in self._accounts.values():
            if account.name.lower() == name.strip().lower():
                return self._copy(account)
        return None

    async def add_account(self, account: Account) -> Account:
        if self._account_name_taken(account.name):
            raise DuplicateError(f"Account name already exists: {account.name}")
        stored = account.model_copy(update={"id": self._next_id("account")}, deep=True)
        self._accounts[stored.id] = stored
        return self._copy(stored)

    async def update_account(self, account: Account) -> Account:
        if account.id not in self._accounts:
            raise NotFoundError(f"Account not found: {account.id}")
        if self._account_name_taken(account.name, exclude_id=account.id):
            raise DuplicateError(f"Account name already exists: {account.name}")
        self._accounts[account.id] = self._copy(account)
        return self._copy(account)

    async def delete_account(self, account_id: int) -> bool:
        return self._accounts.pop(account_id, None) is not None

    async def account_has_transactions(self, account_id: int) -> bool:
        return any(t.account_id == account_id for t in self._transactions.values())

    # -------------------------------------------------------------------------
    # Categories
    # -------------------------------------------------------------------------

    def _category_name_taken(self, name: str, exclude_id: Optional[int] = None) -> bool:
        return any(
            c.name.lower() == name.lower() and c.id != exclude_id
            for c in self._categories.values()
        )

    async def list_categories(self, active_only: bool = False) -> list[Category]:
        categories = [
            c for c in self._categories.values()
            if c.is_active or not active_only
        ]
        return [self._copy(c) for c in sorted(categories, key=lambda c: c.name.lower())]

    async def get_category(self, category_id: int) -> Optional[Category]:
        return self._copy(self._categories.get(category_id))

    async def get_category_by_name(self, name: str) -> Optional[Category]:
        for category in self._categories.values():
            if category.name.lower() == name.strip().lower():
                return self._copy(category)
        return None

    async def add_category(self, category: Category) -> Category:
        if self._category_name_taken(category.name):
            raise DuplicateError(f"Category name already exists: {category.name}")
        stored = category.model_copy(update={"id": self._next_id("category")}, deep=True)
        self._categories[stored.id] = stored
        return self._copy(stored)

    async def update_category(self, category: Category) -> Category:
        if category.id not in self._categories:
            raise NotFoundError(f"Category not found: {category.id}")
        if self._category_name_taken(category.name, exclude_id=category.id):
            raise DuplicateError(f"Category name already exists: {category.name}")
        self._categories[category.id] = self._copy(category)
        return self._copy(category)

    async def delete_category(self, category_id: int) -> bool:
        if self._categories.pop(category_id, None) is None:
            return False
        # Budgets and rules belong to the category and go with it
        self._budgets = {
            k: b for k, b in self._budgets.items() if b.category_id != category_id
        }
        self._rules = {
            k: r for k, r in self._rules.items() if r.category_id != category_id
        }
        return True

    async def category_has_transactions(self, category_id: int) -> bool:
        return any(t.category_id == category_id for t in self._transactions.values())

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    async def list_transactions(
        self,
        filters: Optional[TransactionFilter] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> list[Transaction]:
        matching = [
            t for t in self._transactions.values()
            if transaction_matches(t, filters)
        ]
        ordered = _newest_first(matching)
        end = offset + limit if limit is not None else None
        return [self._copy(t) for t in ordered[offset:end]]

    async def count_transactions(self, filters: Optional[TransactionFilter] = None) -> int:
        return sum(1 for t in self._transactions.values() if transaction_matches(t, filters))

    async def get_transaction(self, transaction_id: int) -> Optional[Transaction]:
        return self._copy(self._transactions.get(transaction_id))

    def _check_references(self, transaction: Transaction) -> None:
        if transaction.category_id not in self._categories:
            raise NotFoundError(f"Category not found: {transaction.category_id}")
        if transaction.account_id not in self._accounts:
            raise NotFoundError(f"Account not found: {transaction.account_id}")

    async def add_transaction(self, transaction: Transaction) -> Transaction:
        self._check_references(transaction)
        stored = transaction.model_copy(
            update={"id": self._next_id("transaction")},
            deep=True,
        )
        self._transactions[stored.id] = stored
        return self._copy(stored)

    async def add_transactions(self, transactions: list[Transaction]) -> list[Transaction]:
        # All or nothing, like one database commit
        for transaction in transactions:
            self._check_references(transaction)
        return [await self.add_transaction(t) for t in transactions]

    async def update_transaction(self, transaction: Transaction) -> Transaction:
        if transaction.id not in self._transactions:
            raise NotFoundError(f"Transaction not found: {transaction.id}")
        self._check_references(transaction)
        self._transactions[transaction.id] = self._copy(transaction)
        return self._copy(transaction)

    async def update_transactions(self, transactions: list[Transaction]) -> int:
        missing = [t.id for t in transactions if t.id not in self._transactions]
        if missing:
            raise NotFoundError(f"Transactions not found: {missing}")
        for transaction in transactions:
            self._transactions[transaction.id] = self._copy(transaction)
        return len(transactions)

    async def delete_transaction(self, transaction_id: int) -> bool:
        return self._transactions.pop(transaction_id, None) is not None

    async def transactions_on(self, day: date, account_id: int) -> list[Transaction]:
        return [
            self._copy(t) for t in self._transactions.values()
            if t.date == day and t.account_id == account_id
        ]

    async def transactions_in_month(self, year: int, month: int) -> list[Transaction]:
        in_month = [
            t for t in self._transactions.values()
            if t.date.year == year and t.date.month == month
        ]
        return [self._copy(t) for t in _newest_first(in_month)]

    # -------------------------------------------------------------------------
    # Monthly budgets
    # -------------------------------------------------------------------------

    async def list_budgets(self, year: int, month: int) -> list[MonthlyBudget]:
        return [
            self._copy(b) for b in self._budgets.values()
            if b.year == year and b.month == month
        ]

    async def get_budget(self, budget_id: int) -> Optional[MonthlyBudget]:
        return self._copy(self._budgets.get(budget_id))

    async def find_budget(
        self,
        year: int,
        month: int,
        category_id: int,
    ) -> Optional[MonthlyBudget]:
        for budget in self._budgets.values():
            if (budget.year, budget.month, budget.category_id) == (year, month, category_id):
                return self._copy(budget)
        return None

    async def add_budget(self, budget: MonthlyBudget) -> MonthlyBudget:
        if await self.find_budget(budget.year, budget.month, budget.category_id):
            raise DuplicateError(
                f"Budget already exists for category {budget.category_id} "
                f"in {budget.year}/{budget.month}"
            )
        stored = budget.model_copy(update={"id": self._next_id("budget")}, deep=True)
        self._budgets[stored.id] = stored
        return self._copy(stored)

    async def update_budget(self, budget: MonthlyBudget) -> MonthlyBudget:
        if budget.id not in self._budgets:
            raise NotFoundError(f"Budget not found: {budget.id}")
        self._budgets[budget.id] = self._copy(budget)
        return self._copy(budget)

    async def delete_budget(self, budget_id: int) -> bool:
        return self._budgets.pop(budget_id, None) is not None

    # -------------------------------------------------------------------------
    # Categorisation rules
    # -------------------------------------------------------------------------

    async def list_rules(self, active_only: bool = False) -> list[CategorizationRule]:
        rules = [r for r in self._rules.values() if r.is_active or not active_only]
        return [self._copy(r) for r in sorted(rules, key=lambda r: (r.priority, r.id))]

    async def get_rule(self, rule_id: int) -> Optional[CategorizationRule]:
        return self._copy(self._rules.get(rule_id))

    async def add_rule(self, rule: CategorizationRule) -> CategorizationRule:
        stored = rule.model_copy(update={"id": self._next_id("rule")}, deep=True)
        self._rules[stored.id] = stored
        return self._copy(stored)

    async def update_rule(self, rule: CategorizationRule) -> CategorizationRule:
        if rule.id not in self._rules:
            raise NotFoundError(f"Rule not found: {rule.id}")
        self._rules[rule.id] = self._copy(rule)
        return self._copy(rule)

    async def delete_rule(self, rule_id: int) -> bool:
        return self._rules.pop(rule_id, None) is not None

    async def set_rule_priorities(self, priorities: dict[int, int]) -> int:
        changed = 0
        for rule_id, priority in priorities.items():
            rule = self._rules.get(rule_id)
            if rule is None:
                continue
            rule.priority = priority
            changed += 1
        return changed

    # -------------------------------------------------------------------------
    # Locked months
    # -------------------------------------------------------------------------

    async def get_locked_month(self, year: int, month: int) -> Optional[LockedMonth]:
        for locked in self._locked_months.values():
            if locked.year == year and locked.month == month:
                return self._copy(locked)
        return None

    async def list_locked_months(self) -> list[LockedMonth]:
        ordered = sorted(
            self._locked_months.values(),
            key=lambda lm: (lm.year, lm.month),
            reverse=True,
        )
        return [self._copy(lm) for lm in ordered]

    async def add_locked_month(self, locked_month: LockedMonth) -> LockedMonth:
        if await self.get_locked_month(locked_month.year, locked_month.month):
            raise DuplicateError(
                f"Month already locked: {locked_month.year}/{locked_month.month}"
            )
        stored = locked_month.model_copy(
            update={"id": self._next_id("locked_month")},
            deep=True,
        )
        self._locked_months[stored.id] = stored
        return self._copy(stored)

    async def delete_locked_month(self, year: int, month: int) -> bool:
        for key, locked in list(self._locked_months.items()):
            if locked.year == year and locked.month == month:
                del self._locked_months[key]
                return True
        return False


class InMemoryAuditStorage(AuditStorageInterface):
    """
    List-backed audit storage.

    Audit events are append-only.
    """

    def __init__(self):
        self._events: list[AuditEvent] = []

    @property
    def events(self) -> list[AuditEvent]:
        """Events in the order they were appended."""
        return list(self._events)

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event.model_copy(deep=True))
        return True

    async def get_events_by_entity(
        self,
        entity_type: AuditEntity,
        entity_id: int,
    ) -> list[AuditEvent]:
        matching = [
            e for e in self._events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        return list(reversed(matching))

    async def get_recent_events(
        self,
        limit: int = 50,
        offset: int = 0,
    ) -> list[AuditEvent]:
        newest_first = list(reversed(self._events))
        return newest_first[offset:offset + limit]

    async def count_events(self) -> int:
        return len(self._events)
