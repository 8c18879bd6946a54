"""
Ledger Services Package

Async services over LedgerStorageInterface. Business-rule rejections
come back as OperationResult(success=False); every successful change
is written to the audit log.
"""

from budget_manager.ledger.accounts import AccountService
from budget_manager.ledger.budgets import BudgetService
from budget_manager.ledger.categories import CategoryService
from budget_manager.ledger.locking import LockingService
from budget_manager.ledger.rules import RuleService
from budget_manager.ledger.seed import seed_defaults
from budget_manager.ledger.transactions import TransactionService

__all__ = [
    "AccountService",
    "BudgetService",
    "CategoryService",
    "LockingService",
    "RuleService",
    "TransactionService",
    "seed_defaults",
]
