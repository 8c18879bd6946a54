"""
Shared fixtures.

Every fixture builds on in-memory storage so tests never touch a
database file. Services share one audit storage so tests can count
the events a call wrote.
"""

from datetime import date
from decimal import Decimal

import pytest

from budget_manager.audit import AuditLogger
from budget_manager.config import LedgerSettings
from budget_manager.ledger import (
    AccountService,
    BudgetService,
    CategoryService,
    LockingService,
    RuleService,
    TransactionService,
)
from budget_manager.models.ledger import Transaction
from budget_manager.pacing.calculator import BudgetPacingCalculator
from budget_manager.services.storage import InMemoryAuditStorage, InMemoryLedgerStorage


def make_transaction(
    day: date,
    amount: str,
    description: str = "Coffee",
    category_id: int = 1,
    account_id: int = 1,
    **extra,
) -> Transaction:
    return Transaction(
        date=day,
        description=description,
        amount=Decimal(amount),
        category_id=category_id,
        account_id=account_id,
        **extra,
    )


@pytest.fixture
def ledger_settings():
    return LedgerSettings()


@pytest.fixture
def storage():
    return InMemoryLedgerStorage()


@pytest.fixture
def audit_storage():
    return InMemoryAuditStorage()


@pytest.fixture
def audit_logger(audit_storage):
    return AuditLogger(audit_storage)


@pytest.fixture
def locking_service(storage, audit_logger):
    return LockingService(storage, audit_logger)


@pytest.fixture
def account_service(storage, audit_logger):
    return AccountService(storage, audit_logger)


@pytest.fixture
def category_service(storage, audit_logger, ledger_settings):
    return CategoryService(storage, audit_logger, ledger_settings)


@pytest.fixture
def transaction_service(storage, locking_service, audit_logger, ledger_settings):
    return TransactionService(storage, locking_service, audit_logger, ledger_settings)


@pytest.fixture
def rule_service(storage, audit_logger, ledger_settings):
    return RuleService(storage, audit_logger, settings=ledger_settings)


@pytest.fixture
def fixed_clock():
    """Pacing clock pinned to 15 May 2024."""
    return lambda: date(2024, 5, 15)


@pytest.fixture
def budget_service(storage, audit_logger, fixed_clock):
    return BudgetService(storage, audit_logger, BudgetPacingCalculator(fixed_clock))
