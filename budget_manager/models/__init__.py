"""
Data Models Package

This package contains all Pydantic models used in the Budget Manager system.
All data flowing through the system must conform to these schemas.
"""

from budget_manager.models.ledger import (
    Account,
    BudgetPacing,
    BudgetStatus,
    BudgetVsActualLine,
    BudgetVsActualReport,
    CategorizationRule,
    Category,
    CategoryBudgetSummary,
    DashboardSummary,
    ImportPreview,
    ImportResult,
    ImportRow,
    ImportRowStatus,
    LockedMonth,
    MonthlyBudget,
    MonthOverMonthPoint,
    MonthOverMonthReport,
    OperationResult,
    TopExpense,
    Transaction,
    TransactionFilter,
    ValidationIssue,
    utcnow,
)
from budget_manager.models.audit import (
    AuditAction,
    AuditEntity,
    AuditEvent,
    AuditEventBuilder,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "Account",
    "BudgetPacing",
    "BudgetStatus",
    "BudgetVsActualLine",
    "BudgetVsActualReport",
    "CategorizationRule",
    "Category",
    "CategoryBudgetSummary",
    "DashboardSummary",
    "ImportPreview",
    "ImportResult",
    "ImportRow",
    "ImportRowStatus",
    "LockedMonth",
    "MonthlyBudget",
    "MonthOverMonthPoint",
    "MonthOverMonthReport",
    "OperationResult",
    "TopExpense",
    "Transaction",
    "TransactionFilter",
    "ValidationIssue",
    "utcnow",
    # Audit models
    "AuditAction",
    "AuditEntity",
    "AuditEvent",
    "AuditEventBuilder",
    "AuditSeverity",
]
