"""
Core Data Models for Budget Manager

These models define the strict schemas for all data flowing through the system.
They are designed to:
1. Enforce type safety at runtime
2. Provide clear validation error messages
3. Be serializable for storage and audit snapshots
4. Load straight from ORM rows (from_attributes)

DESIGN DECISION: A transaction's amount is signed.
Positive amounts are income, negative amounts are expenses.
There is deliberately no separate "type" field that could disagree with the sign.
"""

from datetime import date as date_type, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    model_validator,
)


def utcnow() -> datetime:
    """Current UTC time, used for every created/updated stamp."""
    return datetime.now(timezone.utc)


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class BudgetStatus(str, Enum):
    """
    Pacing status of a budget.

    Evaluated in order: OVER beats WATCH beats OK.
    A category with a zero budget is always OK.
    """
    OK = "ok"          # On or under the prorated pace
    WATCH = "watch"    # Ahead of the prorated pace but within budget
    OVER = "over"      # Spent more than the whole budget


class ImportRowStatus(str, Enum):
    """Outcome of previewing a single CSV row."""
    OK = "ok"
    DUPLICATE = "duplicate"
    INVALID = "invalid"


# =============================================================================
# LEDGER ENTITIES
# =============================================================================

class Account(BaseModel):
    """A bank account, card or wallet that transactions are posted to."""
    model_config = ConfigDict(str_strip_whitespace=True, from_attributes=True)

    id: Optional[int] = None
    name: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Unique account name"
    )
    type: str = Field(
        ...,
        min_length=1,
        max_length=50,
        description="Free-form account type (Checking, Savings, Credit Card, ...)"
    )
    is_active: bool = True
    created_at: datetime = Field(default_factory=utcnow)


class Category(BaseModel):
    """
    A spending or income category.

    Owns zero or more monthly budgets and categorisation rules.
    """
    model_config = ConfigDict(str_strip_whitespace=True, from_attributes=True)

    id: Optional[int] = None
    name: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Unique category name"
    )
    description: Optional[str] = Field(
        default=None,
        max_length=500
    )
    is_active: bool = True
    created_at: datetime = Field(default_factory=utcnow)


class Transaction(BaseModel):
    """
    A single posted transaction.

    Adjustments are corrections entered after a month has been closed;
    they bypass month locking.
    """
    model_config = ConfigDict(str_strip_whitespace=True, from_attributes=True)

    id: Optional[int] = None
    date: date_type = Field(
        ...,
        description="Posting date (the time of day is never stored)"
    )
    description: str = Field(
        ...,
        min_length=1,
        max_length=500,
        description="Statement description"
    )
    amount: Decimal = Field(
        ...,
        description="Signed amount: positive = income, negative = expense"
    )
    notes: Optional[str] = Field(
        default=None,
        max_length=1000
    )
    is_adjustment: bool = Field(
        default=False,
        description="Adjustments may be changed inside locked months"
    )
    category_id: int
    account_id: int
    user_id: Optional[str] = Field(
        default=None,
        description="Owning user, if known"
    )
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: Optional[datetime] = None

    @property
    def is_income(self) -> bool:
        return self.amount > 0

    @property
    def is_expense(self) -> bool:
        return self.amount < 0

    def snapshot(self) -> dict:
        """Fields recorded in audit before/after snapshots."""
        return {
            "date": self.date.isoformat(),
            "description": self.description,
            "amount": str(self.amount),
            "category_id": self.category_id,
            "account_id": self.account_id,
            "notes": self.notes,
            "is_adjustment": self.is_adjustment,
        }


class MonthlyBudget(BaseModel):
    """
    Budget for one category in one calendar month.

    (year, month, category_id) is unique in storage.
    """
    model_config = ConfigDict(from_attributes=True)

    id: Optional[int] = None
    year: int = Field(..., ge=2000, le=2100)
    month: int = Field(..., ge=1, le=12)
    category_id: int
    budget_amount: Decimal = Field(
        ...,
        ge=0,
        description="Budgeted spend for the month"
    )
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: Optional[datetime] = None


class CategorizationRule(BaseModel):
    """
    Maps statement descriptions to a category.

    A rule matches when contains_text appears anywhere in the
    description, ignoring case. Lower priority values are tried first.
    """
    model_config = ConfigDict(str_strip_whitespace=True, from_attributes=True)

    id: Optional[int] = None
    priority: int = Field(
        default=100,
        description="Evaluation order, lowest first"
    )
    contains_text: str = Field(
        ...,
        min_length=1,
        max_length=200,
        description="Case-insensitive substring to look for"
    )
    category_id: int
    is_active: bool = True
    created_at: datetime = Field(default_factory=utcnow)

    def snapshot(self) -> dict:
        return {
            "contains_text": self.contains_text,
            "category_id": self.category_id,
            "priority": self.priority,
            "is_active": self.is_active,
        }


class LockedMonth(BaseModel):
    """
    A closed calendar month.

    The presence of a row is the lock. (year, month) is unique in storage.
    """
    model_config = ConfigDict(from_attributes=True)

    id: Optional[int] = None
    year: int = Field(..., ge=2000, le=2100)
    month: int = Field(..., ge=1, le=12)
    locked_at: datetime = Field(default_factory=utcnow)
    locked_by_user: Optional[str] = None


# =============================================================================
# SERVICE RESULTS
# =============================================================================

class OperationResult(BaseModel):
    """
    Outcome of a mutating service call.

    Business-rule rejections (locked month, dependent records,
    missing entity) come back as success=False with a message
    instead of raising.
    """

    success: bool
    message: str
    entity_id: Optional[int] = None

    @classmethod
    def ok(cls, message: str, entity_id: Optional[int] = None) -> "OperationResult":
        return cls(success=True, message=message, entity_id=entity_id)

    @classmethod
    def fail(cls, message: str) -> "OperationResult":
        return cls(success=False, message=message)


class TransactionFilter(BaseModel):
    """Listing filter for transactions. Every criterion is optional."""

    start_date: Optional[date_type] = None
    end_date: Optional[date_type] = None
    category_id: Optional[int] = None
    account_id: Optional[int] = None
    search_term: Optional[str] = Field(
        default=None,
        description="Case-insensitive match on description or notes"
    )
    min_amount: Optional[Decimal] = Field(
        default=None,
        ge=0,
        description="Minimum absolute amount"
    )
    max_amount: Optional[Decimal] = Field(
        default=None,
        ge=0,
        description="Maximum absolute amount"
    )
    is_adjustment: Optional[bool] = None
    page: int = Field(default=1, ge=1)
    page_size: Optional[int] = Field(default=None, ge=1, le=500)

    @model_validator(mode='after')
    def validate_ranges(self) -> 'TransactionFilter':
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("End date cannot be before start date")
        if (
            self.min_amount is not None
            and self.max_amount is not None
            and self.max_amount < self.min_amount
        ):
            raise ValueError("Maximum amount cannot be below minimum amount")
        return self


# =============================================================================
# IMPORT MODELS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single problem found while reading an import row."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'invalid_format', 'locked_month')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )


class ImportRow(BaseModel):
    """One CSV row as staged for review before commit."""

    row_number: int = Field(
        ...,
        ge=2,
        description="Line number in the file; the header is line 1"
    )
    date: Optional[date_type] = None
    description: str = ""
    amount: Decimal = Decimal("0")
    category_id: Optional[int] = None
    category_name: Optional[str] = None
    category_suggested_by_rule: bool = False
    status: ImportRowStatus = ImportRowStatus.OK
    issues: list[ValidationIssue] = Field(default_factory=list)
    is_selected: bool = True

    @property
    def validation_errors(self) -> list[str]:
        return [issue.message for issue in self.issues]


class ImportPreview(BaseModel):
    """Parsed CSV file with per-row status, awaiting confirmation."""

    account_id: int
    account_name: Optional[str] = None
    rows: list[ImportRow] = Field(default_factory=list)

    @property
    def total_rows(self) -> int:
        return len(self.rows)

    @property
    def valid_rows(self) -> int:
        return sum(1 for r in self.rows if r.status == ImportRowStatus.OK)

    @property
    def duplicate_rows(self) -> int:
        return sum(1 for r in self.rows if r.status == ImportRowStatus.DUPLICATE)

    @property
    def invalid_rows(self) -> int:
        return sum(1 for r in self.rows if r.status == ImportRowStatus.INVALID)


class ImportResult(BaseModel):
    """Outcome of committing an import preview."""

    success: bool
    message: str
    imported_count: int = Field(default=0, ge=0)
    failed_count: int = Field(default=0, ge=0)
    skipped_count: int = Field(default=0, ge=0)


# =============================================================================
# PACING MODELS
# =============================================================================

class CategoryBudgetSummary(BaseModel):
    """Budget against actual spend for one category in one month."""

    category_id: int
    category_name: str
    budget_amount: Decimal
    spent_amount: Decimal
    remaining: Decimal
    expected_to_date: Decimal
    safe_to_spend_today: Decimal = Field(..., ge=0)
    status: BudgetStatus
    percent_used: Decimal


class BudgetPacing(BaseModel):
    """Whole-month pacing across every category."""

    year: int
    month: int
    total_budget: Decimal
    total_spent: Decimal
    total_remaining: Decimal
    expected_to_date: Decimal
    safe_to_spend_today: Decimal = Field(..., ge=0)
    days_in_month: int = Field(..., ge=28, le=31)
    current_day: int = Field(..., ge=1, le=31)
    remaining_days: int
    overall_status: BudgetStatus
    percent_used: Decimal
    category_summaries: list[CategoryBudgetSummary] = Field(default_factory=list)


# =============================================================================
# REPORT MODELS
# =============================================================================

class TopExpense(BaseModel):
    """A single large expense, amount shown as a positive number."""

    transaction_id: Optional[int] = None
    date: date_type
    description: str
    amount: Decimal
    category_name: str


class BudgetVsActualLine(BaseModel):
    category_id: int
    category_name: str
    budget: Decimal
    actual: Decimal

    @property
    def variance(self) -> Decimal:
        return self.budget - self.actual

    @property
    def percent_used(self) -> Decimal:
        return self.actual / self.budget * 100 if self.budget > 0 else Decimal("0")


class BudgetVsActualReport(BaseModel):
    year: int
    month: int
    categories: list[BudgetVsActualLine] = Field(default_factory=list)
    total_budget: Decimal = Decimal("0")
    total_actual: Decimal = Decimal("0")

    @property
    def total_variance(self) -> Decimal:
        return self.total_budget - self.total_actual


class MonthOverMonthPoint(BaseModel):
    year: int
    month: int
    total_income: Decimal
    total_expenses: Decimal
    category_totals: dict[str, Decimal] = Field(default_factory=dict)

    @property
    def net_change(self) -> Decimal:
        return self.total_income - self.total_expenses


class MonthOverMonthReport(BaseModel):
    year: int
    data_points: list[MonthOverMonthPoint] = Field(default_factory=list)
    categories: list[str] = Field(default_factory=list)


class DashboardSummary(BaseModel):
    """Everything the monthly dashboard shows, before any formatting."""

    year: int
    month: int
    total_income: Decimal
    total_expenses: Decimal
    pacing: BudgetPacing
    top_categories: list[CategoryBudgetSummary] = Field(default_factory=list)
    over_budget_categories: list[CategoryBudgetSummary] = Field(default_factory=list)
    recent_transactions: list[Transaction] = Field(default_factory=list)
    top_expenses: list[TopExpense] = Field(default_factory=list)
    is_month_locked: bool = False
    uncategorized_count: int = 0

    @property
    def net_change(self) -> Decimal:
        return self.total_income - self.total_expenses
