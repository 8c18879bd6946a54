"""
Main Orchestrator for Budget Manager

This module ties together all the components and defines the
end-to-end flows for:
1. CSV Import (file -> validate -> categorise -> dedup -> preview -> confirm -> save)
2. Dashboard (budgets + transactions -> pacing -> monthly summary)

DESIGN DECISION: The orchestrator enforces the boundaries:
- No imported row persists without the user confirming the preview
- Rows in locked months never get in, even if the lock arrived after the preview
- Every committed import is audited

This is the "glue" that ensures the system works correctly
even when individual components might behave unexpectedly.
"""

import csv
import io
from decimal import Decimal
from dataclasses import dataclass
from typing import IO, Optional, Union

import structlog
from pydantic import ValidationError

from budget_manager.audit import AuditLogger, configure_logging
from budget_manager.categorization.matcher import RuleMatcher
from budget_manager.config import LedgerSettings, get_settings
from budget_manager.dedup.checker import DuplicateChecker
from budget_manager.ledger import (
    AccountService,
    BudgetService,
    CategoryService,
    LockingService,
    RuleService,
    TransactionService,
)
from budget_manager.models.ledger import (
    BudgetStatus,
    DashboardSummary,
    ImportPreview,
    ImportResult,
    ImportRow,
    ImportRowStatus,
    Transaction,
    TransactionFilter,
    utcnow,
)
from budget_manager.pacing.calculator import BudgetPacingCalculator, Clock
from budget_manager.reports.builder import ReportBuilder
from budget_manager.services.storage import (
    ConnectionError,
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
    LedgerStorageInterface,
    SqlAuditStorage,
    SqlClient,
    SqlLedgerStorage,
)
from budget_manager.validation.validator import ImportRowValidator


logger = structlog.get_logger(__name__)


CsvSource = Union[str, bytes, IO[str], IO[bytes]]


class ImportFlow:
    """
    Orchestrates the CSV import flow.

    Flow:
    1. Parse -> read rows by header name, falling back to column position
    2. Validate -> field checks (date, description, amount)
    3. Categorise -> named category, else rule suggestion, else default
    4. Check -> duplicate flag, then locked-month flag
    5. Review -> ImportPreview goes back to the user (PAUSE)
    6. Confirm -> import_transactions commits the selected OK rows

    The preview never writes anything.
    """

    DATE_COLUMN = "date"
    DESCRIPTION_COLUMN = "description"
    AMOUNT_COLUMN = "amount"
    CATEGORY_COLUMN = "category"

    def __init__(
        self,
        storage: LedgerStorageInterface,
        category_service: CategoryService,
        rule_service: RuleService,
        locking_service: LockingService,
        audit_logger: Optional[AuditLogger] = None,
        validator: Optional[ImportRowValidator] = None,
        duplicate_checker: Optional[DuplicateChecker] = None,
        settings: Optional[LedgerSettings] = None,
    ):
        self._storage = storage
        self._categories = category_service
        self._rules = rule_service
        self._locking = locking_service
        self._audit_logger = audit_logger or AuditLogger()
        self._validator = validator or ImportRowValidator()
        self._duplicates = duplicate_checker or DuplicateChecker()
        self._settings = settings or get_settings().ledger

    def _as_text_stream(self, source: CsvSource) -> IO[str]:
        if isinstance(source, bytes):
            return io.StringIO(source.decode(self._settings.csv_encoding))
        if isinstance(source, str):
            return io.StringIO(source)
        sample = source.read()
        if isinstance(sample, bytes):
            sample = sample.decode(self._settings.csv_encoding)
        return io.StringIO(sample)

    @staticmethod
    def _field(
        row: dict,
        columns: dict[str, str],
        fieldnames: list[str],
        name: str,
        position: Optional[int],
    ) -> Optional[str]:
        """Value by header name (any case), else by column position."""
        header = columns.get(name)
        if header is not None:
            return row.get(header)
        if position is not None and position < len(fieldnames):
            return row.get(fieldnames[position])
        return None

    async def parse_csv(self, source: CsvSource, account_id: int) -> ImportPreview:
        """
        Read a bank export into a preview.

        Every data row appears in the preview exactly once, with its
        status and, for invalid rows, every reason it failed.
        """
        account = await self._storage.get_account(account_id)
        preview = ImportPreview(
            account_id=account_id,
            account_name=account.name if account else None,
        )

        reader = csv.DictReader(self._as_text_stream(source))
        fieldnames = list(reader.fieldnames or [])
        columns = {name.strip().lower(): name for name in fieldnames if name}

        default_category_id = await self._categories.get_default_category_id()
        rules = await self._rules.list_active_rules()
        matcher = RuleMatcher()
        gate = await self._locking.gate()
        category_names = {c.id: c.name for c in await self._categories.list_categories()}

        # The header is line 1
        for row_number, record in enumerate(reader, start=2):
            row = self._validator.validate_fields(
                row_number=row_number,
                raw_date=self._field(record, columns, fieldnames, self.DATE_COLUMN, 0),
                raw_description=self._field(record, columns, fieldnames, self.DESCRIPTION_COLUMN, 1),
                raw_amount=self._field(record, columns, fieldnames, self.AMOUNT_COLUMN, 2),
            )

            await self._assign_category(
                row,
                self._field(record, columns, fieldnames, self.CATEGORY_COLUMN, None),
                matcher,
                rules,
                default_category_id,
                category_names,
            )

            if row.status != ImportRowStatus.INVALID and row.date is not None:
                existing = await self._storage.transactions_on(row.date, account_id)
                is_duplicate = self._duplicates.is_duplicate(
                    row.date, row.amount, row.description, account_id, existing
                )
                self._validator.validate_against_ledger(row, is_duplicate, gate)

            preview.rows.append(row)

        logger.info(
            "csv_parsed",
            account_id=account_id,
            total=preview.total_rows,
            valid=preview.valid_rows,
            duplicate=preview.duplicate_rows,
            invalid=preview.invalid_rows,
        )
        return preview

    async def _assign_category(
        self,
        row: ImportRow,
        raw_category: Optional[str],
        matcher: RuleMatcher,
        rules: list,
        default_category_id: Optional[int],
        category_names: dict[int, str],
    ) -> None:
        if raw_category and raw_category.strip():
            category = await self._categories.get_category_by_name(raw_category.strip())
            if category is not None:
                row.category_id = category.id
                row.category_name = category.name
                return

        suggested = matcher.match(row.description, rules)
        if suggested is not None:
            row.category_id = suggested
            row.category_name = category_names.get(suggested, "Unknown")
            row.category_suggested_by_rule = True
            return

        row.category_id = default_category_id
        row.category_name = self._settings.default_category_name

    async def import_transactions(
        self,
        preview: ImportPreview,
        actor: Optional[str] = None,
    ) -> ImportResult:
        """
        Commit the selected OK rows of a preview in one batch.

        A row fails when its category is missing or gone, no longer fits
        the transaction schema, or its month was locked after the preview.
        """
        if await self._storage.get_account(preview.account_id) is None:
            return ImportResult(success=False, message="Account not found.")

        default_category_id = await self._categories.get_default_category_id()
        category_ids = {c.id for c in await self._categories.list_categories()}
        gate = await self._locking.gate()

        selected = [
            r for r in preview.rows
            if r.status == ImportRowStatus.OK and r.is_selected
        ]
        skipped = len(preview.rows) - len(selected)

        to_add: list[Transaction] = []
        failed = 0
        now = utcnow()

        for row in selected:
            category_id = row.category_id if row.category_id is not None else default_category_id
            if (
                category_id not in category_ids
                or row.date is None
                or gate.is_date_locked(row.date)
            ):
                failed += 1
                continue
            try:
                to_add.append(Transaction(
                    date=row.date,
                    description=row.description,
                    amount=row.amount,
                    category_id=category_id,
                    account_id=preview.account_id,
                    user_id=actor,
                    created_at=now,
                ))
            except ValidationError as e:
                logger.warning("import_row_rejected", row_number=row.row_number, error=str(e))
                failed += 1

        if to_add:
            await self._storage.add_transactions(to_add)

        imported = len(to_add)
        await self._audit_logger.log_transactions_imported(
            account_id=preview.account_id,
            imported_count=imported,
            failed_count=failed,
            actor=actor,
        )

        success = failed == 0
        message = (
            f"Successfully imported {imported} transactions."
            if success
            else f"Imported {imported} transactions with {failed} failures."
        )

        return ImportResult(
            success=success,
            message=message,
            imported_count=imported,
            failed_count=failed,
            skipped_count=skipped,
        )


class DashboardFlow:
    """
    Orchestrates the monthly dashboard.

    Flow:
    1. Pacing -> budget summary for every active category
    2. Totals -> income and expenses for the month
    3. Highlights -> top categories, over-budget categories, top expenses
    4. State -> lock flag and the count still waiting for a category
    """

    TOP_CATEGORY_COUNT = 5
    TOP_EXPENSE_COUNT = 5

    def __init__(
        self,
        budget_service: BudgetService,
        transaction_service: TransactionService,
        locking_service: LockingService,
        category_service: CategoryService,
        settings: Optional[LedgerSettings] = None,
    ):
        self._budgets = budget_service
        self._transactions = transaction_service
        self._locking = locking_service
        self._categories = category_service
        self._settings = settings or get_settings().ledger

    async def build(self, year: int, month: int) -> DashboardSummary:
        pacing = await self._budgets.get_budget_pacing(year, month)
        transactions = await self._transactions.get_transactions_for_month(year, month)

        total_income = sum((t.amount for t in transactions if t.amount > 0), Decimal("0"))
        total_expenses = sum((-t.amount for t in transactions if t.amount < 0), Decimal("0"))

        top_categories = sorted(
            pacing.category_summaries,
            key=lambda s: s.spent_amount,
            reverse=True,
        )[:self.TOP_CATEGORY_COUNT]
        over_budget = [
            s for s in pacing.category_summaries
            if s.status == BudgetStatus.OVER
        ]

        uncategorized_count = 0
        default_category_id = await self._categories.get_default_category_id()
        if default_category_id is not None:
            uncategorized_count = await self._transactions.count_transactions(
                TransactionFilter(category_id=default_category_id)
            )

        return DashboardSummary(
            year=year,
            month=month,
            total_income=total_income,
            total_expenses=total_expenses,
            pacing=pacing,
            top_categories=top_categories,
            over_budget_categories=over_budget,
            recent_transactions=transactions[:self._settings.dashboard_recent_count],
            top_expenses=await self._transactions.get_top_expenses(
                year, month, self.TOP_EXPENSE_COUNT
            ),
            is_month_locked=await self._locking.is_month_locked(year, month),
            uncategorized_count=uncategorized_count,
        )


@dataclass
class AppComponents:
    """Everything create_app_components wires together."""
    storage: LedgerStorageInterface
    audit_logger: AuditLogger
    accounts: AccountService
    categories: CategoryService
    transactions: TransactionService
    budgets: BudgetService
    rules: RuleService
    locking: LockingService
    reports: ReportBuilder
    import_flow: ImportFlow
    dashboard_flow: DashboardFlow
    sql_client: Optional[SqlClient] = None


def create_app_components(
    use_storage: bool = True,
    clock: Optional[Clock] = None,
    sql_client: Optional[SqlClient] = None,
) -> AppComponents:
    """
    Factory function to create all application components.

    Args:
        use_storage: Whether to open the configured database.
                    Set to False for in-memory storage (tests, demos).
        clock: "Today" for pacing; defaults to the system date.
        sql_client: Pre-built client, e.g. one pointing at a test database.
    """
    settings = get_settings()
    configure_logging(settings.app.log_level)

    storage: LedgerStorageInterface
    if use_storage:
        try:
            sql_client = sql_client or SqlClient(settings.database)
            sql_client.create_schema()
            storage = SqlLedgerStorage(sql_client)
            audit_logger = AuditLogger(SqlAuditStorage(sql_client))
        except ConnectionError as e:
            # Database not reachable - continue in memory
            logger.warning("storage_unavailable", error=str(e))
            sql_client = None
            storage = InMemoryLedgerStorage()
            audit_logger = AuditLogger(InMemoryAuditStorage())
    else:
        sql_client = None
        storage = InMemoryLedgerStorage()
        audit_logger = AuditLogger(InMemoryAuditStorage())

    ledger_settings = settings.ledger
    locking = LockingService(storage, audit_logger)
    accounts = AccountService(storage, audit_logger)
    categories = CategoryService(storage, audit_logger, ledger_settings)
    transactions = TransactionService(storage, locking, audit_logger, ledger_settings)
    budgets = BudgetService(storage, audit_logger, BudgetPacingCalculator(clock))
    rules = RuleService(storage, audit_logger, settings=ledger_settings)

    return AppComponents(
        storage=storage,
        audit_logger=audit_logger,
        accounts=accounts,
        categories=categories,
        transactions=transactions,
        budgets=budgets,
        rules=rules,
        locking=locking,
        reports=ReportBuilder(
            storage,
            budgets,
            transactions,
            uncategorized_label=ledger_settings.default_category_name,
        ),
        import_flow=ImportFlow(
            storage,
            categories,
            rules,
            locking,
            audit_logger,
            settings=ledger_settings,
        ),
        dashboard_flow=DashboardFlow(
            budgets,
            transactions,
            locking,
            categories,
            settings=ledger_settings,
        ),
        sql_client=sql_client,
    )
