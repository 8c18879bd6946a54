"""
Two-Stage Import Row Validation

DESIGN DECISION: Each CSV row is validated in two distinct stages:

STAGE 1 - FIELD VALIDATION:
- Date parses in one of the accepted formats
- Description is present
- Amount parses once currency symbols and thousands separators are removed
- Every problem is collected; one bad field does not hide another

STAGE 2 - LEDGER VALIDATION (only for rows that passed stage 1):
- Duplicate of an existing transaction -> DUPLICATE
- Falls in a locked month -> INVALID
- Otherwise OK

WHY TWO STAGES:
1. Stage 1 needs nothing but the row itself
2. Stage 2 needs the ledger (existing transactions, locked months)
3. A row with an unreadable date cannot be placed in a month anyway

IMPORTANT: Validation NEVER silently fixes issues.
Invalid rows are kept in the preview with their reasons, and the rest
of the batch carries on.
"""

from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Optional

from budget_manager.locking.gate import LockingGate
from budget_manager.models.ledger import ImportRow, ImportRowStatus, ValidationIssue


# Formats tried in order; month-first wins for ambiguous dates like 03/04/2024
DATE_FORMATS = [
    "%m/%d/%Y",      # 01/30/2025
    "%m/%d/%y",      # 1/30/25
    "%Y-%m-%d",      # 2025-01-30
    "%Y/%m/%d",      # 2025/01/30
    "%m-%d-%Y",      # 01-30-2025
    "%d-%b-%Y",      # 30-Jan-2025
    "%b %d, %Y",     # Jan 30, 2025
    "%B %d, %Y",     # January 30, 2025
    "%Y-%m-%dT%H:%M:%S",
    "%m/%d/%Y %H:%M:%S",
    "%m/%d/%Y %I:%M:%S %p",
]


def parse_date(raw: Optional[str]) -> Optional[date]:
    """Parse a statement date, or return None if no format fits."""
    if raw is None or not raw.strip():
        return None

    text = raw.strip()
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue

    return None


def parse_amount(raw: Optional[str]) -> Optional[Decimal]:
    """Parse a signed amount such as "-$1,234.50", or return None."""
    if raw is None:
        return None

    cleaned = raw.replace("$", "").replace(",", "").strip()
    if not cleaned:
        return None

    try:
        amount = Decimal(cleaned)
    except InvalidOperation:
        return None

    # Decimal happily reads "NaN" and "Infinity"; a bank amount is neither
    if not amount.is_finite():
        return None

    return amount


class ImportRowValidator:
    """
    Validates CSV rows through a two-stage pipeline.

    Stage 1: Field validation (no ledger access)
    Stage 2: Ledger validation (duplicate flag and lock state supplied by caller)
    """

    def validate_fields(
        self,
        row_number: int,
        raw_date: Optional[str],
        raw_description: Optional[str],
        raw_amount: Optional[str],
    ) -> ImportRow:
        """
        Stage 1: parse the three required fields.

        Returns an ImportRow; status is INVALID when any field failed,
        otherwise OK pending stage 2.
        """
        issues = []

        parsed_date = parse_date(raw_date)
        if parsed_date is None:
            issues.append(ValidationIssue(
                field="date",
                issue_type="invalid_format",
                message=f"Invalid date format: {raw_date or ''}",
            ))

        description = (raw_description or "").strip()
        if not description:
            issues.append(ValidationIssue(
                field="description",
                issue_type="missing",
                message="Description is required",
            ))

        amount = parse_amount(raw_amount)
        if amount is None:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="invalid_format",
                message=f"Invalid amount format: {raw_amount or ''}",
            ))

        return ImportRow(
            row_number=row_number,
            date=parsed_date,
            description=description,
            amount=amount if amount is not None else Decimal("0"),
            status=ImportRowStatus.INVALID if issues else ImportRowStatus.OK,
            issues=issues,
        )

    def validate_against_ledger(
        self,
        row: ImportRow,
        is_duplicate: bool,
        gate: LockingGate,
    ) -> ImportRow:
        """
        Stage 2: decide DUPLICATE / INVALID / OK for a row that passed stage 1.

        Rows that already failed stage 1 are returned unchanged.
        A duplicate is reported as such even when its month is locked.
        """
        if row.status == ImportRowStatus.INVALID or row.date is None:
            return row

        if is_duplicate:
            row.status = ImportRowStatus.DUPLICATE
        elif gate.is_date_locked(row.date):
            row.status = ImportRowStatus.INVALID
            row.issues.append(ValidationIssue(
                field="date",
                issue_type="locked_month",
                message=f"Month {row.date.strftime('%b %Y')} is locked",
            ))
        else:
            row.status = ImportRowStatus.OK

        return row

    @staticmethod
    def get_user_friendly_summary(row: ImportRow) -> str:
        """One line per row for the preview table."""
        if row.status == ImportRowStatus.OK:
            return "Ready to import"
        if row.status == ImportRowStatus.DUPLICATE:
            return "Possible duplicate of an existing transaction"
        return "; ".join(row.validation_errors)
