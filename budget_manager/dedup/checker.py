"""
Duplicate Detection for Imports

DESIGN DECISION: Duplicate detection is a heuristic, not a constraint.
Banks re-export the same transaction with cosmetic differences
(reference numbers, store numbers, spacing), so we compare a normalised
description and the amount rounded to cents, among transactions on the
same day in the same account.

A duplicate is only flagged for review. It never blocks a manual entry.
"""

import re
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Union

from budget_manager.models.ledger import Transaction


_WHITESPACE = re.compile(r"\s+")
_LONG_NUMBER = re.compile(r"\b\d{4,}\b")
_HASH_NUMBER = re.compile(r"#\d+")

_CENTS = Decimal("0.01")


def normalize_description(description: str) -> str:
    """
    Canonical form of a statement description.

    "  STARBUCKS   #1234 " and "Starbucks" both become "starbucks".
    """
    if not description or not description.strip():
        return ""

    text = _WHITESPACE.sub(" ", description.strip().lower())
    # "#12345" goes as a whole; stripping the digits first would leave a stray "#"
    text = _HASH_NUMBER.sub("", text)
    text = _LONG_NUMBER.sub("", text)
    return _WHITESPACE.sub(" ", text).strip()


def round_amount(amount: Union[Decimal, float, int, str]) -> Decimal:
    """Round to cents, halves away from zero."""
    if not isinstance(amount, Decimal):
        # str() first so 85.555 is not read as 85.55499999...
        amount = Decimal(str(amount))
    return amount.quantize(_CENTS, rounding=ROUND_HALF_UP)


class DuplicateChecker:
    """Decides whether an incoming row repeats an existing transaction."""

    def is_duplicate(
        self,
        txn_date: date,
        amount: Decimal,
        description: str,
        account_id: int,
        existing: Iterable[Transaction],
    ) -> bool:
        """
        Check a candidate row against existing transactions.

        Only transactions with the same date and account are compared.
        The existing collection is never modified.
        """
        target_description = normalize_description(description)
        target_amount = round_amount(amount)

        for txn in existing:
            if txn.date != txn_date or txn.account_id != account_id:
                continue
            if (
                normalize_description(txn.description) == target_description
                and round_amount(txn.amount) == target_amount
            ):
                return True

        return False
