"""
Locking Gate

A month is LOCKED iff a LockedMonth record exists for its (year, month).
There are no other states.

Adjustments bypass the gate entirely: they exist so that corrections
can still be entered after a month has been closed. Locking never
touches the transactions already in the month.
"""

import calendar
from datetime import date
from typing import Iterable, Union

from budget_manager.models.ledger import LockedMonth, Transaction


def month_name(month: int) -> str:
    """Full English month name ("January")."""
    return calendar.month_name[month]


def month_label(year: int, month: int) -> str:
    """ "January 2024" """
    return f"{month_name(month)} {year}"


class LockingGate:
    """
    Pure lock check over a snapshot of locked months.

    Build one per request from LockingService.gate(); it does not
    see locks added after it was created.
    """

    def __init__(self, locked_months: Iterable[Union[LockedMonth, tuple[int, int]]] = ()):
        self._locked: set[tuple[int, int]] = set()
        for entry in locked_months:
            if isinstance(entry, LockedMonth):
                self._locked.add((entry.year, entry.month))
            else:
                self._locked.add((entry[0], entry[1]))

    def is_locked(self, year: int, month: int) -> bool:
        return (year, month) in self._locked

    def is_date_locked(self, day: date) -> bool:
        return self.is_locked(day.year, day.month)

    def _allows(self, transaction: Transaction) -> bool:
        if transaction.is_adjustment:
            return True
        return not self.is_date_locked(transaction.date)

    def can_create(self, transaction: Transaction) -> bool:
        return self._allows(transaction)

    def can_edit(self, transaction: Transaction) -> bool:
        return self._allows(transaction)

    def can_delete(self, transaction: Transaction) -> bool:
        return self._allows(transaction)
