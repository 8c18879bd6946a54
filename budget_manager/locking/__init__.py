"""Month locking package."""

from budget_manager.locking.gate import LockingGate, month_label, month_name

__all__ = ["LockingGate", "month_label", "month_name"]
