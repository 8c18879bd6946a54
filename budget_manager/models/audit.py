"""
Audit Models for Budget Manager

Every mutation of ledger data is recorded in the activity log.
This provides:
1. Complete traceability of who changed what
2. Before/after snapshots for every edit and delete
3. A record of bulk operations (imports, re-categorisation, budget copies)
4. Ability to reconstruct history

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
The ledger never reads the log back to make decisions.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from budget_manager.models.ledger import utcnow


class AuditAction(str, Enum):
    """
    Action verbs recorded in the activity log.
    """
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    LOCK = "lock"
    UNLOCK = "unlock"
    REORDER = "reorder"
    BULK_CATEGORIZE = "bulk_categorize"
    COPY = "copy"
    IMPORT = "import"


class AuditEntity(str, Enum):
    """Entity kinds that appear in the activity log."""
    ACCOUNT = "Account"
    CATEGORY = "Category"
    TRANSACTION = "Transaction"
    MONTHLY_BUDGET = "MonthlyBudget"
    CATEGORIZATION_RULE = "CategorizationRule"
    LOCKED_MONTH = "LockedMonth"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single activity log entry.

    This is the core unit of our audit trail.
    Every successful mutation creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    action: AuditAction = Field(
        ...,
        description="What was done"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: AuditEntity = Field(
        ...,
        description="Kind of entity changed"
    )
    entity_id: Optional[int] = Field(
        default=None,
        description="ID of the entity; empty for bulk operations"
    )

    # Event details
    description: Optional[str] = Field(
        default=None,
        max_length=500,
        description="Human-readable description of what happened"
    )

    # Snapshots
    old_values: Optional[dict[str, Any]] = Field(
        default=None,
        description="State before the change"
    )
    new_values: Optional[dict[str, Any]] = Field(
        default=None,
        description="State after the change"
    )

    # Who did it
    actor: Optional[str] = Field(
        default=None,
        description="Identity of the user that triggered the change"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "action": self.action.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type.value,
            "entity_id": self.entity_id,
            "description": self.description,
            "old_values": self.old_values,
            "new_values": self.new_values,
            "actor": self.actor,
        }

    def old_values_json(self) -> Optional[str]:
        return json.dumps(self.old_values, default=str) if self.old_values is not None else None

    def new_values_json(self) -> Optional[str]:
        return json.dumps(self.new_values, default=str) if self.new_values is not None else None


def _month_label(year: int, month: int) -> str:
    return datetime(year, month, 1).strftime("%B %Y")


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.created(AuditEntity.ACCOUNT, 3, "Created account: Main", {...}, actor)
        event = AuditEventBuilder.month_locked(7, 2024, 5, actor)
    """

    @staticmethod
    def created(
        entity_type: AuditEntity,
        entity_id: Optional[int],
        description: str,
        new_values: dict[str, Any],
        actor: Optional[str] = None,
    ) -> AuditEvent:
        return AuditEvent(
            action=AuditAction.CREATE,
            entity_type=entity_type,
            entity_id=entity_id,
            description=description,
            new_values=new_values,
            actor=actor,
        )

    @staticmethod
    def updated(
        entity_type: AuditEntity,
        entity_id: Optional[int],
        description: str,
        old_values: dict[str, Any],
        new_values: dict[str, Any],
        actor: Optional[str] = None,
    ) -> AuditEvent:
        return AuditEvent(
            action=AuditAction.UPDATE,
            entity_type=entity_type,
            entity_id=entity_id,
            description=description,
            old_values=old_values,
            new_values=new_values,
            actor=actor,
        )

    @staticmethod
    def deleted(
        entity_type: AuditEntity,
        entity_id: Optional[int],
        description: str,
        old_values: dict[str, Any],
        actor: Optional[str] = None,
    ) -> AuditEvent:
        return AuditEvent(
            action=AuditAction.DELETE,
            entity_type=entity_type,
            entity_id=entity_id,
            description=description,
            old_values=old_values,
            actor=actor,
        )

    @staticmethod
    def month_locked(
        locked_month_id: Optional[int],
        year: int,
        month: int,
        actor: Optional[str] = None,
    ) -> AuditEvent:
        return AuditEvent(
            action=AuditAction.LOCK,
            entity_type=AuditEntity.LOCKED_MONTH,
            entity_id=locked_month_id,
            description=f"Locked {_month_label(year, month)}",
            new_values={"year": year, "month": month},
            actor=actor,
        )

    @staticmethod
    def month_unlocked(
        locked_month_id: Optional[int],
        year: int,
        month: int,
        actor: Optional[str] = None,
    ) -> AuditEvent:
        return AuditEvent(
            action=AuditAction.UNLOCK,
            entity_type=AuditEntity.LOCKED_MONTH,
            entity_id=locked_month_id,
            description=f"Unlocked {_month_label(year, month)}",
            old_values={"year": year, "month": month},
            actor=actor,
        )

    @staticmethod
    def rules_reordered(actor: Optional[str] = None) -> AuditEvent:
        return AuditEvent(
            action=AuditAction.REORDER,
            entity_type=AuditEntity.CATEGORIZATION_RULE,
            description="Reordered categorization rules",
            actor=actor,
        )

    @staticmethod
    def bulk_categorized(
        categorized_count: int,
        actor: Optional[str] = None,
    ) -> AuditEvent:
        return AuditEvent(
            action=AuditAction.BULK_CATEGORIZE,
            entity_type=AuditEntity.TRANSACTION,
            description=f"Applied rules to {categorized_count} uncategorized transactions",
            new_values={"categorized_count": categorized_count},
            actor=actor,
        )

    @staticmethod
    def budgets_copied(
        source_year: int,
        source_month: int,
        target_year: int,
        target_month: int,
        count: int,
        actor: Optional[str] = None,
    ) -> AuditEvent:
        return AuditEvent(
            action=AuditAction.COPY,
            entity_type=AuditEntity.MONTHLY_BUDGET,
            description=(
                f"Copied {count} budgets from {source_month}/{source_year} "
                f"to {target_month}/{target_year}"
            ),
            new_values={
                "source_year": source_year,
                "source_month": source_month,
                "target_year": target_year,
                "target_month": target_month,
                "count": count,
            },
            actor=actor,
        )

    @staticmethod
    def transactions_imported(
        account_id: int,
        imported_count: int,
        failed_count: int,
        actor: Optional[str] = None,
    ) -> AuditEvent:
        return AuditEvent(
            action=AuditAction.IMPORT,
            entity_type=AuditEntity.TRANSACTION,
            description=(
                f"Imported {imported_count} transactions from CSV "
                f"(Account: {account_id})"
            ),
            new_values={
                "account_id": account_id,
                "imported_count": imported_count,
                "failed_count": failed_count,
            },
            actor=actor,
        )
