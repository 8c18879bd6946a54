"""
Audit Logger

DESIGN DECISION: Every successful mutation of ledger data is logged.
This provides:
1. Complete traceability
2. Debugging capability
3. User can see the history of every account, category and transaction

The audit logger:
- Is async so it sits naturally beside the async storage calls
- Gracefully handles failures (doesn't break the ledger if logging fails)
- Never logs rejected operations; a refusal changes nothing
"""

import logging
from typing import Any, Optional

import structlog

from budget_manager.models.audit import AuditEntity, AuditEvent, AuditEventBuilder, AuditSeverity
from budget_manager.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


def configure_logging(level: str = "INFO") -> None:
    """
    Route structlog output through the standard library at the given level.

    filter_by_level consults the stdlib logger, so the level set
    here is the one that decides what gets emitted.
    """
    logging.basicConfig(format="%(message)s", level=getattr(logging, level.upper()))


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage (for persistence and the activity view)
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("budget_manager.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    # -------------------------------------------------------------------------
    # Entity lifecycle
    # -------------------------------------------------------------------------

    async def log_created(
        self,
        entity_type: AuditEntity,
        entity_id: Optional[int],
        description: str,
        new_values: dict[str, Any],
        actor: Optional[str] = None,
    ) -> None:
        event = AuditEventBuilder.created(
            entity_type=entity_type,
            entity_id=entity_id,
            description=description,
            new_values=new_values,
            actor=actor,
        )
        await self.log(event)

    async def log_updated(
        self,
        entity_type: AuditEntity,
        entity_id: Optional[int],
        description: str,
        old_values: dict[str, Any],
        new_values: dict[str, Any],
        actor: Optional[str] = None,
    ) -> None:
        event = AuditEventBuilder.updated(
            entity_type=entity_type,
            entity_id=entity_id,
            description=description,
            old_values=old_values,
            new_values=new_values,
            actor=actor,
        )
        await self.log(event)

    async def log_deleted(
        self,
        entity_type: AuditEntity,
        entity_id: Optional[int],
        description: str,
        old_values: dict[str, Any],
        actor: Optional[str] = None,
    ) -> None:
        event = AuditEventBuilder.deleted(
            entity_type=entity_type,
            entity_id=entity_id,
            description=description,
            old_values=old_values,
            actor=actor,
        )
        await self.log(event)

    # -------------------------------------------------------------------------
    # Month locking
    # -------------------------------------------------------------------------

    async def log_month_locked(
        self,
        locked_month_id: Optional[int],
        year: int,
        month: int,
        actor: Optional[str] = None,
    ) -> None:
        """Log a month being closed."""
        await self.log(AuditEventBuilder.month_locked(locked_month_id, year, month, actor))

    async def log_month_unlocked(
        self,
        locked_month_id: Optional[int],
        year: int,
        month: int,
        actor: Optional[str] = None,
    ) -> None:
        """Log a month being reopened."""
        await self.log(AuditEventBuilder.month_unlocked(locked_month_id, year, month, actor))

    # -------------------------------------------------------------------------
    # Bulk operations
    # -------------------------------------------------------------------------

    async def log_rules_reordered(self, actor: Optional[str] = None) -> None:
        await self.log(AuditEventBuilder.rules_reordered(actor))

    async def log_bulk_categorized(
        self,
        categorized_count: int,
        actor: Optional[str] = None,
    ) -> None:
        await self.log(AuditEventBuilder.bulk_categorized(categorized_count, actor))

    async def log_budgets_copied(
        self,
        source_year: int,
        source_month: int,
        target_year: int,
        target_month: int,
        count: int,
        actor: Optional[str] = None,
    ) -> None:
        event = AuditEventBuilder.budgets_copied(
            source_year=source_year,
            source_month=source_month,
            target_year=target_year,
            target_month=target_month,
            count=count,
            actor=actor,
        )
        await self.log(event)

    async def log_transactions_imported(
        self,
        account_id: int,
        imported_count: int,
        failed_count: int,
        actor: Optional[str] = None,
    ) -> None:
        event = AuditEventBuilder.transactions_imported(
            account_id=account_id,
            imported_count=imported_count,
            failed_count=failed_count,
            actor=actor,
        )
        await self.log(event)

    # -------------------------------------------------------------------------
    # Reading the log back
    # -------------------------------------------------------------------------

    async def history(self, entity_type: AuditEntity, entity_id: int) -> list[AuditEvent]:
        """Events recorded against one entity, newest first."""
        if self._storage is None:
            return []
        return await self._storage.get_events_by_entity(entity_type, entity_id)

    async def recent(self, limit: int = 50, offset: int = 0) -> list[AuditEvent]:
        if self._storage is None:
            return []
        return await self._storage.get_recent_events(limit=limit, offset=offset)
