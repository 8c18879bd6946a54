"""
Rule Service

Storage-backed wrapper around RuleMatcher: rule CRUD, reordering, and
bulk re-categorisation of transactions still sitting in the default
category.
"""

from typing import Optional

import structlog

from budget_manager.audit import AuditLogger
from budget_manager.categorization.matcher import RuleMatcher
from budget_manager.config import LedgerSettings, get_settings
from budget_manager.models.audit import AuditEntity
from budget_manager.models.ledger import (
    CategorizationRule,
    OperationResult,
    TransactionFilter,
    utcnow,
)
from budget_manager.services.storage import LedgerStorageInterface


logger = structlog.get_logger(__name__)


class RuleService:
    def __init__(
        self,
        storage: LedgerStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
        matcher: Optional[RuleMatcher] = None,
        settings: Optional[LedgerSettings] = None,
    ):
        self._storage = storage
        self._audit_logger = audit_logger or AuditLogger()
        self._matcher = matcher or RuleMatcher()
        self._settings = settings or get_settings().ledger

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    async def list_rules(self) -> list[CategorizationRule]:
        """All rules in evaluation order."""
        return await self._storage.list_rules()

    async def list_active_rules(self) -> list[CategorizationRule]:
        return await self._storage.list_rules(active_only=True)

    async def get_rule(self, rule_id: int) -> Optional[CategorizationRule]:
        return await self._storage.get_rule(rule_id)

    async def apply_rules_to_description(self, description: Optional[str]) -> Optional[int]:
        """Category suggested for a description, or None."""
        if not description or not description.strip():
            return None
        return self._matcher.match(description, await self.list_active_rules())

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    async def create_rule(
        self,
        rule: CategorizationRule,
        actor: Optional[str] = None,
    ) -> OperationResult:
        if await self._storage.get_category(rule.category_id) is None:
            return OperationResult.fail("Category not found.")

        saved = await self._storage.add_rule(rule.model_copy(update={"created_at": utcnow()}))
        await self._audit_logger.log_created(
            AuditEntity.CATEGORIZATION_RULE,
            saved.id,
            f"Created rule: '{saved.contains_text}' -> Category {saved.category_id}",
            saved.snapshot(),
            actor,
        )
        return OperationResult.ok("Rule created successfully.", saved.id)

    async def update_rule(
        self,
        rule: CategorizationRule,
        actor: Optional[str] = None,
    ) -> OperationResult:
        existing = await self._storage.get_rule(rule.id) if rule.id is not None else None
        if existing is None:
            return OperationResult.fail("Rule not found.")
        if await self._storage.get_category(rule.category_id) is None:
            return OperationResult.fail("Category not found.")

        updated = existing.model_copy(update={
            "contains_text": rule.contains_text,
            "category_id": rule.category_id,
            "priority": rule.priority,
            "is_active": rule.is_active,
        })
        await self._storage.update_rule(updated)

        await self._audit_logger.log_updated(
            AuditEntity.CATEGORIZATION_RULE,
            existing.id,
            f"Updated rule: '{updated.contains_text}'",
            existing.snapshot(),
            updated.snapshot(),
            actor,
        )
        return OperationResult.ok("Rule updated successfully.", existing.id)

    async def delete_rule(
        self,
        rule_id: int,
        actor: Optional[str] = None,
    ) -> OperationResult:
        rule = await self._storage.get_rule(rule_id)
        if rule is None:
            return OperationResult.fail("Rule not found.")

        await self._storage.delete_rule(rule_id)
        await self._audit_logger.log_deleted(
            AuditEntity.CATEGORIZATION_RULE,
            rule_id,
            f"Deleted rule: '{rule.contains_text}'",
            {
                "contains_text": rule.contains_text,
                "category_id": rule.category_id,
                "priority": rule.priority,
            },
            actor,
        )
        return OperationResult.ok("Rule deleted successfully.", rule_id)

    async def reorder_rules(
        self,
        priorities: dict[int, int],
        actor: Optional[str] = None,
    ) -> int:
        """
        Apply {rule_id: new_priority} in one commit.

        Unknown ids are ignored. One reorder event is written for the
        whole batch. Returns the number of rules changed.
        """
        changed = await self._storage.set_rule_priorities(priorities)
        await self._audit_logger.log_rules_reordered(actor)
        return changed

    async def _bulk_source_category_id(self) -> Optional[int]:
        for name in (self._settings.default_category_name, self._settings.fallback_category_name):
            category = await self._storage.get_category_by_name(name)
            if category is not None:
                return category.id
        return None

    async def apply_rules_to_uncategorized(self, actor: Optional[str] = None) -> int:
        """
        Re-run the rules over every transaction in the default category.

        Matched transactions move to the rule's category; the rest are
        left alone. All updates are committed together.

        Returns:
            Number of transactions re-categorised
        """
        source_id = await self._bulk_source_category_id()
        if source_id is None:
            return 0

        rules = await self.list_active_rules()
        candidates = await self._storage.list_transactions(
            TransactionFilter(category_id=source_id)
        )

        now = utcnow()
        changed = []
        for txn in candidates:
            category_id = self._matcher.match(txn.description, rules)
            if category_id is None:
                continue
            changed.append(txn.model_copy(update={"category_id": category_id, "updated_at": now}))

        if not changed:
            return 0

        await self._storage.update_transactions(changed)
        logger.info("bulk_categorized", count=len(changed), source_category_id=source_id)
        await self._audit_logger.log_bulk_categorized(len(changed), actor)
        return len(changed)
