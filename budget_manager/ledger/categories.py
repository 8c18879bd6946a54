"""
Category Service

CRUD over categories. Deleting a category takes its budgets and rules
with it, so it is refused while any transaction still points at it.
"""

from typing import Optional

from budget_manager.audit import AuditLogger
from budget_manager.config import LedgerSettings, get_settings
from budget_manager.models.audit import AuditEntity
from budget_manager.models.ledger import Category, OperationResult
from budget_manager.services.storage import DuplicateError, LedgerStorageInterface


def _snapshot(category: Category) -> dict:
    return {
        "name": category.name,
        "description": category.description,
        "is_active": category.is_active,
    }


class CategoryService:
    def __init__(
        self,
        storage: LedgerStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[LedgerSettings] = None,
    ):
        self._storage = storage
        self._audit_logger = audit_logger or AuditLogger()
        self._settings = settings or get_settings().ledger

    async def list_categories(self) -> list[Category]:
        return await self._storage.list_categories()

    async def list_active_categories(self) -> list[Category]:
        return await self._storage.list_categories(active_only=True)

    async def get_category(self, category_id: int) -> Optional[Category]:
        return await self._storage.get_category(category_id)

    async def get_category_by_name(self, name: str) -> Optional[Category]:
        """Case-insensitive lookup."""
        return await self._storage.get_category_by_name(name)

    async def get_default_category_id(self) -> Optional[int]:
        """Id of the category that unmatched transactions land in."""
        category = await self._storage.get_category_by_name(self._settings.default_category_name)
        return category.id if category else None

    async def create_category(
        self,
        category: Category,
        actor: Optional[str] = None,
    ) -> OperationResult:
        try:
            saved = await self._storage.add_category(category)
        except DuplicateError:
            return OperationResult.fail(f"A category named '{category.name}' already exists.")

        await self._audit_logger.log_created(
            AuditEntity.CATEGORY,
            saved.id,
            f"Created category: {saved.name}",
            _snapshot(saved),
            actor,
        )
        return OperationResult.ok("Category created successfully.", saved.id)

    async def update_category(
        self,
        category: Category,
        actor: Optional[str] = None,
    ) -> OperationResult:
        existing = await self._storage.get_category(category.id) if category.id is not None else None
        if existing is None:
            return OperationResult.fail("Category not found.")

        updated = existing.model_copy(update={
            "name": category.name,
            "description": category.description,
            "is_active": category.is_active,
        })
        try:
            await self._storage.update_category(updated)
        except DuplicateError:
            return OperationResult.fail(f"A category named '{category.name}' already exists.")

        await self._audit_logger.log_updated(
            AuditEntity.CATEGORY,
            existing.id,
            f"Updated category: {updated.name}",
            _snapshot(existing),
            _snapshot(updated),
            actor,
        )
        return OperationResult.ok("Category updated successfully.", existing.id)

    async def delete_category(
        self,
        category_id: int,
        actor: Optional[str] = None,
    ) -> OperationResult:
        category = await self._storage.get_category(category_id)
        if category is None:
            return OperationResult.fail("Category not found.")

        if await self._storage.category_has_transactions(category_id):
            return OperationResult.fail(
                "Cannot delete category with existing transactions. "
                "Consider deactivating it instead."
            )

        await self._storage.delete_category(category_id)
        await self._audit_logger.log_deleted(
            AuditEntity.CATEGORY,
            category_id,
            f"Deleted category: {category.name}",
            {"name": category.name, "description": category.description},
            actor,
        )
        return OperationResult.ok("Category deleted successfully.", category_id)
