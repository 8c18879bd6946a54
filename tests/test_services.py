"""
Tests for the ledger services.

Each service is checked for its user-facing messages and for the
audit events it writes: one per successful change, none per refusal.
"""

from datetime import date
from decimal import Decimal

import pytest

from budget_manager.audit import AuditLogger
from budget_manager.ledger import AccountService, CategoryService, seed_defaults
from budget_manager.models.audit import AuditAction, AuditEntity, AuditEventBuilder
from budget_manager.models.ledger import (
    Account,
    CategorizationRule,
    Category,
    TransactionFilter,
)
from budget_manager.services.storage import (
    AuditStorageInterface,
    InMemoryLedgerStorage,
    NotFoundError,
    StorageError,
)

from conftest import make_transaction


async def add_basics(storage):
    """One account and the two categories most tests need."""
    account = await storage.add_account(Account(name="Main Checking", type="Checking"))
    uncategorized = await storage.add_category(Category(name="Uncategorized"))
    dining = await storage.add_category(Category(name="Dining Out"))
    return account, uncategorized, dining


class TestLockingService:
    """Tests for locking and unlocking months."""

    @pytest.mark.asyncio
    async def test_lock_then_lock_again(self, locking_service, audit_storage):
        first = await locking_service.lock_month(2024, 1, actor="sam")
        second = await locking_service.lock_month(2024, 1, actor="sam")

        assert first.success
        assert first.message == "January 2024 has been locked."
        assert not second.success
        assert "already locked" in second.message
        assert len(audit_storage.events) == 1
        assert audit_storage.events[0].action == AuditAction.LOCK

    @pytest.mark.asyncio
    async def test_unlock_not_locked(self, locking_service, audit_storage):
        result = await locking_service.unlock_month(2024, 2)
        assert not result.success
        assert result.message == "February 2024 is not locked."
        assert audit_storage.events == []

    @pytest.mark.asyncio
    async def test_unlock_round_trip(self, locking_service):
        await locking_service.lock_month(2024, 3)
        assert await locking_service.is_month_locked(2024, 3)

        result = await locking_service.unlock_month(2024, 3)

        assert result.success
        assert not await locking_service.is_month_locked(2024, 3)

    @pytest.mark.asyncio
    async def test_locking_leaves_transactions_alone(self, storage, locking_service):
        account, uncategorized, _ = await add_basics(storage)
        saved = await storage.add_transaction(
            make_transaction(date(2024, 1, 5), "-20", category_id=uncategorized.id, account_id=account.id)
        )

        await locking_service.lock_month(2024, 1)

        assert await storage.get_transaction(saved.id) == saved


class TestTransactionService:
    """Tests for gated transaction mutations."""

    @pytest.mark.asyncio
    async def test_create_in_locked_month_refused(
        self, storage, locking_service, transaction_service, audit_storage
    ):
        account, uncategorized, _ = await add_basics(storage)
        await locking_service.lock_month(2024, 1)
        events_before = len(audit_storage.events)

        result = await transaction_service.create_transaction(
            make_transaction(date(2024, 1, 15), "-20", category_id=uncategorized.id, account_id=account.id)
        )

        assert not result.success
        assert result.message == (
            "Cannot create transaction in a locked month. Mark as adjustment if needed."
        )
        assert len(audit_storage.events) == events_before
        assert await storage.count_transactions() == 0

    @pytest.mark.asyncio
    async def test_adjustment_allowed_in_locked_month(
        self, storage, locking_service, transaction_service
    ):
        account, uncategorized, _ = await add_basics(storage)
        await locking_service.lock_month(2024, 1)

        result = await transaction_service.create_transaction(
            make_transaction(
                date(2024, 1, 15), "-20",
                category_id=uncategorized.id,
                account_id=account.id,
                is_adjustment=True,
            ),
            actor="sam",
        )

        assert result.success
        saved = await transaction_service.get_transaction(result.entity_id)
        assert saved.user_id == "sam"

    @pytest.mark.asyncio
    async def test_edit_and_delete_in_locked_month_refused(
        self, storage, locking_service, transaction_service
    ):
        account, uncategorized, _ = await add_basics(storage)
        created = await transaction_service.create_transaction(
            make_transaction(date(2024, 1, 15), "-20", category_id=uncategorized.id, account_id=account.id)
        )
        await locking_service.lock_month(2024, 1)

        txn = await transaction_service.get_transaction(created.entity_id)
        moved = txn.model_copy(update={"date": date(2024, 2, 1)})

        edit = await transaction_service.update_transaction(moved)
        delete = await transaction_service.delete_transaction(txn.id)

        assert edit.message == "Cannot edit transaction in a locked month."
        assert delete.message == "Cannot delete transaction in a locked month."
        assert (await transaction_service.get_transaction(txn.id)).date == date(2024, 1, 15)

    @pytest.mark.asyncio
    async def test_edit_into_locked_month_refused(
        self, storage, locking_service, transaction_service
    ):
        account, uncategorized, _ = await add_basics(storage)
        created = await transaction_service.create_transaction(
            make_transaction(date(2024, 2, 10), "-20", category_id=uncategorized.id, account_id=account.id)
        )
        adjustment = await transaction_service.create_transaction(
            make_transaction(date(2024, 1, 20), "-5", category_id=uncategorized.id,
                             account_id=account.id, is_adjustment=True)
        )
        await locking_service.lock_month(2024, 1)

        txn = await transaction_service.get_transaction(created.entity_id)
        moved = await transaction_service.update_transaction(
            txn.model_copy(update={"date": date(2024, 1, 5)})
        )
        adj = await transaction_service.get_transaction(adjustment.entity_id)
        unflagged = await transaction_service.update_transaction(
            adj.model_copy(update={"is_adjustment": False})
        )
        moved_as_adjustment = await transaction_service.update_transaction(
            txn.model_copy(update={"date": date(2024, 1, 5), "is_adjustment": True})
        )

        assert moved.message == "Cannot edit transaction in a locked month."
        assert unflagged.message == "Cannot edit transaction in a locked month."
        assert (await transaction_service.get_transaction(adj.id)).is_adjustment
        assert moved_as_adjustment.success

    @pytest.mark.asyncio
    async def test_unknown_category_or_account_refused(
        self, storage, transaction_service, audit_storage
    ):
        account, uncategorized, _ = await add_basics(storage)

        no_category = await transaction_service.create_transaction(
            make_transaction(date(2024, 5, 2), "-20", category_id=999, account_id=account.id)
        )
        no_account = await transaction_service.create_transaction(
            make_transaction(date(2024, 5, 2), "-20", category_id=uncategorized.id, account_id=777)
        )

        assert no_category.message == "Category not found."
        assert no_account.message == "Account not found."
        assert await storage.count_transactions() == 0
        assert audit_storage.events == []

        created = await transaction_service.create_transaction(
            make_transaction(date(2024, 5, 2), "-20", category_id=uncategorized.id, account_id=account.id)
        )
        txn = await transaction_service.get_transaction(created.entity_id)
        edit = await transaction_service.update_transaction(txn.model_copy(update={"category_id": 999}))

        assert edit.message == "Category not found."
        assert (await transaction_service.get_transaction(txn.id)).category_id == uncategorized.id

    @pytest.mark.asyncio
    async def test_storage_rejects_dangling_batch(self, storage):
        account, uncategorized, _ = await add_basics(storage)

        with pytest.raises(NotFoundError):
            await storage.add_transactions([
                make_transaction(date(2024, 5, 1), "-1", category_id=uncategorized.id, account_id=account.id),
                make_transaction(date(2024, 5, 2), "-2", category_id=uncategorized.id, account_id=777),
            ])

        assert await storage.count_transactions() == 0

    @pytest.mark.asyncio
    async def test_update_writes_before_and_after(
        self, storage, transaction_service, audit_storage
    ):
        account, uncategorized, dining = await add_basics(storage)
        created = await transaction_service.create_transaction(
            make_transaction(date(2024, 5, 2), "-8.75", "STARBUCKS",
                             category_id=uncategorized.id, account_id=account.id)
        )
        txn = await transaction_service.get_transaction(created.entity_id)

        result = await transaction_service.update_transaction(
            txn.model_copy(update={"category_id": dining.id})
        )

        assert result.message == "Transaction updated successfully."
        event = audit_storage.events[-1]
        assert event.action == AuditAction.UPDATE
        assert event.old_values["category_id"] == uncategorized.id
        assert event.new_values["category_id"] == dining.id

    @pytest.mark.asyncio
    async def test_missing_transaction(self, transaction_service):
        assert (await transaction_service.delete_transaction(99)).message == "Transaction not found."

    @pytest.mark.asyncio
    async def test_paging_and_filters(self, storage, transaction_service):
        account, uncategorized, dining = await add_basics(storage)
        for day in range(1, 8):
            await storage.add_transaction(make_transaction(
                date(2024, 5, day), f"-{day}0", f"Purchase {day}",
                category_id=uncategorized.id, account_id=account.id,
            ))
        await storage.add_transaction(make_transaction(
            date(2024, 5, 9), "-5", "Lunch", category_id=dining.id,
            account_id=account.id, notes="team lunch",
        ))

        first_page = await transaction_service.list_transactions(TransactionFilter(page_size=3))
        second_page = await transaction_service.list_transactions(
            TransactionFilter(page=2, page_size=3)
        )
        by_notes = await transaction_service.list_transactions(TransactionFilter(search_term="TEAM"))
        big = await transaction_service.list_transactions(TransactionFilter(min_amount=Decimal("60")))

        assert [t.date.day for t in first_page] == [9, 7, 6]
        assert [t.date.day for t in second_page] == [5, 4, 3]
        assert [t.description for t in by_notes] == ["Lunch"]
        assert sorted(t.date.day for t in big) == [6, 7]

    @pytest.mark.asyncio
    async def test_totals_and_top_expenses(self, storage, transaction_service):
        account, uncategorized, dining = await add_basics(storage)
        await storage.add_transaction(make_transaction(
            date(2024, 5, 1), "-100", "Rent share", category_id=uncategorized.id, account_id=account.id
        ))
        await storage.add_transaction(make_transaction(
            date(2024, 5, 2), "-30", "Dinner", category_id=dining.id, account_id=account.id
        ))
        await storage.add_transaction(make_transaction(
            date(2024, 5, 3), "500", "Refund", category_id=uncategorized.id, account_id=account.id
        ))

        assert await transaction_service.get_total_spent(2024, 5) == Decimal("130")
        assert await transaction_service.get_total_spent(2024, 5, category_id=dining.id) == Decimal("30")

        top = await transaction_service.get_top_expenses(2024, 5, 1)
        assert [(t.description, t.amount, t.category_name) for t in top] == [
            ("Rent share", Decimal("100"), "Uncategorized")
        ]


class ZeroBasedStorage(InMemoryLedgerStorage):
    """Hands out ids starting at 0, as some imported databases do."""

    def _next_id(self, kind: str) -> int:
        return super()._next_id(kind) - 1


class TestAccountAndCategoryServices:
    """Tests for CRUD messages and delete guards."""

    @pytest.mark.asyncio
    async def test_row_with_id_zero_can_be_updated(self, audit_logger, ledger_settings):
        storage = ZeroBasedStorage()
        category = await storage.add_category(Category(name="Groceries"))
        account = await storage.add_account(Account(name="Main", type="Checking"))
        assert (category.id, account.id) == (0, 0)

        categories = CategoryService(storage, audit_logger, ledger_settings)
        accounts = AccountService(storage, audit_logger)
        renamed = await categories.update_category(category.model_copy(update={"name": "Food"}))
        retyped = await accounts.update_account(account.model_copy(update={"type": "Savings"}))

        assert renamed.message == "Category updated successfully."
        assert retyped.success
        assert (await storage.get_category(0)).name == "Food"

    @pytest.mark.asyncio
    async def test_duplicate_account_name(self, account_service, audit_storage):
        await account_service.create_account(Account(name="Main", type="Checking"))
        result = await account_service.create_account(Account(name="MAIN", type="Savings"))

        assert result.message == "An account named 'MAIN' already exists."
        assert len(audit_storage.events) == 1

    @pytest.mark.asyncio
    async def test_account_with_transactions_cannot_be_deleted(
        self, storage, account_service
    ):
        account, uncategorized, _ = await add_basics(storage)
        await storage.add_transaction(make_transaction(
            date(2024, 5, 1), "-1", category_id=uncategorized.id, account_id=account.id
        ))

        result = await account_service.delete_account(account.id)

        assert not result.success
        assert result.message == (
            "Cannot delete account with existing transactions. Consider deactivating it instead."
        )

    @pytest.mark.asyncio
    async def test_deactivate_account(self, storage, account_service):
        account, _, _ = await add_basics(storage)

        result = await account_service.update_account(account.model_copy(update={"is_active": False}))

        assert result.success
        assert await account_service.list_accounts(active_only=True) == []

    @pytest.mark.asyncio
    async def test_category_lifecycle(self, category_service, audit_storage):
        created = await category_service.create_category(Category(name="Pets"))
        renamed = await category_service.update_category(
            Category(id=created.entity_id, name="Pet Care")
        )
        deleted = await category_service.delete_category(created.entity_id)

        assert created.message == "Category created successfully."
        assert renamed.message == "Category updated successfully."
        assert deleted.message == "Category deleted successfully."
        assert [e.action for e in audit_storage.events] == [
            AuditAction.CREATE, AuditAction.UPDATE, AuditAction.DELETE
        ]
        history = await AuditLogger(audit_storage).history(AuditEntity.CATEGORY, created.entity_id)
        assert [e.action for e in history] == [
            AuditAction.DELETE, AuditAction.UPDATE, AuditAction.CREATE
        ]

    @pytest.mark.asyncio
    async def test_category_with_transactions_cannot_be_deleted(
        self, storage, category_service
    ):
        account, uncategorized, _ = await add_basics(storage)
        await storage.add_transaction(make_transaction(
            date(2024, 5, 1), "-1", category_id=uncategorized.id, account_id=account.id
        ))

        result = await category_service.delete_category(uncategorized.id)

        assert result.message == (
            "Cannot delete category with existing transactions. Consider deactivating it instead."
        )

    @pytest.mark.asyncio
    async def test_default_category_lookup(self, storage, category_service):
        assert await category_service.get_default_category_id() is None
        _, uncategorized, _ = await add_basics(storage)
        assert await category_service.get_default_category_id() == uncategorized.id


class TestRuleService:
    """Tests for rule CRUD, reordering and bulk categorisation."""

    @pytest.mark.asyncio
    async def test_rule_needs_existing_category(self, rule_service):
        result = await rule_service.create_rule(CategorizationRule(contains_text="x", category_id=5))
        assert result.message == "Category not found."

    @pytest.mark.asyncio
    async def test_reorder_is_one_event(self, storage, rule_service, audit_storage):
        _, _, dining = await add_basics(storage)
        a = await rule_service.create_rule(
            CategorizationRule(priority=1, contains_text="uber", category_id=dining.id)
        )
        b = await rule_service.create_rule(
            CategorizationRule(priority=2, contains_text="uber eats", category_id=dining.id)
        )

        changed = await rule_service.reorder_rules({a.entity_id: 2, b.entity_id: 1, 999: 3})

        assert changed == 2
        assert [r.contains_text for r in await rule_service.list_rules()] == ["uber eats", "uber"]
        assert audit_storage.events[-1].action == AuditAction.REORDER
        assert len(audit_storage.events) == 3

    @pytest.mark.asyncio
    async def test_apply_rules_to_uncategorized(self, storage, rule_service, audit_storage):
        account, uncategorized, dining = await add_basics(storage)
        await storage.add_rule(CategorizationRule(priority=1, contains_text="chipotle", category_id=dining.id))
        for description in ("CHIPOTLE 0412", "Chipotle online", "Hardware store"):
            await storage.add_transaction(make_transaction(
                date(2024, 5, 1), "-10", description,
                category_id=uncategorized.id, account_id=account.id,
            ))

        count = await rule_service.apply_rules_to_uncategorized(actor="sam")

        assert count == 2
        remaining = await storage.list_transactions(TransactionFilter(category_id=uncategorized.id))
        assert [t.description for t in remaining] == ["Hardware store"]
        assert audit_storage.events[-1].action == AuditAction.BULK_CATEGORIZE
        assert audit_storage.events[-1].new_values == {"categorized_count": 2}

    @pytest.mark.asyncio
    async def test_apply_rules_falls_back_to_other(self, storage, rule_service):
        account = await storage.add_account(Account(name="Main", type="Checking"))
        other = await storage.add_category(Category(name="Other"))
        travel = await storage.add_category(Category(name="Travel"))
        await storage.add_rule(CategorizationRule(contains_text="delta", category_id=travel.id))
        await storage.add_transaction(make_transaction(
            date(2024, 5, 1), "-300", "DELTA AIR", category_id=other.id, account_id=account.id
        ))

        assert await rule_service.apply_rules_to_uncategorized() == 1

    @pytest.mark.asyncio
    async def test_apply_rules_without_matches_writes_nothing(
        self, storage, rule_service, audit_storage
    ):
        await add_basics(storage)
        assert await rule_service.apply_rules_to_uncategorized() == 0
        assert audit_storage.events == []


class TestSeedDefaults:
    """Tests for starter data."""

    @pytest.mark.asyncio
    async def test_seed_is_idempotent(self, storage, rule_service):
        first = await seed_defaults(storage)
        second = await seed_defaults(storage)

        assert first["accounts"] == 2
        assert first["categories"] > 0
        assert first["rules"] > 0
        assert second == {"accounts": 0, "categories": 0, "rules": 0}

    @pytest.mark.asyncio
    async def test_seeded_rules_prefer_uber_eats(self, storage, rule_service):
        await seed_defaults(storage)
        dining = await storage.get_category_by_name("Dining Out")

        assert await rule_service.apply_rules_to_description("UBER EATS 1234") == dining.id


class FailingAuditStorage(AuditStorageInterface):
    """Audit storage whose writes always fail."""

    async def append_event(self, event):
        raise StorageError("disk full")

    async def get_events_by_entity(self, entity_type, entity_id):
        return []

    async def get_recent_events(self, limit=50, offset=0):
        return []

    async def count_events(self):
        return 0


class TestAuditLogger:
    """Tests for audit failure handling."""

    @pytest.mark.asyncio
    async def test_storage_failure_does_not_break_the_ledger(self, storage):
        service = AccountService(storage, AuditLogger(FailingAuditStorage()))
        result = await service.create_account(Account(name="Main", type="Checking"))

        assert result.success
        assert await storage.get_account_by_name("main") is not None

    @pytest.mark.asyncio
    async def test_log_reports_failure(self):
        logger = AuditLogger(FailingAuditStorage())
        assert await logger.log(AuditEventBuilder.rules_reordered()) is False

    @pytest.mark.asyncio
    async def test_no_storage_reads_empty(self):
        logger = AuditLogger()
        assert await logger.recent() == []
        assert await logger.history(AuditEntity.ACCOUNT, 1) == []
