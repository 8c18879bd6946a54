"""
Tests for the SQLAlchemy backend against in-memory SQLite.

Covers the constraints the services rely on: unique names, one budget
per (year, month, category), one lock per (year, month).
"""

from datetime import date
from decimal import Decimal

import pytest

from budget_manager.config import DatabaseSettings
from budget_manager.models.audit import AuditAction, AuditEntity, AuditEventBuilder
from budget_manager.models.ledger import (
    Account,
    CategorizationRule,
    Category,
    LockedMonth,
    MonthlyBudget,
    TransactionFilter,
)
from budget_manager.orchestrator import create_app_components
from budget_manager.services.storage import (
    DuplicateError,
    NotFoundError,
    SqlAuditStorage,
    SqlClient,
    SqlLedgerStorage,
)

from conftest import make_transaction


@pytest.fixture
def sql_client():
    client = SqlClient(DatabaseSettings(url="sqlite://"))
    client.create_schema()
    yield client
    client.dispose()


@pytest.fixture
def sql_storage(sql_client):
    return SqlLedgerStorage(sql_client)


async def add_basics(storage):
    account = await storage.add_account(Account(name="Main Checking", type="Checking"))
    category = await storage.add_category(Category(name="Groceries"))
    return account, category


class TestSqlConstraints:
    """Tests for uniqueness enforced by the database."""

    @pytest.mark.asyncio
    async def test_account_names_unique_ignoring_case(self, sql_storage):
        await sql_storage.add_account(Account(name="Main Checking", type="Checking"))
        with pytest.raises(DuplicateError):
            await sql_storage.add_account(Account(name="main checking", type="Savings"))

    @pytest.mark.asyncio
    async def test_category_rename_clash(self, sql_storage):
        await sql_storage.add_category(Category(name="Groceries"))
        travel = await sql_storage.add_category(Category(name="Travel"))
        with pytest.raises(DuplicateError):
            await sql_storage.update_category(travel.model_copy(update={"name": "GROCERIES"}))

    @pytest.mark.asyncio
    async def test_budget_triple_unique(self, sql_storage):
        _, category = await add_basics(sql_storage)
        budget = MonthlyBudget(year=2024, month=5, category_id=category.id, budget_amount=Decimal("10"))
        await sql_storage.add_budget(budget)
        with pytest.raises(DuplicateError):
            await sql_storage.add_budget(budget)

    @pytest.mark.asyncio
    async def test_locked_month_unique(self, sql_storage):
        await sql_storage.add_locked_month(LockedMonth(year=2024, month=1))
        with pytest.raises(DuplicateError):
            await sql_storage.add_locked_month(LockedMonth(year=2024, month=1))

    @pytest.mark.asyncio
    async def test_foreign_keys_enforced(self, sql_storage):
        account, category = await add_basics(sql_storage)

        with pytest.raises(NotFoundError):
            await sql_storage.add_transaction(make_transaction(
                date(2024, 5, 2), "-20.00", category_id=999, account_id=account.id
            ))
        with pytest.raises(NotFoundError):
            await sql_storage.add_budget(MonthlyBudget(
                year=2024, month=5, category_id=999, budget_amount=Decimal("10")
            ))
        assert await sql_storage.count_transactions() == 0

    @pytest.mark.asyncio
    async def test_service_refuses_dangling_references(self, sql_client):
        components = create_app_components(use_storage=True, sql_client=sql_client)
        account, category = await add_basics(components.storage)

        result = await components.transactions.create_transaction(make_transaction(
            date(2024, 5, 2), "-20.00", category_id=category.id, account_id=777
        ))

        assert result.message == "Account not found."
        assert await components.storage.count_transactions() == 0

    @pytest.mark.asyncio
    async def test_update_missing_raises(self, sql_storage):
        with pytest.raises(NotFoundError):
            await sql_storage.update_account(Account(id=99, name="Ghost", type="Checking"))


class TestSqlQueries:
    """Tests for filters and ordering."""

    @pytest.mark.asyncio
    async def test_amounts_keep_cents(self, sql_storage):
        account, category = await add_basics(sql_storage)
        saved = await sql_storage.add_transaction(make_transaction(
            date(2024, 5, 2), "-12.34", category_id=category.id, account_id=account.id
        ))

        loaded = await sql_storage.get_transaction(saved.id)

        assert loaded.amount == Decimal("-12.34")
        assert loaded.date == date(2024, 5, 2)

    @pytest.mark.asyncio
    async def test_filters(self, sql_storage):
        account, category = await add_basics(sql_storage)
        await sql_storage.add_transactions([
            make_transaction(date(2024, 5, 1), "-5.00", "Coffee 100%",
                             category_id=category.id, account_id=account.id),
            make_transaction(date(2024, 5, 2), "-80.00", "Weekly shop",
                             category_id=category.id, account_id=account.id, notes="COSTCO run"),
            make_transaction(date(2024, 6, 1), "900.00", "Refund",
                             category_id=category.id, account_id=account.id),
        ])

        by_notes = await sql_storage.list_transactions(TransactionFilter(search_term="costco"))
        by_percent = await sql_storage.list_transactions(TransactionFilter(search_term="100%"))
        large = await sql_storage.list_transactions(TransactionFilter(min_amount=Decimal("50")))
        in_may = await sql_storage.transactions_in_month(2024, 5)
        on_day = await sql_storage.transactions_on(date(2024, 5, 2), account.id)

        assert [t.description for t in by_notes] == ["Weekly shop"]
        assert [t.description for t in by_percent] == ["Coffee 100%"]
        assert [t.description for t in large] == ["Refund", "Weekly shop"]
        assert [t.date.day for t in in_may] == [2, 1]
        assert [t.description for t in on_day] == ["Weekly shop"]
        assert await sql_storage.count_transactions(TransactionFilter(start_date=date(2024, 6, 1))) == 1

    @pytest.mark.asyncio
    async def test_rules_ordered_by_priority_then_id(self, sql_storage):
        _, category = await add_basics(sql_storage)
        late = await sql_storage.add_rule(CategorizationRule(priority=5, contains_text="b", category_id=category.id))
        early = await sql_storage.add_rule(CategorizationRule(priority=5, contains_text="a", category_id=category.id))
        first = await sql_storage.add_rule(CategorizationRule(priority=1, contains_text="c", category_id=category.id))

        assert [r.id for r in await sql_storage.list_rules()] == [first.id, late.id, early.id]

        changed = await sql_storage.set_rule_priorities({early.id: 0, 12345: 1})
        assert changed == 1
        assert (await sql_storage.list_rules())[0].id == early.id

    @pytest.mark.asyncio
    async def test_delete_category_takes_budgets_and_rules(self, sql_storage):
        _, category = await add_basics(sql_storage)
        await sql_storage.add_budget(MonthlyBudget(
            year=2024, month=5, category_id=category.id, budget_amount=Decimal("10")
        ))
        await sql_storage.add_rule(CategorizationRule(contains_text="kroger", category_id=category.id))

        assert await sql_storage.delete_category(category.id)
        assert await sql_storage.list_budgets(2024, 5) == []
        assert await sql_storage.list_rules() == []


class TestSqlAuditStorage:
    """Tests for the persisted activity log."""

    @pytest.mark.asyncio
    async def test_events_round_trip_newest_first(self, sql_client):
        audit = SqlAuditStorage(sql_client)
        await audit.append_event(AuditEventBuilder.created(
            AuditEntity.ACCOUNT, 1, "Created account: Main", {"name": "Main"}, actor="sam"
        ))
        await audit.append_event(AuditEventBuilder.deleted(
            AuditEntity.ACCOUNT, 1, "Deleted account: Main", {"name": "Main"}, actor="sam"
        ))

        history = await audit.get_events_by_entity(AuditEntity.ACCOUNT, 1)

        assert [e.action for e in history] == [AuditAction.DELETE, AuditAction.CREATE]
        assert history[1].new_values == {"name": "Main"}
        assert await audit.count_events() == 2
        assert len(await audit.get_recent_events(limit=1)) == 1


class TestSqlComponents:
    """Tests for the factory wired to a database."""

    @pytest.mark.asyncio
    async def test_lock_twice_against_database(self, sql_client):
        components = create_app_components(use_storage=True, sql_client=sql_client)

        first = await components.locking.lock_month(2024, 1, actor="sam")
        second = await components.locking.lock_month(2024, 1, actor="sam")

        assert first.success
        assert "already locked" in second.message
        assert components.sql_client is sql_client
        assert len(await components.audit_logger.recent()) == 1
