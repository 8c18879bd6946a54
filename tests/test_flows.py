"""
Tests for the dashboard flow, the reports and configuration, built
through create_app_components on in-memory storage.
"""

from datetime import date
from decimal import Decimal

import pytest

from budget_manager.config import (
    DatabaseSettings,
    LedgerSettings,
    get_settings,
    validate_all_settings,
)
from budget_manager.ledger import seed_defaults
from budget_manager.models.ledger import BudgetStatus
from budget_manager.orchestrator import create_app_components

from conftest import make_transaction


def may_15() -> date:
    return date(2024, 5, 15)


async def build_may(components):
    """Seeded ledger with one month of typical activity."""
    await seed_defaults(components.storage)
    storage = components.storage
    account = await storage.get_account_by_name("Main Checking")
    ids = {c.name: c.id for c in await storage.list_categories()}

    entries = [
        (date(2024, 5, 1), "3000.00", "PAYROLL ACME", "Income"),
        (date(2024, 5, 1), "-1200.00", "RENT MAY", "Housing"),
        (date(2024, 5, 4), "-450.00", "KROGER #991", "Groceries"),
        (date(2024, 5, 6), "-60.00", "CHIPOTLE 2231", "Dining Out"),
        (date(2024, 5, 7), "-25.00", "MYSTERY CHARGE", "Uncategorized"),
        (date(2024, 4, 20), "-50.00", "STARBUCKS", "Dining Out"),
    ]
    for day, amount, description, category in entries:
        result = await components.transactions.create_transaction(make_transaction(
            day, amount, description, category_id=ids[category], account_id=account.id
        ))
        assert result.success

    for category, amount in (("Housing", "1500"), ("Groceries", "400"), ("Dining Out", "300")):
        await components.budgets.create_or_update_budget(2024, 5, ids[category], Decimal(amount))

    return ids


@pytest.fixture
def components():
    return create_app_components(use_storage=False, clock=may_15)


class TestDashboardFlow:
    """Tests for the monthly dashboard."""

    @pytest.mark.asyncio
    async def test_dashboard_summary(self, components):
        await build_may(components)

        dashboard = await components.dashboard_flow.build(2024, 5)

        assert dashboard.total_income == Decimal("3000.00")
        assert dashboard.total_expenses == Decimal("1735.00")
        assert dashboard.net_change == Decimal("1265.00")
        assert [s.category_name for s in dashboard.over_budget_categories] == ["Groceries"]
        assert dashboard.top_categories[0].category_name == "Housing"
        assert len(dashboard.top_categories) == 5
        assert dashboard.top_expenses[0].description == "RENT MAY"
        assert len(dashboard.recent_transactions) == 5
        assert dashboard.uncategorized_count == 1
        assert dashboard.is_month_locked is False
        assert dashboard.pacing.current_day == 15
        assert dashboard.pacing.total_budget == Decimal("2200")

    @pytest.mark.asyncio
    async def test_dashboard_shows_lock(self, components):
        await seed_defaults(components.storage)
        await components.locking.lock_month(2024, 5)

        dashboard = await components.dashboard_flow.build(2024, 5)

        assert dashboard.is_month_locked
        assert dashboard.total_expenses == 0
        assert dashboard.pacing.overall_status == BudgetStatus.OK


class TestReports:
    """Tests for report aggregates."""

    @pytest.mark.asyncio
    async def test_budget_vs_actual(self, components):
        await build_may(components)

        report = await components.reports.budget_vs_actual(2024, 5)

        lines = {line.category_name: (line.budget, line.actual) for line in report.categories}
        assert lines == {
            "Dining Out": (Decimal("300"), Decimal("60.00")),
            "Groceries": (Decimal("400"), Decimal("450.00")),
            "Housing": (Decimal("1500"), Decimal("1200.00")),
            "Uncategorized": (Decimal("0"), Decimal("25.00")),
        }
        assert report.total_budget == Decimal("2200")
        assert report.total_actual == Decimal("1735.00")
        assert report.total_variance == Decimal("465.00")

    @pytest.mark.asyncio
    async def test_month_over_month_skips_empty_months(self, components):
        await build_may(components)

        report = await components.reports.month_over_month(2024)

        assert [p.month for p in report.data_points] == [4, 5]
        april, may = report.data_points
        assert april.category_totals == {"Dining Out": Decimal("50.00")}
        assert may.total_income == Decimal("3000.00")
        assert may.category_totals["Housing"] == Decimal("1200.00")
        assert report.categories == ["Dining Out", "Groceries", "Housing", "Uncategorized"]

    @pytest.mark.asyncio
    async def test_top_expenses_default_count(self, components):
        await build_may(components)

        top = await components.reports.top_expenses(2024, 5)

        assert [t.amount for t in top] == [
            Decimal("1200.00"), Decimal("450.00"), Decimal("60.00"), Decimal("25.00")
        ]


class TestConfiguration:
    """Tests for settings loading."""

    def test_ledger_defaults(self):
        settings = LedgerSettings()
        assert settings.default_category_name == "Uncategorized"
        assert settings.fallback_category_name == "Other"
        assert settings.transaction_page_size == 50

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("BUDGET_TRANSACTION_PAGE_SIZE", "25")
        assert LedgerSettings().transaction_page_size == 25

    def test_database_url_needs_dialect(self):
        with pytest.raises(ValueError):
            DatabaseSettings(url="budget.db")

    def test_validate_all_settings(self):
        get_settings.cache_clear()
        results = validate_all_settings()
        assert results["database"] and results["ledger"] and results["app"]
