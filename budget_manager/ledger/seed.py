"""
Starter Data

Default accounts, the standard category list and a starter rule set.
Each kind is seeded only when the store holds none of it, so running
seed_defaults twice changes nothing.

Seeding writes straight to storage and is not audited.
"""

import structlog

from budget_manager.models.ledger import Account, CategorizationRule, Category
from budget_manager.services.storage import LedgerStorageInterface


logger = structlog.get_logger(__name__)


DEFAULT_ACCOUNTS = [
    ("Main Checking", "Checking"),
    ("Savings Account", "Savings"),
]

DEFAULT_CATEGORIES = [
    ("Uncategorized", "Default category for uncategorized transactions"),
    ("Housing", "Rent, mortgage, repairs, property taxes"),
    ("Utilities", "Electric, gas, water, internet, phone"),
    ("Groceries", "Food and household supplies"),
    ("Transportation", "Gas, car payments, insurance, repairs, public transit"),
    ("Healthcare", "Medical bills, prescriptions, insurance"),
    ("Insurance", "Life, health, home, auto insurance"),
    ("Dining Out", "Restaurants, fast food, coffee shops"),
    ("Entertainment", "Movies, streaming, games, hobbies"),
    ("Shopping", "Clothing, electronics, household items"),
    ("Personal Care", "Haircuts, gym, toiletries"),
    ("Education", "Tuition, books, courses"),
    ("Subscriptions", "Monthly subscriptions and memberships"),
    ("Gifts & Donations", "Gifts, charitable donations"),
    ("Travel", "Flights, hotels, vacation expenses"),
    ("Income", "Salary, wages, freelance income"),
    ("Investments", "Stock purchases, 401k, IRA"),
    ("Transfer", "Transfers between accounts"),
]

# (priority, keyword, category name); "uber eats" must outrank "uber"
DEFAULT_RULES = [
    (1, "walmart", "Groceries"),
    (2, "target", "Groceries"),
    (3, "kroger", "Groceries"),
    (4, "whole foods", "Groceries"),
    (5, "trader joe", "Groceries"),
    (10, "starbucks", "Dining Out"),
    (11, "mcdonald", "Dining Out"),
    (12, "chipotle", "Dining Out"),
    (13, "doordash", "Dining Out"),
    (14, "uber eats", "Dining Out"),
    (15, "grubhub", "Dining Out"),
    (20, "electric", "Utilities"),
    (21, "water bill", "Utilities"),
    (22, "comcast", "Utilities"),
    (23, "verizon", "Utilities"),
    (24, "at&t", "Utilities"),
    (30, "shell", "Transportation"),
    (31, "chevron", "Transportation"),
    (32, "exxon", "Transportation"),
    (33, "uber", "Transportation"),
    (34, "lyft", "Transportation"),
    (40, "netflix", "Subscriptions"),
    (41, "spotify", "Subscriptions"),
    (42, "amazon prime", "Subscriptions"),
    (43, "hulu", "Subscriptions"),
    (44, "disney+", "Subscriptions"),
    (50, "direct deposit", "Income"),
    (51, "payroll", "Income"),
]


async def seed_defaults(storage: LedgerStorageInterface) -> dict[str, int]:
    """
    Populate an empty store.

    Returns:
        {"accounts": n, "categories": n, "rules": n} rows created
    """
    created = {"accounts": 0, "categories": 0, "rules": 0}

    if not await storage.list_accounts():
        for name, account_type in DEFAULT_ACCOUNTS:
            await storage.add_account(Account(name=name, type=account_type))
            created["accounts"] += 1

    if not await storage.list_categories():
        for name, description in DEFAULT_CATEGORIES:
            await storage.add_category(Category(name=name, description=description))
            created["categories"] += 1

    if not await storage.list_rules():
        category_ids = {c.name: c.id for c in await storage.list_categories()}
        for priority, keyword, category_name in DEFAULT_RULES:
            category_id = category_ids.get(category_name)
            if category_id is None:
                continue
            await storage.add_rule(CategorizationRule(
                priority=priority,
                contains_text=keyword,
                category_id=category_id,
            ))
            created["rules"] += 1

    logger.info("seed_defaults", **created)
    return created
