"""
Tests for the pure engines: rule matching, duplicate detection and
the locking gate.
"""

from datetime import date
from decimal import Decimal

import pytest

from budget_manager.categorization import RuleMatcher
from budget_manager.dedup.checker import DuplicateChecker, normalize_description, round_amount
from budget_manager.locking.gate import LockingGate, month_label
from budget_manager.models.ledger import CategorizationRule, LockedMonth

from conftest import make_transaction


def rule(rule_id, priority, text, category_id, active=True):
    return CategorizationRule(
        id=rule_id,
        priority=priority,
        contains_text=text,
        category_id=category_id,
        is_active=active,
    )


class TestRuleMatcher:
    """Tests for priority-ordered substring matching."""

    def test_case_insensitive_substring(self):
        rules = [rule(1, 10, "starbucks", 8)]
        assert RuleMatcher().match("STARBUCKS STORE #1234", rules) == 8

    @pytest.mark.parametrize("description", ["CHIPOTLE", "chipotle", "Chipotle"])
    def test_any_letter_case_matches(self, description):
        assert RuleMatcher().match(description, [rule(1, 10, "chipotle", 6)]) == 6

    def test_lowest_priority_wins(self):
        """The more specific rule is given the lower priority value."""
        rules = [rule(1, 60, "uber", 5), rule(2, 14, "uber eats", 8)]
        assert RuleMatcher().match("UBER EATS ORDER", rules) == 8
        assert RuleMatcher().match("UBER TRIP", rules) == 5

    def test_priority_tie_keeps_given_order(self):
        rules = [rule(1, 5, "shop", 3), rule(2, 5, "shop", 4)]
        assert RuleMatcher().match("Corner shop", rules) == 3

    def test_inactive_rules_ignored(self):
        rules = [rule(1, 1, "target", 3, active=False), rule(2, 2, "target", 4)]
        assert RuleMatcher().match("TARGET 00123", rules) == 4

    @pytest.mark.parametrize("description", [None, "", "   "])
    def test_blank_description_has_no_match(self, description):
        assert RuleMatcher().match(description, [rule(1, 1, "x", 3)]) is None

    def test_no_rules(self):
        assert RuleMatcher().match("Anything", []) is None

    def test_matches_anywhere_in_description(self):
        rules = [rule(1, 1, "netflix", 7)]
        assert RuleMatcher().match("POS PURCHASE NETFLIX.COM CA", rules) == 7
        assert RuleMatcher().match("NET FLIX", rules) is None


class TestDuplicateChecker:
    """Tests for the normalised duplicate heuristic."""

    def test_normalize_strips_reference_numbers(self):
        assert normalize_description("  STARBUCKS   #1234 ") == "starbucks"
        assert normalize_description("AMAZON 98765432 MKTP") == "amazon mktp"

    def test_normalize_walmart_reference(self):
        assert normalize_description("WALMART SHOPPING #12345") == "walmart shopping"

    def test_normalize_keeps_short_numbers(self):
        assert normalize_description("Route 66 Diner") == "route 66 diner"

    def test_round_amount_half_up(self):
        assert round_amount(Decimal("85.555")) == Decimal("85.56")
        assert round_amount(85.555) == Decimal("85.56")
        assert round_amount(Decimal("-85.555")) == Decimal("-85.56")
        assert round_amount(Decimal("85.554")) == Decimal("85.55")
        assert round_amount(85.554) == Decimal("85.55")

    def test_duplicate_with_cosmetic_differences(self):
        existing = [make_transaction(date(2024, 5, 3), "-12.50", "STARBUCKS #1234")]
        assert DuplicateChecker().is_duplicate(
            date(2024, 5, 3), Decimal("-12.5"), "starbucks  #9999", 1, existing
        )

    def test_different_account_is_not_duplicate(self):
        existing = [make_transaction(date(2024, 5, 3), "-12.50", "STARBUCKS", account_id=2)]
        assert not DuplicateChecker().is_duplicate(
            date(2024, 5, 3), Decimal("-12.50"), "STARBUCKS", 1, existing
        )

    def test_different_day_is_not_duplicate(self):
        existing = [make_transaction(date(2024, 5, 4), "-12.50", "STARBUCKS")]
        assert not DuplicateChecker().is_duplicate(
            date(2024, 5, 3), Decimal("-12.50"), "STARBUCKS", 1, existing
        )

    def test_amount_compared_in_cents(self):
        existing = [make_transaction(date(2024, 5, 3), "-12.50", "STARBUCKS")]
        assert not DuplicateChecker().is_duplicate(
            date(2024, 5, 3), Decimal("-12.51"), "STARBUCKS", 1, existing
        )

    def test_empty_existing(self):
        assert not DuplicateChecker().is_duplicate(
            date(2024, 5, 3), Decimal("-1"), "x", 1, []
        )


class TestLockingGate:
    """Tests for the pure lock check."""

    def test_month_label(self):
        assert month_label(2024, 1) == "January 2024"

    def test_locked_month_blocks_regular_transactions(self):
        gate = LockingGate([LockedMonth(year=2024, month=1)])
        txn = make_transaction(date(2024, 1, 15), "-20")
        assert gate.is_locked(2024, 1)
        assert not gate.can_create(txn)
        assert not gate.can_edit(txn)
        assert not gate.can_delete(txn)

    def test_adjustments_bypass_lock(self):
        gate = LockingGate([(2024, 1)])
        txn = make_transaction(date(2024, 1, 15), "-20", is_adjustment=True)
        assert gate.can_create(txn)
        assert gate.can_edit(txn)
        assert gate.can_delete(txn)

    def test_other_months_unaffected(self):
        gate = LockingGate([(2024, 1)])
        assert gate.can_create(make_transaction(date(2024, 2, 1), "-20"))
        assert gate.can_create(make_transaction(date(2023, 1, 31), "-20"))

    def test_empty_gate(self):
        assert not LockingGate().is_date_locked(date(2024, 1, 1))
