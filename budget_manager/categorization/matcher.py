"""
Rule Matcher

Deterministic category assignment from statement descriptions.

DESIGN DECISION: Matching is a plain case-insensitive substring test.
No trimming, tokenization or fuzzy matching. A user who writes the rule
"uber" expects it to match "UBER *TRIP" and nothing cleverer, and
ordering by priority is the only tool they need to resolve overlaps
("uber eats" before "uber").

Pure and side-effect free: same inputs, same output.
"""

from typing import Optional, Sequence

from budget_manager.models.ledger import CategorizationRule


class RuleMatcher:
    """
    Evaluates a description against a rule set.

    Usage:
        matcher = RuleMatcher()
        category_id = matcher.match("STARBUCKS #1234", rules)
    """

    @staticmethod
    def ordered(rules: Sequence[CategorizationRule]) -> list[CategorizationRule]:
        """
        Active rules in evaluation order.

        sorted() is stable, so rules sharing a priority keep the order
        they were given in (storage hands them over by id).
        """
        return sorted((r for r in rules if r.is_active), key=lambda r: r.priority)

    def match_rule(
        self,
        description: Optional[str],
        rules: Sequence[CategorizationRule],
    ) -> Optional[CategorizationRule]:
        """Return the first rule that matches, or None."""
        if not description or not description.strip() or not rules:
            return None

        description_lower = description.lower()

        for rule in self.ordered(rules):
            if rule.contains_text.lower() in description_lower:
                return rule

        return None

    def match(
        self,
        description: Optional[str],
        rules: Sequence[CategorizationRule],
    ) -> Optional[int]:
        """
        Find the category for a description.

        Args:
            description: Statement text to categorise
            rules: Candidate rules in any order; inactive ones are ignored

        Returns:
            Category id of the first matching rule, or None
        """
        rule = self.match_rule(description, rules)
        return rule.category_id if rule else None
