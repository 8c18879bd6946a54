"""
Budget Manager - Source Package

A household budget tracker core: transactions organised under accounts
and categories, monthly budgets paced against actual spending,
rule-based auto-categorisation of imported statements, and month locking.

DESIGN PRINCIPLES:
1. The engines (matching, dedup, pacing, locking) are pure functions of their inputs
2. Business rejections are results, not exceptions
3. Every successful mutation is audited
4. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Budget Manager Team"
