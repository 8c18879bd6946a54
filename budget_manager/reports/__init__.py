"""Reporting package."""

from budget_manager.reports.builder import ReportBuilder

__all__ = ["ReportBuilder"]
