"""Aggregation and budget evaluation engine."""

from ledger_engine.engine.aggregation import (
    UNCATEGORIZED,
    category_breakdown,
    expense_totals_by_category,
    summarize,
    time_series,
)
from ledger_engine.engine.budgets import BudgetEvaluator, evaluate_budgets, percentage_used

__all__ = [
    "UNCATEGORIZED",
    "BudgetEvaluator",
    "category_breakdown",
    "evaluate_budgets",
    "expense_totals_by_category",
    "percentage_used",
    "summarize",
    "time_series",
]
