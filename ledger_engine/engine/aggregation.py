"""
Aggregation Engine

Pure functions that turn a LedgerSnapshot into derived views:
monthly summary, expense breakdown by category, and daily expense series.

GUARANTEES:
- Read-only: nothing here touches storage or the clock
- Deterministic: identical snapshots produce identical output,
  including the order of rows that tie on total
- Exact: all sums use Decimal, never float
"""

from collections import defaultdict
from datetime import date
from decimal import Decimal
from typing import Optional
from uuid import UUID

from ledger_engine.models.ledger import LedgerSnapshot, TransactionKind
from ledger_engine.models.reports import CategoryTotal, DailyTotal, MonthlySummary


UNCATEGORIZED = "Uncategorized"

ZERO = Decimal("0")


def summarize(snapshot: LedgerSnapshot) -> MonthlySummary:
    """
    Total income, total expenses and balance for the snapshot's period.

    An empty period is all zeros, never an error.
    """
    income = ZERO
    expense = ZERO

    for tx in snapshot.period_transactions():
        if tx.kind == TransactionKind.INCOME:
            income += tx.amount
        else:
            expense += tx.amount

    return MonthlySummary(
        income_total=income,
        expense_total=expense,
        balance=income - expense,
    )


def expense_totals_by_category(
    snapshot: LedgerSnapshot,
) -> dict[Optional[UUID], Decimal]:
    """
    Sum expenses per category id.

    Expenses with no category, or pointing at a category the owner
    cannot see, are collected under the None key.
    """
    visible = snapshot.visible_categories()
    totals: dict[Optional[UUID], Decimal] = defaultdict(Decimal)

    for tx in snapshot.period_transactions():
        if not tx.is_expense:
            continue
        key = tx.category_id if tx.category_id in visible else None
        totals[key] += tx.amount

    return dict(totals)


def category_breakdown(
    snapshot: LedgerSnapshot,
    uncategorized_label: str = UNCATEGORIZED,
) -> list[CategoryTotal]:
    """
    Expense totals grouped by category.

    Sorted by total descending; ties broken by category name ascending.
    The totals always add up to the summary's expense_total.
    """
    visible = snapshot.visible_categories()

    rows = []
    for category_id, total in expense_totals_by_category(snapshot).items():
        if category_id is None:
            name = uncategorized_label
        else:
            name = visible[category_id].name
        rows.append(CategoryTotal(category_id=category_id, category=name, total=total))

    rows.sort(key=lambda r: (-r.total, r.category, str(r.category_id or "")))
    return rows


def time_series(snapshot: LedgerSnapshot) -> list[DailyTotal]:
    """
    Expense totals per calendar day, ascending by date.

    The series is sparse: days without expenses are omitted, not zero-filled.
    """
    totals: dict[date, Decimal] = defaultdict(Decimal)

    for tx in snapshot.period_transactions():
        if tx.is_expense:
            totals[tx.date] += tx.amount

    return [
        DailyTotal(date=day, total=total)
        for day, total in sorted(totals.items())
        if total > 0
    ]
