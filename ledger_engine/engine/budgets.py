"""
Budget Evaluator

Compares each budget's limit against what was actually spent in its
category for the period, and flags budgets that crossed the alert threshold.

Budgets whose category no longer resolves are not fatal: they are left out
of the status rows and handed back as anomalies for the caller to log.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional, Union

from ledger_engine.config import LedgerSettings
from ledger_engine.engine.aggregation import ZERO, expense_totals_by_category
from ledger_engine.errors import InvalidArgumentError
from ledger_engine.models.ledger import Budget, LedgerSnapshot, ValidationIssue
from ledger_engine.models.reports import (
    TENTH,
    BudgetAnomaly,
    BudgetEvaluation,
    BudgetStatus,
)


DEFAULT_ALERT_THRESHOLD = Decimal("90")
DEFAULT_ALERT_MESSAGE = "You are at or near your budget limit!"


def percentage_used(spent: Decimal, limit: Decimal) -> Decimal:
    """spent / limit * 100, rounded half-up to one decimal place."""
    if limit <= 0:
        raise InvalidArgumentError(
            f"Budget limit must be positive, got {limit}",
            [ValidationIssue(
                field="limit",
                issue_type="out_of_range",
                message="Budget limit must be a positive number",
            )],
        )
    return (spent / limit * 100).quantize(TENTH, rounding=ROUND_HALF_UP)


class BudgetEvaluator:
    """
    Builds budget status rows from budgets and a ledger snapshot.

    Stateless apart from its alert configuration, so one instance can be
    shared by concurrent callers.
    """

    def __init__(
        self,
        alert_threshold: Union[Decimal, float, int] = DEFAULT_ALERT_THRESHOLD,
        alert_message: str = DEFAULT_ALERT_MESSAGE,
    ):
        self._threshold = Decimal(str(alert_threshold))
        self._message = alert_message

    @classmethod
    def from_settings(cls, settings: LedgerSettings) -> "BudgetEvaluator":
        return cls(
            alert_threshold=settings.alert_threshold_percent,
            alert_message=settings.alert_message,
        )

    @property
    def alert_threshold(self) -> Decimal:
        return self._threshold

    def alert_for(self, used: Decimal) -> Optional[str]:
        """Alert message when usage is at or above the threshold."""
        return self._message if used >= self._threshold else None

    def evaluate(
        self,
        budgets: Iterable[Budget],
        snapshot: LedgerSnapshot,
    ) -> BudgetEvaluation:
        """
        One status row per budget the owner defined for the snapshot period.

        Rows are ordered by percentage_used descending, then category name.
        Raises InvalidArgumentError before computing anything if a budget
        has a non-positive limit.
        """
        relevant = [
            b for b in budgets
            if b.owner_id == snapshot.owner_id
            and b.month == snapshot.period.month
            and b.year == snapshot.period.year
        ]

        for budget in relevant:
            if budget.limit <= 0:
                raise InvalidArgumentError(
                    f"Budget {budget.id} has a non-positive limit",
                    [ValidationIssue(
                        field="limit",
                        issue_type="out_of_range",
                        message="Budget limit must be a positive number",
                    )],
                )

        visible = snapshot.visible_categories()
        spent_by_category = expense_totals_by_category(snapshot)

        statuses = []
        anomalies = []
        for budget in relevant:
            category = visible.get(budget.category_id)
            if category is None:
                anomalies.append(BudgetAnomaly(
                    budget_id=budget.id,
                    category_id=budget.category_id,
                    reason="category not found or not visible to owner",
                ))
                continue

            spent = spent_by_category.get(budget.category_id, ZERO)
            used = percentage_used(spent, budget.limit)
            statuses.append(BudgetStatus(
                budget_id=budget.id,
                category_id=budget.category_id,
                category_name=category.name,
                limit=budget.limit,
                spent=spent,
                remaining=budget.limit - spent,
                percentage_used=used,
                alert=self.alert_for(used),
            ))

        statuses.sort(key=lambda s: (-s.percentage_used, s.category_name, str(s.budget_id)))
        return BudgetEvaluation(statuses=statuses, anomalies=anomalies)


def evaluate_budgets(
    budgets: Iterable[Budget],
    snapshot: LedgerSnapshot,
    alert_threshold: Union[Decimal, float, int] = DEFAULT_ALERT_THRESHOLD,
    alert_message: str = DEFAULT_ALERT_MESSAGE,
) -> BudgetEvaluation:
    """Evaluate with a one-off evaluator."""
    return BudgetEvaluator(alert_threshold, alert_message).evaluate(budgets, snapshot)
