"""
Report Models

Derived views produced by the aggregation engine and budget evaluator,
plus the response envelopes the service boundary returns.

Monetary values are exact Decimals internally. In JSON mode they serialize
as strings with two decimals; percentage_used serializes with one decimal.
"""

from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_serializer


CENT = Decimal("0.01")
TENTH = Decimal("0.1")


def format_money(value: Decimal) -> str:
    """Render a currency value with exactly two decimals."""
    return str(value.quantize(CENT, rounding=ROUND_HALF_UP))


def format_percentage(value: Decimal) -> str:
    """Render a percentage with exactly one decimal."""
    return str(value.quantize(TENTH, rounding=ROUND_HALF_UP))


# =============================================================================
# ENGINE OUTPUTS
# =============================================================================

class MonthlySummary(BaseModel):
    """Income, expense and balance for one owner and period."""

    income_total: Decimal = Decimal("0")
    expense_total: Decimal = Decimal("0")
    balance: Decimal = Decimal("0")

    @field_serializer("income_total", "expense_total", "balance", when_used="json")
    def _money(self, value: Decimal) -> str:
        return format_money(value)


class CategoryTotal(BaseModel):
    """One row of the category breakdown."""

    category_id: Optional[UUID] = Field(
        default=None,
        description="None for the uncategorized bucket",
    )
    category: str
    total: Decimal

    @field_serializer("total", when_used="json")
    def _money(self, value: Decimal) -> str:
        return format_money(value)


class DailyTotal(BaseModel):
    """One point of the expense time series."""

    date: date
    total: Decimal

    @field_serializer("total", when_used="json")
    def _money(self, value: Decimal) -> str:
        return format_money(value)


class BudgetStatus(BaseModel):
    """A budget's limit compared against actual spend for its period."""

    budget_id: UUID
    category_id: UUID
    category_name: str
    limit: Decimal
    spent: Decimal
    remaining: Decimal = Field(
        ...,
        description="limit - spent; negative when over budget",
    )
    percentage_used: Decimal
    alert: Optional[str] = None

    @property
    def is_over_budget(self) -> bool:
        return self.remaining < 0

    @field_serializer("limit", "spent", "remaining", when_used="json")
    def _money(self, value: Decimal) -> str:
        return format_money(value)

    @field_serializer("percentage_used", when_used="json")
    def _percentage(self, value: Decimal) -> str:
        return format_percentage(value)


class BudgetAnomaly(BaseModel):
    """A budget that could not be evaluated because its category is missing."""

    budget_id: UUID
    category_id: UUID
    reason: str


class BudgetEvaluation(BaseModel):
    """Evaluator output: ordered status rows plus any excluded budgets."""

    statuses: list[BudgetStatus] = Field(default_factory=list)
    anomalies: list[BudgetAnomaly] = Field(default_factory=list)


# =============================================================================
# RESPONSE ENVELOPES (service boundary)
# =============================================================================

class PeriodReport(BaseModel):
    """Base for every read response: echoes the resolved period."""

    month: int
    year: int


class SummaryReport(PeriodReport):
    income_total: Decimal
    expense_total: Decimal
    balance: Decimal

    @field_serializer("income_total", "expense_total", "balance", when_used="json")
    def _money(self, value: Decimal) -> str:
        return format_money(value)


class CategoryBreakdownReport(PeriodReport):
    items: list[CategoryTotal] = Field(default_factory=list)


class TimeSeriesReport(PeriodReport):
    points: list[DailyTotal] = Field(default_factory=list)


class BudgetStatusReport(PeriodReport):
    statuses: list[BudgetStatus] = Field(default_factory=list)

    @property
    def alerts(self) -> list[BudgetStatus]:
        return [s for s in self.statuses if s.alert is not None]
