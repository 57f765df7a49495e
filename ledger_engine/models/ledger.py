"""
Core Ledger Models

These models define the strict schemas for the entities the ledger stores:
categories, transactions, budgets, and the period that scopes every read.

DESIGN DECISION: Money is always Decimal with at most two decimal places.
Sign is carried by TransactionKind, never by a negative amount, so every
stored amount and limit is strictly positive.
"""

from datetime import date, datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Annotated, Literal, Optional, Union
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
)


MIN_YEAR = 2000


# =============================================================================
# ENUMS
# =============================================================================

class TransactionKind(str, Enum):
    """
    Direction of a money movement.

    Closed to two variants. Expenses are stored with a positive amount.
    """
    INCOME = "income"
    EXPENSE = "expense"


# =============================================================================
# PERIOD
# =============================================================================

class Period(BaseModel):
    """
    A (month, year) pair used to scope every read.

    The engine never asks for "now". Callers that want the current month
    build one with Period.for_date(today).
    """
    model_config = ConfigDict(frozen=True)

    month: int = Field(..., ge=1, le=12)
    year: int = Field(..., ge=MIN_YEAR)

    @classmethod
    def for_date(cls, value: date) -> "Period":
        return cls(month=value.month, year=value.year)

    def contains(self, value: date) -> bool:
        return value.month == self.month and value.year == self.year

    @property
    def first_day(self) -> date:
        return date(self.year, self.month, 1)

    @property
    def last_day(self) -> date:
        if self.month == 12:
            return date(self.year, 12, 31)
        return date(self.year, self.month + 1, 1) - timedelta(days=1)

    def __str__(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"


# =============================================================================
# CATEGORY SCOPE (tagged variant)
# =============================================================================

class SharedScope(BaseModel):
    """A pre-seeded category visible to every user."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["shared"] = "shared"

    def is_visible_to(self, owner_id: str) -> bool:
        return True

    @property
    def owner_id(self) -> Optional[str]:
        return None


class OwnedScope(BaseModel):
    """A custom category visible only to the user who created it."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["owned"] = "owned"
    owner_id: str = Field(..., min_length=1)

    def is_visible_to(self, owner_id: str) -> bool:
        return self.owner_id == owner_id


CategoryScope = Annotated[
    Union[SharedScope, OwnedScope],
    Field(discriminator="kind"),
]


# =============================================================================
# CATEGORY
# =============================================================================

class Category(BaseModel):
    """
    A spending/earning category.

    A user sees the union of shared categories and their own. Names are
    unique (case-insensitive) within that visible set at creation time.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    name: str = Field(..., min_length=1, max_length=100)
    scope: CategoryScope = Field(default_factory=SharedScope)
    created_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def is_shared(self) -> bool:
        return isinstance(self.scope, SharedScope)

    def is_visible_to(self, owner_id: str) -> bool:
        return self.scope.is_visible_to(owner_id)


# =============================================================================
# TRANSACTION
# =============================================================================

class Transaction(BaseModel):
    """A single dated income or expense entry owned by one user."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    owner_id: str = Field(..., min_length=1)
    amount: Annotated[
        Decimal,
        Field(gt=0, decimal_places=2, description="Positive amount"),
    ]
    kind: TransactionKind
    category_id: Optional[UUID] = None
    date: date
    description: Optional[str] = Field(default=None, max_length=255)
    created_at: datetime = Field(default_factory=datetime.utcnow)

    @field_validator("description")
    @classmethod
    def blank_description_is_none(cls, v: Optional[str]) -> Optional[str]:
        return v or None

    @property
    def is_expense(self) -> bool:
        return self.kind == TransactionKind.EXPENSE


# =============================================================================
# BUDGET
# =============================================================================

class Budget(BaseModel):
    """
    A spending limit for one category in one period.

    (owner_id, category_id, month, year) is a natural key: the store keeps
    at most one row per key and a new submission replaces the limit.
    """

    id: UUID = Field(default_factory=uuid4)
    owner_id: str = Field(..., min_length=1)
    category_id: UUID
    limit: Annotated[
        Decimal,
        Field(gt=0, decimal_places=2, description="Spending limit"),
    ]
    month: int = Field(..., ge=1, le=12)
    year: int = Field(..., ge=MIN_YEAR)
    created_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def period(self) -> Period:
        return Period(month=self.month, year=self.year)

    @property
    def natural_key(self) -> tuple[str, UUID, int, int]:
        return (self.owner_id, self.category_id, self.month, self.year)


class BudgetView(BaseModel):
    """A budget joined with its category name, for listing."""

    budget_id: UUID
    category_id: UUID
    category_name: str
    limit: Decimal
    month: int
    year: int


# =============================================================================
# SNAPSHOT
# =============================================================================

class LedgerSnapshot(BaseModel):
    """
    Everything the aggregation engine needs for one (owner, period) read.

    Read once per call so all derived views of a request agree.
    """

    owner_id: str
    period: Period
    transactions: list[Transaction] = Field(default_factory=list)
    categories: list[Category] = Field(default_factory=list)

    def visible_categories(self) -> dict[UUID, Category]:
        return {
            c.id: c for c in self.categories if c.is_visible_to(self.owner_id)
        }

    def period_transactions(self) -> list[Transaction]:
        return [
            t for t in self.transactions
            if t.owner_id == self.owner_id and self.period.contains(t.date)
        ]



# =============================================================================
# VALIDATION MODELS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'out_of_range', 'unknown_reference')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        default="error",
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )


class ValidationResult(BaseModel):
    """Outcome of checking one input against the ledger rules."""

    issues: list[ValidationIssue] = Field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.has_errors

    @property
    def has_errors(self) -> bool:
        """Check if there are any error-level issues."""
        return any(issue.severity == "error" for issue in self.issues)

    @property
    def error_count(self) -> int:
        """Count error-level issues."""
        return sum(1 for issue in self.issues if issue.severity == "error")
