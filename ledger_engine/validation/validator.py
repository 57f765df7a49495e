"""
Ledger Input Validation

Every write and every read runs its arguments through these checks before
touching storage or the engine. Validation NEVER silently fixes values:
it collects issues and the ensure_* helpers raise InvalidArgumentError
carrying all of them at once.

Checks that need storage (does this category exist and is it visible to
the caller?) take the already-loaded category list as an argument, so the
validator itself stays free of I/O.
"""

from datetime import date
from decimal import Decimal, InvalidOperation, getcontext
from typing import Any, Iterable, Optional
from uuid import UUID

from ledger_engine.config import LedgerSettings, get_settings
from ledger_engine.errors import InvalidArgumentError
from ledger_engine.models.ledger import (
    Category,
    Period,
    TransactionKind,
    ValidationIssue,
    ValidationResult,
)


def _error(field: str, issue_type: str, message: str) -> ValidationIssue:
    return ValidationIssue(
        field=field,
        issue_type=issue_type,
        message=message,
        severity="error",
    )


class LedgerValidator:
    """Validates periods, amounts and references against the ledger rules."""

    def __init__(self, settings: Optional[LedgerSettings] = None):
        self._settings = settings or get_settings().ledger

    # -------------------------------------------------------------------------
    # Individual checks (return issues, never raise)
    # -------------------------------------------------------------------------

    def check_period(self, month: Any, year: Any) -> list[ValidationIssue]:
        issues = []

        if isinstance(month, bool) or not isinstance(month, int):
            issues.append(_error("month", "invalid_type", "Month must be an integer."))
        elif not 1 <= month <= 12:
            issues.append(_error("month", "out_of_range", "Month must be between 1 and 12."))

        min_year = self._settings.min_year
        if isinstance(year, bool) or not isinstance(year, int):
            issues.append(_error("year", "invalid_type", "Year must be an integer."))
        elif year < min_year:
            issues.append(_error(
                "year",
                "out_of_range",
                f"Year must be a valid year ({min_year} or later).",
            ))

        return issues

    def check_amount(self, amount: Any, field: str = "amount") -> list[ValidationIssue]:
        try:
            value = amount if isinstance(amount, Decimal) else Decimal(str(amount))
        except (InvalidOperation, ValueError, TypeError):
            return [_error(field, "invalid_type", f"{field.capitalize()} must be a number.")]

        if isinstance(amount, bool) or not value.is_finite():
            return [_error(field, "invalid_type", f"{field.capitalize()} must be a number.")]
        if value <= 0:
            return [_error(field, "out_of_range", f"{field.capitalize()} must be a positive number.")]
        # Two decimal places must still fit in the context precision
        if value.adjusted() + 3 > getcontext().prec:
            return [_error(field, "out_of_range", f"{field.capitalize()} is too large.")]
        try:
            too_precise = value != value.quantize(Decimal("0.01"))
        except InvalidOperation:
            too_precise = True
        if too_precise:
            return [_error(
                field,
                "too_precise",
                f"{field.capitalize()} can have at most two decimal places.",
            )]
        return []

    def check_kind(self, kind: Any) -> list[ValidationIssue]:
        try:
            TransactionKind(kind)
        except ValueError:
            return [_error("kind", "invalid_value", "Type must be 'income' or 'expense'.")]
        return []

    def check_date(self, value: Any) -> list[ValidationIssue]:
        if isinstance(value, date):
            return []
        if isinstance(value, str):
            try:
                date.fromisoformat(value)
                return []
            except ValueError:
                pass
        return [_error("date", "invalid_format", "Date must be a valid date (YYYY-MM-DD).")]

    def check_description(self, description: Optional[str]) -> list[ValidationIssue]:
        limit = self._settings.description_max_length
        if description is not None and len(description.strip()) > limit:
            return [_error(
                "description",
                "too_long",
                f"Description must be {limit} characters or less.",
            )]
        return []

    @staticmethod
    def as_uuid(value: Any) -> Optional[UUID]:
        """Parse an id given as a UUID or its string form; None if it is neither."""
        if isinstance(value, UUID):
            return value
        try:
            return UUID(str(value))
        except (ValueError, TypeError, AttributeError):
            return None

    def check_uuid(self, value: Any, field: str) -> list[ValidationIssue]:
        if value is not None and self.as_uuid(value) is None:
            return [_error(field, "invalid_type", "ID must be a valid UUID.")]
        return []

    def check_category_reference(
        self,
        category_id: Any,
        owner_id: str,
        categories: Iterable[Category],
        required: bool = True,
    ) -> list[ValidationIssue]:
        if category_id is None:
            if required:
                return [_error("category_id", "missing", "Category ID is required.")]
            return []

        wanted = self.as_uuid(category_id)
        if wanted is None:
            return self.check_uuid(category_id, "category_id")

        for category in categories:
            if category.id == wanted and category.is_visible_to(owner_id):
                return []
        return [_error("category_id", "unknown_reference", "Category does not exist.")]

    def check_category_name(
        self,
        name: Optional[str],
        owner_id: str,
        categories: Iterable[Category],
    ) -> tuple[list[ValidationIssue], bool]:
        """
        Returns (issues, is_duplicate).

        Duplicates are reported separately because they map to a storage
        conflict rather than malformed input.
        """
        if name is None or not name.strip():
            return [_error("name", "missing", "Category name is required.")], False
        if len(name.strip()) > 100:
            return [_error("name", "too_long", "Category name must be 100 characters or less.")], False

        wanted = name.strip().casefold()
        if wanted == self._settings.uncategorized_label.casefold():
            return [_error("name", "reserved", "Category name is reserved.")], False
        for category in categories:
            if category.is_visible_to(owner_id) and category.name.casefold() == wanted:
                return [], True
        return [], False

    # -------------------------------------------------------------------------
    # Composite validation
    # -------------------------------------------------------------------------

    def validate_transaction(
        self,
        owner_id: str,
        amount: Any,
        kind: Any,
        category_id: Optional[UUID],
        tx_date: Any,
        description: Optional[str],
        categories: Iterable[Category],
    ) -> ValidationResult:
        issues = []
        issues.extend(self.check_amount(amount))
        issues.extend(self.check_kind(kind))
        issues.extend(self.check_date(tx_date))
        issues.extend(self.check_description(description))
        issues.extend(self.check_category_reference(
            category_id, owner_id, categories, required=False
        ))
        return ValidationResult(issues=issues)

    def validate_budget(
        self,
        owner_id: str,
        category_id: Optional[UUID],
        amount: Any,
        month: Any,
        year: Any,
        categories: Iterable[Category],
    ) -> ValidationResult:
        issues = []
        issues.extend(self.check_category_reference(category_id, owner_id, categories))
        issues.extend(self.check_amount(amount))
        issues.extend(self.check_period(month, year))
        return ValidationResult(issues=issues)

    # -------------------------------------------------------------------------
    # Raising helpers
    # -------------------------------------------------------------------------

    def ensure_period(self, month: Any, year: Any) -> Period:
        issues = self.check_period(month, year)
        if issues:
            raise InvalidArgumentError.from_issues(issues)
        return Period(month=month, year=year)

    @staticmethod
    def ensure_valid(result: ValidationResult) -> None:
        if result.has_errors:
            raise InvalidArgumentError.from_issues(
                [issue for issue in result.issues if issue.severity == "error"]
            )
