"""
Ledger Service

This module ties the components together and defines the narrow boundary
outer layers (HTTP handlers, CLI commands, batch jobs) call into:

Reports: summary, category_breakdown, time_series, budget_status
Budgets: set_budget, list_budgets
Ledger:  categories and transactions

DESIGN DECISION: The service enforces the boundaries:
- Inputs are validated before any read or write
- The engine only ever sees one owner's snapshot
- Every write is audited, and so is every rejected or not-found access
- "Now" comes from an injected clock, never from inside the engine
"""

from datetime import date
from decimal import Decimal
from typing import Any, Callable, Optional
from uuid import UUID

from ledger_engine.audit import AuditLogger, configure_logging, create_correlation_id
from ledger_engine.config import LedgerSettings, get_settings
from ledger_engine.engine import (
    BudgetEvaluator,
    category_breakdown,
    summarize,
    time_series,
)
from ledger_engine.errors import InvalidArgumentError
from ledger_engine.models.audit import AuditEventType
from ledger_engine.models.ledger import (
    Budget,
    BudgetView,
    Category,
    LedgerSnapshot,
    OwnedScope,
    Period,
    Transaction,
    TransactionKind,
    ValidationResult,
)
from ledger_engine.models.reports import (
    BudgetStatusReport,
    CategoryBreakdownReport,
    SummaryReport,
    TimeSeriesReport,
    format_money,
    format_percentage,
)
from ledger_engine.services.storage import (
    DuplicateError,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerStorage,
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
    LedgerStorageInterface,
    NotFoundError,
    StorageError,
)
from ledger_engine.validation import LedgerValidator


NOT_FOUND_MESSAGE = "Transaction not found or access denied."


class LedgerService:
    """
    Entry point for every ledger operation.

    Flow for reads:
    1. Resolve the period (missing month/year come from the clock)
    2. Validate it
    3. Read one snapshot from storage
    4. Run the pure engine over it
    5. Wrap the result in a response envelope
    """

    def __init__(
        self,
        storage: LedgerStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[LedgerSettings] = None,
        validator: Optional[LedgerValidator] = None,
        evaluator: Optional[BudgetEvaluator] = None,
        clock: Callable[[], date] = date.today,
    ):
        self._settings = settings or get_settings().ledger
        self._storage = storage
        self._audit_logger = audit_logger or AuditLogger()
        self._validator = validator or LedgerValidator(self._settings)
        self._evaluator = evaluator or BudgetEvaluator.from_settings(self._settings)
        self._clock = clock

    async def initialize(self) -> list[Category]:
        """Seed the shared default categories. Safe to call repeatedly."""
        return await self._storage.seed_shared_categories(
            self._settings.default_categories_list
        )

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    async def _reject(
        self,
        owner_id: str,
        operation: str,
        error: InvalidArgumentError,
        correlation_id: UUID,
    ) -> None:
        await self._audit_logger.log_validation_failed(
            owner_id=owner_id,
            operation=operation,
            issues=[issue.model_dump() for issue in error.issues],
            correlation_id=correlation_id,
        )

    async def _resolve_period(
        self,
        owner_id: str,
        operation: str,
        month: Optional[int],
        year: Optional[int],
        correlation_id: UUID,
    ) -> Period:
        """Fill a missing month/year from the clock, then validate."""
        today = self._clock()
        try:
            return self._validator.ensure_period(
                today.month if month is None else month,
                today.year if year is None else year,
            )
        except InvalidArgumentError as e:
            await self._reject(owner_id, operation, e, correlation_id)
            raise

    async def _snapshot(
        self,
        owner_id: str,
        period: Period,
        correlation_id: UUID,
    ) -> LedgerSnapshot:
        try:
            return await self._storage.get_snapshot(owner_id, period)
        except StorageError as e:
            await self._audit_logger.log_storage_error(
                operation="read snapshot",
                error_message=str(e),
                correlation_id=correlation_id,
            )
            raise

    async def _validated(
        self,
        owner_id: str,
        operation: str,
        check: Callable[[], Any],
        correlation_id: UUID,
    ) -> None:
        try:
            self._validator.ensure_valid(check())
        except InvalidArgumentError as e:
            await self._reject(owner_id, operation, e, correlation_id)
            raise

    # -------------------------------------------------------------------------
    # Reports
    # -------------------------------------------------------------------------

    async def summary(
        self,
        owner_id: str,
        month: Optional[int] = None,
        year: Optional[int] = None,
    ) -> SummaryReport:
        """Total income, total expenses and balance for a month."""
        correlation_id = create_correlation_id()
        period = await self._resolve_period(owner_id, "summary", month, year, correlation_id)
        snapshot = await self._snapshot(owner_id, period, correlation_id)

        result = summarize(snapshot)

        await self._audit_logger.log_report(owner_id, "summary", str(period), 1, correlation_id)
        return SummaryReport(month=period.month, year=period.year, **result.model_dump())

    async def category_breakdown(
        self,
        owner_id: str,
        month: Optional[int] = None,
        year: Optional[int] = None,
    ) -> CategoryBreakdownReport:
        """Expenses grouped by category, largest first."""
        correlation_id = create_correlation_id()
        period = await self._resolve_period(
            owner_id, "category_breakdown", month, year, correlation_id
        )
        snapshot = await self._snapshot(owner_id, period, correlation_id)

        items = category_breakdown(snapshot, self._settings.uncategorized_label)

        await self._audit_logger.log_report(
            owner_id, "category_breakdown", str(period), len(items), correlation_id
        )
        return CategoryBreakdownReport(month=period.month, year=period.year, items=items)

    async def time_series(
        self,
        owner_id: str,
        month: Optional[int] = None,
        year: Optional[int] = None,
    ) -> TimeSeriesReport:
        """Daily expense totals, oldest first, days without expenses omitted."""
        correlation_id = create_correlation_id()
        period = await self._resolve_period(owner_id, "time_series", month, year, correlation_id)
        snapshot = await self._snapshot(owner_id, period, correlation_id)

        points = time_series(snapshot)

        await self._audit_logger.log_report(
            owner_id, "time_series", str(period), len(points), correlation_id
        )
        return TimeSeriesReport(month=period.month, year=period.year, points=points)

    async def budget_status(
        self,
        owner_id: str,
        month: Optional[int] = None,
        year: Optional[int] = None,
    ) -> BudgetStatusReport:
        """
        Compare every budget for the month against actual spending.

        Budgets whose category cannot be resolved are left out and logged
        as integrity anomalies.
        """
        correlation_id = create_correlation_id()
        period = await self._resolve_period(owner_id, "budget_status", month, year, correlation_id)
        snapshot = await self._snapshot(owner_id, period, correlation_id)
        budgets = await self._storage.list_budgets(owner_id, period)

        evaluation = self._evaluator.evaluate(budgets, snapshot)

        for anomaly in evaluation.anomalies:
            await self._audit_logger.log_budget_anomaly(
                owner_id=owner_id,
                budget_id=anomaly.budget_id,
                category_id=anomaly.category_id,
                reason=anomaly.reason,
                correlation_id=correlation_id,
            )
        for status in evaluation.statuses:
            if status.alert is not None:
                await self._audit_logger.log_budget_alert(
                    owner_id=owner_id,
                    budget_id=status.budget_id,
                    category_name=status.category_name,
                    percentage_used=format_percentage(status.percentage_used),
                    correlation_id=correlation_id,
                )

        await self._audit_logger.log_report(
            owner_id, "budget_status", str(period), len(evaluation.statuses), correlation_id
        )
        return BudgetStatusReport(
            month=period.month,
            year=period.year,
            statuses=evaluation.statuses,
        )

    # -------------------------------------------------------------------------
    # Budgets
    # -------------------------------------------------------------------------

    async def set_budget(
        self,
        owner_id: str,
        category_id: UUID,
        amount: Any,
        month: int,
        year: int,
    ) -> Budget:
        """
        Create or replace the budget for (owner, category, month, year).

        Idempotent for identical arguments; a different amount for the same
        key replaces the limit. Every precondition is checked before writing.
        """
        correlation_id = create_correlation_id()
        categories = await self._storage.list_categories(owner_id)
        await self._validated(
            owner_id,
            "set_budget",
            lambda: self._validator.validate_budget(
                owner_id, category_id, amount, month, year, categories
            ),
            correlation_id,
        )

        category_id = self._validator.as_uuid(category_id)
        period = Period(month=month, year=year)
        limit = Decimal(str(amount))
        try:
            budget = await self._storage.upsert_budget(owner_id, category_id, period, limit)
        except StorageError as e:
            await self._audit_logger.log_storage_error("set budget", str(e), correlation_id)
            raise

        await self._audit_logger.log_budget_set(
            owner_id=owner_id,
            budget_id=budget.id,
            category_id=category_id,
            limit=format_money(budget.limit),
            period=str(period),
            correlation_id=correlation_id,
        )
        return budget

    async def list_budgets(
        self,
        owner_id: str,
        month: Optional[int] = None,
        year: Optional[int] = None,
    ) -> list[BudgetView]:
        """Budgets for a month with their category names, by name."""
        correlation_id = create_correlation_id()
        period = await self._resolve_period(owner_id, "list_budgets", month, year, correlation_id)
        categories = {c.id: c for c in await self._storage.list_categories(owner_id)}
        budgets = await self._storage.list_budgets(owner_id, period)

        views = [
            BudgetView(
                budget_id=b.id,
                category_id=b.category_id,
                category_name=categories[b.category_id].name,
                limit=b.limit,
                month=b.month,
                year=b.year,
            )
            for b in budgets
            if b.category_id in categories
        ]
        views.sort(key=lambda v: (v.category_name, str(v.budget_id)))
        return views

    # -------------------------------------------------------------------------
    # Categories
    # -------------------------------------------------------------------------

    async def list_categories(self, owner_id: str) -> list[Category]:
        """Shared categories first, then the owner's own, each by name."""
        return await self._storage.list_categories(owner_id)

    async def create_category(self, owner_id: str, name: Optional[str]) -> Category:
        """
        Create a custom category for one owner.

        Raises DuplicateError when a visible category already has this
        name, ignoring case.
        """
        correlation_id = create_correlation_id()
        categories = await self._storage.list_categories(owner_id)
        issues, is_duplicate = self._validator.check_category_name(name, owner_id, categories)
        if issues:
            error = InvalidArgumentError.from_issues(issues)
            await self._reject(owner_id, "create_category", error, correlation_id)
            raise error
        if is_duplicate:
            raise DuplicateError("Category already exists.")

        category = await self._storage.create_category(
            Category(name=name.strip(), scope=OwnedScope(owner_id=owner_id))
        )
        await self._audit_logger.log_category_created(
            owner_id, category.id, category.name, correlation_id
        )
        return category

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    def _build_transaction(
        self,
        owner_id: str,
        amount: Any,
        kind: Any,
        category_id: Optional[UUID],
        tx_date: Any,
        description: Optional[str],
        **identity: Any,
    ) -> Transaction:
        return Transaction(
            owner_id=owner_id,
            amount=Decimal(str(amount)),
            kind=TransactionKind(kind),
            category_id=category_id,
            date=tx_date if isinstance(tx_date, date) else date.fromisoformat(tx_date),
            description=description.strip() if description else None,
            **identity,
        )

    async def create_transaction(
        self,
        owner_id: str,
        amount: Any,
        kind: Any,
        category_id: Optional[UUID],
        tx_date: Any,
        description: Optional[str] = None,
    ) -> Transaction:
        """Record an income or expense entry."""
        correlation_id = create_correlation_id()
        categories = await self._storage.list_categories(owner_id)
        await self._validated(
            owner_id,
            "create_transaction",
            lambda: self._validator.validate_transaction(
                owner_id, amount, kind, category_id, tx_date, description, categories
            ),
            correlation_id,
        )

        try:
            transaction = await self._storage.create_transaction(
                self._build_transaction(owner_id, amount, kind, category_id, tx_date, description)
            )
        except StorageError as e:
            await self._audit_logger.log_storage_error("save transaction", str(e), correlation_id)
            raise
        await self._audit_logger.log_transaction_written(
            AuditEventType.TRANSACTION_CREATED,
            owner_id,
            transaction.id,
            transaction.kind.value,
            format_money(transaction.amount),
            correlation_id,
        )
        return transaction

    async def list_transactions(
        self,
        owner_id: str,
        month: Optional[int] = None,
        year: Optional[int] = None,
        category_id: Optional[UUID] = None,
    ) -> list[Transaction]:
        """
        An owner's transactions, newest first.

        Unfiltered by period when neither month nor year is given; when only
        one is given the other comes from the clock.
        """
        correlation_id = create_correlation_id()
        period = None
        if month is not None or year is not None:
            period = await self._resolve_period(
                owner_id, "list_transactions", month, year, correlation_id
            )
        if category_id is not None:
            await self._validated(
                owner_id,
                "list_transactions",
                lambda: ValidationResult(
                    issues=self._validator.check_uuid(category_id, "category_id")
                ),
                correlation_id,
            )
            category_id = self._validator.as_uuid(category_id)
        return await self._storage.list_transactions(
            owner_id, period=period, category_id=category_id
        )

    async def update_transaction(
        self,
        owner_id: str,
        transaction_id: UUID,
        amount: Any,
        kind: Any,
        category_id: Optional[UUID],
        tx_date: Any,
        description: Optional[str] = None,
    ) -> Transaction:
        """
        Replace a transaction's fields.

        Raises NotFoundError when the row is missing or owned by someone
        else; the two cases are deliberately indistinguishable.
        """
        correlation_id = create_correlation_id()
        categories = await self._storage.list_categories(owner_id)
        await self._validated(
            owner_id,
            "update_transaction",
            lambda: self._validator.validate_transaction(
                owner_id, amount, kind, category_id, tx_date, description, categories
            ),
            correlation_id,
        )

        existing = await self._storage.get_transaction(owner_id, transaction_id)
        if existing is None:
            await self._audit_logger.log_not_found(
                owner_id, "transaction", transaction_id, correlation_id
            )
            raise NotFoundError(NOT_FOUND_MESSAGE)

        candidate = self._build_transaction(
            owner_id,
            amount,
            kind,
            category_id,
            tx_date,
            description,
            id=transaction_id,
            created_at=existing.created_at,
        )
        try:
            transaction = await self._storage.update_transaction(candidate)
        except NotFoundError:
            await self._audit_logger.log_not_found(
                owner_id, "transaction", transaction_id, correlation_id
            )
            raise NotFoundError(NOT_FOUND_MESSAGE)

        await self._audit_logger.log_transaction_written(
            AuditEventType.TRANSACTION_UPDATED,
            owner_id,
            transaction.id,
            transaction.kind.value,
            format_money(transaction.amount),
            correlation_id,
        )
        return transaction

    async def delete_transaction(self, owner_id: str, transaction_id: UUID) -> None:
        """
        Delete a transaction.

        Raises NotFoundError when the row is missing or owned by someone else.
        """
        correlation_id = create_correlation_id()
        existing = await self._storage.get_transaction(owner_id, transaction_id)
        try:
            await self._storage.delete_transaction(owner_id, transaction_id)
        except NotFoundError:
            await self._audit_logger.log_not_found(
                owner_id, "transaction", transaction_id, correlation_id
            )
            raise NotFoundError(NOT_FOUND_MESSAGE)

        await self._audit_logger.log_transaction_written(
            AuditEventType.TRANSACTION_DELETED,
            owner_id,
            transaction_id,
            existing.kind.value if existing else "",
            format_money(existing.amount) if existing else "",
            correlation_id,
        )


def create_app_components(
    use_storage: bool = True,
    clock: Callable[[], date] = date.today,
) -> LedgerService:
    """
    Factory function to wire a LedgerService from settings.

    Args:
        use_storage: Whether to honour the configured storage backend.
                    Set to False to force the in-memory store.
        clock: Source of "today" for requests that omit month/year.

    Call ``await service.initialize()`` afterwards to seed shared categories.
    """
    settings = get_settings()
    app_settings = settings.app
    configure_logging(app_settings.log_level)

    if use_storage and app_settings.storage_backend == "google_sheets":
        sheets_client = GoogleSheetsClient(settings.google_sheets)
        storage = GoogleSheetsLedgerStorage(sheets_client)
        audit_logger = AuditLogger(GoogleSheetsAuditStorage(sheets_client))
    else:
        storage = InMemoryLedgerStorage()
        audit_logger = AuditLogger(InMemoryAuditStorage())

    return LedgerService(
        storage=storage,
        audit_logger=audit_logger,
        settings=settings.ledger,
        clock=clock,
    )
