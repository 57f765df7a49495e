"""
In-Memory Storage Implementation

Keeps the whole ledger in process memory. Used by default in development
and throughout the test suite.

Every method does its reads and writes without awaiting in between, so each
call is atomic with respect to other coroutines on the same event loop.
That is what makes upsert_budget a single conditional write here.
"""

from decimal import Decimal
from typing import Iterable, Optional
from uuid import UUID

from ledger_engine.models.audit import AuditEvent
from ledger_engine.models.ledger import (
    Budget,
    Category,
    LedgerSnapshot,
    Period,
    Transaction,
    TransactionKind,
)
from ledger_engine.services.storage.interface import (
    AuditStorageInterface,
    DuplicateError,
    LedgerStorageInterface,
    NotFoundError,
    matches_filters,
    sort_categories,
    sort_transactions,
)


BudgetKey = tuple[str, UUID, int, int]


class InMemoryLedgerStorage(LedgerStorageInterface):
    """
    Dictionary-backed ledger store.

    Budgets are indexed by their natural key, so a second write for the
    same (owner, category, month, year) lands on the same slot.
    """

    def __init__(self, categories: Optional[Iterable[Category]] = None):
        self._categories: dict[UUID, Category] = {}
        self._transactions: dict[UUID, Transaction] = {}
        self._budgets: dict[BudgetKey, Budget] = {}

        for category in categories or []:
            self._categories[category.id] = category.model_copy()

    # -------------------------------------------------------------------------
    # Categories
    # -------------------------------------------------------------------------

    def _visible_categories(self, owner_id: str) -> list[Category]:
        return [c for c in self._categories.values() if c.is_visible_to(owner_id)]

    async def list_categories(self, owner_id: str) -> list[Category]:
        return [c.model_copy() for c in sort_categories(self._visible_categories(owner_id))]

    async def create_category(self, category: Category) -> Category:
        owner_id = category.scope.owner_id
        if owner_id is None:
            clashes = self._categories.values()
        else:
            clashes = self._visible_categories(owner_id)

        wanted = category.name.casefold()
        if any(c.name.casefold() == wanted for c in clashes):
            raise DuplicateError(f"Category already exists: {category.name}")

        self._categories[category.id] = category.model_copy()
        return category.model_copy()

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    async def create_transaction(self, transaction: Transaction) -> Transaction:
        self._transactions[transaction.id] = transaction.model_copy()
        return transaction.model_copy()

    async def get_transaction(
        self,
        owner_id: str,
        transaction_id: UUID,
    ) -> Optional[Transaction]:
        existing = self._transactions.get(transaction_id)
        if existing is None or existing.owner_id != owner_id:
            return None
        return existing.model_copy()

    def _filter_transactions(
        self,
        owner_id: str,
        period: Optional[Period] = None,
        kind: Optional[TransactionKind] = None,
        category_id: Optional[UUID] = None,
    ) -> list[Transaction]:
        return sort_transactions([
            t.model_copy()
            for t in self._transactions.values()
            if matches_filters(t, owner_id, period, kind, category_id)
        ])

    async def list_transactions(
        self,
        owner_id: str,
        period: Optional[Period] = None,
        kind: Optional[TransactionKind] = None,
        category_id: Optional[UUID] = None,
    ) -> list[Transaction]:
        return self._filter_transactions(owner_id, period, kind, category_id)

    async def update_transaction(self, transaction: Transaction) -> Transaction:
        existing = self._transactions.get(transaction.id)
        if existing is None or existing.owner_id != transaction.owner_id:
            raise NotFoundError(f"Transaction not found: {transaction.id}")

        updated = transaction.model_copy(update={"created_at": existing.created_at})
        self._transactions[transaction.id] = updated
        return updated.model_copy()

    async def delete_transaction(self, owner_id: str, transaction_id: UUID) -> None:
        existing = self._transactions.get(transaction_id)
        if existing is None or existing.owner_id != owner_id:
            raise NotFoundError(f"Transaction not found: {transaction_id}")
        del self._transactions[transaction_id]

    # -------------------------------------------------------------------------
    # Budgets
    # -------------------------------------------------------------------------

    async def list_budgets(self, owner_id: str, period: Period) -> list[Budget]:
        return [
            b.model_copy()
            for b in self._budgets.values()
            if b.owner_id == owner_id and b.month == period.month and b.year == period.year
        ]

    async def upsert_budget(
        self,
        owner_id: str,
        category_id: UUID,
        period: Period,
        limit: Decimal,
    ) -> Budget:
        key = (owner_id, category_id, period.month, period.year)
        existing = self._budgets.get(key)

        if existing is None:
            budget = Budget(
                owner_id=owner_id,
                category_id=category_id,
                limit=limit,
                month=period.month,
                year=period.year,
            )
        else:
            budget = existing.model_copy(update={"limit": limit})

        self._budgets[key] = budget
        return budget.model_copy()

    # -------------------------------------------------------------------------
    # Snapshot
    # -------------------------------------------------------------------------

    async def get_snapshot(self, owner_id: str, period: Period) -> LedgerSnapshot:
        return LedgerSnapshot(
            owner_id=owner_id,
            period=period,
            transactions=self._filter_transactions(owner_id, period=period),
            categories=[c.model_copy() for c in self._visible_categories(owner_id)],
        )

    def budget_count(self) -> int:
        return len(self._budgets)


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only list of audit events."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self._events if e.correlation_id == correlation_id]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        return sorted(self._events, key=lambda e: e.timestamp, reverse=True)[:limit]

    @property
    def events(self) -> list[AuditEvent]:
        return list(self._events)
