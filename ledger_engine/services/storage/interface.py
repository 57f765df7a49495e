"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Keep the aggregation engine decoupled from persistence
2. Use in-memory storage for testing
3. Swap Google Sheets for a real database later

The interface is intentionally narrow: filtered reads scoped to one owner,
and writes that check ownership themselves. The one write that needs
coordination, upsert_budget, must be atomic inside the store.
"""

from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Iterable, Optional
from uuid import UUID

from ledger_engine.errors import LedgerError
from ledger_engine.models.audit import AuditEvent
from ledger_engine.models.ledger import (
    Budget,
    Category,
    LedgerSnapshot,
    Period,
    SharedScope,
    Transaction,
    TransactionKind,
)


class LedgerStorageInterface(ABC):
    """
    Abstract interface for ledger storage operations.

    Any storage implementation (in-memory, Google Sheets, PostgreSQL, etc.)
    must implement these methods.
    """

    # -------------------------------------------------------------------------
    # Categories
    # -------------------------------------------------------------------------

    @abstractmethod
    async def list_categories(self, owner_id: str) -> list[Category]:
        """
        List categories visible to an owner.

        Returns shared categories first, then the owner's own,
        each group ordered by name.
        """
        pass

    @abstractmethod
    async def create_category(self, category: Category) -> Category:
        """
        Save a new category.

        Raises:
            DuplicateError: If the name clashes (case-insensitive) with a
                category visible to the same owner
        """
        pass

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    @abstractmethod
    async def create_transaction(self, transaction: Transaction) -> Transaction:
        """Save a new transaction and return it."""
        pass

    @abstractmethod
    async def get_transaction(
        self,
        owner_id: str,
        transaction_id: UUID,
    ) -> Optional[Transaction]:
        """
        Retrieve a transaction owned by owner_id.

        Returns None both when the row is missing and when another owner
        holds it.
        """
        pass

    @abstractmethod
    async def list_transactions(
        self,
        owner_id: str,
        period: Optional[Period] = None,
        kind: Optional[TransactionKind] = None,
        category_id: Optional[UUID] = None,
    ) -> list[Transaction]:
        """
        List an owner's transactions with optional filters.

        Ordered newest first (date, then created_at).
        """
        pass

    @abstractmethod
    async def update_transaction(self, transaction: Transaction) -> Transaction:
        """
        Replace a transaction's mutable fields.

        Raises:
            NotFoundError: If no row with this id is owned by
                transaction.owner_id
        """
        pass

    @abstractmethod
    async def delete_transaction(self, owner_id: str, transaction_id: UUID) -> None:
        """
        Delete a transaction.

        Raises:
            NotFoundError: If no row with this id is owned by owner_id
        """
        pass

    # -------------------------------------------------------------------------
    # Budgets
    # -------------------------------------------------------------------------

    @abstractmethod
    async def list_budgets(self, owner_id: str, period: Period) -> list[Budget]:
        """List an owner's budgets for one period."""
        pass

    @abstractmethod
    async def upsert_budget(
        self,
        owner_id: str,
        category_id: UUID,
        period: Period,
        limit: Decimal,
    ) -> Budget:
        """
        Insert or replace the budget for (owner_id, category_id, period).

        Must be atomic: two concurrent calls for the same key leave exactly
        one row, holding the limit of whichever write landed last.
        Returns the row as it is after the write.
        """
        pass

    async def seed_shared_categories(self, names: Iterable[str]) -> list[Category]:
        """
        Create the shared default categories that do not exist yet.

        Returns only the categories created by this call.
        """
        created = []
        for name in names:
            try:
                created.append(await self.create_category(Category(name=name, scope=SharedScope())))
            except DuplicateError:
                continue
        return created

    # -------------------------------------------------------------------------
    # Snapshot
    # -------------------------------------------------------------------------

    async def get_snapshot(self, owner_id: str, period: Period) -> LedgerSnapshot:
        """
        Read everything the engine needs for one (owner, period).

        Implementations that can read atomically should override this.
        """
        categories = await self.list_categories(owner_id)
        transactions = await self.list_transactions(owner_id, period=period)
        return LedgerSnapshot(
            owner_id=owner_id,
            period=period,
            transactions=transactions,
            categories=categories,
        )


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Get all events for a correlation ID, in chronological order."""
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Get the most recent audit events (newest first)."""
        pass


def sort_categories(categories: list[Category]) -> list[Category]:
    """Shared categories first, then by name (case-insensitive)."""
    return sorted(categories, key=lambda c: (not c.is_shared, c.name.casefold(), str(c.id)))


def sort_transactions(transactions: list[Transaction]) -> list[Transaction]:
    """Newest first: date descending, then created_at descending."""
    return sorted(transactions, key=lambda t: (t.date, t.created_at), reverse=True)


def matches_filters(
    transaction: Transaction,
    owner_id: str,
    period: Optional[Period],
    kind: Optional[TransactionKind],
    category_id: Optional[UUID],
) -> bool:
    if transaction.owner_id != owner_id:
        return False
    if period and not period.contains(transaction.date):
        return False
    if kind and transaction.kind != kind:
        return False
    if category_id and transaction.category_id != category_id:
        return False
    return True


class StorageError(LedgerError):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """
    Entity not found in storage.

    Also raised when the entity exists but belongs to someone else;
    callers cannot tell the two apart.
    """
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
