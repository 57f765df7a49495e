"""
Tests for the storage backends.

The Google Sheets store runs against an in-process fake of the client's
worksheet primitives, so no network or credentials are needed.
"""

import asyncio
import pytest
from datetime import date, datetime, timedelta
from decimal import Decimal
from uuid import uuid4

from ledger_engine.models.audit import AuditEvent, AuditEventType
from ledger_engine.models.ledger import (
    Category,
    OwnedScope,
    Period,
    SharedScope,
    Transaction,
    TransactionKind,
)
from ledger_engine.services.storage import (
    DuplicateError,
    GoogleSheetsAuditStorage,
    GoogleSheetsLedgerStorage,
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
    NotFoundError,
    StorageError,
)
from ledger_engine.config import GoogleSheetsSettings
from ledger_engine.services.storage.google_sheets import (
    AUDIT_COLUMNS,
    BUDGET_COLUMNS,
    CATEGORY_COLUMNS,
    TRANSACTION_COLUMNS,
    GoogleSheetsClient,
)


MARCH = Period(month=3, year=2025)


def make_tx(owner="alice", amount="10", day=5, month=3, kind="expense", category_id=None):
    return Transaction(
        owner_id=owner,
        amount=Decimal(amount),
        kind=TransactionKind(kind),
        category_id=category_id,
        date=date(2025, month, day),
    )


# =============================================================================
# FAKE SHEETS CLIENT
# =============================================================================

class FakeWorksheet:
    def __init__(self, title, columns):
        self.title = title
        self.rows = [list(columns)]


class FakeSheetsClient:
    """Mimics GoogleSheetsClient's primitives over in-memory worksheets."""

    def __init__(self):
        self.categories = FakeWorksheet("Categories", CATEGORY_COLUMNS)
        self.transactions = FakeWorksheet("Transactions", TRANSACTION_COLUMNS)
        self.budgets = FakeWorksheet("Budgets", BUDGET_COLUMNS)
        self.audit = FakeWorksheet("AuditLog", AUDIT_COLUMNS)
        self.fail_reads = False
        self.row_reads = 0
        self.batch_reads = 0

    def get_categories_sheet(self):
        return self.categories

    def get_transactions_sheet(self):
        return self.transactions

    def get_budgets_sheet(self):
        return self.budgets

    def get_audit_sheet(self):
        return self.audit

    def read_rows(self, sheet):
        if self.fail_reads:
            raise RuntimeError("quota exceeded")
        self.row_reads += 1
        return [list(r) for r in sheet.rows[1:]]

    def read_many(self, sheets):
        if self.fail_reads:
            raise RuntimeError("quota exceeded")
        self.batch_reads += 1
        return [[list(r) for r in sheet.rows[1:]] for sheet in sheets]

    def append_row(self, sheet, row):
        sheet.rows.append([str(v) for v in row])

    def update_row(self, sheet, row_number, row):
        sheet.rows[row_number - 1] = [str(v) for v in row]

    def update_cell(self, sheet, row_number, col, value):
        sheet.rows[row_number - 1][col - 1] = str(value)

    def delete_row(self, sheet, row_number):
        del sheet.rows[row_number - 1]


@pytest.fixture
def sheets_client():
    return FakeSheetsClient()


@pytest.fixture
def sheets_storage(sheets_client):
    return GoogleSheetsLedgerStorage(sheets_client)


# =============================================================================
# IN-MEMORY STORE
# =============================================================================

class TestInMemoryCategories:
    """Tests for category visibility and uniqueness."""

    @pytest.mark.asyncio
    async def test_shared_first_then_owned(self, storage):
        await storage.create_category(Category(name="Aquarium", scope=OwnedScope(owner_id="alice")))

        names = [c.name for c in await storage.list_categories("alice")]

        assert names[-1] == "Aquarium"
        assert names[:-1] == sorted(names[:-1])

    @pytest.mark.asyncio
    async def test_owned_hidden_from_others(self, storage):
        await storage.create_category(Category(name="Pets", scope=OwnedScope(owner_id="alice")))

        assert "Pets" not in [c.name for c in await storage.list_categories("bob")]

    @pytest.mark.asyncio
    async def test_duplicate_name_case_insensitive(self, storage):
        with pytest.raises(DuplicateError):
            await storage.create_category(Category(name="food", scope=OwnedScope(owner_id="alice")))

    @pytest.mark.asyncio
    async def test_same_owned_name_for_two_owners(self, storage):
        await storage.create_category(Category(name="Pets", scope=OwnedScope(owner_id="alice")))
        await storage.create_category(Category(name="Pets", scope=OwnedScope(owner_id="bob")))

        assert "Pets" in [c.name for c in await storage.list_categories("bob")]

    @pytest.mark.asyncio
    async def test_seed_is_idempotent(self):
        store = InMemoryLedgerStorage()

        first = await store.seed_shared_categories(["Food", "Transport"])
        second = await store.seed_shared_categories(["Food", "Transport", "Other"])

        assert [c.name for c in first] == ["Food", "Transport"]
        assert [c.name for c in second] == ["Other"]
        assert all(c.is_shared for c in await store.list_categories("anyone"))


class TestInMemoryTransactions:
    """Tests for transaction ownership and filters."""

    @pytest.mark.asyncio
    async def test_get_foreign_returns_none(self, storage):
        tx = await storage.create_transaction(make_tx(owner="alice"))

        assert await storage.get_transaction("alice", tx.id) is not None
        assert await storage.get_transaction("bob", tx.id) is None
        assert await storage.get_transaction("alice", uuid4()) is None

    @pytest.mark.asyncio
    async def test_list_newest_first_and_filtered(self, storage):
        await storage.create_transaction(make_tx(day=1))
        await storage.create_transaction(make_tx(day=20))
        await storage.create_transaction(make_tx(day=9, month=4))
        await storage.create_transaction(make_tx(owner="bob"))

        march = await storage.list_transactions("alice", period=MARCH)
        everything = await storage.list_transactions("alice")

        assert [t.date.day for t in march] == [20, 1]
        assert len(everything) == 3

    @pytest.mark.asyncio
    async def test_filter_by_kind_and_category(self, storage, shared_categories):
        food = shared_categories["Food"]
        await storage.create_transaction(make_tx(category_id=food.id))
        await storage.create_transaction(make_tx(kind="income"))

        by_category = await storage.list_transactions("alice", category_id=food.id)
        by_kind = await storage.list_transactions("alice", kind=TransactionKind.INCOME)

        assert len(by_category) == 1
        assert len(by_kind) == 1
        assert by_kind[0].kind == TransactionKind.INCOME

    @pytest.mark.asyncio
    async def test_update_keeps_created_at(self, storage):
        tx = await storage.create_transaction(make_tx())
        changed = tx.model_copy(update={
            "amount": Decimal("99"),
            "created_at": tx.created_at + timedelta(days=1),
        })

        updated = await storage.update_transaction(changed)

        assert updated.amount == Decimal("99")
        assert updated.created_at == tx.created_at

    @pytest.mark.asyncio
    async def test_update_foreign_raises_not_found(self, storage):
        tx = await storage.create_transaction(make_tx(owner="alice"))

        with pytest.raises(NotFoundError):
            await storage.update_transaction(tx.model_copy(update={"owner_id": "bob"}))

    @pytest.mark.asyncio
    async def test_delete_foreign_raises_not_found(self, storage):
        tx = await storage.create_transaction(make_tx(owner="alice"))

        with pytest.raises(NotFoundError):
            await storage.delete_transaction("bob", tx.id)
        assert await storage.get_transaction("alice", tx.id) is not None

    @pytest.mark.asyncio
    async def test_returned_models_are_copies(self, storage):
        tx = await storage.create_transaction(make_tx())
        fetched = await storage.get_transaction("alice", tx.id)
        fetched.description = "mutated"

        again = await storage.get_transaction("alice", tx.id)
        assert again.description is None


class TestInMemoryBudgets:
    """Tests for the budget upsert."""

    @pytest.mark.asyncio
    async def test_second_write_replaces_limit(self, storage, shared_categories):
        food = shared_categories["Food"]

        first = await storage.upsert_budget("alice", food.id, MARCH, Decimal("100"))
        second = await storage.upsert_budget("alice", food.id, MARCH, Decimal("150"))

        budgets = await storage.list_budgets("alice", MARCH)
        assert len(budgets) == 1
        assert budgets[0].limit == Decimal("150")
        assert second.id == first.id
        assert second.created_at == first.created_at

    @pytest.mark.asyncio
    async def test_identical_write_is_idempotent(self, storage, shared_categories):
        food = shared_categories["Food"]

        await storage.upsert_budget("alice", food.id, MARCH, Decimal("100"))
        await storage.upsert_budget("alice", food.id, MARCH, Decimal("100"))

        assert storage.budget_count() == 1

    @pytest.mark.asyncio
    async def test_keys_are_independent(self, storage, shared_categories):
        food = shared_categories["Food"]

        await storage.upsert_budget("alice", food.id, MARCH, Decimal("100"))
        await storage.upsert_budget("bob", food.id, MARCH, Decimal("100"))
        await storage.upsert_budget("alice", food.id, Period(month=4, year=2025), Decimal("100"))

        assert storage.budget_count() == 3
        assert len(await storage.list_budgets("alice", MARCH)) == 1

    @pytest.mark.asyncio
    async def test_concurrent_upserts_leave_one_row(self, storage, shared_categories):
        food = shared_categories["Food"]
        limits = [Decimal(n) for n in range(100, 120)]

        await asyncio.gather(*(
            storage.upsert_budget("alice", food.id, MARCH, limit) for limit in limits
        ))

        budgets = await storage.list_budgets("alice", MARCH)
        assert len(budgets) == 1
        assert budgets[0].limit in limits


class TestInMemoryAudit:
    """Tests for the in-memory audit log."""

    @pytest.mark.asyncio
    async def test_correlation_lookup(self, audit_storage):
        correlation_id = uuid4()
        await audit_storage.append_event(AuditEvent(
            event_type=AuditEventType.BUDGET_SET,
            description="one",
            correlation_id=correlation_id,
        ))
        await audit_storage.append_event(AuditEvent(
            event_type=AuditEventType.REPORT_GENERATED,
            description="other",
        ))

        events = await audit_storage.get_events_by_correlation_id(correlation_id)

        assert [e.description for e in events] == ["one"]

    @pytest.mark.asyncio
    async def test_recent_events_limit(self):
        store = InMemoryAuditStorage()
        base = datetime(2025, 3, 1)
        for i in range(5):
            await store.append_event(AuditEvent(
                event_type=AuditEventType.REPORT_GENERATED,
                description=f"event {i}",
                timestamp=base + timedelta(minutes=i),
            ))

        recent = await store.get_recent_events(limit=2)

        assert [e.description for e in recent] == ["event 4", "event 3"]


# =============================================================================
# GOOGLE SHEETS STORE
# =============================================================================

class TestGoogleSheetsCategories:
    """Tests for categories stored in a worksheet."""

    @pytest.mark.asyncio
    async def test_create_and_list(self, sheets_storage, sheets_client):
        await sheets_storage.create_category(Category(name="Food"))
        await sheets_storage.create_category(Category(name="Pets", scope=OwnedScope(owner_id="alice")))

        alice = await sheets_storage.list_categories("alice")
        bob = await sheets_storage.list_categories("bob")

        assert [c.name for c in alice] == ["Food", "Pets"]
        assert isinstance(alice[0].scope, SharedScope)
        assert [c.name for c in bob] == ["Food"]
        assert sheets_client.categories.rows[2][2:4] == ["owned", "alice"]

    @pytest.mark.asyncio
    async def test_duplicate_rejected(self, sheets_storage):
        await sheets_storage.create_category(Category(name="Food"))

        with pytest.raises(DuplicateError):
            await sheets_storage.create_category(Category(name="FOOD"))

    @pytest.mark.asyncio
    async def test_malformed_rows_skipped(self, sheets_storage, sheets_client):
        sheets_client.categories.rows.append(["not-a-uuid", "Broken", "shared", "", "x"])
        sheets_client.categories.rows.append([])
        await sheets_storage.create_category(Category(name="Food"))

        assert [c.name for c in await sheets_storage.list_categories("alice")] == ["Food"]


class TestGoogleSheetsTransactions:
    """Tests for transactions stored in a worksheet."""

    @pytest.mark.asyncio
    async def test_round_trip_fields(self, sheets_storage):
        category_id = uuid4()
        tx = make_tx(amount="12.34", category_id=category_id)
        tx = tx.model_copy(update={"description": "Groceries"})

        await sheets_storage.create_transaction(tx)
        stored = await sheets_storage.get_transaction("alice", tx.id)

        assert stored == tx

    @pytest.mark.asyncio
    async def test_update_rewrites_row(self, sheets_storage, sheets_client):
        tx = await sheets_storage.create_transaction(make_tx())

        updated = await sheets_storage.update_transaction(
            tx.model_copy(update={"amount": Decimal("55.50"), "kind": TransactionKind.INCOME})
        )

        assert updated.amount == Decimal("55.50")
        assert sheets_client.transactions.rows[1][2:4] == ["55.50", "income"]
        assert updated.created_at == tx.created_at

    @pytest.mark.asyncio
    async def test_foreign_access_is_not_found(self, sheets_storage):
        tx = await sheets_storage.create_transaction(make_tx(owner="alice"))

        assert await sheets_storage.get_transaction("bob", tx.id) is None
        with pytest.raises(NotFoundError):
            await sheets_storage.delete_transaction("bob", tx.id)
        with pytest.raises(NotFoundError):
            await sheets_storage.update_transaction(tx.model_copy(update={"owner_id": "bob"}))

    @pytest.mark.asyncio
    async def test_delete_removes_row(self, sheets_storage, sheets_client):
        keep = await sheets_storage.create_transaction(make_tx(day=1))
        gone = await sheets_storage.create_transaction(make_tx(day=2))

        await sheets_storage.delete_transaction("alice", gone.id)

        assert len(sheets_client.transactions.rows) == 2
        assert [t.id for t in await sheets_storage.list_transactions("alice")] == [keep.id]

    @pytest.mark.asyncio
    async def test_snapshot_scoped_to_period(self, sheets_storage):
        await sheets_storage.create_category(Category(name="Food"))
        await sheets_storage.create_transaction(make_tx(day=3))
        await sheets_storage.create_transaction(make_tx(day=3, month=4))

        snapshot = await sheets_storage.get_snapshot("alice", MARCH)

        assert len(snapshot.transactions) == 1
        assert [c.name for c in snapshot.categories] == ["Food"]

    @pytest.mark.asyncio
    async def test_snapshot_is_one_batch_read(self, sheets_storage, sheets_client):
        await sheets_storage.create_transaction(make_tx(day=3))
        sheets_client.row_reads = 0

        await sheets_storage.get_snapshot("alice", MARCH)

        assert sheets_client.batch_reads == 1
        assert sheets_client.row_reads == 0

    @pytest.mark.asyncio
    async def test_read_failure_becomes_storage_error(self, sheets_storage, sheets_client):
        sheets_client.fail_reads = True

        with pytest.raises(StorageError):
            await sheets_storage.list_transactions("alice")


class TestGoogleSheetsBudgets:
    """Tests for the worksheet budget upsert."""

    @pytest.mark.asyncio
    async def test_second_write_updates_limit_cell(self, sheets_storage, sheets_client):
        category_id = uuid4()

        first = await sheets_storage.upsert_budget("alice", category_id, MARCH, Decimal("100"))
        second = await sheets_storage.upsert_budget("alice", category_id, MARCH, Decimal("150"))

        assert len(sheets_client.budgets.rows) == 2
        assert sheets_client.budgets.rows[1][3] == "150"
        assert second.id == first.id

        budgets = await sheets_storage.list_budgets("alice", MARCH)
        assert [b.limit for b in budgets] == [Decimal("150")]

    @pytest.mark.asyncio
    async def test_concurrent_upserts_leave_one_row(self, sheets_storage, sheets_client):
        category_id = uuid4()
        limits = [Decimal(n) for n in (100, 200, 300, 400)]

        await asyncio.gather(*(
            sheets_storage.upsert_budget("alice", category_id, MARCH, limit) for limit in limits
        ))

        budgets = await sheets_storage.list_budgets("alice", MARCH)
        assert len(budgets) == 1
        assert budgets[0].limit in limits
        assert sheets_storage.held_budget_locks() == 0

    @pytest.mark.asyncio
    async def test_locks_released_for_many_keys(self, sheets_storage):
        for month in range(1, 13):
            await sheets_storage.upsert_budget("alice", uuid4(), Period(month=month, year=2025), Decimal("10"))

        assert sheets_storage.held_budget_locks() == 0


class RecordingWorksheet:
    """Records the range writes a real worksheet would receive."""

    def __init__(self):
        self.title = "Transactions"
        self.writes = []

    def update(self, values=None, range_name=None, value_input_option=None):
        self.writes.append((range_name, values, value_input_option))


class TestGoogleSheetsClientWrites:
    """Tests for the client's write primitives."""

    @pytest.fixture
    def client(self):
        return GoogleSheetsClient(
            GoogleSheetsSettings.model_construct(credentials_path="unused.json", spreadsheet_id="sheet")
        )

    def test_row_update_is_one_raw_range_write(self, client):
        sheet = RecordingWorksheet()
        row = ["id", "alice", "55.50", "income", "", "2025-03-05", "=1+1", "2025-03-05T10:00:00"]

        client.update_row(sheet, 5, row)

        assert sheet.writes == [("A5:H5", [row], "RAW")]

    def test_cell_update_is_raw(self, client):
        sheet = RecordingWorksheet()

        client.update_cell(sheet, 2, 4, "150")

        assert sheet.writes == [("D2", [["150"]], "RAW")]


class TestGoogleSheetsAudit:
    """Tests for the worksheet audit log."""

    @pytest.mark.asyncio
    async def test_append_and_read_back(self, sheets_client):
        store = GoogleSheetsAuditStorage(sheets_client)
        correlation_id = uuid4()
        event = AuditEvent(
            event_type=AuditEventType.TRANSACTION_CREATED,
            owner_id="alice",
            description="Transaction created: expense 5.00",
            details={"amount": "5.00"},
            correlation_id=correlation_id,
            is_user_action=True,
        )

        assert await store.append_event(event) is True
        events = await store.get_events_by_correlation_id(correlation_id)

        assert len(events) == 1
        assert events[0].event_id == event.event_id
        assert events[0].details == {"amount": "5.00"}
        assert events[0].is_user_action is True

    @pytest.mark.asyncio
    async def test_append_failure_raises(self):
        class BrokenClient(FakeSheetsClient):
            def append_row(self, sheet, row):
                raise RuntimeError("sheet is read-only")

        store = GoogleSheetsAuditStorage(BrokenClient())

        with pytest.raises(StorageError):
            await store.append_event(AuditEvent(
                event_type=AuditEventType.SYSTEM_ERROR,
                description="boom",
            ))


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
