"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is offered as a persistent backend because:
1. Users can view their ledger directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)

TRADEOFFS:
- No transactions: budget upserts are emulated with a conditional
  read-then-write guarded by a per-key lock (single process only)
- Limited query capabilities: we read the sheet and filter in Python
- gspread is blocking, so every call runs in a worker thread

The implementation follows the abstract interface, so business logic does
not change when the backend does.
"""

import asyncio
import json
from collections import defaultdict
from contextlib import asynccontextmanager
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Callable, Optional
from uuid import UUID

import gspread
from gspread.utils import rowcol_to_a1
from google.oauth2.service_account import Credentials
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ledger_engine.config import GoogleSheetsSettings, get_settings
from ledger_engine.models.audit import AuditEvent, AuditEventType, AuditSeverity
from ledger_engine.models.ledger import (
    Budget,
    Category,
    LedgerSnapshot,
    OwnedScope,
    Period,
    SharedScope,
    Transaction,
    TransactionKind,
)
from ledger_engine.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    LedgerStorageInterface,
    NotFoundError,
    StorageError,
    matches_filters,
    sort_categories,
    sort_transactions,
)


CATEGORY_COLUMNS = [
    "id",
    "name",
    "scope",
    "owner_id",
    "created_at",
]

TRANSACTION_COLUMNS = [
    "id",
    "owner_id",
    "amount",
    "kind",
    "category_id",
    "date",
    "description",
    "created_at",
]

BUDGET_COLUMNS = [
    "id",
    "owner_id",
    "category_id",
    "limit",
    "month",
    "year",
    "created_at",
]

AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "owner_id",
    "entity_type",
    "entity_id",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
    "is_user_action",
]

# 1-based sheet column of the budget limit
BUDGET_LIMIT_COLUMN = BUDGET_COLUMNS.index("limit") + 1

api_retry = retry(
    retry=retry_if_exception_type(gspread.exceptions.APIError),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    reraise=True,
)


def _cell(row: list, index: int, default: str = "") -> str:
    """Read a cell, tolerating short rows."""
    try:
        return row[index] if row[index] else default
    except IndexError:
        return default


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication, worksheet creation, and retry logic for API calls.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = settings or get_settings().google_sheets

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def _get_or_create_sheet(
        self,
        title: str,
        columns: list[str],
        rows: int = 1000,
    ) -> gspread.Worksheet:
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            # Create the sheet with headers
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet

    def get_categories_sheet(self) -> gspread.Worksheet:
        return self._get_or_create_sheet(self._settings.categories_sheet_name, CATEGORY_COLUMNS)

    def get_transactions_sheet(self) -> gspread.Worksheet:
        return self._get_or_create_sheet(self._settings.transactions_sheet_name, TRANSACTION_COLUMNS)

    def get_budgets_sheet(self) -> gspread.Worksheet:
        return self._get_or_create_sheet(self._settings.budgets_sheet_name, BUDGET_COLUMNS)

    def get_audit_sheet(self) -> gspread.Worksheet:
        # More rows for audit log
        return self._get_or_create_sheet(self._settings.audit_sheet_name, AUDIT_COLUMNS, rows=5000)

    # -------------------------------------------------------------------------
    # Retried primitives
    # -------------------------------------------------------------------------

    @api_retry
    def read_rows(self, sheet: gspread.Worksheet) -> list[list[str]]:
        """All data rows, header excluded."""
        return sheet.get_all_values()[1:]

    @api_retry
    def append_row(self, sheet: gspread.Worksheet, row: list) -> None:
        sheet.append_row(row, value_input_option="RAW")

    @api_retry
    def read_many(self, sheets: list[gspread.Worksheet]) -> list[list[list[str]]]:
        """Data rows of several sheets, read in one batch request."""
        response = self.get_spreadsheet().values_batch_get(
            [f"'{sheet.title}'" for sheet in sheets]
        )
        return [vr.get("values", [])[1:] for vr in response.get("valueRanges", [])]

    @api_retry
    def update_row(self, sheet: gspread.Worksheet, row_number: int, row: list) -> None:
        """Overwrite a whole row in a single RAW range write."""
        last_cell = rowcol_to_a1(row_number, len(row))
        sheet.update(
            values=[row],
            range_name=f"A{row_number}:{last_cell}",
            value_input_option="RAW",
        )

    @api_retry
    def update_cell(self, sheet: gspread.Worksheet, row_number: int, col: int, value: Any) -> None:
        sheet.update(
            values=[[value]],
            range_name=rowcol_to_a1(row_number, col),
            value_input_option="RAW",
        )

    @api_retry
    def delete_row(self, sheet: gspread.Worksheet, row_number: int) -> None:
        sheet.delete_rows(row_number)


class GoogleSheetsLedgerStorage(LedgerStorageInterface):
    """
    Google Sheets implementation of ledger storage.

    One worksheet per entity, one entity per row.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()
        self._budget_locks: dict[tuple, asyncio.Lock] = {}
        self._budget_lock_users: defaultdict[tuple, int] = defaultdict(int)
        self._category_lock = asyncio.Lock()

    async def _run(self, operation: str, fn: Callable, *args) -> Any:
        """Run a blocking gspread call in a worker thread, wrapping failures."""
        try:
            return await asyncio.to_thread(fn, *args)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to {operation}: {e}") from e

    @asynccontextmanager
    async def _budget_lock(self, key: tuple):
        """Per-key lock, dropped once no writer holds or awaits it."""
        lock = self._budget_locks.setdefault(key, asyncio.Lock())
        self._budget_lock_users[key] += 1
        try:
            async with lock:
                yield
        finally:
            self._budget_lock_users[key] -= 1
            if not self._budget_lock_users[key]:
                del self._budget_lock_users[key]
                del self._budget_locks[key]

    def held_budget_locks(self) -> int:
        return len(self._budget_locks)

    async def _rows(self, operation: str, get_sheet: Callable) -> tuple[Any, list[list[str]]]:
        sheet = await self._run(operation, get_sheet)
        rows = await self._run(operation, self._client.read_rows, sheet)
        return sheet, rows

    # -------------------------------------------------------------------------
    # Row conversion
    # -------------------------------------------------------------------------

    @staticmethod
    def _category_to_row(category: Category) -> list:
        return [
            str(category.id),
            category.name,
            category.scope.kind,
            category.scope.owner_id or "",
            category.created_at.isoformat(),
        ]

    @staticmethod
    def _row_to_category(row: list) -> Category:
        if _cell(row, 2) == "owned":
            scope = OwnedScope(owner_id=_cell(row, 3))
        else:
            scope = SharedScope()
        return Category(
            id=UUID(_cell(row, 0)),
            name=_cell(row, 1),
            scope=scope,
            created_at=datetime.fromisoformat(_cell(row, 4)),
        )

    @staticmethod
    def _transaction_to_row(transaction: Transaction) -> list:
        return [
            str(transaction.id),
            transaction.owner_id,
            str(transaction.amount),
            transaction.kind.value,
            str(transaction.category_id) if transaction.category_id else "",
            transaction.date.isoformat(),
            transaction.description or "",
            transaction.created_at.isoformat(),
        ]

    @staticmethod
    def _row_to_transaction(row: list) -> Transaction:
        return Transaction(
            id=UUID(_cell(row, 0)),
            owner_id=_cell(row, 1),
            amount=Decimal(_cell(row, 2)),
            kind=TransactionKind(_cell(row, 3)),
            category_id=UUID(_cell(row, 4)) if _cell(row, 4) else None,
            date=date.fromisoformat(_cell(row, 5)),
            description=_cell(row, 6) or None,
            created_at=datetime.fromisoformat(_cell(row, 7)),
        )

    @staticmethod
    def _budget_to_row(budget: Budget) -> list:
        return [
            str(budget.id),
            budget.owner_id,
            str(budget.category_id),
            str(budget.limit),
            str(budget.month),
            str(budget.year),
            budget.created_at.isoformat(),
        ]

    @staticmethod
    def _row_to_budget(row: list) -> Budget:
        return Budget(
            id=UUID(_cell(row, 0)),
            owner_id=_cell(row, 1),
            category_id=UUID(_cell(row, 2)),
            limit=Decimal(_cell(row, 3)),
            month=int(_cell(row, 4)),
            year=int(_cell(row, 5)),
            created_at=datetime.fromisoformat(_cell(row, 6)),
        )

    def _parse_rows(self, rows: list[list[str]], parse: Callable) -> list:
        parsed = []
        for row in rows:
            if not row or not row[0]:  # Skip empty rows
                continue
            try:
                parsed.append(parse(row))
            except Exception:
                continue  # Skip malformed rows
        return parsed

    # -------------------------------------------------------------------------
    # Categories
    # -------------------------------------------------------------------------

    async def _all_categories(self) -> list[Category]:
        _, rows = await self._rows("list categories", self._client.get_categories_sheet)
        return self._parse_rows(rows, self._row_to_category)

    async def list_categories(self, owner_id: str) -> list[Category]:
        categories = await self._all_categories()
        return sort_categories([c for c in categories if c.is_visible_to(owner_id)])

    async def create_category(self, category: Category) -> Category:
        async with self._category_lock:
            existing = await self._all_categories()
            owner_id = category.scope.owner_id
            if owner_id is not None:
                existing = [c for c in existing if c.is_visible_to(owner_id)]

            wanted = category.name.casefold()
            if any(c.name.casefold() == wanted for c in existing):
                raise DuplicateError(f"Category already exists: {category.name}")

            sheet = await self._run("create category", self._client.get_categories_sheet)
            await self._run(
                "create category",
                self._client.append_row,
                sheet,
                self._category_to_row(category),
            )
        return category

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    async def create_transaction(self, transaction: Transaction) -> Transaction:
        sheet = await self._run("save transaction", self._client.get_transactions_sheet)
        await self._run(
            "save transaction",
            self._client.append_row,
            sheet,
            self._transaction_to_row(transaction),
        )
        return transaction

    async def _find_owned_transaction(
        self,
        owner_id: str,
        transaction_id: UUID,
    ) -> tuple[Any, Optional[int], Optional[Transaction]]:
        """Returns (sheet, 1-based row number, transaction) or (sheet, None, None)."""
        sheet, rows = await self._rows("get transaction", self._client.get_transactions_sheet)
        for idx, row in enumerate(rows, start=2):  # Row 1 is the header
            if row and row[0] == str(transaction_id):
                try:
                    transaction = self._row_to_transaction(row)
                except Exception as e:
                    raise StorageError(f"Malformed transaction row {idx}: {e}") from e
                if transaction.owner_id != owner_id:
                    break
                return sheet, idx, transaction
        return sheet, None, None

    async def get_transaction(
        self,
        owner_id: str,
        transaction_id: UUID,
    ) -> Optional[Transaction]:
        _, _, transaction = await self._find_owned_transaction(owner_id, transaction_id)
        return transaction

    async def list_transactions(
        self,
        owner_id: str,
        period: Optional[Period] = None,
        kind: Optional[TransactionKind] = None,
        category_id: Optional[UUID] = None,
    ) -> list[Transaction]:
        _, rows = await self._rows("list transactions", self._client.get_transactions_sheet)
        transactions = self._parse_rows(rows, self._row_to_transaction)
        return sort_transactions([
            t for t in transactions
            if matches_filters(t, owner_id, period, kind, category_id)
        ])

    async def update_transaction(self, transaction: Transaction) -> Transaction:
        sheet, row_number, existing = await self._find_owned_transaction(
            transaction.owner_id, transaction.id
        )
        if row_number is None:
            raise NotFoundError(f"Transaction not found: {transaction.id}")

        updated = transaction.model_copy(update={"created_at": existing.created_at})
        await self._run(
            "update transaction",
            self._client.update_row,
            sheet,
            row_number,
            self._transaction_to_row(updated),
        )
        return updated

    async def delete_transaction(self, owner_id: str, transaction_id: UUID) -> None:
        sheet, row_number, _ = await self._find_owned_transaction(owner_id, transaction_id)
        if row_number is None:
            raise NotFoundError(f"Transaction not found: {transaction_id}")
        await self._run("delete transaction", self._client.delete_row, sheet, row_number)

    # -------------------------------------------------------------------------
    # Snapshot
    # -------------------------------------------------------------------------

    async def get_snapshot(self, owner_id: str, period: Period) -> LedgerSnapshot:
        """Categories and transactions read together in one batch request."""
        categories_sheet = await self._run("read snapshot", self._client.get_categories_sheet)
        transactions_sheet = await self._run("read snapshot", self._client.get_transactions_sheet)
        category_rows, transaction_rows = await self._run(
            "read snapshot",
            self._client.read_many,
            [categories_sheet, transactions_sheet],
        )

        categories = self._parse_rows(category_rows, self._row_to_category)
        transactions = self._parse_rows(transaction_rows, self._row_to_transaction)
        return LedgerSnapshot(
            owner_id=owner_id,
            period=period,
            transactions=sort_transactions([
                t for t in transactions if matches_filters(t, owner_id, period, None, None)
            ]),
            categories=sort_categories([c for c in categories if c.is_visible_to(owner_id)]),
        )

    # -------------------------------------------------------------------------
    # Budgets
    # -------------------------------------------------------------------------

    async def list_budgets(self, owner_id: str, period: Period) -> list[Budget]:
        _, rows = await self._rows("list budgets", self._client.get_budgets_sheet)
        return [
            b for b in self._parse_rows(rows, self._row_to_budget)
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

        async with self._budget_lock(key):
            sheet, rows = await self._rows("set budget", self._client.get_budgets_sheet)

            for idx, row in enumerate(rows, start=2):
                if not row or not row[0]:
                    continue
                try:
                    existing = self._row_to_budget(row)
                except Exception:
                    continue
                if existing.natural_key == key:
                    await self._run(
                        "set budget",
                        self._client.update_cell,
                        sheet,
                        idx,
                        BUDGET_LIMIT_COLUMN,
                        str(limit),
                    )
                    return existing.model_copy(update={"limit": limit})

            budget = Budget(
                owner_id=owner_id,
                category_id=category_id,
                limit=limit,
                month=period.month,
                year=period.year,
            )
            await self._run("set budget", self._client.append_row, sheet, self._budget_to_row(budget))
            return budget


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _row_to_event(self, row: list) -> AuditEvent:
        """Convert a spreadsheet row to an AuditEvent."""
        return AuditEvent(
            event_id=UUID(_cell(row, 0)),
            timestamp=datetime.fromisoformat(_cell(row, 1)),
            event_type=AuditEventType(_cell(row, 2)),
            severity=AuditSeverity(_cell(row, 3)),
            owner_id=_cell(row, 4) or None,
            entity_type=_cell(row, 5) or None,
            entity_id=UUID(_cell(row, 6)) if _cell(row, 6) else None,
            correlation_id=UUID(_cell(row, 7)) if _cell(row, 7) else None,
            description=_cell(row, 8),
            details=json.loads(_cell(row, 9)) if _cell(row, 9) else {},
            error_message=_cell(row, 10) or None,
            is_user_action=_cell(row, 11).lower() == "true",
        )

    async def _events(self) -> list[AuditEvent]:
        try:
            sheet = await asyncio.to_thread(self._client.get_audit_sheet)
            rows = await asyncio.to_thread(self._client.read_rows, sheet)
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}") from e

        events = []
        for row in rows:
            if row and row[0]:
                try:
                    events.append(self._row_to_event(row))
                except Exception:
                    continue
        return events

    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            sheet = await asyncio.to_thread(self._client.get_audit_sheet)
            await asyncio.to_thread(self._client.append_row, sheet, event.to_sheets_row())
            return True
        except Exception as e:
            raise StorageError(f"Failed to write audit event: {e}") from e

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Get events by correlation ID, chronologically."""
        events = [e for e in await self._events() if e.correlation_id == correlation_id]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Get recent events, newest first."""
        events = await self._events()
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
