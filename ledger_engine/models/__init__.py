"""
Data Models Package

This package contains all Pydantic models used by the ledger.
All data flowing through the engine must conform to these schemas.
"""

from ledger_engine.models.ledger import (
    MIN_YEAR,
    Budget,
    BudgetView,
    Category,
    CategoryScope,
    LedgerSnapshot,
    OwnedScope,
    Period,
    SharedScope,
    Transaction,
    TransactionKind,
    ValidationIssue,
    ValidationResult,
)
from ledger_engine.models.reports import (
    BudgetAnomaly,
    BudgetEvaluation,
    BudgetStatus,
    BudgetStatusReport,
    CategoryBreakdownReport,
    CategoryTotal,
    DailyTotal,
    MonthlySummary,
    SummaryReport,
    TimeSeriesReport,
    format_money,
    format_percentage,
)
from ledger_engine.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "MIN_YEAR",
    "Budget",
    "BudgetView",
    "Category",
    "CategoryScope",
    "LedgerSnapshot",
    "OwnedScope",
    "Period",
    "SharedScope",
    "Transaction",
    "TransactionKind",
    "ValidationIssue",
    "ValidationResult",
    # Report models
    "BudgetAnomaly",
    "BudgetEvaluation",
    "BudgetStatus",
    "BudgetStatusReport",
    "CategoryBreakdownReport",
    "CategoryTotal",
    "DailyTotal",
    "MonthlySummary",
    "SummaryReport",
    "TimeSeriesReport",
    "format_money",
    "format_percentage",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
