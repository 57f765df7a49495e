"""
Ledger error taxonomy.

Storage-level errors (NotFoundError, DuplicateError, ...) live next to the
storage interface and derive from LedgerError as well, so callers can catch
everything the ledger raises with one except clause.
"""

from typing import Optional

from ledger_engine.models.ledger import ValidationIssue


class LedgerError(Exception):
    """Base exception for ledger operations."""
    pass


class InvalidArgumentError(LedgerError):
    """
    Input rejected before any computation or write.

    Covers malformed periods, non-positive amounts or limits, unknown
    transaction kinds and unknown category references.
    """

    def __init__(
        self,
        message: str,
        issues: Optional[list[ValidationIssue]] = None,
    ):
        super().__init__(message)
        self.issues = issues or []

    @classmethod
    def from_issues(cls, issues: list[ValidationIssue]) -> "InvalidArgumentError":
        message = "; ".join(issue.message for issue in issues) or "Invalid input"
        return cls(message, issues)
