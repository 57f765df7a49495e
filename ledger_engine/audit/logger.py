"""
Audit Logger

DESIGN DECISION: Every write to the ledger and every anomaly found while
reading it is logged. This provides:
1. Traceability of who changed what
2. Debugging capability when a report looks wrong
3. A record of budget alerts

The audit logger:
- Is async so persisting events fits the async storage interface
- Gracefully handles failures (a broken audit sink never fails a ledger call)
- Supports correlation IDs to trace related events
"""

import logging
from typing import Optional
from uuid import UUID, uuid4

import structlog

from ledger_engine.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)
from ledger_engine.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


def configure_logging(log_level: str = "INFO") -> None:
    """Route structlog output through the stdlib root logger at log_level."""
    logging.basicConfig(format="%(message)s", level=getattr(logging, log_level.upper()))
    logging.getLogger().setLevel(getattr(logging, log_level.upper()))


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. An audit store, when one is configured
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("ledger_engine.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        elif event.severity == AuditSeverity.DEBUG:
            self._logger.debug("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_category_created(
        self,
        owner_id: str,
        category_id: UUID,
        name: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.category_created(
            owner_id=owner_id,
            category_id=category_id,
            name=name,
            correlation_id=correlation_id,
        ))

    async def log_transaction_written(
        self,
        event_type: AuditEventType,
        owner_id: str,
        transaction_id: UUID,
        kind: str,
        amount: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a transaction create, update or delete."""
        await self.log(AuditEventBuilder.transaction_written(
            event_type=event_type,
            owner_id=owner_id,
            transaction_id=transaction_id,
            kind=kind,
            amount=amount,
            correlation_id=correlation_id,
        ))

    async def log_budget_set(
        self,
        owner_id: str,
        budget_id: UUID,
        category_id: UUID,
        limit: str,
        period: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.budget_set(
            owner_id=owner_id,
            budget_id=budget_id,
            category_id=category_id,
            limit=limit,
            period=period,
            correlation_id=correlation_id,
        ))

    async def log_budget_alert(
        self,
        owner_id: str,
        budget_id: UUID,
        category_name: str,
        percentage_used: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.budget_alert_raised(
            owner_id=owner_id,
            budget_id=budget_id,
            category_name=category_name,
            percentage_used=percentage_used,
            correlation_id=correlation_id,
        ))

    async def log_budget_anomaly(
        self,
        owner_id: str,
        budget_id: UUID,
        category_id: UUID,
        reason: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a budget left out of a status report."""
        await self.log(AuditEventBuilder.budget_integrity_anomaly(
            owner_id=owner_id,
            budget_id=budget_id,
            category_id=category_id,
            reason=reason,
            correlation_id=correlation_id,
        ))

    async def log_report(
        self,
        owner_id: str,
        report: str,
        period: str,
        row_count: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.report_generated(
            owner_id=owner_id,
            report=report,
            period=period,
            row_count=row_count,
            correlation_id=correlation_id,
        ))

    async def log_validation_failed(
        self,
        owner_id: str,
        operation: str,
        issues: list[dict],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.validation_failed(
            owner_id=owner_id,
            operation=operation,
            issues=issues,
            correlation_id=correlation_id,
        ))

    async def log_not_found(
        self,
        owner_id: str,
        entity_type: str,
        entity_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.access_not_found(
            owner_id=owner_id,
            entity_type=entity_type,
            entity_id=entity_id,
            correlation_id=correlation_id,
        ))

    async def log_storage_error(
        self,
        operation: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.storage_error(
            operation=operation,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        await self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a service call and pass it through
    everything the call logs.
    """
    return uuid4()
