"""
Audit Logger

DESIGN DECISION: Every price change, ledger posting and invoice transition
is logged. This provides:
1. Complete traceability of subscription prices and balances
2. Debugging capability when a storage write fails
3. A per-tenant history the operator can review

The audit logger:
- Is async to not block main flow
- Gracefully handles failures (doesn't crash the app if logging fails)
- Supports correlation IDs to trace related events
"""

import logging
from datetime import date
from decimal import Decimal
from typing import Optional
from uuid import UUID, uuid4

import structlog

from gestor.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from gestor.services.storage import AuditStorageInterface


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


def configure_logging(level: str = "INFO") -> None:
    """Route structlog output through stdlib logging at the given level."""
    logging.basicConfig(format="%(message)s", level=getattr(logging, level.upper()))


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. The audit_events table (for persistence and operator visibility)
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
        self._logger = structlog.get_logger()

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

    async def log_price_adjusted(
        self,
        tenant_id: str,
        client_id: UUID,
        old_value: Decimal,
        new_value: Decimal,
        ipc_percentage: Decimal,
        correlation_id: UUID,
    ) -> None:
        """Log an applied subscription adjustment."""
        event = AuditEventBuilder.price_adjusted(
            tenant_id=tenant_id,
            client_id=client_id,
            old_value=str(old_value),
            new_value=str(new_value),
            ipc_percentage=str(ipc_percentage),
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_adjustment_failed(
        self,
        tenant_id: str,
        client_id: UUID,
        error_message: str,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.price_adjustment_failed(
            tenant_id=tenant_id,
            client_id=client_id,
            error_message=error_message,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_movement_recorded(
        self,
        tenant_id: str,
        movement_id: UUID,
        kind: str,
        debit: Decimal,
        credit: Decimal,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.movement_recorded(
            tenant_id=tenant_id,
            movement_id=movement_id,
            kind=kind,
            debit=str(debit),
            credit=str(credit),
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_movement_rejected(
        self,
        tenant_id: str,
        issues: list[dict],
        correlation_id: UUID,
    ) -> None:
        """Log a ledger that failed validation."""
        event = AuditEventBuilder.movement_rejected(
            tenant_id=tenant_id,
            issues=issues,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_invoice_issued(
        self,
        tenant_id: str,
        invoice_id: UUID,
        invoice_number: str,
        total: Decimal,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.invoice_issued(
            tenant_id=tenant_id,
            invoice_id=invoice_id,
            invoice_number=invoice_number,
            total=str(total),
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_invoice_paid(
        self,
        tenant_id: str,
        invoice_id: UUID,
        invoice_number: str,
        total: Decimal,
        payment_date: date,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.invoice_paid(
            tenant_id=tenant_id,
            invoice_id=invoice_id,
            invoice_number=invoice_number,
            total=str(total),
            payment_date=payment_date.isoformat(),
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        tenant_id: Optional[str] = None,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        event = AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            tenant_id=tenant_id,
            details=details,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_external_service_error(
        self,
        service: str,
        error_message: str,
        correlation_id: UUID,
        tenant_id: Optional[str] = None,
    ) -> None:
        """Log external service error."""
        event = AuditEventBuilder.external_service_error(
            service=service,
            error_message=error_message,
            correlation_id=correlation_id,
            tenant_id=tenant_id,
        )
        await self.log(event)


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of an operator action (e.g., applying an
    adjustment or issuing an invoice). Pass it through all subsequent
    operations.
    """
    return uuid4()
