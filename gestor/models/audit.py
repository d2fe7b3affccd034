"""
Audit Models

Every price change, ledger posting and invoice transition is logged for
audit purposes. This provides:
1. Traceability of who changed a subscription price and by how much
2. Debugging information when a persistence write fails
3. A per-tenant history that can be shown back to the operator

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Price escalation
    PRICE_ADJUSTED = "price_adjusted"
    PRICE_ADJUSTMENT_FAILED = "price_adjustment_failed"

    # Ledger
    MOVEMENT_RECORDED = "movement_recorded"
    MOVEMENT_REJECTED = "movement_rejected"

    # Invoices
    INVOICE_ISSUED = "invoice_issued"
    INVOICE_PAID = "invoice_paid"

    # System events
    SYSTEM_ERROR = "system_error"
    EXTERNAL_SERVICE_ERROR = "external_service_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the event occurred (UTC)"
    )
    tenant_id: Optional[str] = Field(
        default=None,
        description="Tenant the event belongs to"
    )

    # Event classification
    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'client', 'invoice', 'movement')"
    )
    entity_id: Optional[UUID] = None

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., invoice + its movement)"
    )

    description: str = Field(..., max_length=500)
    details: dict[str, Any] = Field(default_factory=dict)

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    is_user_action: bool = False

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "tenant_id": self.tenant_id,
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": str(self.entity_id) if self.entity_id else None,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_record(self) -> dict:
        """Row for the audit_events table. Details are stored as JSON text."""
        record = self.to_log_dict()
        record["details"] = json.dumps(self.details, default=str) if self.details else None
        return record


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.price_adjusted(tenant_id, client_id, ...)
        event = AuditEventBuilder.invoice_paid(tenant_id, invoice_id, ...)
    """

    @staticmethod
    def price_adjusted(
        tenant_id: str,
        client_id: UUID,
        old_value: str,
        new_value: str,
        ipc_percentage: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PRICE_ADJUSTED,
            tenant_id=tenant_id,
            entity_type="client",
            entity_id=client_id,
            correlation_id=correlation_id,
            description=f"Subscription adjusted by {ipc_percentage}%: {old_value} -> {new_value}",
            details={
                "old_value": old_value,
                "new_value": new_value,
                "ipc_percentage": ipc_percentage,
            },
            is_user_action=True,
        )

    @staticmethod
    def price_adjustment_failed(
        tenant_id: str,
        client_id: UUID,
        error_message: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PRICE_ADJUSTMENT_FAILED,
            severity=AuditSeverity.ERROR,
            tenant_id=tenant_id,
            entity_type="client",
            entity_id=client_id,
            correlation_id=correlation_id,
            description="Subscription adjustment was not applied",
            error_message=error_message,
        )

    @staticmethod
    def movement_recorded(
        tenant_id: str,
        movement_id: UUID,
        kind: str,
        debit: str,
        credit: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MOVEMENT_RECORDED,
            tenant_id=tenant_id,
            entity_type="movement",
            entity_id=movement_id,
            correlation_id=correlation_id,
            description=f"Account movement recorded: {kind}",
            details={
                "kind": kind,
                "debit": debit,
                "credit": credit,
            },
        )

    @staticmethod
    def movement_rejected(
        tenant_id: str,
        issues: list[dict],
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MOVEMENT_REJECTED,
            severity=AuditSeverity.WARNING,
            tenant_id=tenant_id,
            entity_type="movement",
            correlation_id=correlation_id,
            description=f"Ledger rejected with {len(issues)} issues",
            details={"issues": issues},
        )

    @staticmethod
    def invoice_issued(
        tenant_id: str,
        invoice_id: UUID,
        invoice_number: str,
        total: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.INVOICE_ISSUED,
            tenant_id=tenant_id,
            entity_type="invoice",
            entity_id=invoice_id,
            correlation_id=correlation_id,
            description=f"Invoice {invoice_number} issued for {total}",
            details={
                "invoice_number": invoice_number,
                "total": total,
            },
            is_user_action=True,
        )

    @staticmethod
    def invoice_paid(
        tenant_id: str,
        invoice_id: UUID,
        invoice_number: str,
        total: str,
        payment_date: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.INVOICE_PAID,
            tenant_id=tenant_id,
            entity_type="invoice",
            entity_id=invoice_id,
            correlation_id=correlation_id,
            description=f"Invoice {invoice_number} marked as paid",
            details={
                "invoice_number": invoice_number,
                "total": total,
                "payment_date": payment_date,
            },
            is_user_action=True,
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        tenant_id: Optional[str] = None,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            tenant_id=tenant_id,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )

    @staticmethod
    def external_service_error(
        service: str,
        error_message: str,
        correlation_id: UUID,
        tenant_id: Optional[str] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTERNAL_SERVICE_ERROR,
            severity=AuditSeverity.ERROR,
            tenant_id=tenant_id,
            description=f"External service error: {service}",
            error_message=error_message,
            details={"service": service},
            correlation_id=correlation_id,
        )
