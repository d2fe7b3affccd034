"""
Data Models Package

This package contains all Pydantic models used by the pricing and ledger core.
All data flowing between the core and storage must conform to these schemas.
"""

from gestor.dates import AdjustmentPeriod
from gestor.models.common import (
    ClientKind,
    ClientRef,
    ValidationIssue,
    ValidationResult,
    quantize_money,
)
from gestor.models.client import (
    Client,
    ClientStatus,
    OccasionalClient,
    PriceAdjustmentRecord,
    next_client_number,
)
from gestor.models.ledger import (
    AccountMovement,
    LedgerStatement,
    MovementKind,
)
from gestor.models.invoice import (
    Invoice,
    InvoiceLineItem,
    InvoiceStatus,
)
from gestor.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Shared
    "AdjustmentPeriod",
    "ClientKind",
    "ClientRef",
    "ValidationIssue",
    "ValidationResult",
    "quantize_money",
    # Clients
    "Client",
    "ClientStatus",
    "OccasionalClient",
    "PriceAdjustmentRecord",
    "next_client_number",
    # Ledger
    "AccountMovement",
    "LedgerStatement",
    "MovementKind",
    # Invoices
    "Invoice",
    "InvoiceLineItem",
    "InvoiceStatus",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
