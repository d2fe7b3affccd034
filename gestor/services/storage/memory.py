"""
In-Memory Storage Implementation

Used by the test suite and for running the flows without a backend.
Data is partitioned by tenant; every read only sees its own tenant.

persist_adjustment is all-or-nothing: if appending the record fails the
client row is restored to what it was before the call.
"""

from datetime import date
from typing import Optional
from uuid import UUID

from gestor.models.audit import AuditEvent
from gestor.models.client import (
    Client,
    ClientStatus,
    OccasionalClient,
    PriceAdjustmentRecord,
    next_client_number,
)
from gestor.models.common import ClientRef
from gestor.models.invoice import Invoice, InvoiceStatus
from gestor.models.ledger import AccountMovement
from gestor.pricing import due_for_adjustment
from gestor.services.storage.interface import (
    AtomicWriteError,
    AuditStorageInterface,
    ClientStorageInterface,
    DuplicateError,
    InvoiceStorageInterface,
    LedgerStorageInterface,
    NotFoundError,
)


class InMemoryStore(
    ClientStorageInterface,
    LedgerStorageInterface,
    InvoiceStorageInterface,
    AuditStorageInterface,
):
    """All storage interfaces backed by plain dicts and lists."""

    def __init__(self):
        self._clients: dict[str, dict[UUID, Client]] = {}
        self._occasional: dict[str, dict[UUID, OccasionalClient]] = {}
        self._adjustments: dict[str, list[PriceAdjustmentRecord]] = {}
        self._movements: dict[str, list[AccountMovement]] = {}
        self._invoices: dict[str, dict[UUID, Invoice]] = {}
        self._events: dict[str, list[AuditEvent]] = {}
        self._sequence: dict[str, int] = {}

    # -------------------------------------------------------------------------
    # Clients
    # -------------------------------------------------------------------------

    async def fetch_clients_due_for_adjustment(
        self,
        tenant_id: str,
        as_of: date,
    ) -> list[Client]:
        clients = self._clients.get(tenant_id, {}).values()
        return [
            client.model_copy(deep=True)
            for client in clients
            if due_for_adjustment(client, as_of)
        ]

    async def get_client(self, tenant_id: str, client_id: UUID) -> Optional[Client]:
        client = self._clients.get(tenant_id, {}).get(client_id)
        return client.model_copy(deep=True) if client else None

    async def list_clients(
        self,
        tenant_id: str,
        status: Optional[ClientStatus] = None,
    ) -> list[Client]:
        clients = self._clients.get(tenant_id, {}).values()
        return [
            client.model_copy(deep=True)
            for client in clients
            if status is None or client.status == status
        ]

    async def save_client(self, tenant_id: str, client: Client) -> Client:
        self._check_tenant(tenant_id, client.tenant_id)
        clients = self._clients.setdefault(tenant_id, {})
        if client.client_number is None:
            number = next_client_number(c.client_number for c in clients.values())
            client = client.model_copy(update={"client_number": number})
        clients[client.id] = client.model_copy(deep=True)
        return client

    async def list_occasional_clients(self, tenant_id: str) -> list[OccasionalClient]:
        return [
            client.model_copy(deep=True)
            for client in self._occasional.get(tenant_id, {}).values()
        ]

    async def save_occasional_client(
        self,
        tenant_id: str,
        client: OccasionalClient,
    ) -> OccasionalClient:
        self._check_tenant(tenant_id, client.tenant_id)
        clients = self._occasional.setdefault(tenant_id, {})
        if client.client_number is None:
            number = next_client_number(c.client_number for c in clients.values())
            client = client.model_copy(update={"client_number": number})
        clients[client.id] = client.model_copy(deep=True)
        return client

    async def persist_adjustment(
        self,
        tenant_id: str,
        client: Client,
        record: PriceAdjustmentRecord,
    ) -> bool:
        self._check_tenant(tenant_id, client.tenant_id)
        self._check_tenant(tenant_id, record.tenant_id)
        clients = self._clients.get(tenant_id, {})
        previous = clients.get(client.id)
        if previous is None:
            raise NotFoundError(f"Client not found: {client.id}")

        clients[client.id] = client.model_copy(deep=True)
        try:
            self._append_adjustment(tenant_id, record)
        except Exception as e:
            clients[client.id] = previous
            raise AtomicWriteError(f"Adjustment rolled back: {e}") from e
        return True

    def _append_adjustment(self, tenant_id: str, record: PriceAdjustmentRecord) -> None:
        self._adjustments.setdefault(tenant_id, []).append(record)

    async def list_adjustments(
        self,
        tenant_id: str,
        client_id: UUID,
    ) -> list[PriceAdjustmentRecord]:
        records = [
            record for record in self._adjustments.get(tenant_id, [])
            if record.client_id == client_id
        ]
        records.sort(key=lambda r: (r.adjustment_date, r.created_at))
        return records

    # -------------------------------------------------------------------------
    # Ledger
    # -------------------------------------------------------------------------

    async def fetch_movements(
        self,
        tenant_id: str,
        client: ClientRef,
    ) -> list[AccountMovement]:
        return [
            movement.model_copy(deep=True)
            for movement in self._movements.get(tenant_id, [])
            if movement.client == client
        ]

    async def persist_movement(self, tenant_id: str, movement: AccountMovement) -> bool:
        self._check_tenant(tenant_id, movement.tenant_id)
        movements = self._movements.setdefault(tenant_id, [])
        for position, existing in enumerate(movements):
            if existing.id == movement.id:
                # Same id rewrites the row in place and keeps its sequence
                movements[position] = movement.model_copy(
                    update={"sequence": existing.sequence}, deep=True
                )
                return True
        sequence = self._sequence.get(tenant_id, 0) + 1
        self._sequence[tenant_id] = sequence
        movements.append(movement.model_copy(update={"sequence": sequence}, deep=True))
        return True

    # -------------------------------------------------------------------------
    # Invoices
    # -------------------------------------------------------------------------

    async def get_invoice(self, tenant_id: str, invoice_id: UUID) -> Optional[Invoice]:
        invoice = self._invoices.get(tenant_id, {}).get(invoice_id)
        return invoice.model_copy(deep=True) if invoice else None

    async def save_invoice(self, tenant_id: str, invoice: Invoice) -> bool:
        self._check_tenant(tenant_id, invoice.tenant_id)
        invoices = self._invoices.setdefault(tenant_id, {})
        for existing in invoices.values():
            if existing.id != invoice.id and existing.invoice_number == invoice.invoice_number:
                raise DuplicateError(f"Invoice number already used: {invoice.invoice_number}")
        invoices[invoice.id] = invoice.model_copy(deep=True)
        return True

    async def list_invoices(
        self,
        tenant_id: str,
        status: Optional[InvoiceStatus] = None,
    ) -> list[Invoice]:
        invoices = [
            invoice.model_copy(deep=True)
            for invoice in self._invoices.get(tenant_id, {}).values()
            if status is None or invoice.status == status
        ]
        invoices.sort(key=lambda i: i.issue_date, reverse=True)
        return invoices

    # -------------------------------------------------------------------------
    # Audit
    # -------------------------------------------------------------------------

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.setdefault(event.tenant_id or "", []).append(event)
        return True

    async def get_events_by_entity(
        self,
        tenant_id: str,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        events = [
            event for event in self._events.get(tenant_id, [])
            if event.entity_type == entity_type and event.entity_id == entity_id
        ]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        tenant_id: str,
        limit: int = 100,
    ) -> list[AuditEvent]:
        events = sorted(
            self._events.get(tenant_id, []),
            key=lambda e: e.timestamp,
            reverse=True,
        )
        return events[:limit]

    @staticmethod
    def _check_tenant(tenant_id: str, owner: str) -> None:
        if tenant_id != owner:
            raise NotFoundError("Record belongs to another tenant")
