"""
Abstract Storage Interface

DESIGN DECISION: The pricing and ledger core never talks to a database.
It is handed data by implementations of these interfaces. This allows us to:
1. Run the hosted Postgres (Supabase) backend in production
2. Use in-memory storage for testing
3. Keep business logic decoupled from storage implementation

Every method takes the tenant id explicitly. Implementations must never
return rows of another tenant.

CONTRACTS the core relies on:
- fetch_movements returns the COMPLETE history of a client (no paging)
- persist_adjustment writes the client price fields and the adjustment
  record as one unit: both or neither
"""

from abc import ABC, abstractmethod
from datetime import date
from typing import Optional
from uuid import UUID

from gestor.models.audit import AuditEvent
from gestor.models.client import (
    Client,
    ClientStatus,
    OccasionalClient,
    PriceAdjustmentRecord,
)
from gestor.models.common import ClientRef
from gestor.models.invoice import Invoice, InvoiceStatus
from gestor.models.ledger import AccountMovement


class ClientStorageInterface(ABC):
    """
    Abstract interface for client and price adjustment storage.
    """

    @abstractmethod
    async def fetch_clients_due_for_adjustment(
        self,
        tenant_id: str,
        as_of: date,
    ) -> list[Client]:
        """
        Active clients whose next adjustment date is on or before as_of.
        """
        pass

    @abstractmethod
    async def get_client(self, tenant_id: str, client_id: UUID) -> Optional[Client]:
        """
        Retrieve a client by its ID.

        Returns:
            The client if found in this tenant, None otherwise
        """
        pass

    @abstractmethod
    async def list_clients(
        self,
        tenant_id: str,
        status: Optional[ClientStatus] = None,
    ) -> list[Client]:
        pass

    @abstractmethod
    async def save_client(self, tenant_id: str, client: Client) -> Client:
        """
        Insert or update a client.

        A client without a client_number gets the next sequential number
        of its tenant.

        Returns:
            The stored client
        """
        pass

    @abstractmethod
    async def list_occasional_clients(self, tenant_id: str) -> list[OccasionalClient]:
        pass

    @abstractmethod
    async def save_occasional_client(
        self,
        tenant_id: str,
        client: OccasionalClient,
    ) -> OccasionalClient:
        pass

    @abstractmethod
    async def persist_adjustment(
        self,
        tenant_id: str,
        client: Client,
        record: PriceAdjustmentRecord,
    ) -> bool:
        """
        Store an applied adjustment atomically.

        Writes client.subscription_value, last_adjustment_date and
        next_adjustment_date together with the new record.

        Returns:
            True if both were written

        Raises:
            AtomicWriteError / StorageError: nothing was written
            NotFoundError: client doesn't exist in this tenant
        """
        pass

    @abstractmethod
    async def list_adjustments(
        self,
        tenant_id: str,
        client_id: UUID,
    ) -> list[PriceAdjustmentRecord]:
        """Adjustment history of a client, oldest first."""
        pass


class LedgerStorageInterface(ABC):
    """
    Abstract interface for account movement storage.

    Movements are append-only.
    """

    @abstractmethod
    async def fetch_movements(
        self,
        tenant_id: str,
        client: ClientRef,
    ) -> list[AccountMovement]:
        """
        Full movement history of one client.

        Order is not guaranteed; the ledger sorts. Implementations must
        return every movement (no pagination).
        """
        pass

    @abstractmethod
    async def persist_movement(self, tenant_id: str, movement: AccountMovement) -> bool:
        """
        Append a movement. Storage assigns its sequence number.

        Writing a movement whose id is already stored replaces that row
        instead of appending a second one, so a repeated write is safe.

        Returns:
            True if stored

        Raises:
            StorageError: if the write fails
        """
        pass


class InvoiceStorageInterface(ABC):
    """
    Abstract interface for invoice storage.

    Line items belong to their invoice and are replaced wholesale on save.
    """

    @abstractmethod
    async def get_invoice(self, tenant_id: str, invoice_id: UUID) -> Optional[Invoice]:
        pass

    @abstractmethod
    async def save_invoice(self, tenant_id: str, invoice: Invoice) -> bool:
        """
        Insert or update an invoice together with its line items.

        Raises:
            DuplicateError: another invoice of the tenant has the same number
            StorageError: if the write fails
        """
        pass

    @abstractmethod
    async def list_invoices(
        self,
        tenant_id: str,
        status: Optional[InvoiceStatus] = None,
    ) -> list[Invoice]:
        """Invoices of a tenant, newest issue date first."""
        pass


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
    async def get_events_by_entity(
        self,
        tenant_id: str,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        """Events for one entity, in chronological order."""
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        tenant_id: str,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Most recent events of a tenant, newest first."""
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass


class AtomicWriteError(StorageError):
    """A multi-row write was rolled back; no part of it was stored."""
    pass
