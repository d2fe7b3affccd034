"""
Supabase Storage Implementation

DESIGN DECISION: Production data lives in hosted Postgres behind Supabase.
Requests use the anon key so row-level security keeps tenants apart; every
query still filters by tenant_id explicitly.

TRADEOFFS:
- PostgREST caps rows per response, so full-history reads page through
  with .range() until a short page comes back
- There are no client-side transactions; the price adjustment write goes
  through one Postgres function (see sql/apply_price_adjustment.sql)
- Retries only happen on transport errors, and only for calls that are
  safe to repeat (reads, upserts by id, the idempotent adjustment RPC)
"""

import json
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

import httpx
import structlog
from supabase import Client as SupabaseApiClient
from supabase import create_client
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from gestor.config import SupabaseSettings, get_settings
from gestor.dates import parse_date
from gestor.models.audit import AuditEvent, AuditEventType, AuditSeverity
from gestor.models.client import (
    Client,
    ClientStatus,
    OccasionalClient,
    PriceAdjustmentRecord,
    next_client_number,
)
from gestor.models.common import ClientKind, ClientRef
from gestor.models.invoice import Invoice, InvoiceLineItem, InvoiceStatus
from gestor.models.ledger import AccountMovement, MovementKind
from gestor.pricing import due_for_adjustment
from gestor.services.storage.interface import (
    AuditStorageInterface,
    ClientStorageInterface,
    ConnectionError,
    DuplicateError,
    InvoiceStorageInterface,
    LedgerStorageInterface,
    NotFoundError,
    StorageError,
)


PAGE_SIZE = 1000

logger = structlog.get_logger(__name__)

retry_on_connection = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    retry=retry_if_exception_type(ConnectionError),
    reraise=True,
)


def _execute(query: Any, action: str) -> list[dict]:
    """Run a PostgREST query, mapping failures onto storage errors."""
    try:
        response = query.execute()
    except httpx.TransportError as e:
        raise ConnectionError(f"Supabase unreachable while trying to {action}: {e}") from e
    except Exception as e:
        raise StorageError(f"Failed to {action}: {e}") from e
    data = response.data
    if data is None:
        return []
    return data if isinstance(data, list) else [data]


def _fetch_all(build_query: Any, action: str, page_size: int = PAGE_SIZE) -> list[dict]:
    """
    Read every row of a query, page by page.

    build_query is called once per page and must return a fresh, ordered
    query builder.
    """
    rows: list[dict] = []
    start = 0
    while True:
        page = _execute(build_query().range(start, start + page_size - 1), action)
        rows.extend(page)
        if len(page) < page_size:
            return rows
        start += page_size


def _money(value: Any) -> Decimal:
    return Decimal(str(value)) if value is not None else Decimal("0")


def _opt_date(value: Any) -> Optional[date]:
    return parse_date(value) if value else None


def _opt_str(value: Any) -> Optional[str]:
    return str(value) if value is not None else None


# =============================================================================
# ROW MAPPING
# =============================================================================

def client_to_row(client: Client) -> dict:
    return {
        "id": str(client.id),
        "tenant_id": client.tenant_id,
        "client_number": client.client_number,
        "name": client.name,
        "cuit": client.cuit,
        "email": client.email,
        "phone": client.phone,
        "address": client.address,
        "status": client.status.value,
        "subscription_type": client.subscription_type,
        "subscription_value": str(client.subscription_value),
        "included_hours": str(client.included_hours),
        "consumed_hours": str(client.consumed_hours),
        "ipc_adjustment_period": client.adjustment_period.value if client.adjustment_period else None,
        "last_value_update": _iso(client.last_adjustment_date),
        "next_value_update": _iso(client.next_adjustment_date),
        "notes": client.notes,
        "created_at": client.created_at.isoformat(),
    }


def row_to_client(row: dict) -> Client:
    # next_value_update is not read back: it is always derived
    return Client(
        id=UUID(str(row["id"])),
        tenant_id=row["tenant_id"],
        client_number=row.get("client_number"),
        name=row["name"],
        cuit=row.get("cuit"),
        email=row.get("email"),
        phone=row.get("phone"),
        address=row.get("address"),
        status=ClientStatus(row.get("status") or ClientStatus.ACTIVE.value),
        subscription_type=row.get("subscription_type"),
        subscription_value=_money(row.get("subscription_value")),
        included_hours=_money(row.get("included_hours")),
        consumed_hours=_money(row.get("consumed_hours")),
        adjustment_period=row.get("ipc_adjustment_period"),
        last_adjustment_date=_opt_date(row.get("last_value_update")),
        notes=row.get("notes"),
        created_at=_parse_timestamp(row.get("created_at")),
    )


def occasional_to_row(client: OccasionalClient) -> dict:
    return {
        "id": str(client.id),
        "tenant_id": client.tenant_id,
        "client_number": client.client_number,
        "name": client.name,
        "cuit": client.cuit,
        "email": client.email,
        "phone": client.phone,
        "notes": client.notes,
        "created_at": client.created_at.isoformat(),
    }


def row_to_occasional(row: dict) -> OccasionalClient:
    return OccasionalClient(
        id=UUID(str(row["id"])),
        tenant_id=row["tenant_id"],
        client_number=row.get("client_number"),
        name=row["name"],
        cuit=row.get("cuit"),
        email=row.get("email"),
        phone=row.get("phone"),
        notes=row.get("notes"),
        created_at=_parse_timestamp(row.get("created_at")),
    )


def adjustment_to_row(record: PriceAdjustmentRecord) -> dict:
    return {
        "id": str(record.id),
        "tenant_id": record.tenant_id,
        "client_id": str(record.client_id),
        "adjustment_date": record.adjustment_date.isoformat(),
        "old_value": str(record.old_value),
        "new_value": str(record.new_value),
        "ipc_percentage": str(record.ipc_percentage),
        "notes": record.notes,
        "created_at": record.created_at.isoformat(),
    }


def row_to_adjustment(row: dict) -> PriceAdjustmentRecord:
    return PriceAdjustmentRecord(
        id=UUID(str(row["id"])),
        tenant_id=row["tenant_id"],
        client_id=UUID(str(row["client_id"])),
        adjustment_date=parse_date(row["adjustment_date"]),
        old_value=_money(row.get("old_value")),
        new_value=_money(row.get("new_value")),
        ipc_percentage=_money(row.get("ipc_percentage")),
        notes=row.get("notes"),
        created_at=_parse_timestamp(row.get("created_at")),
    )


def movement_to_row(movement: AccountMovement) -> dict:
    # sequence is assigned by the database on insert
    return {
        "id": str(movement.id),
        "tenant_id": movement.tenant_id,
        **movement.client.to_columns(),
        "movement_date": movement.movement_date.isoformat(),
        "type": movement.kind.value if movement.kind else None,
        "description": movement.description,
        "debit": str(movement.debit),
        "credit": str(movement.credit),
        "balance": str(movement.balance),
        "invoice_id": _opt_str(movement.invoice_id),
        "created_at": movement.created_at.isoformat(),
    }


def row_to_movement(row: dict) -> AccountMovement:
    return AccountMovement(
        id=UUID(str(row["id"])),
        tenant_id=row["tenant_id"],
        client=ClientRef.from_columns(row),
        movement_date=parse_date(row["movement_date"]),
        kind=MovementKind(row["type"]) if row.get("type") else None,
        description=row.get("description") or "",
        debit=_money(row.get("debit")),
        credit=_money(row.get("credit")),
        balance=_money(row.get("balance")),
        invoice_id=UUID(str(row["invoice_id"])) if row.get("invoice_id") else None,
        sequence=int(row.get("sequence") or 0),
        created_at=_parse_timestamp(row.get("created_at")),
    )


def invoice_to_row(invoice: Invoice) -> dict:
    return {
        "id": str(invoice.id),
        "tenant_id": invoice.tenant_id,
        **invoice.client.to_columns(),
        "invoice_number": invoice.invoice_number,
        "issue_date": invoice.issue_date.isoformat(),
        "period": invoice.period,
        "subtotal": str(invoice.subtotal),
        "iva": str(invoice.iva),
        "iva_percentage": str(invoice.iva_percentage),
        "total": str(invoice.total),
        "pdf_url": invoice.pdf_url,
        "status": invoice.status.value,
        "payment_date": _iso(invoice.payment_date),
        "notes": invoice.notes,
        "created_at": invoice.created_at.isoformat(),
    }


def invoice_items_to_rows(invoice: Invoice) -> list[dict]:
    return [
        {
            "invoice_id": str(invoice.id),
            "description": item.description,
            "quantity": str(item.quantity),
            "unit_price": str(item.unit_price),
            "total": str(item.total),
        }
        for item in invoice.items
    ]


def row_to_invoice(row: dict) -> Invoice:
    # subtotal / iva / total columns are derived, recomputed from the items
    items = [
        InvoiceLineItem(
            description=item["description"],
            quantity=_money(item.get("quantity")),
            unit_price=_money(item.get("unit_price")),
        )
        for item in row.get("invoice_items") or []
    ]
    return Invoice(
        id=UUID(str(row["id"])),
        tenant_id=row["tenant_id"],
        client=ClientRef.from_columns(row),
        invoice_number=row["invoice_number"],
        issue_date=parse_date(row["issue_date"]),
        period=row.get("period"),
        items=items,
        iva_percentage=_money(row.get("iva_percentage", "21")),
        status=InvoiceStatus(row.get("status") or InvoiceStatus.ISSUED.value),
        payment_date=_opt_date(row.get("payment_date")),
        pdf_url=row.get("pdf_url"),
        notes=row.get("notes"),
        created_at=_parse_timestamp(row.get("created_at")),
    )


def row_to_event(row: dict) -> AuditEvent:
    return AuditEvent(
        event_id=UUID(str(row["event_id"])),
        timestamp=_parse_timestamp(row.get("timestamp")),
        tenant_id=row.get("tenant_id"),
        event_type=AuditEventType(row["event_type"]),
        severity=AuditSeverity(row.get("severity") or AuditSeverity.INFO.value),
        entity_type=row.get("entity_type"),
        entity_id=UUID(str(row["entity_id"])) if row.get("entity_id") else None,
        correlation_id=UUID(str(row["correlation_id"])) if row.get("correlation_id") else None,
        description=row.get("description") or "",
        details=json.loads(row["details"]) if row.get("details") else {},
        error_code=row.get("error_code"),
        error_message=row.get("error_message"),
        is_user_action=bool(row.get("is_user_action")),
    )


def _iso(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if not value:
        return datetime.utcnow()
    # PostgREST returns e.g. 2024-01-15T10:00:00+00:00 or ...Z
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


# =============================================================================
# CONNECTION
# =============================================================================

class SupabaseConnection:
    """
    Low-level Supabase client wrapper.

    Handles authentication and provides retry logic for connecting.
    """

    def __init__(
        self,
        settings: Optional[SupabaseSettings] = None,
        use_service_key: bool = False,
        client: Optional[SupabaseApiClient] = None,
    ):
        self._settings = settings or get_settings().supabase
        self._use_service_key = use_service_key
        self._client = client

    @property
    def settings(self) -> SupabaseSettings:
        return self._settings

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> SupabaseApiClient:
        """Create the Supabase client on first use."""
        if self._client is None:
            key = self._settings.key
            if self._use_service_key:
                if not self._settings.service_key:
                    raise ConnectionError("SUPABASE_SERVICE_KEY is not configured")
                key = self._settings.service_key
            try:
                self._client = create_client(self._settings.url, key)
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Supabase: {e}") from e
        return self._client

    def table(self, name: str) -> Any:
        return self.connect().table(name)

    def rpc(self, function: str, params: dict) -> Any:
        return self.connect().rpc(function, params)


# =============================================================================
# STORAGE IMPLEMENTATIONS
# =============================================================================

class SupabaseClientStorage(ClientStorageInterface):
    """Clients, occasional clients and the value_adjustments history."""

    def __init__(self, connection: Optional[SupabaseConnection] = None):
        self._db = connection or SupabaseConnection()
        self._tables = self._db.settings

    @retry_on_connection
    async def fetch_clients_due_for_adjustment(
        self,
        tenant_id: str,
        as_of: date,
    ) -> list[Client]:
        rows = _fetch_all(
            lambda: (
                self._db.table(self._tables.clients_table)
                .select("*")
                .eq("tenant_id", tenant_id)
                .eq("status", ClientStatus.ACTIVE.value)
                .not_.is_("ipc_adjustment_period", "null")
                .not_.is_("last_value_update", "null")
                .order("client_number")
            ),
            "fetch clients due for adjustment",
        )
        # Due-ness is decided on the derived date, not the stored column
        clients = [row_to_client(row) for row in rows]
        return [client for client in clients if due_for_adjustment(client, as_of)]

    @retry_on_connection
    async def get_client(self, tenant_id: str, client_id: UUID) -> Optional[Client]:
        rows = _execute(
            self._db.table(self._tables.clients_table)
            .select("*")
            .eq("tenant_id", tenant_id)
            .eq("id", str(client_id))
            .limit(1),
            "get client",
        )
        return row_to_client(rows[0]) if rows else None

    @retry_on_connection
    async def list_clients(
        self,
        tenant_id: str,
        status: Optional[ClientStatus] = None,
    ) -> list[Client]:
        def build():
            query = (
                self._db.table(self._tables.clients_table)
                .select("*")
                .eq("tenant_id", tenant_id)
            )
            if status is not None:
                query = query.eq("status", status.value)
            return query.order("client_number")

        return [row_to_client(row) for row in _fetch_all(build, "list clients")]

    async def _next_number(self, table: str, tenant_id: str) -> str:
        rows = _execute(
            self._db.table(table)
            .select("client_number")
            .eq("tenant_id", tenant_id)
            .order("client_number", desc=True)
            .limit(1),
            "read last client number",
        )
        return next_client_number(row.get("client_number") for row in rows)

    @retry_on_connection
    async def save_client(self, tenant_id: str, client: Client) -> Client:
        if client.tenant_id != tenant_id:
            raise NotFoundError("Client belongs to another tenant")
        if client.client_number is None:
            number = await self._next_number(self._tables.clients_table, tenant_id)
            client = client.model_copy(update={"client_number": number})
        _execute(
            self._db.table(self._tables.clients_table)
            .upsert(client_to_row(client), on_conflict="id"),
            "save client",
        )
        return client

    @retry_on_connection
    async def list_occasional_clients(self, tenant_id: str) -> list[OccasionalClient]:
        rows = _fetch_all(
            lambda: (
                self._db.table(self._tables.occasional_clients_table)
                .select("*")
                .eq("tenant_id", tenant_id)
                .order("client_number")
            ),
            "list occasional clients",
        )
        return [row_to_occasional(row) for row in rows]

    @retry_on_connection
    async def save_occasional_client(
        self,
        tenant_id: str,
        client: OccasionalClient,
    ) -> OccasionalClient:
        if client.tenant_id != tenant_id:
            raise NotFoundError("Client belongs to another tenant")
        if client.client_number is None:
            number = await self._next_number(self._tables.occasional_clients_table, tenant_id)
            client = client.model_copy(update={"client_number": number})
        _execute(
            self._db.table(self._tables.occasional_clients_table)
            .upsert(occasional_to_row(client), on_conflict="id"),
            "save occasional client",
        )
        return client

    @retry_on_connection
    async def persist_adjustment(
        self,
        tenant_id: str,
        client: Client,
        record: PriceAdjustmentRecord,
    ) -> bool:
        """
        One RPC call: the Postgres function updates the client row and
        inserts the record in a single transaction. It is idempotent on
        the record id, so a retried call cannot apply twice.
        """
        if client.tenant_id != tenant_id or record.tenant_id != tenant_id:
            raise NotFoundError("Adjustment belongs to another tenant")
        rows = _execute(
            self._db.rpc(
                self._tables.adjustment_rpc,
                {
                    "p_tenant_id": tenant_id,
                    "p_client_id": str(client.id),
                    "p_subscription_value": str(client.subscription_value),
                    "p_last_value_update": _iso(client.last_adjustment_date),
                    "p_next_value_update": _iso(client.next_adjustment_date),
                    "p_adjustment": adjustment_to_row(record),
                },
            ),
            "persist price adjustment",
        )
        applied = bool(rows) and rows[0] not in (False, None)
        if not applied:
            raise NotFoundError(f"Client not found: {client.id}")
        return True

    @retry_on_connection
    async def list_adjustments(
        self,
        tenant_id: str,
        client_id: UUID,
    ) -> list[PriceAdjustmentRecord]:
        rows = _fetch_all(
            lambda: (
                self._db.table(self._tables.adjustments_table)
                .select("*")
                .eq("tenant_id", tenant_id)
                .eq("client_id", str(client_id))
                .order("adjustment_date")
                .order("created_at")
            ),
            "list adjustments",
        )
        return [row_to_adjustment(row) for row in rows]


class SupabaseLedgerStorage(LedgerStorageInterface):
    """account_movements table."""

    def __init__(self, connection: Optional[SupabaseConnection] = None):
        self._db = connection or SupabaseConnection()
        self._tables = self._db.settings

    @retry_on_connection
    async def fetch_movements(
        self,
        tenant_id: str,
        client: ClientRef,
    ) -> list[AccountMovement]:
        column = "client_id" if client.kind == ClientKind.REGULAR else "occasional_client_id"
        rows = _fetch_all(
            lambda: (
                self._db.table(self._tables.movements_table)
                .select("*")
                .eq("tenant_id", tenant_id)
                .eq(column, str(client.id))
                .order("sequence")
            ),
            "fetch movements",
        )
        return [row_to_movement(row) for row in rows]

    @retry_on_connection
    async def persist_movement(self, tenant_id: str, movement: AccountMovement) -> bool:
        if movement.tenant_id != tenant_id:
            raise NotFoundError("Movement belongs to another tenant")
        # Upsert by id so a retried call cannot append the movement twice
        _execute(
            self._db.table(self._tables.movements_table)
            .upsert(movement_to_row(movement), on_conflict="id"),
            "persist movement",
        )
        return True


class SupabaseInvoiceStorage(InvoiceStorageInterface):
    """invoices table plus its invoice_items children."""

    SELECT = "*, invoice_items(*)"

    def __init__(self, connection: Optional[SupabaseConnection] = None):
        self._db = connection or SupabaseConnection()
        self._tables = self._db.settings

    @retry_on_connection
    async def get_invoice(self, tenant_id: str, invoice_id: UUID) -> Optional[Invoice]:
        rows = _execute(
            self._db.table(self._tables.invoices_table)
            .select(self.SELECT)
            .eq("tenant_id", tenant_id)
            .eq("id", str(invoice_id))
            .limit(1),
            "get invoice",
        )
        return row_to_invoice(rows[0]) if rows else None

    @retry_on_connection
    async def save_invoice(self, tenant_id: str, invoice: Invoice) -> bool:
        if invoice.tenant_id != tenant_id:
            raise NotFoundError("Invoice belongs to another tenant")

        same_number = _execute(
            self._db.table(self._tables.invoices_table)
            .select("id")
            .eq("tenant_id", tenant_id)
            .eq("invoice_number", invoice.invoice_number),
            "check invoice number",
        )
        if any(row["id"] != str(invoice.id) for row in same_number):
            raise DuplicateError(f"Invoice number already used: {invoice.invoice_number}")

        _execute(
            self._db.table(self._tables.invoices_table)
            .upsert(invoice_to_row(invoice), on_conflict="id"),
            "save invoice",
        )
        # Items are replaced wholesale
        _execute(
            self._db.table(self._tables.invoice_items_table)
            .delete()
            .eq("invoice_id", str(invoice.id)),
            "clear invoice items",
        )
        items = invoice_items_to_rows(invoice)
        if items:
            _execute(
                self._db.table(self._tables.invoice_items_table).insert(items),
                "save invoice items",
            )
        return True

    @retry_on_connection
    async def list_invoices(
        self,
        tenant_id: str,
        status: Optional[InvoiceStatus] = None,
    ) -> list[Invoice]:
        def build():
            query = (
                self._db.table(self._tables.invoices_table)
                .select(self.SELECT)
                .eq("tenant_id", tenant_id)
            )
            if status is not None:
                query = query.eq("status", status.value)
            return query.order("issue_date", desc=True).order("id")

        return [row_to_invoice(row) for row in _fetch_all(build, "list invoices")]


class SupabaseAuditStorage(AuditStorageInterface):
    """
    audit_events table.

    Audit events are append-only.
    """

    def __init__(self, connection: Optional[SupabaseConnection] = None):
        self._db = connection or SupabaseConnection()
        self._tables = self._db.settings

    async def append_event(self, event: AuditEvent) -> bool:
        try:
            _execute(
                self._db.table(self._tables.audit_table).insert(event.to_record()),
                "append audit event",
            )
            return True
        except StorageError as e:
            # Audit logging should not break the main flow
            logger.warning(
                "audit_write_failed",
                error=str(e),
                event_id=str(event.event_id),
            )
            return False

    @retry_on_connection
    async def get_events_by_entity(
        self,
        tenant_id: str,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        rows = _fetch_all(
            lambda: (
                self._db.table(self._tables.audit_table)
                .select("*")
                .eq("tenant_id", tenant_id)
                .eq("entity_type", entity_type)
                .eq("entity_id", str(entity_id))
                .order("timestamp")
            ),
            "get audit events",
        )
        return [row_to_event(row) for row in rows]

    @retry_on_connection
    async def get_recent_events(
        self,
        tenant_id: str,
        limit: int = 100,
    ) -> list[AuditEvent]:
        rows = _execute(
            self._db.table(self._tables.audit_table)
            .select("*")
            .eq("tenant_id", tenant_id)
            .order("timestamp", desc=True)
            .limit(limit),
            "get recent audit events",
        )
        return [row_to_event(row) for row in rows]
