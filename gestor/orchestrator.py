"""
Main Orchestrator for Gestor de Abonos

This module ties together all the components and defines the
end-to-end flows for:
1. Price adjustment (due clients → rate → new price → atomic persist)
2. Account (invoice → debit movement, payment → credit movement, statement)

DESIGN DECISION: The orchestrator enforces the boundaries:
- Pricing and ledger functions stay pure; only this layer touches storage
- A price change is persisted in ONE storage call (client + record)
- Storage errors surface unchanged; retrying is the adapter's business
- Every step is audited
"""

from datetime import date
from decimal import Decimal
from typing import Iterable, Optional, Union
from uuid import UUID

import structlog

from gestor.audit import AuditLogger, configure_logging, create_correlation_id
from gestor.config import PricingSettings, get_settings
from gestor.errors import InvoiceStateError, MalformedMovementError
from gestor.ledger import compute_balances, record_invoice, record_note, record_payment
from gestor.models.client import Client
from gestor.models.common import ClientRef
from gestor.models.invoice import Invoice, InvoiceLineItem
from gestor.models.ledger import AccountMovement, LedgerStatement, MovementKind
from gestor.pricing import AdjustmentResult, apply_adjustment, clients_due, suggested_rate
from gestor.queries import DashboardQuery
from gestor.services.storage import (
    ClientStorageInterface,
    ConnectionError,
    InMemoryStore,
    InvoiceStorageInterface,
    LedgerStorageInterface,
    NotFoundError,
    StorageError,
    SupabaseAuditStorage,
    SupabaseClientStorage,
    SupabaseConnection,
    SupabaseInvoiceStorage,
    SupabaseLedgerStorage,
)


logger = structlog.get_logger(__name__)


class PriceAdjustmentFlow:
    """
    Orchestrates subscription price adjustments.

    Flow:
    1. List → clients whose next adjustment date has arrived
    2. Rate → operator value, or the suggested rate for the month
    3. Compute → pure apply_adjustment (new client copy + record)
    4. Persist → ONE persist_adjustment call, both or neither
    5. Audit → price_adjusted, or price_adjustment_failed and re-raise
    """

    def __init__(
        self,
        client_storage: ClientStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
        pricing_settings: Optional[PricingSettings] = None,
    ):
        self._client_storage = client_storage
        self._audit_logger = audit_logger
        self._pricing = pricing_settings or get_settings().pricing

    def suggested_rate(self, as_of: Optional[date] = None) -> Decimal:
        """Suggested IPC % for the month of as_of (today by default)."""
        return suggested_rate(as_of or date.today(), self._pricing.monthly_rates_list)

    async def list_due(self, tenant_id: str, as_of: Optional[date] = None) -> list[Client]:
        as_of = as_of or date.today()
        candidates = await self._client_storage.fetch_clients_due_for_adjustment(tenant_id, as_of)
        # Storage pre-filters; the rule itself is decided here
        return clients_due(candidates, as_of)

    async def apply(
        self,
        tenant_id: str,
        client_id: UUID,
        rate_percent: Optional[Union[Decimal, int, float, str]] = None,
        effective_date: Optional[date] = None,
        notes: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AdjustmentResult:
        """
        Apply an adjustment to one client and persist it.

        Raises:
            NotFoundError: client doesn't exist in this tenant
            MissingAdjustmentPeriodError / InvalidRateError: nothing stored
            StorageError: persistence failed, nothing stored
        """
        client = await self._client_storage.get_client(tenant_id, client_id)
        if client is None:
            raise NotFoundError(f"Client not found: {client_id}")
        return await self._apply_to(
            tenant_id, client, rate_percent, effective_date, notes, correlation_id
        )

    async def apply_all_due(
        self,
        tenant_id: str,
        rate_percent: Optional[Union[Decimal, int, float, str]] = None,
        as_of: Optional[date] = None,
    ) -> list[AdjustmentResult]:
        """
        Adjust every due client at the same rate, effective as_of.

        Stops at the first failure; adjustments already stored stay stored.
        """
        as_of = as_of or date.today()
        correlation_id = create_correlation_id()
        results = []
        for client in await self.list_due(tenant_id, as_of):
            results.append(
                await self._apply_to(
                    tenant_id, client, rate_percent, as_of, None, correlation_id
                )
            )
        logger.info(
            "adjustment_batch_completed",
            tenant_id=tenant_id,
            as_of=as_of.isoformat(),
            adjusted=len(results),
        )
        return results

    async def _apply_to(
        self,
        tenant_id: str,
        client: Client,
        rate_percent: Optional[Union[Decimal, int, float, str]],
        effective_date: Optional[date],
        notes: Optional[str],
        correlation_id: Optional[UUID],
    ) -> AdjustmentResult:
        correlation_id = correlation_id or create_correlation_id()
        effective_date = effective_date or date.today()
        if rate_percent is None:
            rate_percent = self.suggested_rate(effective_date)

        result = apply_adjustment(
            client,
            rate_percent,
            effective_date,
            notes=notes,
            places=self._pricing.money_places,
        )

        try:
            await self._client_storage.persist_adjustment(tenant_id, result.client, result.record)
        except StorageError as e:
            if self._audit_logger:
                if isinstance(e, ConnectionError):
                    await self._audit_logger.log_external_service_error(
                        service="supabase",
                        error_message=str(e),
                        correlation_id=correlation_id,
                        tenant_id=tenant_id,
                    )
                await self._audit_logger.log_adjustment_failed(
                    tenant_id=tenant_id,
                    client_id=client.id,
                    error_message=str(e),
                    correlation_id=correlation_id,
                )
            raise

        if self._audit_logger:
            await self._audit_logger.log_price_adjusted(
                tenant_id=tenant_id,
                client_id=client.id,
                old_value=result.record.old_value,
                new_value=result.record.new_value,
                ipc_percentage=result.record.ipc_percentage,
                correlation_id=correlation_id,
            )
        return result


class AccountFlow:
    """
    Orchestrates invoices and the client account ledger.

    Every invoice posts a debit, every payment a credit. Movements are
    only ever appended; balances are always recomputed from the full
    history.
    """

    def __init__(
        self,
        ledger_storage: LedgerStorageInterface,
        invoice_storage: InvoiceStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
        pricing_settings: Optional[PricingSettings] = None,
    ):
        self._ledger_storage = ledger_storage
        self._invoice_storage = invoice_storage
        self._audit_logger = audit_logger
        self._pricing = pricing_settings or get_settings().pricing

    def draft_invoice(
        self,
        tenant_id: str,
        client: ClientRef,
        invoice_number: str,
        issue_date: date,
        items: Iterable[InvoiceLineItem],
        period: Optional[str] = None,
    ) -> Invoice:
        """New unsaved invoice carrying the configured IVA percentage."""
        return Invoice(
            tenant_id=tenant_id,
            client=client,
            invoice_number=invoice_number,
            issue_date=issue_date,
            period=period,
            items=list(items),
            iva_percentage=self._pricing.default_iva_percentage,
        )

    async def statement(
        self,
        tenant_id: str,
        client: ClientRef,
        correlation_id: Optional[UUID] = None,
    ) -> LedgerStatement:
        """
        Current account statement of a client.

        Raises:
            MalformedMovementError: stored history contains an invalid movement
        """
        movements = await self._ledger_storage.fetch_movements(tenant_id, client)
        try:
            statement = compute_balances(movements)
        except MalformedMovementError as e:
            if self._audit_logger:
                await self._audit_logger.log_movement_rejected(
                    tenant_id=tenant_id,
                    issues=[
                        {"field": i.field, "type": i.issue_type, "message": i.message}
                        for i in e.issues
                    ],
                    correlation_id=correlation_id or create_correlation_id(),
                )
            raise
        # An empty history still belongs to this client
        if statement.client is None:
            statement = statement.model_copy(update={"client": client})
        return statement

    async def issue_invoice(
        self,
        tenant_id: str,
        invoice: Invoice,
        correlation_id: Optional[UUID] = None,
    ) -> AccountMovement:
        """
        Save a new invoice and post its debit.

        Raises:
            InvoiceStateError: the invoice is already paid, or already issued
            ValidationFailedError: the invoice total is not positive
            DuplicateError: invoice number already used in this tenant
        """
        correlation_id = correlation_id or create_correlation_id()
        if invoice.is_paid:
            raise InvoiceStateError(
                f"Invoice {invoice.invoice_number} is already paid; issue it first"
            )

        movement = record_invoice(invoice)
        stored = await self._invoice_storage.get_invoice(tenant_id, invoice.id)
        if stored is not None:
            # A saved invoice without its debit is an interrupted issue; finish it
            posted = await self._ledger_storage.fetch_movements(tenant_id, stored.client)
            if any(existing.id == movement.id for existing in posted):
                raise InvoiceStateError(
                    f"Invoice {invoice.invoice_number} is already issued"
                )
        await self._invoice_storage.save_invoice(tenant_id, invoice)
        await self._ledger_storage.persist_movement(tenant_id, movement)

        if self._audit_logger:
            await self._audit_logger.log_invoice_issued(
                tenant_id=tenant_id,
                invoice_id=invoice.id,
                invoice_number=invoice.invoice_number,
                total=invoice.total,
                correlation_id=correlation_id,
            )
            await self._log_movement(tenant_id, movement, correlation_id)
        return movement

    async def mark_invoice_paid(
        self,
        tenant_id: str,
        invoice_id: UUID,
        payment_date: date,
        correlation_id: Optional[UUID] = None,
    ) -> Invoice:
        """
        Mark an invoice as paid and post the matching credit.

        Raises:
            NotFoundError: invoice doesn't exist in this tenant
            InvoiceStateError: invoice already paid
        """
        correlation_id = correlation_id or create_correlation_id()
        invoice = await self._invoice_storage.get_invoice(tenant_id, invoice_id)
        if invoice is None:
            raise NotFoundError(f"Invoice not found: {invoice_id}")

        paid = invoice.mark_paid(payment_date)
        movement = record_payment(paid)
        # The invoice only turns paid once its credit is stored
        await self._ledger_storage.persist_movement(tenant_id, movement)
        await self._invoice_storage.save_invoice(tenant_id, paid)

        if self._audit_logger:
            await self._audit_logger.log_invoice_paid(
                tenant_id=tenant_id,
                invoice_id=paid.id,
                invoice_number=paid.invoice_number,
                total=paid.total,
                payment_date=payment_date,
                correlation_id=correlation_id,
            )
            await self._log_movement(tenant_id, movement, correlation_id)
        return paid

    async def record_note(
        self,
        tenant_id: str,
        client: ClientRef,
        kind: MovementKind,
        amount: Union[Decimal, int, float, str],
        movement_date: date,
        description: str,
        invoice_id: Optional[UUID] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AccountMovement:
        """Post a credit or debit note."""
        correlation_id = correlation_id or create_correlation_id()
        movement = record_note(
            tenant_id, client, kind, amount, movement_date, description, invoice_id
        )
        await self._ledger_storage.persist_movement(tenant_id, movement)
        if self._audit_logger:
            await self._log_movement(tenant_id, movement, correlation_id)
        return movement

    async def _log_movement(
        self,
        tenant_id: str,
        movement: AccountMovement,
        correlation_id: UUID,
    ) -> None:
        await self._audit_logger.log_movement_recorded(
            tenant_id=tenant_id,
            movement_id=movement.id,
            kind=movement.kind.value if movement.kind else "unknown",
            debit=movement.debit,
            credit=movement.credit,
            correlation_id=correlation_id,
        )


def create_app_components(
    use_storage: bool = True,
) -> tuple[PriceAdjustmentFlow, AccountFlow, DashboardQuery, Optional[SupabaseConnection]]:
    """
    Factory function to create all application components.

    Args:
        use_storage: Whether to connect to Supabase.
                    Set to False to run on the in-memory store.

    Returns:
        (price_adjustment_flow, account_flow, dashboard_query, connection)
    """
    settings = get_settings()
    configure_logging(settings.app.log_level)

    connection = None
    if use_storage:
        try:
            connection = SupabaseConnection(settings.supabase)
            client_storage = SupabaseClientStorage(connection)
            ledger_storage = SupabaseLedgerStorage(connection)
            invoice_storage = SupabaseInvoiceStorage(connection)
            audit_logger = AuditLogger(SupabaseAuditStorage(connection))
        except Exception as e:
            # Storage not configured - continue in memory
            logger.warning("storage_not_configured", error=str(e))
            connection = None

    if connection is None:
        store = InMemoryStore()
        client_storage = ledger_storage = invoice_storage = store
        audit_logger = AuditLogger(store)

    price_flow = PriceAdjustmentFlow(
        client_storage=client_storage,
        audit_logger=audit_logger,
        pricing_settings=settings.pricing,
    )
    account_flow = AccountFlow(
        ledger_storage=ledger_storage,
        invoice_storage=invoice_storage,
        audit_logger=audit_logger,
        pricing_settings=settings.pricing,
    )
    dashboard = DashboardQuery(
        client_storage=client_storage,
        invoice_storage=invoice_storage,
    )
    return price_flow, account_flow, dashboard, connection
