"""
Integration tests for the price adjustment and account flows.

Flows run against the in-memory store; nothing leaves the process.
"""

import pytest
from datetime import date
from decimal import Decimal
from uuid import uuid4

from gestor.audit import AuditLogger
from gestor.config import PricingSettings
from gestor.errors import (
    InvoiceStateError,
    MalformedMovementError,
    MissingAdjustmentPeriodError,
    ValidationFailedError,
)
from gestor.models import (
    AccountMovement,
    ClientRef,
    Invoice,
    InvoiceLineItem,
    InvoiceStatus,
    MovementKind,
)
from gestor.models.audit import AuditEventType
from gestor.orchestrator import AccountFlow, PriceAdjustmentFlow, create_app_components
from gestor.queries import DashboardQuery
from gestor.services.storage import (
    AtomicWriteError,
    ConnectionError,
    DuplicateError,
    InMemoryStore,
    NotFoundError,
)


class BrokenAdjustmentStore(InMemoryStore):
    """Fails halfway through persist_adjustment."""

    def _append_adjustment(self, tenant_id, record):
        raise RuntimeError("disk full")


class UnreachableStore(InMemoryStore):
    async def persist_adjustment(self, tenant_id, client, record):
        raise ConnectionError("Supabase unreachable")


class FlakyLedgerStore(InMemoryStore):
    """Refuses movements of one kind until healed."""

    def __init__(self, failing_kind: MovementKind):
        super().__init__()
        self.failing_kind = failing_kind
        self.healed = False

    async def persist_movement(self, tenant_id, movement):
        if not self.healed and movement.kind == self.failing_kind:
            raise ConnectionError("Supabase unreachable")
        return await super().persist_movement(tenant_id, movement)


class FlakyPaidInvoiceStore(InMemoryStore):
    """Refuses to save paid invoices until healed."""

    healed = False

    async def save_invoice(self, tenant_id, invoice):
        if not self.healed and invoice.is_paid:
            raise ConnectionError("Supabase unreachable")
        return await super().save_invoice(tenant_id, invoice)


def _price_flow(store) -> PriceAdjustmentFlow:
    return PriceAdjustmentFlow(
        client_storage=store,
        audit_logger=AuditLogger(store),
        pricing_settings=PricingSettings(),
    )


def _invoice(client_ref, number="A-0001", **kwargs) -> Invoice:
    defaults = dict(
        tenant_id="tenant-a",
        client=client_ref,
        invoice_number=number,
        issue_date=date(2024, 3, 1),
        items=[InvoiceLineItem(description="Abono", quantity=Decimal("1"), unit_price=Decimal("100"))],
    )
    defaults.update(kwargs)
    return Invoice(**defaults)


class TestPriceAdjustmentFlow:
    """Tests for applying adjustments end to end."""

    @pytest.mark.asyncio
    async def test_apply_persists_client_and_record(self, store, tenant_id, make_client):
        client = await store.save_client(tenant_id, make_client(subscription_value="1000"))
        flow = _price_flow(store)

        result = await flow.apply(tenant_id, client.id, rate_percent=25, effective_date=date(2024, 4, 15))

        stored = await store.get_client(tenant_id, client.id)
        assert stored.subscription_value == Decimal("1250.00")
        assert stored.last_adjustment_date == date(2024, 4, 15)
        assert stored.next_adjustment_date == date(2024, 7, 15)

        history = await store.list_adjustments(tenant_id, client.id)
        assert history == [result.record]

        events = await store.get_events_by_entity(tenant_id, "client", client.id)
        assert [e.event_type for e in events] == [AuditEventType.PRICE_ADJUSTED]

    @pytest.mark.asyncio
    async def test_rate_defaults_to_suggested(self, store, tenant_id, make_client):
        client = await store.save_client(tenant_id, make_client(subscription_value="100"))
        result = await _price_flow(store).apply(tenant_id, client.id, effective_date=date(2024, 2, 10))
        assert result.record.ipc_percentage == Decimal("20")
        assert result.client.subscription_value == Decimal("120.00")

    @pytest.mark.asyncio
    async def test_failed_persist_leaves_nothing(self, tenant_id, make_client):
        """Test a half-failed write is rolled back and the error surfaces."""
        store = BrokenAdjustmentStore()
        client = await store.save_client(tenant_id, make_client(subscription_value="1000"))

        with pytest.raises(AtomicWriteError):
            await _price_flow(store).apply(tenant_id, client.id, 10, date(2024, 4, 15))

        stored = await store.get_client(tenant_id, client.id)
        assert stored.subscription_value == Decimal("1000")
        assert stored.last_adjustment_date == date(2024, 1, 15)
        assert await store.list_adjustments(tenant_id, client.id) == []

        events = await store.get_events_by_entity(tenant_id, "client", client.id)
        assert [e.event_type for e in events] == [AuditEventType.PRICE_ADJUSTMENT_FAILED]

    @pytest.mark.asyncio
    async def test_unreachable_storage_is_audited(self, tenant_id, make_client):
        store = UnreachableStore()
        client = await store.save_client(tenant_id, make_client())

        with pytest.raises(ConnectionError):
            await _price_flow(store).apply(tenant_id, client.id, 10, date(2024, 4, 15))

        event_types = {e.event_type for e in await store.get_recent_events(tenant_id)}
        assert event_types == {
            AuditEventType.EXTERNAL_SERVICE_ERROR,
            AuditEventType.PRICE_ADJUSTMENT_FAILED,
        }

    @pytest.mark.asyncio
    async def test_unknown_client(self, store, tenant_id):
        with pytest.raises(NotFoundError):
            await _price_flow(store).apply(tenant_id, uuid4(), 10)

    @pytest.mark.asyncio
    async def test_other_tenant_client_not_visible(self, store, make_client):
        client = await store.save_client("tenant-b", make_client(tenant_id="tenant-b"))
        with pytest.raises(NotFoundError):
            await _price_flow(store).apply("tenant-a", client.id, 10)

    @pytest.mark.asyncio
    async def test_missing_period_stores_nothing(self, store, tenant_id, make_client):
        client = await store.save_client(tenant_id, make_client(adjustment_period=None))
        with pytest.raises(MissingAdjustmentPeriodError):
            await _price_flow(store).apply(tenant_id, client.id, 10, date(2024, 4, 15))
        assert await store.list_adjustments(tenant_id, client.id) == []

    @pytest.mark.asyncio
    async def test_list_due(self, store, tenant_id, make_client):
        due = await store.save_client(tenant_id, make_client(name="Due", last_adjustment_date=date(2024, 1, 1)))
        await store.save_client(tenant_id, make_client(name="Later", last_adjustment_date=date(2024, 3, 1)))
        await store.save_client(tenant_id, make_client(name="Unindexed", adjustment_period=None))

        listed = await _price_flow(store).list_due(tenant_id, date(2024, 4, 1))
        assert [c.id for c in listed] == [due.id]

    @pytest.mark.asyncio
    async def test_apply_all_due(self, store, tenant_id, make_client):
        first = await store.save_client(tenant_id, make_client(name="A", subscription_value="100"))
        second = await store.save_client(tenant_id, make_client(name="B", subscription_value="200"))
        await store.save_client(tenant_id, make_client(name="C", last_adjustment_date=date(2024, 4, 1)))

        results = await _price_flow(store).apply_all_due(tenant_id, rate_percent=10, as_of=date(2024, 4, 15))

        assert {r.client.id for r in results} == {first.id, second.id}
        assert (await store.get_client(tenant_id, second.id)).subscription_value == Decimal("220.00")
        # Nobody is due any more
        assert await _price_flow(store).list_due(tenant_id, date(2024, 4, 15)) == []

    def test_suggested_rate_uses_settings(self, store, monkeypatch):
        monkeypatch.setenv("PRICING_MONTHLY_IPC_RATES", ",".join(["1.5"] * 12))
        flow = PriceAdjustmentFlow(store, pricing_settings=PricingSettings())
        assert flow.suggested_rate(date(2024, 6, 1)) == Decimal("1.5")


class TestAccountFlow:
    """Tests for invoices, payments and statements."""

    @pytest.fixture
    def flow(self, store):
        return AccountFlow(store, store, AuditLogger(store))

    @pytest.mark.asyncio
    async def test_issue_and_pay(self, flow, store, tenant_id, client_ref):
        """Test the balance goes up on issue and back to zero on payment."""
        invoice = _invoice(client_ref)

        debit = await flow.issue_invoice(tenant_id, invoice)
        assert debit.debit == Decimal("121.00")
        statement = await flow.statement(tenant_id, client_ref)
        assert statement.current_balance == Decimal("121.00")

        paid = await flow.mark_invoice_paid(tenant_id, invoice.id, date(2024, 3, 1))
        assert paid.status == InvoiceStatus.PAID
        assert (await store.get_invoice(tenant_id, invoice.id)).is_paid

        statement = await flow.statement(tenant_id, client_ref)
        assert statement.balances == [Decimal("121.00"), Decimal("0.00")]
        assert [m.kind for m in statement.movements] == [MovementKind.INVOICE, MovementKind.PAYMENT]

        events = await store.get_events_by_entity(tenant_id, "invoice", invoice.id)
        assert [e.event_type for e in events] == [
            AuditEventType.INVOICE_ISSUED,
            AuditEventType.INVOICE_PAID,
        ]

    def test_draft_invoice_uses_configured_iva(self, store, tenant_id, client_ref, monkeypatch):
        monkeypatch.setenv("PRICING_DEFAULT_IVA_PERCENTAGE", "10.5")
        flow = AccountFlow(store, store, pricing_settings=PricingSettings())
        invoice = flow.draft_invoice(
            tenant_id,
            client_ref,
            "B-0001",
            date(2024, 5, 1),
            [InvoiceLineItem(description="Abono", unit_price=Decimal("200"))],
            period="Mayo 2024",
        )
        assert invoice.iva_percentage == Decimal("10.5")
        assert invoice.total == Decimal("221.00")
        assert invoice.status == InvoiceStatus.ISSUED

    @pytest.mark.asyncio
    async def test_pay_twice_rejected(self, flow, tenant_id, client_ref):
        invoice = _invoice(client_ref)
        await flow.issue_invoice(tenant_id, invoice)
        await flow.mark_invoice_paid(tenant_id, invoice.id, date(2024, 3, 5))
        with pytest.raises(InvoiceStateError):
            await flow.mark_invoice_paid(tenant_id, invoice.id, date(2024, 3, 6))

        statement = await flow.statement(tenant_id, client_ref)
        assert len(statement.movements) == 2

    @pytest.mark.asyncio
    async def test_pay_unknown_invoice(self, flow, tenant_id):
        with pytest.raises(NotFoundError):
            await flow.mark_invoice_paid(tenant_id, uuid4(), date(2024, 3, 5))

    @pytest.mark.asyncio
    async def test_issue_paid_invoice_rejected(self, flow, tenant_id, client_ref):
        invoice = _invoice(client_ref).mark_paid(date(2024, 3, 2))
        with pytest.raises(InvoiceStateError):
            await flow.issue_invoice(tenant_id, invoice)

    @pytest.mark.asyncio
    async def test_duplicate_invoice_number(self, flow, tenant_id, client_ref):
        await flow.issue_invoice(tenant_id, _invoice(client_ref, number="A-0009"))
        with pytest.raises(DuplicateError):
            await flow.issue_invoice(tenant_id, _invoice(client_ref, number="A-0009"))

    @pytest.mark.asyncio
    async def test_record_note(self, flow, tenant_id, client_ref):
        await flow.issue_invoice(tenant_id, _invoice(client_ref))
        await flow.record_note(
            tenant_id, client_ref, MovementKind.CREDIT_NOTE, "21", date(2024, 3, 2), "Bonificación"
        )
        statement = await flow.statement(tenant_id, client_ref)
        assert statement.current_balance == Decimal("100.00")

    @pytest.mark.asyncio
    async def test_empty_statement_keeps_client(self, flow, tenant_id):
        client = ClientRef.occasional(uuid4())
        statement = await flow.statement(tenant_id, client)
        assert statement.client == client
        assert statement.current_balance == Decimal("0")

    @pytest.mark.asyncio
    async def test_same_day_invoice_and_payment_in_insertion_order(self, flow, tenant_id, client_ref):
        """Test same-date movements keep the order they were stored in."""
        invoice = _invoice(client_ref, issue_date=date(2024, 3, 1))
        await flow.issue_invoice(tenant_id, invoice)
        await flow.mark_invoice_paid(tenant_id, invoice.id, date(2024, 3, 1))
        statement = await flow.statement(tenant_id, client_ref)
        assert [m.sequence for m in statement.movements] == [1, 2]
        assert statement.balances == [Decimal("121.00"), Decimal("0.00")]

    @pytest.mark.asyncio
    async def test_malformed_history_is_audited(self, flow, store, tenant_id, client_ref):
        await store.persist_movement(tenant_id, AccountMovement(
            tenant_id=tenant_id,
            client=client_ref,
            movement_date=date(2024, 1, 1),
            debit=Decimal("50"),
            credit=Decimal("30"),
        ))
        with pytest.raises(MalformedMovementError):
            await flow.statement(tenant_id, client_ref)

        events = await store.get_recent_events(tenant_id)
        assert events[0].event_type == AuditEventType.MOVEMENT_REJECTED

    @pytest.mark.asyncio
    async def test_issue_twice_posts_one_debit(self, flow, store, tenant_id, client_ref):
        invoice = _invoice(client_ref)
        await flow.issue_invoice(tenant_id, invoice)
        with pytest.raises(InvoiceStateError):
            await flow.issue_invoice(tenant_id, invoice)

        statement = await flow.statement(tenant_id, client_ref)
        assert len(statement.movements) == 1
        assert statement.current_balance == Decimal("121.00")

    @pytest.mark.asyncio
    async def test_zero_total_invoice_rejected_before_storing(self, flow, store, tenant_id, client_ref):
        """Test an invoice with nothing to charge leaves no invoice and no movement."""
        invoice = _invoice(client_ref, items=[])
        with pytest.raises(ValidationFailedError) as exc_info:
            await flow.issue_invoice(tenant_id, invoice)
        assert exc_info.value.issues[0].field == "total"

        assert await store.get_invoice(tenant_id, invoice.id) is None
        statement = await flow.statement(tenant_id, client_ref)
        assert statement.movements == []

    @pytest.mark.asyncio
    async def test_failed_debit_is_completed_on_retry(self, tenant_id, client_ref):
        """Test an issue interrupted after saving the invoice can be repeated."""
        store = FlakyLedgerStore(failing_kind=MovementKind.INVOICE)
        flow = AccountFlow(store, store, AuditLogger(store))
        invoice = _invoice(client_ref)

        with pytest.raises(ConnectionError):
            await flow.issue_invoice(tenant_id, invoice)
        assert (await flow.statement(tenant_id, client_ref)).movements == []

        store.healed = True
        await flow.issue_invoice(tenant_id, invoice)
        statement = await flow.statement(tenant_id, client_ref)
        assert len(statement.movements) == 1
        assert statement.current_balance == Decimal("121.00")

    @pytest.mark.asyncio
    async def test_failed_credit_leaves_invoice_unpaid(self, tenant_id, client_ref):
        """Test a payment whose credit cannot be written can be retried."""
        store = FlakyLedgerStore(failing_kind=MovementKind.PAYMENT)
        flow = AccountFlow(store, store, AuditLogger(store))
        invoice = _invoice(client_ref)
        await flow.issue_invoice(tenant_id, invoice)

        with pytest.raises(ConnectionError):
            await flow.mark_invoice_paid(tenant_id, invoice.id, date(2024, 3, 5))
        assert (await store.get_invoice(tenant_id, invoice.id)).status == InvoiceStatus.ISSUED
        statement = await flow.statement(tenant_id, client_ref)
        assert statement.current_balance == Decimal("121.00")

        store.healed = True
        paid = await flow.mark_invoice_paid(tenant_id, invoice.id, date(2024, 3, 5))
        assert paid.is_paid
        statement = await flow.statement(tenant_id, client_ref)
        assert len(statement.movements) == 2
        assert statement.current_balance == Decimal("0.00")

    @pytest.mark.asyncio
    async def test_failed_paid_save_retry_keeps_one_credit(self, tenant_id, client_ref):
        """Test retrying a payment whose invoice save failed rewrites the same credit."""
        store = FlakyPaidInvoiceStore()
        flow = AccountFlow(store, store, AuditLogger(store))
        invoice = _invoice(client_ref)
        await flow.issue_invoice(tenant_id, invoice)

        with pytest.raises(ConnectionError):
            await flow.mark_invoice_paid(tenant_id, invoice.id, date(2024, 3, 5))
        assert not (await store.get_invoice(tenant_id, invoice.id)).is_paid

        store.healed = True
        await flow.mark_invoice_paid(tenant_id, invoice.id, date(2024, 3, 5))
        statement = await flow.statement(tenant_id, client_ref)
        assert [m.kind for m in statement.movements] == [MovementKind.INVOICE, MovementKind.PAYMENT]
        assert statement.current_balance == Decimal("0.00")
        assert (await store.get_invoice(tenant_id, invoice.id)).is_paid


class TestInMemoryMovements:

    @pytest.mark.asyncio
    async def test_same_id_rewrites_in_place(self, store, tenant_id, client_ref):
        """Test writing a stored movement id again keeps one row and its sequence."""
        first = AccountMovement(
            tenant_id=tenant_id,
            client=client_ref,
            movement_date=date(2024, 3, 1),
            debit=Decimal("121"),
        )
        await store.persist_movement(tenant_id, first)
        await store.persist_movement(tenant_id, first.model_copy(update={"movement_date": date(2024, 3, 2)}))

        movements = await store.fetch_movements(tenant_id, client_ref)
        assert len(movements) == 1
        assert movements[0].sequence == 1
        assert movements[0].movement_date == date(2024, 3, 2)


class TestCreateAppComponents:

    def test_in_memory_components(self):
        price_flow, account_flow, dashboard, connection = create_app_components(use_storage=False)
        assert isinstance(price_flow, PriceAdjustmentFlow)
        assert isinstance(account_flow, AccountFlow)
        assert isinstance(dashboard, DashboardQuery)
        assert connection is None
