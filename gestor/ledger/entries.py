"""
Ledger postings for invoices and notes.

These build NEW movements only. The ledger is append-only: nothing here
edits or removes an existing movement.
"""

from datetime import date
from decimal import Decimal
from typing import Optional, Union
from uuid import UUID, uuid5

from gestor.errors import InvoiceStateError, ValidationFailedError
from gestor.models.common import ClientRef, ValidationIssue, quantize_money
from gestor.models.invoice import Invoice
from gestor.models.ledger import AccountMovement, MovementKind


def invoice_description(invoice: Invoice) -> str:
    """'Factura A-0001 - Enero 2024', or without the period when unset."""
    description = f"Factura {invoice.invoice_number}"
    if invoice.period:
        description += f" - {invoice.period}"
    return description


def invoice_movement_id(invoice_id: UUID) -> UUID:
    return uuid5(invoice_id, "factura")


def payment_movement_id(invoice_id: UUID) -> UUID:
    return uuid5(invoice_id, "pago")


def record_invoice(invoice: Invoice) -> AccountMovement:
    """
    Debit movement for the invoice total, dated at its issue date.

    The movement id is derived from the invoice id, so posting the same
    invoice again writes the same row.

    Raises:
        ValidationFailedError: the invoice total is not positive
    """
    if invoice.total <= 0:
        raise ValidationFailedError(
            f"Invoice {invoice.invoice_number} has no amount to charge",
            [ValidationIssue(field="total", issue_type="invalid_value",
                             message=f"Invoice total {invoice.total} is not positive")],
        )
    return AccountMovement(
        id=invoice_movement_id(invoice.id),
        tenant_id=invoice.tenant_id,
        client=invoice.client,
        movement_date=invoice.issue_date,
        kind=MovementKind.INVOICE,
        description=invoice_description(invoice),
        debit=invoice.total,
        credit=Decimal("0"),
        invoice_id=invoice.id,
    )


def record_payment(invoice: Invoice) -> AccountMovement:
    """
    Credit movement for the invoice total, dated at its payment date.

    Raises:
        InvoiceStateError: the invoice has no payment date
    """
    if invoice.payment_date is None:
        raise InvoiceStateError(
            f"Invoice {invoice.invoice_number} has no payment date"
        )
    return AccountMovement(
        id=payment_movement_id(invoice.id),
        tenant_id=invoice.tenant_id,
        client=invoice.client,
        movement_date=invoice.payment_date,
        kind=MovementKind.PAYMENT,
        description=f"Pago de factura {invoice.invoice_number}",
        debit=Decimal("0"),
        credit=invoice.total,
        invoice_id=invoice.id,
    )


def record_note(
    tenant_id: str,
    client: ClientRef,
    kind: MovementKind,
    amount: Union[Decimal, int, float, str],
    movement_date: date,
    description: str,
    invoice_id: Optional[UUID] = None,
) -> AccountMovement:
    """
    Credit or debit note, posted on the side its kind dictates.

    Raises:
        ValidationFailedError: kind is not a note, or amount is not positive
    """
    kind = MovementKind(kind)
    if kind not in (MovementKind.CREDIT_NOTE, MovementKind.DEBIT_NOTE):
        raise ValidationFailedError(
            f"Not a note kind: {kind.value}",
            [ValidationIssue(field="kind", issue_type="invalid_value",
                             message=f"Expected a credit or debit note, got {kind.value}")],
        )
    amount = quantize_money(amount)
    if amount <= 0:
        raise ValidationFailedError(
            f"Note amount must be positive: {amount}",
            [ValidationIssue(field="amount", issue_type="invalid_value",
                             message=f"Amount {amount} is not positive")],
        )
    return AccountMovement(
        tenant_id=tenant_id,
        client=client,
        movement_date=movement_date,
        kind=kind,
        description=description,
        debit=amount if kind.is_debit else Decimal("0"),
        credit=Decimal("0") if kind.is_debit else amount,
        invoice_id=invoice_id,
    )
