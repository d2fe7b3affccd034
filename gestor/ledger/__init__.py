"""Account ledger: running balances and postings."""

from gestor.ledger.balances import chronological, compute_balances
from gestor.ledger.entries import (
    invoice_description,
    invoice_movement_id,
    payment_movement_id,
    record_invoice,
    record_note,
    record_payment,
)

__all__ = [
    "chronological",
    "compute_balances",
    "invoice_description",
    "invoice_movement_id",
    "payment_movement_id",
    "record_invoice",
    "record_note",
    "record_payment",
]
