"""
Invoice Models

Lifecycle:
    emitida -> enviada -> cobrada
    emitida/enviada -> vencida -> cobrada

An invoice becomes "cobrada" (paid) exactly once. Totals are always
computed from the line items; the line items belong to the invoice and
are replaced wholesale on edit.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Iterable, Optional
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    computed_field,
    field_validator,
    model_validator,
)

from gestor.errors import InvoiceStateError
from gestor.models.common import ClientRef, quantize_money


class InvoiceStatus(str, Enum):
    ISSUED = "emitida"
    SENT = "enviada"
    PAID = "cobrada"
    EXPIRED = "vencida"


_ALLOWED_TRANSITIONS = {
    InvoiceStatus.ISSUED: {InvoiceStatus.SENT, InvoiceStatus.EXPIRED, InvoiceStatus.PAID},
    InvoiceStatus.SENT: {InvoiceStatus.EXPIRED, InvoiceStatus.PAID},
    InvoiceStatus.EXPIRED: {InvoiceStatus.PAID},
    InvoiceStatus.PAID: set(),
}

UNPAID_STATUSES = (InvoiceStatus.ISSUED, InvoiceStatus.SENT)


class InvoiceLineItem(BaseModel):
    """Quantity x unit price. Owned by exactly one invoice."""
    model_config = ConfigDict(str_strip_whitespace=True)

    description: str = Field(..., min_length=1, max_length=200)
    quantity: Decimal = Field(default=Decimal("1"), ge=0)
    unit_price: Decimal = Field(default=Decimal("0"), ge=0)

    @computed_field
    @property
    def total(self) -> Decimal:
        return quantize_money(self.quantity * self.unit_price)


def _item_description(item: Any) -> str:
    if isinstance(item, dict):
        return str(item.get("description") or "")
    return str(getattr(item, "description", "") or "")


class Invoice(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    tenant_id: str = Field(..., min_length=1)
    client: ClientRef
    invoice_number: str = Field(..., min_length=1, max_length=50)
    issue_date: date
    period: Optional[str] = Field(
        default=None,
        max_length=100,
        description="Billed period as free text, e.g. 'Enero 2024'"
    )
    items: list[InvoiceLineItem] = Field(default_factory=list)
    iva_percentage: Decimal = Field(default=Decimal("21"), ge=0)
    status: InvoiceStatus = InvoiceStatus.ISSUED
    payment_date: Optional[date] = None
    pdf_url: Optional[str] = None
    notes: Optional[str] = Field(default=None, max_length=1000)
    created_at: datetime = Field(default_factory=datetime.utcnow)

    @field_validator("items", mode="before")
    @classmethod
    def drop_blank_items(cls, v):
        """Rows left empty in the form are not line items."""
        if v is None:
            return []
        return [item for item in v if _item_description(item).strip()]

    @field_validator("period", mode="before")
    @classmethod
    def blank_period_is_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @model_validator(mode="after")
    def validate_payment(self) -> "Invoice":
        if self.payment_date and self.payment_date < self.issue_date:
            raise ValueError("Payment date cannot be before issue date")
        if self.status == InvoiceStatus.PAID and self.payment_date is None:
            raise ValueError("A paid invoice needs a payment date")
        return self

    @computed_field
    @property
    def subtotal(self) -> Decimal:
        return quantize_money(sum((item.total for item in self.items), Decimal("0")))

    @computed_field
    @property
    def iva(self) -> Decimal:
        return quantize_money(self.subtotal * self.iva_percentage / Decimal("100"))

    @computed_field
    @property
    def total(self) -> Decimal:
        return self.subtotal + self.iva

    @property
    def is_paid(self) -> bool:
        return self.status == InvoiceStatus.PAID

    def _replace(self, **changes: Any) -> "Invoice":
        # Re-validate so the date rules also hold for the new copy
        return type(self).model_validate({**self.model_dump(), **changes})

    def with_items(self, items: Iterable[Any]) -> "Invoice":
        """Copy of the invoice with its line items replaced wholesale."""
        return self._replace(items=list(items))

    def transition(self, status: InvoiceStatus) -> "Invoice":
        """Move to another non-paid status. Use mark_paid for payment."""
        status = InvoiceStatus(status)
        if status == InvoiceStatus.PAID:
            raise InvoiceStateError("Use mark_paid() to record a payment")
        if status not in _ALLOWED_TRANSITIONS[self.status]:
            raise InvoiceStateError(
                f"Invoice {self.invoice_number}: cannot go from "
                f"{self.status.value} to {status.value}"
            )
        return self._replace(status=status)

    def mark_paid(self, payment_date: date) -> "Invoice":
        """
        Paid copy of this invoice.

        Raises:
            InvoiceStateError: if the invoice was already paid
        """
        if self.status == InvoiceStatus.PAID:
            raise InvoiceStateError(
                f"Invoice {self.invoice_number} is already paid "
                f"(on {self.payment_date})"
            )
        return self._replace(status=InvoiceStatus.PAID, payment_date=payment_date)
