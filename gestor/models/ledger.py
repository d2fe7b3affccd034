"""
Account Ledger Models

A client's account is an append-only log of movements. Debits increase
what the client owes, credits decrease it.

CRITICAL: AccountMovement.balance is advisory. It may be cached by
storage but the authoritative running balance is always recomputed from
the full ordered history (see gestor.ledger.compute_balances).
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field

from gestor.models.common import ClientRef


class MovementKind(str, Enum):
    """Movement kinds and the side of the ledger they post to."""
    INVOICE = "factura"          # invoice issued -> debit
    PAYMENT = "pago"             # payment received -> credit
    CREDIT_NOTE = "nota_credito"  # credit
    DEBIT_NOTE = "nota_debito"    # debit

    @property
    def is_debit(self) -> bool:
        return self in (MovementKind.INVOICE, MovementKind.DEBIT_NOTE)


class AccountMovement(BaseModel):
    """
    One entry in a client's account.

    By convention exactly one of debit/credit is nonzero. The model only
    enforces non-negative amounts; the ledger validator rejects the rest
    so the caller gets every problem reported at once.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    tenant_id: str = Field(..., min_length=1)
    client: ClientRef
    movement_date: date
    kind: Optional[MovementKind] = None
    description: str = Field(default="", max_length=500)
    debit: Decimal = Field(default=Decimal("0"), ge=0)
    credit: Decimal = Field(default=Decimal("0"), ge=0)
    balance: Decimal = Field(
        default=Decimal("0"),
        description="Advisory running balance; never read back as truth"
    )
    invoice_id: Optional[UUID] = None
    sequence: int = Field(
        default=0,
        ge=0,
        description="Insertion order, breaks ties between same-day movements"
    )
    created_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def net(self) -> Decimal:
        """Effect on the balance: positive when the client owes more."""
        return self.debit - self.credit


class LedgerStatement(BaseModel):
    """
    A client's movements in chronological order with running balances.

    Positive balance = client owes the business.
    Negative balance = business owes the client (overpayment / credit).
    """
    client: Optional[ClientRef] = None
    movements: list[AccountMovement] = Field(default_factory=list)
    current_balance: Decimal = Decimal("0")
    total_debit: Decimal = Decimal("0")
    total_credit: Decimal = Decimal("0")

    @property
    def balances(self) -> list[Decimal]:
        return [movement.balance for movement in self.movements]

    def newest_first(self) -> list[AccountMovement]:
        """Movements in the order statements are usually displayed."""
        return list(reversed(self.movements))
