"""
Account Ledger Balance Calculator

Produces a client's running balance from its full movement history.

GUARANTEES:
- Stored balance values are ignored; every balance is recomputed
- Malformed movements are rejected, never netted or coerced
- Same input, same output: no hidden state between calls
"""

from decimal import Decimal
from typing import Iterable

from gestor.models.ledger import AccountMovement, LedgerStatement
from gestor.validation import LedgerValidator


_validator = LedgerValidator()


def chronological(movements: Iterable[AccountMovement]) -> list[AccountMovement]:
    """
    Movements sorted by (movement_date, sequence).

    sorted() is stable, so movements that also share a sequence keep the
    order they were given in.
    """
    return sorted(movements, key=lambda m: (m.movement_date, m.sequence))


def compute_balances(movements: Iterable[AccountMovement]) -> LedgerStatement:
    """
    Annotate each movement with the running balance after it.

    Args:
        movements: full history for one client, in any order

    Returns:
        LedgerStatement with annotated copies of the movements (oldest
        first) and current_balance = balance after the last one (0 when
        there are none)

    Raises:
        MalformedMovementError: a movement has both or neither of
            debit/credit, posts to the wrong side for its kind, or the
            movements span several clients
    """
    movements = list(movements)
    _validator.ensure_valid(movements)

    running = Decimal("0")
    total_debit = Decimal("0")
    total_credit = Decimal("0")
    annotated = []

    for movement in chronological(movements):
        running += movement.net
        total_debit += movement.debit
        total_credit += movement.credit
        annotated.append(movement.model_copy(update={"balance": running}))

    return LedgerStatement(
        client=annotated[0].client if annotated else None,
        movements=annotated,
        current_balance=running,
        total_debit=total_debit,
        total_credit=total_credit,
    )
