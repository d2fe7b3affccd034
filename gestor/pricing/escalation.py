"""
Subscription Price Escalation Engine

Decides which subscriptions are due for an inflation (IPC) adjustment and
computes the adjusted price.

All functions here are pure: they never touch storage, never read settings
and never mutate their inputs. Persisting an AdjustmentResult is the job
of the storage layer, which must write the client and the record together
(see ClientStorageInterface.persist_adjustment).
"""

from datetime import date
from decimal import Decimal
from typing import Iterable, Optional, Sequence, Union

from pydantic import BaseModel

from gestor.dates import parse_date
from gestor.errors import ValidationFailedError
from gestor.models.client import Client, PriceAdjustmentRecord
from gestor.models.common import MONEY_PLACES, ValidationIssue, quantize_money
from gestor.validation import require_adjustment_period, validate_rate


# Suggested rate by calendar month (index 0 = January). The operator may
# override it with any non-negative value before applying.
DEFAULT_MONTHLY_IPC_RATES: tuple[Decimal, ...] = tuple(
    Decimal(rate) for rate in
    ("25", "20", "13", "8.8", "4.2", "4.6", "4.0", "4.2", "3.5", "2.7", "2.4", "2.7")
)

Number = Union[Decimal, int, float, str]


class AdjustmentResult(BaseModel):
    """Updated client plus the audit record that must be stored with it."""
    client: Client
    record: PriceAdjustmentRecord


def suggested_rate(
    month: Union[int, date],
    table: Optional[Sequence[Decimal]] = None,
) -> Decimal:
    """
    Suggested IPC % for a calendar month (1-12, or any date in that month).
    """
    table = DEFAULT_MONTHLY_IPC_RATES if table is None else table
    if len(table) != 12:
        raise ValueError(f"Monthly rate table needs 12 entries, got {len(table)}")
    month_number = month.month if isinstance(month, date) else int(month)
    if not 1 <= month_number <= 12:
        raise ValueError(f"Month out of range: {month_number}")
    return Decimal(table[month_number - 1])


def due_for_adjustment(client: Client, as_of: Union[date, str]) -> bool:
    """
    True iff the client's next adjustment date is set and not after as_of.

    Clients without an adjustment period, or inactive ones, are never due.
    """
    if not client.is_active:
        return False
    next_date = client.next_adjustment_date
    return next_date is not None and next_date <= parse_date(as_of)


def clients_due(clients: Iterable[Client], as_of: Union[date, str]) -> list[Client]:
    """Clients due for adjustment, in input order."""
    as_of = parse_date(as_of)
    return [client for client in clients if due_for_adjustment(client, as_of)]


def compute_adjustment(
    current_value: Number,
    rate_percent: Number,
    places: int = MONEY_PLACES,
) -> Decimal:
    """
    New subscription value: current * (1 + rate / 100), rounded half-up.

    >>> compute_adjustment(100, 25)
    Decimal('125.00')

    Raises:
        InvalidRateError: negative or non-numeric rate
        ValidationFailedError: negative current value
    """
    rate = validate_rate(rate_percent)
    value = current_value if isinstance(current_value, Decimal) else Decimal(str(current_value))
    if value < 0:
        raise ValidationFailedError(
            f"Subscription value cannot be negative: {value}",
            [ValidationIssue(
                field="current_value",
                issue_type="invalid_value",
                message=f"Value {value} is negative",
            )],
        )
    return quantize_money(value * (Decimal("1") + rate / Decimal("100")), places)


def default_adjustment_note(client: Client) -> str:
    return f"Ajuste automático por IPC {client.adjustment_period.value}"


def apply_adjustment(
    client: Client,
    rate_percent: Number,
    effective_date: Union[date, str],
    notes: Optional[str] = None,
    places: int = MONEY_PLACES,
) -> AdjustmentResult:
    """
    Apply an IPC adjustment to a client.

    Returns an updated copy of the client (new value, last adjustment date
    set to effective_date, next date recomputed from its period) and the
    immutable record of the change. The input client is left untouched.

    Raises:
        MissingAdjustmentPeriodError: client has no adjustment period
        InvalidRateError: negative or non-numeric rate
    """
    require_adjustment_period(client)
    rate = validate_rate(rate_percent)
    effective = parse_date(effective_date)

    old_value = client.subscription_value
    new_value = compute_adjustment(old_value, rate, places)

    updated = client.model_copy(
        update={
            "subscription_value": new_value,
            "last_adjustment_date": effective,
        }
    )

    record = PriceAdjustmentRecord(
        tenant_id=client.tenant_id,
        client_id=client.id,
        adjustment_date=effective,
        old_value=old_value,
        new_value=new_value,
        ipc_percentage=rate,
        notes=notes or default_adjustment_note(client),
    )
    return AdjustmentResult(client=updated, record=record)
