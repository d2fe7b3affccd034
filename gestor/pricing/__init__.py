"""Subscription price escalation (IPC indexing)."""

from gestor.dates import AdjustmentPeriod, advance
from gestor.pricing.escalation import (
    DEFAULT_MONTHLY_IPC_RATES,
    AdjustmentResult,
    apply_adjustment,
    clients_due,
    compute_adjustment,
    due_for_adjustment,
    suggested_rate,
)

__all__ = [
    "DEFAULT_MONTHLY_IPC_RATES",
    "AdjustmentPeriod",
    "AdjustmentResult",
    "advance",
    "apply_adjustment",
    "clients_due",
    "compute_adjustment",
    "due_for_adjustment",
    "suggested_rate",
]
