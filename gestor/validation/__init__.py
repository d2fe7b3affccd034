"""Input validation package."""

from gestor.validation.validator import (
    LedgerValidator,
    require_adjustment_period,
    validate_rate,
)

__all__ = [
    "LedgerValidator",
    "require_adjustment_period",
    "validate_rate",
]
