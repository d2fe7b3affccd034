"""
Typed failures raised by the pricing and ledger core.

Input problems are reported to the caller, never fixed silently.
Storage failures have their own hierarchy in
gestor.services.storage.interface and are passed through unchanged.
"""

from typing import TYPE_CHECKING, Iterable, Optional

if TYPE_CHECKING:
    from gestor.models.common import ValidationIssue


class GestorError(Exception):
    """Base exception for core operations."""
    pass


class ValidationFailedError(GestorError, ValueError):
    """Input rejected by validation. Carries the issues that were found."""

    def __init__(
        self,
        message: str,
        issues: Optional[Iterable["ValidationIssue"]] = None,
    ):
        super().__init__(message)
        self.issues: list["ValidationIssue"] = list(issues or [])


class InvalidRateError(ValidationFailedError):
    """Adjustment percentage is negative or not a finite number."""
    pass


class MalformedMovementError(ValidationFailedError):
    """Account movement does not carry exactly one of debit/credit."""
    pass


class MissingAdjustmentPeriodError(ValidationFailedError):
    """Client has no adjustment period configured."""
    pass


class InvoiceStateError(GestorError):
    """Invoice lifecycle transition not allowed."""
    pass
