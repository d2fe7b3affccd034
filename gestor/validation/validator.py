"""
Input Validation for the Pricing and Ledger Core

DESIGN DECISION: Validation is separate from the computations it guards.

RATE VALIDATION:
- Must be a finite number
- Must not be negative (zero is allowed and leaves the price unchanged)

MOVEMENT VALIDATION:
- Exactly one of debit / credit carries the amount
- When the kind is known, the amount is on the kind's side
- All movements of a statement belong to the same client and tenant

IMPORTANT: Validation NEVER silently fixes issues.
Every problem found is reported so the caller can show all of them at once.
"""

from decimal import Decimal, InvalidOperation
from typing import Iterable, Union

from gestor.errors import (
    InvalidRateError,
    MalformedMovementError,
    MissingAdjustmentPeriodError,
)
from gestor.models.client import Client
from gestor.models.common import ValidationIssue, ValidationResult
from gestor.models.ledger import AccountMovement


def validate_rate(rate_percent: Union[Decimal, int, float, str]) -> Decimal:
    """
    Check an adjustment percentage and return it as a Decimal.

    Raises:
        InvalidRateError: negative, NaN, infinite or not a number
    """
    try:
        rate = rate_percent if isinstance(rate_percent, Decimal) else Decimal(str(rate_percent))
    except (InvalidOperation, ValueError):
        raise InvalidRateError(
            f"Adjustment rate is not a number: {rate_percent!r}",
            [ValidationIssue(
                field="rate_percent",
                issue_type="invalid_format",
                message=f"Not a number: {rate_percent!r}",
            )],
        ) from None

    if not rate.is_finite():
        raise InvalidRateError(
            f"Adjustment rate must be finite: {rate_percent!r}",
            [ValidationIssue(
                field="rate_percent",
                issue_type="invalid_value",
                message="Rate must be a finite number",
            )],
        )

    if rate < 0:
        raise InvalidRateError(
            f"Adjustment rate cannot be negative: {rate}",
            [ValidationIssue(
                field="rate_percent",
                issue_type="negative_rate",
                message=f"Rate {rate}% is negative",
            )],
        )

    return rate


def require_adjustment_period(client: Client) -> None:
    """Raises MissingAdjustmentPeriodError when the client is not indexed."""
    if client.adjustment_period is None:
        raise MissingAdjustmentPeriodError(
            f"Client {client.name} has no adjustment period configured",
            [ValidationIssue(
                field="adjustment_period",
                issue_type="missing",
                message="No adjustment period configured",
                subject_id=str(client.id),
            )],
        )


class LedgerValidator:
    """
    Validates account movements before balances are computed.

    Usage:
        validator = LedgerValidator()
        validator.ensure_valid(movements)   # raises MalformedMovementError
    """

    def check_movement(self, movement: AccountMovement) -> list[ValidationIssue]:
        """Issues for a single movement (empty list when it is well formed)."""
        issues = []
        subject = str(movement.id)

        has_debit = movement.debit != 0
        has_credit = movement.credit != 0

        if has_debit and has_credit:
            issues.append(ValidationIssue(
                field="debit/credit",
                issue_type="both_sides",
                message=(
                    f"Movement carries both debit ({movement.debit}) "
                    f"and credit ({movement.credit})"
                ),
                subject_id=subject,
            ))
        elif not has_debit and not has_credit:
            issues.append(ValidationIssue(
                field="debit/credit",
                issue_type="no_amount",
                message="Movement has neither debit nor credit",
                subject_id=subject,
            ))
        elif movement.kind is not None and movement.kind.is_debit != has_debit:
            expected = "debit" if movement.kind.is_debit else "credit"
            issues.append(ValidationIssue(
                field="kind",
                issue_type="wrong_side",
                message=f"A '{movement.kind.value}' movement must be a {expected}",
                subject_id=subject,
            ))

        return issues

    def validate(self, movements: Iterable[AccountMovement]) -> ValidationResult:
        """Check every movement and that they all belong to one client."""
        movements = list(movements)
        issues = []

        for movement in movements:
            issues.extend(self.check_movement(movement))

        clients = {movement.client for movement in movements}
        if len(clients) > 1:
            issues.append(ValidationIssue(
                field="client",
                issue_type="mixed_clients",
                message=f"Movements belong to {len(clients)} different clients",
            ))

        tenants = {movement.tenant_id for movement in movements}
        if len(tenants) > 1:
            issues.append(ValidationIssue(
                field="tenant_id",
                issue_type="mixed_tenants",
                message=f"Movements belong to {len(tenants)} different tenants",
            ))

        return ValidationResult(subject="movements", issues=issues)

    def ensure_valid(self, movements: Iterable[AccountMovement]) -> None:
        """
        Raises:
            MalformedMovementError: listing every error-level issue found
        """
        result = self.validate(movements)
        if result.has_errors:
            raise MalformedMovementError(
                self.summarize(result),
                result.errors,
            )

    @staticmethod
    def summarize(result: ValidationResult) -> str:
        """One-line description of the errors, used as the exception message."""
        if not result.has_errors:
            return "All movements are well formed"
        messages = "; ".join(issue.message for issue in result.errors)
        return f"{result.error_count} malformed movement issue(s): {messages}"
