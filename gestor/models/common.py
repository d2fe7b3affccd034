"""
Shared model pieces: money rounding, client references, validation issues.
"""

from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any, Optional, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


MONEY_PLACES = 2


def quantize_money(value: Union[Decimal, int, float, str], places: int = MONEY_PLACES) -> Decimal:
    """Round a money amount half-up to the given number of decimal places."""
    amount = value if isinstance(value, Decimal) else Decimal(str(value))
    return amount.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)


# =============================================================================
# CLIENT REFERENCES
# =============================================================================

class ClientKind(str, Enum):
    """
    Which client table a record points at.

    Regular clients carry a subscription; occasional clients are one-off jobs.
    """
    REGULAR = "regular"
    OCCASIONAL = "occasional"


class ClientRef(BaseModel):
    """
    Reference to exactly one client, regular or occasional.

    Storage keeps these as two nullable columns (client_id,
    occasional_client_id) with exactly one of them set.
    """
    model_config = ConfigDict(frozen=True)

    kind: ClientKind
    id: UUID

    @classmethod
    def regular(cls, client_id: UUID) -> "ClientRef":
        return cls(kind=ClientKind.REGULAR, id=client_id)

    @classmethod
    def occasional(cls, client_id: UUID) -> "ClientRef":
        return cls(kind=ClientKind.OCCASIONAL, id=client_id)

    def to_columns(self) -> dict[str, Optional[str]]:
        if self.kind == ClientKind.REGULAR:
            return {"client_id": str(self.id), "occasional_client_id": None}
        return {"client_id": None, "occasional_client_id": str(self.id)}

    @classmethod
    def from_columns(cls, row: dict[str, Any]) -> "ClientRef":
        client_id = row.get("client_id")
        occasional_id = row.get("occasional_client_id")
        if bool(client_id) == bool(occasional_id):
            raise ValueError(
                "Exactly one of client_id / occasional_client_id must be set"
            )
        if client_id:
            return cls.regular(UUID(str(client_id)))
        return cls.occasional(UUID(str(occasional_id)))


# =============================================================================
# VALIDATION MODELS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'both_sides', 'negative_rate')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        default="error",
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )
    subject_id: Optional[str] = Field(
        default=None,
        description="Identifier of the record the issue belongs to"
    )


class ValidationResult(BaseModel):
    """Outcome of validating one batch of input."""

    subject: str = Field(
        ...,
        description="What was validated (e.g., 'movements', 'rate')"
    )
    issues: list[ValidationIssue] = Field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        """Check if there are any error-level issues."""
        return any(issue.severity == "error" for issue in self.issues)

    @property
    def error_count(self) -> int:
        """Count error-level issues."""
        return sum(1 for issue in self.issues if issue.severity == "error")

    @property
    def errors(self) -> list[ValidationIssue]:
        return [issue for issue in self.issues if issue.severity == "error"]
