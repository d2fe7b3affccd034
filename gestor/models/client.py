"""
Client Models

Regular clients pay a recurring subscription that is periodically indexed
by inflation (IPC). Occasional clients are engaged for one-off jobs and
never carry a subscription.

DESIGN DECISION: next_adjustment_date is a computed field. It is derived
from last_adjustment_date and adjustment_period on every read, so it can
never disagree with its inputs. Values coming back from storage under that
name are ignored.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Iterable, Optional
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    computed_field,
    field_validator,
)

from gestor.dates import AdjustmentPeriod, next_adjustment_date
from gestor.models.common import ClientRef


class ClientStatus(str, Enum):
    """Only active clients are considered for price adjustments."""
    ACTIVE = "activo"
    INACTIVE = "inactivo"


def next_client_number(existing: Iterable[Optional[str]]) -> str:
    """
    Next sequential client number for a tenant, zero-padded to 4 digits.

    >>> next_client_number(["0001", "0007"])
    '0008'
    >>> next_client_number([])
    '0001'
    """
    numbers = [int(n) for n in existing if n and n.isdigit()]
    return f"{(max(numbers) + 1) if numbers else 1:04d}"


class Client(BaseModel):
    """
    A subscription-bearing client.

    CRITICAL: subscription_value is only changed through
    gestor.pricing.apply_adjustment, which also produces the
    matching PriceAdjustmentRecord.
    """
    model_config = ConfigDict(str_strip_whitespace=True, validate_assignment=True)

    # Identity
    id: UUID = Field(default_factory=uuid4)
    tenant_id: str = Field(..., min_length=1)
    client_number: Optional[str] = Field(
        default=None,
        pattern=r"^\d{4,}$",
        description="Sequential per-tenant number, assigned on first save"
    )

    # Contact data
    name: str = Field(..., min_length=1, max_length=200)
    cuit: Optional[str] = Field(default=None, max_length=20)
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    status: ClientStatus = ClientStatus.ACTIVE
    notes: Optional[str] = Field(default=None, max_length=1000)

    # Subscription
    subscription_type: Optional[str] = None
    subscription_value: Decimal = Field(default=Decimal("0"), ge=0)
    included_hours: Decimal = Field(default=Decimal("0"), ge=0)
    consumed_hours: Decimal = Field(default=Decimal("0"), ge=0)

    # Inflation indexing
    adjustment_period: Optional[AdjustmentPeriod] = None
    last_adjustment_date: Optional[date] = None

    created_at: datetime = Field(default_factory=datetime.utcnow)

    @field_validator("adjustment_period", mode="before")
    @classmethod
    def parse_period(cls, v):
        """Accept English aliases and treat blank as 'not configured'."""
        if v is None or (isinstance(v, str) and not v.strip()):
            return None
        return AdjustmentPeriod.parse(v)

    @computed_field
    @property
    def next_adjustment_date(self) -> Optional[date]:
        return next_adjustment_date(self.last_adjustment_date, self.adjustment_period)

    @property
    def ref(self) -> ClientRef:
        return ClientRef.regular(self.id)

    @property
    def overage_hours(self) -> Decimal:
        """Hours consumed beyond the included quota (never negative)."""
        return max(self.consumed_hours - self.included_hours, Decimal("0"))

    @property
    def is_active(self) -> bool:
        return self.status == ClientStatus.ACTIVE


class OccasionalClient(BaseModel):
    """A client engaged for a single job."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    tenant_id: str = Field(..., min_length=1)
    client_number: Optional[str] = Field(default=None, pattern=r"^\d{4,}$")
    name: str = Field(..., min_length=1, max_length=200)
    cuit: Optional[str] = Field(default=None, max_length=20)
    email: Optional[str] = None
    phone: Optional[str] = None
    notes: Optional[str] = Field(default=None, max_length=1000)
    created_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def ref(self) -> ClientRef:
        return ClientRef.occasional(self.id)


class PriceAdjustmentRecord(BaseModel):
    """
    Historical entry for one subscription price change.

    Frozen: records are append-only and never edited or deleted.
    """
    model_config = ConfigDict(frozen=True)

    id: UUID = Field(default_factory=uuid4)
    tenant_id: str = Field(..., min_length=1)
    client_id: UUID
    adjustment_date: date
    old_value: Decimal = Field(..., ge=0)
    new_value: Decimal = Field(..., ge=0)
    ipc_percentage: Decimal = Field(..., ge=0)
    notes: Optional[str] = Field(default=None, max_length=500)
    created_at: datetime = Field(default_factory=datetime.utcnow)
