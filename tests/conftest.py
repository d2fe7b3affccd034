"""Shared test fixtures for the pricing and ledger core."""

from datetime import date
from decimal import Decimal
from typing import Optional
from uuid import UUID, uuid4

import pytest

from gestor.models import (
    AccountMovement,
    Client,
    ClientRef,
    MovementKind,
)
from gestor.services.storage import InMemoryStore


TENANT = "tenant-a"
OTHER_TENANT = "tenant-b"


@pytest.fixture
def tenant_id() -> str:
    return TENANT


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def make_client():
    """Factory for subscription clients with sensible defaults."""

    def _make(
        subscription_value="1000",
        adjustment_period: Optional[str] = "trimestral",
        last_adjustment_date: Optional[date] = date(2024, 1, 15),
        tenant_id: str = TENANT,
        **kwargs,
    ) -> Client:
        return Client(
            tenant_id=tenant_id,
            name=kwargs.pop("name", "Estudio Pérez"),
            subscription_value=Decimal(str(subscription_value)),
            adjustment_period=adjustment_period,
            last_adjustment_date=last_adjustment_date,
            **kwargs,
        )

    return _make


@pytest.fixture
def client_ref() -> ClientRef:
    return ClientRef.regular(uuid4())


@pytest.fixture
def make_movement(client_ref):
    """Factory for movements of one client: make_movement(date, debit, credit)."""

    def _make(
        movement_date,
        debit="0",
        credit="0",
        kind: Optional[MovementKind] = None,
        sequence: int = 0,
        client: Optional[ClientRef] = None,
        tenant_id: str = TENANT,
        movement_id: Optional[UUID] = None,
    ) -> AccountMovement:
        return AccountMovement(
            id=movement_id or uuid4(),
            tenant_id=tenant_id,
            client=client or client_ref,
            movement_date=movement_date,
            kind=kind,
            debit=Decimal(str(debit)),
            credit=Decimal(str(credit)),
            sequence=sequence,
        )

    return _make
