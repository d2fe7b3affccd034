"""
Dashboard Summary Query

DESIGN DECISION: Dashboard figures are DETERMINISTIC reads of stored data.
Nothing is cached or estimated; every call recomputes from storage.

Pending services are not counted; services and tasks are not stored here.
"""

from datetime import date
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from gestor.models.client import ClientStatus
from gestor.models.invoice import UNPAID_STATUSES
from gestor.models.common import quantize_money
from gestor.pricing import clients_due
from gestor.services.storage import ClientStorageInterface, InvoiceStorageInterface


class DashboardSummary(BaseModel):
    """Headline figures for one tenant."""
    tenant_id: str
    as_of: date
    active_clients: int = Field(default=0, ge=0)
    occasional_clients: int = Field(default=0, ge=0)
    unpaid_invoices: int = Field(default=0, ge=0)
    monthly_revenue: Decimal = Decimal("0")
    clients_needing_adjustment: int = Field(default=0, ge=0)


class DashboardQuery:
    """
    Builds the DashboardSummary from client and invoice storage.

    GUARANTEES:
    - Only counts rows of the given tenant
    - Uses the same due rule as the price adjustment flow
    """

    def __init__(
        self,
        client_storage: ClientStorageInterface,
        invoice_storage: InvoiceStorageInterface,
    ):
        self._client_storage = client_storage
        self._invoice_storage = invoice_storage

    async def summary(self, tenant_id: str, as_of: Optional[date] = None) -> DashboardSummary:
        as_of = as_of or date.today()

        active = await self._client_storage.list_clients(tenant_id, status=ClientStatus.ACTIVE)
        occasional = await self._client_storage.list_occasional_clients(tenant_id)
        invoices = await self._invoice_storage.list_invoices(tenant_id)

        unpaid = [invoice for invoice in invoices if invoice.status in UNPAID_STATUSES]
        # Revenue = everything invoiced in the as_of calendar month
        revenue = sum(
            (
                invoice.total for invoice in invoices
                if (invoice.issue_date.year, invoice.issue_date.month) == (as_of.year, as_of.month)
            ),
            Decimal("0"),
        )

        return DashboardSummary(
            tenant_id=tenant_id,
            as_of=as_of,
            active_clients=len(active),
            occasional_clients=len(occasional),
            unpaid_invoices=len(unpaid),
            monthly_revenue=quantize_money(revenue),
            clients_needing_adjustment=len(clients_due(active, as_of)),
        )
