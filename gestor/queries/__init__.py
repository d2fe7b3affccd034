"""Read-only queries over stored data."""

from gestor.queries.summary import DashboardQuery, DashboardSummary

__all__ = ["DashboardQuery", "DashboardSummary"]
