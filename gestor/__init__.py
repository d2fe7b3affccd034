"""
Gestor de Abonos - Core Package

Pricing and ledger core for a multi-tenant small-business manager
(clients, recurring subscriptions, invoices, account statements).

DESIGN PRINCIPLES:
1. Balances are always recomputed, never trusted from storage
2. Price changes and their audit record are written together or not at all
3. No silent corrections - invalid input is reported, not fixed
4. Every operation is scoped by an explicit tenant id
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Gestor de Abonos Team"
