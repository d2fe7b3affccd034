"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
Supabase (hosted Postgres) is the production backend; the in-memory store
backs the tests.
"""

from gestor.services.storage.interface import (
    AtomicWriteError,
    AuditStorageInterface,
    ClientStorageInterface,
    ConnectionError,
    DuplicateError,
    InvoiceStorageInterface,
    LedgerStorageInterface,
    NotFoundError,
    StorageError,
)
from gestor.services.storage.memory import InMemoryStore
from gestor.services.storage.supabase_store import (
    SupabaseAuditStorage,
    SupabaseClientStorage,
    SupabaseConnection,
    SupabaseInvoiceStorage,
    SupabaseLedgerStorage,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "ClientStorageInterface",
    "InvoiceStorageInterface",
    "LedgerStorageInterface",
    # Exceptions
    "AtomicWriteError",
    "ConnectionError",
    "DuplicateError",
    "NotFoundError",
    "StorageError",
    # Implementations
    "InMemoryStore",
    "SupabaseAuditStorage",
    "SupabaseClientStorage",
    "SupabaseConnection",
    "SupabaseInvoiceStorage",
    "SupabaseLedgerStorage",
]
