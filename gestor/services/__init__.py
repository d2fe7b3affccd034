"""Services package."""

from gestor.services.storage import (
    AtomicWriteError,
    AuditStorageInterface,
    ClientStorageInterface,
    ConnectionError,
    DuplicateError,
    InMemoryStore,
    InvoiceStorageInterface,
    LedgerStorageInterface,
    NotFoundError,
    StorageError,
    SupabaseAuditStorage,
    SupabaseClientStorage,
    SupabaseConnection,
    SupabaseInvoiceStorage,
    SupabaseLedgerStorage,
)

__all__ = [
    "AtomicWriteError",
    "AuditStorageInterface",
    "ClientStorageInterface",
    "ConnectionError",
    "DuplicateError",
    "InMemoryStore",
    "InvoiceStorageInterface",
    "LedgerStorageInterface",
    "NotFoundError",
    "StorageError",
    "SupabaseAuditStorage",
    "SupabaseClientStorage",
    "SupabaseConnection",
    "SupabaseInvoiceStorage",
    "SupabaseLedgerStorage",
]
