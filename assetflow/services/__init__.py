"""Services package."""

from assetflow.services.storage import (
    AuditStorageInterface,
    CorruptSnapshotError,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerStorage,
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
    LedgerStorageInterface,
    LocalJsonLedgerStorage,
    PersistenceError,
    StorageConnectionError,
)

__all__ = [
    "AuditStorageInterface",
    "CorruptSnapshotError",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsLedgerStorage",
    "InMemoryAuditStorage",
    "InMemoryLedgerStorage",
    "LedgerStorageInterface",
    "LocalJsonLedgerStorage",
    "PersistenceError",
    "StorageConnectionError",
]
