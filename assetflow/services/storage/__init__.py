"""
Storage Services Package

Provides abstract interfaces and concrete implementations for ledger storage.
Snapshots can live in a local JSON file, in Google Sheets, or in memory.
"""

from assetflow.services.storage.interface import (
    AuditStorageInterface,
    CorruptSnapshotError,
    LedgerStorageInterface,
    PersistenceError,
    StorageConnectionError,
)
from assetflow.services.storage.local_json import LocalJsonLedgerStorage
from assetflow.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
)
from assetflow.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerStorage,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "LedgerStorageInterface",
    # Exceptions
    "CorruptSnapshotError",
    "PersistenceError",
    "StorageConnectionError",
    # Local / in-memory implementations
    "InMemoryAuditStorage",
    "InMemoryLedgerStorage",
    "LocalJsonLedgerStorage",
    # Google Sheets implementation
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsLedgerStorage",
]
