"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Keep the ledger on the device (JSON file) or in a hosted store (Sheets)
2. Use in-memory storage for testing
3. Keep the ledger engine decoupled from where snapshots live

The interface is intentionally simple. The in-memory ledger is the source of
truth; storage only mirrors whole snapshots, written after each mutation and
read once at startup.
"""

from abc import ABC, abstractmethod
from typing import Optional

from assetflow.models.audit import AuditEvent
from assetflow.models.ledger import LedgerSnapshot


class LedgerStorageInterface(ABC):
    """
    Abstract interface for ledger snapshot storage.

    Any storage implementation (local file, Google Sheets, etc.)
    must implement these methods.
    """

    #: Short name used in logs and audit events
    backend_name: str = "unknown"

    @abstractmethod
    async def load(self) -> Optional[LedgerSnapshot]:
        """
        Load the last saved snapshot.

        Returns:
            The snapshot, or None if nothing has been saved yet
            (the ledger then needs currency setup)

        Raises:
            PersistenceError: If the store cannot be read or holds bad data
        """
        pass

    @abstractmethod
    async def save(self, snapshot: LedgerSnapshot) -> bool:
        """
        Replace the stored snapshot.

        Args:
            snapshot: Complete ledger state to persist

        Returns:
            True if saved successfully

        Raises:
            PersistenceError: If save fails
        """
        pass

    @abstractmethod
    async def clear(self) -> bool:
        """
        Remove everything this backend stored.

        Returns:
            True if anything was removed
        """
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Args:
            event: The audit event to log

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events.

        Args:
            limit: Maximum number of events to return

        Returns:
            List of recent events (newest first)
        """
        pass


class PersistenceError(Exception):
    """Base exception for storage operations."""
    pass


class StorageConnectionError(PersistenceError):
    """Could not connect to storage backend."""
    pass


class CorruptSnapshotError(PersistenceError):
    """Stored data exists but cannot be turned back into a snapshot."""
    pass
