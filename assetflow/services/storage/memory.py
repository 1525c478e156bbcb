"""In-memory storage, used by tests and when no backend is configured."""

from typing import Optional

from assetflow.models.audit import AuditEvent
from assetflow.models.ledger import LedgerSnapshot
from assetflow.services.storage.interface import (
    AuditStorageInterface,
    LedgerStorageInterface,
)


class InMemoryLedgerStorage(LedgerStorageInterface):
    """
    Keeps the last saved snapshot as serialized JSON.

    Storing the JSON form (not the objects) means a load goes through the
    same parsing as the real backends.
    """

    backend_name = "memory"

    def __init__(self, snapshot: Optional[LedgerSnapshot] = None):
        self._data: Optional[dict] = snapshot.to_json_dict() if snapshot else None
        self.save_count = 0

    async def load(self) -> Optional[LedgerSnapshot]:
        if self._data is None:
            return None
        return LedgerSnapshot.model_validate(self._data)

    async def save(self, snapshot: LedgerSnapshot) -> bool:
        self._data = snapshot.to_json_dict()
        self.save_count += 1
        return True

    async def clear(self) -> bool:
        had_data = self._data is not None
        self._data = None
        return had_data

    @property
    def raw(self) -> Optional[dict]:
        """The stored JSON document, for inspection in tests."""
        return self._data


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only list of audit events."""

    def __init__(self):
        self.events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self.events.append(event)
        return True

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        return sorted(self.events, key=lambda e: e.timestamp, reverse=True)[:limit]
