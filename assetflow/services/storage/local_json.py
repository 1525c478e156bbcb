"""
Local JSON Storage Implementation

Keeps the ledger on the device as a single JSON document, the way a browser
app keeps it in local storage.

DESIGN DECISION: The whole snapshot is written to a temporary file next to
the target and then moved into place, so a crash mid-write never leaves a
half-written ledger behind.
"""

import json
import os
import tempfile
from pathlib import Path
from typing import Optional

from pydantic import ValidationError as PydanticValidationError

from assetflow.config import get_settings
from assetflow.models.ledger import LedgerSnapshot
from assetflow.services.storage.interface import (
    CorruptSnapshotError,
    LedgerStorageInterface,
    PersistenceError,
)


class LocalJsonLedgerStorage(LedgerStorageInterface):
    """
    File-backed snapshot storage.

    A missing file means the ledger has never been set up.
    """

    backend_name = "local"

    def __init__(self, path: Optional[Path] = None, indent: Optional[int] = None):
        if path is None or indent is None:
            settings = get_settings().local_storage
            path = path or settings.data_path
            indent = settings.indent if indent is None else indent
        self._path = Path(path)
        self._indent = indent

    @property
    def path(self) -> Path:
        return self._path

    async def load(self) -> Optional[LedgerSnapshot]:
        """Read the snapshot file, or None if it does not exist."""
        if not self._path.exists():
            return None
        try:
            raw = self._path.read_text(encoding="utf-8")
        except UnicodeDecodeError as e:
            raise CorruptSnapshotError(f"Ledger file {self._path} is not UTF-8 text: {e}")
        except OSError as e:
            raise PersistenceError(f"Failed to read ledger file {self._path}: {e}")

        try:
            data = json.loads(raw)
            # A snapshot without a currency was never set up
            if not data.get("currency"):
                return None
            return LedgerSnapshot.model_validate(data)
        except (json.JSONDecodeError, AttributeError, PydanticValidationError) as e:
            raise CorruptSnapshotError(f"Ledger file {self._path} is corrupted: {e}")

    async def save(self, snapshot: LedgerSnapshot) -> bool:
        """Atomically replace the snapshot file."""
        payload = json.dumps(snapshot.to_json_dict(), indent=self._indent or None)
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=self._path.parent,
                prefix=f".{self._path.name}.",
                suffix=".tmp",
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    handle.write(payload)
                os.replace(tmp_name, self._path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
            return True
        except OSError as e:
            raise PersistenceError(f"Failed to save ledger to {self._path}: {e}")

    async def clear(self) -> bool:
        try:
            if self._path.exists():
                self._path.unlink()
                return True
            return False
        except OSError as e:
            raise PersistenceError(f"Failed to remove ledger file {self._path}: {e}")
