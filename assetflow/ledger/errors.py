"""Exceptions raised by the ledger engine before any state is touched."""


class LedgerError(Exception):
    """Base exception for ledger operations."""
    pass


class ValidationError(LedgerError):
    """Input has the wrong shape or range."""
    pass


class NotFoundError(LedgerError):
    """Referenced account, transaction or category does not exist."""
    pass


class ImmutableRecordError(LedgerError):
    """Attempted to edit or delete a record that cannot change."""

    def __init__(self, record_id: str, message: str):
        self.record_id = record_id
        super().__init__(message)
