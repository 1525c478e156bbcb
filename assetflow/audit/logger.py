"""
Audit Logger

DESIGN DECISION: Every ledger mutation is logged.
This provides:
1. Traceability of every balance change
2. Debugging capability when a save fails
3. A history the user can inspect

The audit logger:
- Is async to match the storage backends
- Gracefully handles failures (a failed audit write never blocks a ledger change)
"""

from typing import Optional

import structlog

from assetflow.models.audit import AuditEvent, AuditEventBuilder, AuditEventType, AuditSeverity
from assetflow.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. An audit storage backend, when one is configured
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger(__name__)

    @property
    def storage(self) -> Optional[AuditStorageInterface]:
        return self._storage

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_setup_completed(self, currency: str) -> None:
        await self.log(AuditEventBuilder.setup_completed(currency))

    async def log_currency_changed(self, currency: str) -> None:
        await self.log(AuditEventBuilder.currency_changed(currency))

    async def log_ledger_reset(self) -> None:
        await self.log(AuditEventBuilder.ledger_reset())

    async def log_account_created(self, account_id: str, name: str, balance: str) -> None:
        """Log account creation with its opening balance."""
        await self.log(AuditEventBuilder.account_created(account_id, name, balance))

    async def log_account_renamed(self, account_id: str, old_name: str, new_name: str) -> None:
        await self.log(AuditEventBuilder.account_renamed(account_id, old_name, new_name))

    async def log_account_deleted(self, account_id: str, orphaned_count: int) -> None:
        """Log account deletion and how many transactions it orphaned."""
        await self.log(AuditEventBuilder.account_deleted(account_id, orphaned_count))

    async def log_transaction_recorded(
        self,
        transaction_id: str,
        transaction_type: str,
        amount: str,
        account_name: str,
    ) -> None:
        """Log an income or expenditure."""
        await self.log(
            AuditEventBuilder.transaction_recorded(
                transaction_id=transaction_id,
                transaction_type=transaction_type,
                amount=amount,
                account_name=account_name,
            )
        )

    async def log_transfer_recorded(
        self,
        transaction_id: str,
        amount: str,
        from_name: str,
        to_name: str,
    ) -> None:
        """Log a transfer between two accounts."""
        await self.log(
            AuditEventBuilder.transfer_recorded(
                transaction_id=transaction_id,
                amount=amount,
                from_name=from_name,
                to_name=to_name,
            )
        )

    async def log_transaction_edited(
        self,
        transaction_id: str,
        old_amount: str,
        new_amount: str,
    ) -> None:
        await self.log(
            AuditEventBuilder.transaction_edited(transaction_id, old_amount, new_amount)
        )

    async def log_transaction_deleted(self, transaction_id: str) -> None:
        await self.log(AuditEventBuilder.transaction_deleted(transaction_id))

    async def log_category_added(self, category_id: str, name: str) -> None:
        await self.log(
            AuditEventBuilder.category_changed(AuditEventType.CATEGORY_ADDED, category_id, name)
        )

    async def log_category_updated(self, category_id: str, name: str) -> None:
        await self.log(
            AuditEventBuilder.category_changed(AuditEventType.CATEGORY_UPDATED, category_id, name)
        )

    async def log_category_deleted(self, category_id: str, name: str) -> None:
        await self.log(
            AuditEventBuilder.category_changed(AuditEventType.CATEGORY_DELETED, category_id, name)
        )

    async def log_snapshot_loaded(self, backend: str, accounts: int, transactions: int) -> None:
        await self.log(AuditEventBuilder.snapshot_loaded(backend, accounts, transactions))

    async def log_load_failed(self, backend: str, error_message: str) -> None:
        await self.log(AuditEventBuilder.load_failed(backend, error_message))

    async def log_save_failed(self, backend: str, error_message: str) -> None:
        """Log a snapshot that could not be persisted."""
        await self.log(AuditEventBuilder.save_failed(backend, error_message))

    async def log_insights_generated(self, transaction_count: int) -> None:
        await self.log(AuditEventBuilder.insights_generated(transaction_count))

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
    ) -> None:
        """Log an error."""
        event = AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
        )
        await self.log(event)

    async def log_external_service_error(
        self,
        service: str,
        error_message: str,
    ) -> None:
        """Log external service error."""
        event = AuditEventBuilder.external_service_error(
            service=service,
            error_message=error_message,
        )
        await self.log(event)
