"""
Main Orchestrator for AssetFlow

This module ties together all the components and defines the
end-to-end flows for:
1. Ledger session (load → mutate → audit → save)
2. Spending insights (transactions → agent → text)

DESIGN DECISION: The in-memory ledger is the source of truth while the app
runs. Every mutation is applied to the engine first, then audited, then the
whole snapshot is saved. A failed save never rolls the ledger back; the
session is marked unsynced and the next successful save catches up.

This is the "glue" that keeps storage problems from ever corrupting
balances.
"""

from datetime import datetime
from decimal import Decimal
from typing import Callable, Iterable, Optional, Union

import structlog

from assetflow.agents import (
    InsightError,
    InsufficientDataError,
    SpendingInsights,
    SpendingInsightsAgent,
    to_insight_transactions,
)
from assetflow.audit import AuditLogger
from assetflow.config import get_settings
from assetflow.ledger import (
    LedgerEngine,
    filter_statement,
    monthly_summary,
    spending_by_category,
)
from assetflow.ledger.engine import UNSET, Amount
from assetflow.ledger.errors import ValidationError
from assetflow.models.ledger import (
    Account,
    Category,
    CategoryType,
    Transaction,
    TransactionType,
)
from assetflow.models.reports import CategorySpending, MonthlySummary, StatementFilter
from assetflow.services.storage import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerStorage,
    InMemoryLedgerStorage,
    LedgerStorageInterface,
    LocalJsonLedgerStorage,
    PersistenceError,
)


logger = structlog.get_logger(__name__)


# Accounts every new ledger starts with
DEFAULT_ACCOUNTS = (
    ("cash", "Cash"),
    ("bank", "Primary Bank"),
)


class LedgerSession:
    """
    A ledger bound to a storage backend and an audit logger.

    Flow for every mutating call:
    1. Engine validates and mutates (raises LedgerError, nothing changed)
    2. Audit event is logged
    3. Snapshot is saved (failure is logged, never raised)

    Operations that turn out to be no-ops (unknown account, absent
    transaction) skip steps 2 and 3.
    """

    def __init__(
        self,
        storage: Optional[LedgerStorageInterface] = None,
        audit_logger: Optional[AuditLogger] = None,
        clock: Optional[Callable[[], datetime]] = None,
        id_factory: Optional[Callable[[], str]] = None,
    ):
        self._storage = storage or InMemoryLedgerStorage()
        self._audit_logger = audit_logger or AuditLogger()
        self._clock = clock
        self._id_factory = id_factory
        self._engine = LedgerEngine(clock=clock, id_factory=id_factory)
        self._initialized = False
        self._is_synced = True
        self._last_error: Optional[str] = None

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def engine(self) -> LedgerEngine:
        return self._engine

    @property
    def storage(self) -> LedgerStorageInterface:
        return self._storage

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def needs_setup(self) -> bool:
        return self._engine.needs_setup

    @property
    def is_synced(self) -> bool:
        """False after a failed load or save, until the next successful save."""
        return self._is_synced

    @property
    def last_error(self) -> Optional[str]:
        return self._last_error

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def initialize(self) -> bool:
        """
        Load the persisted ledger once.

        Returns True if an existing ledger was loaded. A missing ledger or a
        load failure leaves the session in the needs-setup state; a failure
        additionally marks it unsynced.
        """
        if self._initialized:
            return not self._engine.needs_setup

        backend = self._storage.backend_name
        try:
            snapshot = await self._storage.load()
        except PersistenceError as e:
            logger.warning("ledger_load_failed", backend=backend, error=str(e))
            self._mark_failed(str(e))
            await self._audit_logger.log_load_failed(backend, str(e))
            snapshot = None

        self._initialized = True
        if snapshot is None:
            return False

        self._engine = LedgerEngine.from_snapshot(
            snapshot,
            clock=self._clock,
            id_factory=self._id_factory,
        )
        await self._audit_logger.log_snapshot_loaded(
            backend,
            accounts=len(snapshot.accounts),
            transactions=len(snapshot.transactions),
        )
        return True

    async def complete_setup(self, currency: str) -> list[Account]:
        """
        Choose the currency for a new ledger and seed the default accounts.

        Raises:
            ValidationError: ledger already set up, or bad currency code
        """
        if not self._engine.needs_setup:
            raise ValidationError("Ledger is already set up")

        code = self._engine.set_currency(currency)
        accounts = [
            self._engine.create_account(name, Decimal("0"), account_id=account_id)
            for account_id, name in DEFAULT_ACCOUNTS
        ]

        await self._audit_logger.log_setup_completed(code)
        for account in accounts:
            await self._audit_logger.log_account_created(account.id, account.name, str(account.balance))
        await self._persist()
        return accounts

    async def set_currency(self, currency: str) -> str:
        code = self._engine.set_currency(currency)
        await self._audit_logger.log_currency_changed(code)
        await self._persist()
        return code

    async def reset(self) -> None:
        """
        Erase everything, in storage and in memory.

        The session goes back to needs-setup.
        """
        self._engine.reset_all()
        await self._audit_logger.log_ledger_reset()
        try:
            await self._storage.clear()
        except PersistenceError as e:
            logger.warning("ledger_clear_failed", backend=self._storage.backend_name, error=str(e))
            self._mark_failed(str(e))
            return
        self._mark_synced()

    # -------------------------------------------------------------------------
    # Accounts
    # -------------------------------------------------------------------------

    async def create_account(self, name: str, initial_balance: Amount = Decimal("0")) -> Account:
        account = self._engine.create_account(name, initial_balance)
        await self._audit_logger.log_account_created(account.id, account.name, str(account.balance))
        await self._persist()
        return account

    async def rename_account(self, account_id: str, new_name: str) -> Account:
        old = self._engine.get_account(account_id)
        account = self._engine.rename_account(account_id, new_name)
        await self._audit_logger.log_account_renamed(account.id, old.name, account.name)
        await self._persist()
        return account

    async def delete_account(self, account_id: str) -> int:
        if self._engine.get_account(account_id) is None:
            return 0
        orphaned = self._engine.delete_account(account_id)
        await self._audit_logger.log_account_deleted(account_id, orphaned)
        await self._persist()
        return orphaned

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    async def record_flow(
        self,
        type: Union[TransactionType, str],
        amount: Amount,
        account_id: str,
        remarks: str = "",
        category: Optional[str] = None,
        date: Optional[datetime] = None,
    ) -> Optional[Transaction]:
        """Record income or expenditure. Returns None if the account is gone."""
        tx = self._engine.record_flow(type, amount, account_id, remarks, category, date)
        if tx is None:
            return None
        await self._audit_logger.log_transaction_recorded(
            transaction_id=tx.id,
            transaction_type=tx.type,
            amount=str(tx.amount),
            account_name=tx.account_name,
        )
        await self._persist()
        return tx

    async def record_transfer(
        self,
        amount: Amount,
        from_account_id: str,
        to_account_id: str,
        remarks: str = "",
        date: Optional[datetime] = None,
    ) -> Optional[Transaction]:
        tx = self._engine.record_transfer(amount, from_account_id, to_account_id, remarks, date)
        if tx is None:
            return None
        await self._audit_logger.log_transfer_recorded(
            transaction_id=tx.id,
            amount=str(tx.amount),
            from_name=tx.account_name,
            to_name=tx.to_account_name,
        )
        await self._persist()
        return tx

    async def edit_flow(
        self,
        transaction_id: str,
        new_amount: Amount,
        new_remarks: str,
        new_date: Optional[datetime] = None,
        new_account_id: Optional[str] = None,
        new_category=UNSET,
    ) -> Transaction:
        before = self._engine.get_transaction(transaction_id)
        tx = self._engine.edit_flow(
            transaction_id,
            new_amount,
            new_remarks,
            new_date=new_date,
            new_account_id=new_account_id,
            new_category=new_category,
        )
        await self._audit_logger.log_transaction_edited(tx.id, str(before.amount), str(tx.amount))
        await self._persist()
        return tx

    async def edit_transfer(
        self,
        transaction_id: str,
        new_amount: Amount,
        new_remarks: str,
        new_date: Optional[datetime] = None,
    ) -> Transaction:
        before = self._engine.get_transaction(transaction_id)
        tx = self._engine.edit_transfer(transaction_id, new_amount, new_remarks, new_date=new_date)
        await self._audit_logger.log_transaction_edited(tx.id, str(before.amount), str(tx.amount))
        await self._persist()
        return tx

    async def delete_flow(self, transaction_id: str) -> bool:
        if not self._engine.delete_flow(transaction_id):
            return False
        await self._audit_logger.log_transaction_deleted(transaction_id)
        await self._persist()
        return True

    # -------------------------------------------------------------------------
    # Categories
    # -------------------------------------------------------------------------

    async def add_category(
        self,
        name: str,
        type: Union[CategoryType, str],
        icon: str = "Shapes",
    ) -> Category:
        category = self._engine.add_category(name, type, icon)
        await self._audit_logger.log_category_added(category.id, category.name)
        await self._persist()
        return category

    async def edit_category(self, category_id: str, name: str, icon: Optional[str] = None) -> Category:
        category = self._engine.edit_category(category_id, name, icon)
        await self._audit_logger.log_category_updated(category.id, category.name)
        await self._persist()
        return category

    async def delete_category(self, category_id: str) -> int:
        existing = next((c for c in self._engine.categories if c.id == category_id), None)
        if existing is None:
            return 0
        cleared = self._engine.delete_category(category_id)
        await self._audit_logger.log_category_deleted(existing.id, existing.name)
        await self._persist()
        return cleared

    async def set_categories_enabled(self, enabled: bool) -> None:
        self._engine.set_categories_enabled(enabled)
        await self._persist()

    # -------------------------------------------------------------------------
    # Views
    # -------------------------------------------------------------------------

    def statement(self, statement_filter: Optional[StatementFilter] = None) -> list[Transaction]:
        return filter_statement(
            self._engine.transactions,
            statement_filter,
            categories=self._engine.categories,
            categories_enabled=self._engine.categories_enabled,
        )

    def monthly_summary(self, months: Optional[int] = None, today: Optional[datetime] = None) -> list[MonthlySummary]:
        months = months or get_settings().app.summary_months
        return monthly_summary(self._engine.transactions, months=months, today=today)

    def spending_by_category(self, today: Optional[datetime] = None) -> list[CategorySpending]:
        return spending_by_category(
            self._engine.transactions,
            self._engine.categories,
            today=today,
            categories_enabled=self._engine.categories_enabled,
        )

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    async def _persist(self) -> bool:
        """Save the current snapshot. Failures are recorded, not raised."""
        backend = self._storage.backend_name
        try:
            await self._storage.save(self._engine.to_snapshot())
        except PersistenceError as e:
            logger.warning("ledger_save_failed", backend=backend, error=str(e))
            self._mark_failed(str(e))
            await self._audit_logger.log_save_failed(backend, str(e))
            return False
        self._mark_synced()
        return True

    def _mark_failed(self, message: str) -> None:
        self._is_synced = False
        self._last_error = message

    def _mark_synced(self) -> None:
        self._is_synced = True
        self._last_error = None


class InsightFlow:
    """
    Orchestrates spending insights.

    Only income and expenditure are sent to the agent, and only once there
    are enough of them to say something useful.
    """

    def __init__(
        self,
        agent: Optional[SpendingInsightsAgent] = None,
        audit_logger: Optional[AuditLogger] = None,
        min_transactions: Optional[int] = None,
    ):
        self._agent = agent
        self._audit_logger = audit_logger or AuditLogger()
        self._min_transactions = (
            min_transactions
            if min_transactions is not None
            else get_settings().app.min_insight_transactions
        )

    @property
    def min_transactions(self) -> int:
        return self._min_transactions

    def can_generate(self, transactions: Iterable[Transaction]) -> bool:
        return len(to_insight_transactions(transactions)) >= self._min_transactions

    async def generate(self, transactions: Iterable[Transaction]) -> SpendingInsights:
        """
        Generate insights for the given ledger transactions.

        Raises:
            InsufficientDataError: fewer than ``min_transactions`` flows
            InsightError: the agent failed
        """
        rows = to_insight_transactions(transactions)
        if len(rows) < self._min_transactions:
            raise InsufficientDataError(len(rows), self._min_transactions)

        # Created on first use so the app starts without a Gemini key
        if self._agent is None:
            self._agent = SpendingInsightsAgent()

        try:
            result = await self._agent.generate_insights(rows)
        except InsightError as e:
            await self._audit_logger.log_external_service_error("gemini", str(e))
            raise

        await self._audit_logger.log_insights_generated(len(rows))
        return result


def create_app_components(
    backend: Optional[str] = None,
) -> tuple[LedgerSession, InsightFlow]:
    """
    Factory function to create all application components.

    Args:
        backend: "local", "google_sheets" or "memory".
                 Defaults to the configured storage backend.

    Returns:
        (ledger_session, insight_flow)
    """
    backend = backend or get_settings().app.storage_backend

    if backend == "google_sheets":
        try:
            sheets_client = GoogleSheetsClient()
            storage = GoogleSheetsLedgerStorage(sheets_client)
            audit_logger = AuditLogger(GoogleSheetsAuditStorage(sheets_client))
        except Exception as e:
            # Storage not configured - continue in memory
            logger.warning("storage_not_configured", backend=backend, error=str(e))
            storage = InMemoryLedgerStorage()
            audit_logger = AuditLogger()
    elif backend == "local":
        storage = LocalJsonLedgerStorage()
        audit_logger = AuditLogger()
    elif backend == "memory":
        storage = InMemoryLedgerStorage()
        audit_logger = AuditLogger()
    else:
        raise ValueError(f"Unknown storage backend: {backend}")

    session = LedgerSession(storage=storage, audit_logger=audit_logger)
    insight_flow = InsightFlow(audit_logger=audit_logger)
    return session, insight_flow
