"""
Integration tests for the ledger session and insight flow.

Storage is in-memory and the insight agent is a fake; nothing leaves the
process.
"""

import itertools
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from assetflow.agents import InsightError, InsufficientDataError, SpendingInsights
from assetflow.audit import AuditLogger
from assetflow.ledger import ImmutableRecordError, ValidationError
from assetflow.models.audit import AuditEventType
from assetflow.models.reports import StatementFilter
from assetflow.orchestrator import InsightFlow, LedgerSession, create_app_components
from assetflow.services.storage import (
    CorruptSnapshotError,
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
    LocalJsonLedgerStorage,
    PersistenceError,
)


NOW = datetime(2024, 5, 10, 12, 0, tzinfo=timezone.utc)


class FlakyStorage(InMemoryLedgerStorage):
    """In-memory storage whose saves can be made to fail."""

    def __init__(self):
        super().__init__()
        self.fail_saves = False
        self.fail_load = False

    async def load(self):
        if self.fail_load:
            raise CorruptSnapshotError("garbage on disk")
        return await super().load()

    async def save(self, snapshot):
        if self.fail_saves:
            raise PersistenceError("disk full")
        return await super().save(snapshot)


@pytest.fixture
def audit_storage():
    return InMemoryAuditStorage()


@pytest.fixture
def storage():
    return FlakyStorage()


@pytest.fixture
def session(storage, audit_storage):
    counter = itertools.count(1)
    return LedgerSession(
        storage=storage,
        audit_logger=AuditLogger(audit_storage),
        clock=lambda: NOW,
        id_factory=lambda: f"id-{next(counter)}",
    )


def event_types(audit_storage):
    return [e.event_type for e in audit_storage.events]


class TestLedgerSessionSetup:
    """Tests for startup and first-run setup."""

    @pytest.mark.asyncio
    async def test_empty_storage_needs_setup(self, session):
        assert await session.initialize() is False
        assert session.needs_setup
        assert session.is_synced

    @pytest.mark.asyncio
    async def test_complete_setup_seeds_accounts(self, session, storage, audit_storage):
        await session.initialize()
        accounts = await session.complete_setup("usd")

        assert [(a.id, a.name, a.balance) for a in accounts] == [
            ("cash", "Cash", Decimal("0")),
            ("bank", "Primary Bank", Decimal("0")),
        ]
        assert session.engine.currency == "USD"
        assert storage.raw["currency"] == "USD"
        assert event_types(audit_storage)[:1] == [AuditEventType.SETUP_COMPLETED]

    @pytest.mark.asyncio
    async def test_setup_only_once(self, session):
        await session.complete_setup("USD")
        with pytest.raises(ValidationError):
            await session.complete_setup("EUR")

    @pytest.mark.asyncio
    async def test_bad_currency_leaves_needs_setup(self, session, storage):
        with pytest.raises(ValidationError):
            await session.complete_setup("dollars")
        assert session.needs_setup
        assert storage.save_count == 0

    @pytest.mark.asyncio
    async def test_reload_from_storage(self, session, storage):
        await session.complete_setup("USD")
        await session.record_flow("income", 100, "cash", "gift")

        reloaded = LedgerSession(storage=storage)
        assert await reloaded.initialize() is True
        assert reloaded.engine.get_account("cash").balance == Decimal("100")
        assert reloaded.engine.currency == "USD"

    @pytest.mark.asyncio
    async def test_load_failure_is_not_fatal(self, session, storage, audit_storage):
        storage.fail_load = True

        assert await session.initialize() is False

        assert session.needs_setup
        assert session.is_synced is False
        assert "garbage" in session.last_error
        assert AuditEventType.LOAD_FAILED in event_types(audit_storage)

    @pytest.mark.asyncio
    async def test_unreadable_ledger_file_falls_back_to_setup(self, tmp_path):
        path = tmp_path / "ledger.json"
        path.write_bytes(b'\xff\xfe{"currency": "USD"}')
        session = LedgerSession(storage=LocalJsonLedgerStorage(path=path, indent=2))

        assert await session.initialize() is False

        assert session.needs_setup
        assert session.is_synced is False
        assert "UTF-8" in session.last_error


class TestLedgerSessionMutations:
    """Tests for mutations going through audit and persistence."""

    @pytest.mark.asyncio
    async def test_every_mutation_persists(self, session, storage):
        await session.complete_setup("USD")
        saves = storage.save_count

        tx = await session.record_flow("expenditure", 30, "cash", category="food")
        await session.record_transfer(10, "bank", "cash")
        await session.edit_flow(tx.id, 35, "lunch")
        await session.rename_account("bank", "Savings")

        assert storage.save_count == saves + 4
        saved_names = [a["name"] for a in storage.raw["accounts"]]
        assert saved_names == ["Cash", "Savings"]

    @pytest.mark.asyncio
    async def test_noop_does_not_persist(self, session, storage, audit_storage):
        await session.complete_setup("USD")
        saves = storage.save_count
        events = len(audit_storage.events)

        assert await session.record_flow("income", 5, "missing") is None
        assert await session.delete_account("missing") == 0
        assert await session.delete_flow("missing") is False
        assert await session.delete_category("missing") == 0

        assert storage.save_count == saves
        assert len(audit_storage.events) == events

    @pytest.mark.asyncio
    async def test_engine_errors_propagate_untouched(self, session, storage):
        await session.complete_setup("USD")
        creation = session.engine.transactions[0]
        saves = storage.save_count

        with pytest.raises(ImmutableRecordError):
            await session.delete_flow(creation.id)
        assert storage.save_count == saves

    @pytest.mark.asyncio
    async def test_rejected_edit_is_not_saved(self, session, storage, audit_storage):
        await session.complete_setup("USD")
        tx = await session.record_flow("expenditure", 30, "cash", "lunch")
        saves = storage.save_count
        events = len(audit_storage.events)

        with pytest.raises(ValidationError):
            await session.edit_flow(tx.id, 50, "r" * 501)

        assert session.engine.get_account("cash").balance == Decimal("-30")
        assert storage.raw["accounts"][0]["balance"] == "-30"
        assert storage.save_count == saves
        assert len(audit_storage.events) == events
        assert session.is_synced

    @pytest.mark.asyncio
    async def test_save_failure_keeps_memory_state(self, session, storage, audit_storage):
        await session.complete_setup("USD")
        storage.fail_saves = True

        tx = await session.record_flow("income", 100, "cash")

        assert tx is not None
        assert session.engine.get_account("cash").balance == Decimal("100")
        assert session.is_synced is False
        assert session.last_error == "disk full"
        assert AuditEventType.SAVE_FAILED in event_types(audit_storage)

        storage.fail_saves = False
        await session.record_flow("expenditure", 40, "cash")
        assert session.is_synced is True
        assert session.last_error is None
        assert storage.raw["accounts"][0]["balance"] == "60"

    @pytest.mark.asyncio
    async def test_delete_account_audited(self, session, audit_storage):
        await session.complete_setup("USD")
        await session.record_transfer(20, "cash", "bank")

        orphaned = await session.delete_account("bank")

        assert orphaned == 2
        deleted = [e for e in audit_storage.events if e.event_type == AuditEventType.ACCOUNT_DELETED]
        assert deleted[0].entity_id == "bank"

    @pytest.mark.asyncio
    async def test_categories(self, session, storage):
        await session.complete_setup("USD")
        category = await session.add_category("Pets", "expense", "Bone")
        await session.edit_category(category.id, "Pet care")
        await session.set_categories_enabled(False)

        assert storage.raw["categoriesEnabled"] is False
        assert await session.delete_category(category.id) == 0

    @pytest.mark.asyncio
    async def test_reset(self, session, storage):
        await session.complete_setup("USD")
        await session.record_flow("income", 10, "cash")

        await session.reset()

        assert session.needs_setup
        assert storage.raw is None
        assert session.engine.accounts == []

    @pytest.mark.asyncio
    async def test_views(self, session):
        await session.complete_setup("USD")
        await session.record_flow("expenditure", 12, "cash", "Bus", category="transport")
        await session.record_flow("income", 100, "bank", "Pay", category="salary")

        statement = session.statement(StatementFilter(search_term="-"))
        assert [t.remarks for t in statement] == ["Bus"]

        [may] = session.monthly_summary(months=1, today=NOW)
        assert (may.income, may.expense) == (Decimal("100"), Decimal("12"))

        [spent] = session.spending_by_category(today=NOW)
        assert (spent.name, spent.value) == ("Transportation", Decimal("12"))


class FakeAgent:
    def __init__(self, error=None):
        self.error = error
        self.calls = []

    async def generate_insights(self, transactions):
        self.calls.append(transactions)
        if self.error:
            raise self.error
        return SpendingInsights(insights=f"{len(transactions)} transactions analyzed")


class TestInsightFlow:
    """Tests for the spending insights flow."""

    @pytest.mark.asyncio
    async def test_requires_minimum_flows(self, session):
        await session.complete_setup("USD")
        await session.record_flow("income", 10, "cash")
        await session.record_flow("expenditure", 5, "cash")
        await session.record_transfer(1, "cash", "bank")
        agent = FakeAgent()
        flow = InsightFlow(agent=agent, min_transactions=3)

        assert flow.can_generate(session.engine.transactions) is False
        with pytest.raises(InsufficientDataError) as exc_info:
            await flow.generate(session.engine.transactions)

        assert exc_info.value.available == 2
        assert agent.calls == []

    @pytest.mark.asyncio
    async def test_generates_from_flows_only(self, session, audit_storage):
        await session.complete_setup("USD")
        for amount in (10, 20, 30):
            await session.record_flow("expenditure", amount, "cash", "coffee")
        await session.record_transfer(1, "cash", "bank")
        agent = FakeAgent()
        flow = InsightFlow(agent=agent, audit_logger=AuditLogger(audit_storage), min_transactions=3)

        result = await flow.generate(session.engine.transactions)

        assert result.insights == "3 transactions analyzed"
        [rows] = agent.calls
        assert {r.type for r in rows} == {"expenditure"}
        assert rows[0].account == "Cash"
        assert AuditEventType.INSIGHTS_GENERATED in event_types(audit_storage)

    @pytest.mark.asyncio
    async def test_agent_failure_is_audited(self, session, audit_storage):
        await session.complete_setup("USD")
        for amount in (10, 20, 30):
            await session.record_flow("income", amount, "bank")
        flow = InsightFlow(
            agent=FakeAgent(error=InsightError("model down")),
            audit_logger=AuditLogger(audit_storage),
            min_transactions=3,
        )

        with pytest.raises(InsightError):
            await flow.generate(session.engine.transactions)

        assert AuditEventType.EXTERNAL_SERVICE_ERROR in event_types(audit_storage)


class TestCreateAppComponents:
    """Tests for the component factory."""

    def test_memory_backend(self):
        session, flow = create_app_components(backend="memory")
        assert isinstance(session.storage, InMemoryLedgerStorage)
        assert isinstance(flow, InsightFlow)

    def test_local_backend(self, monkeypatch, tmp_path):
        monkeypatch.setenv("ASSETFLOW_LOCAL_DATA_PATH", str(tmp_path / "ledger.json"))
        session, _ = create_app_components(backend="local")
        assert isinstance(session.storage, LocalJsonLedgerStorage)
        assert session.storage.path == tmp_path / "ledger.json"

    def test_unknown_backend(self):
        with pytest.raises(ValueError):
            create_app_components(backend="floppy")
