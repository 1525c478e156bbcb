"""
Tests for the ledger engine.

Every test builds its own engine; nothing is shared between them.
"""

import itertools
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from assetflow.ledger import (
    ImmutableRecordError,
    LedgerEngine,
    NotFoundError,
    ValidationError,
    to_amount,
)
from assetflow.models.ledger import (
    CategoryType,
    TransactionType,
    TransferTransaction,
)


START = datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc)


class StepClock:
    """Advances one minute per call."""

    def __init__(self, start: datetime = START):
        self.now = start

    def __call__(self) -> datetime:
        current = self.now
        self.now += timedelta(minutes=1)
        return current


@pytest.fixture
def engine():
    counter = itertools.count(1)
    return LedgerEngine(
        currency="USD",
        clock=StepClock(),
        id_factory=lambda: f"id-{next(counter)}",
    )


def balance(engine: LedgerEngine, account_id: str) -> Decimal:
    return engine.get_account(account_id).balance


def assert_invariant(engine: LedgerEngine):
    assert engine.replay_balances() == {a.id: a.balance for a in engine.accounts}


class TestAmounts:
    """Tests for amount parsing."""

    def test_accepts_numbers_and_strings(self):
        assert to_amount(10) == Decimal("10")
        assert to_amount("12.50") == Decimal("12.50")
        assert to_amount(0.1) == Decimal("0.1")

    @pytest.mark.parametrize("value", ["abc", None, True, "NaN", "Infinity"])
    def test_rejects_non_numbers(self, value):
        with pytest.raises(ValidationError):
            to_amount(value)


class TestAccounts:
    """Tests for account creation, rename and delete."""

    def test_create_account_appends_creation_record(self, engine):
        account = engine.create_account("Cash", 100)

        assert account.balance == Decimal("100")
        [tx] = engine.transactions
        assert tx.type == TransactionType.ACCOUNT_CREATION
        assert tx.amount == Decimal("100")
        assert tx.account_id == account.id
        assert tx.account_name == "Cash"

    def test_zero_opening_balance_still_recorded(self, engine):
        engine.create_account("Wallet")
        assert len(engine.transactions) == 1
        assert engine.transactions[0].amount == Decimal("0")

    def test_negative_opening_balance(self, engine):
        account = engine.create_account("Card", "-250")
        assert account.balance == Decimal("-250")
        assert_invariant(engine)

    def test_create_account_rejects_empty_name(self, engine):
        with pytest.raises(ValidationError):
            engine.create_account("   ", 10)
        assert engine.accounts == []
        assert engine.transactions == []

    def test_create_account_rejects_long_name(self, engine):
        with pytest.raises(ValidationError):
            engine.create_account("n" * 101, 10)
        assert engine.accounts == []
        assert engine.transactions == []

    def test_create_account_rejects_reused_id(self, engine):
        engine.create_account("Cash", 0, account_id="cash")
        with pytest.raises(ValidationError):
            engine.create_account("Other", 0, account_id="cash")

    def test_deleted_account_id_cannot_be_reused(self, engine):
        engine.create_account("Cash", 0, account_id="cash")
        engine.delete_account("cash")
        with pytest.raises(ValidationError):
            engine.create_account("Cash again", 0, account_id="cash")

    def test_rename_syncs_transaction_names(self, engine):
        cash = engine.create_account("Cash", 100)
        bank = engine.create_account("Bank", 0)
        engine.record_flow("expenditure", 10, cash.id)
        engine.record_transfer(5, bank.id, cash.id)

        engine.rename_account(cash.id, "Wallet")

        for tx in engine.transactions_for_account(cash.id):
            if tx.account_id == cash.id:
                assert tx.account_name == "Wallet"
            if isinstance(tx, TransferTransaction):
                assert tx.to_account_name == "Wallet"
        assert engine.get_account(cash.id).name == "Wallet"

    def test_rename_unknown_account(self, engine):
        with pytest.raises(NotFoundError):
            engine.rename_account("missing", "Name")

    def test_rename_rejects_empty_name(self, engine):
        cash = engine.create_account("Cash")
        with pytest.raises(ValidationError):
            engine.rename_account(cash.id, "")
        assert engine.get_account(cash.id).name == "Cash"

    def test_rename_rejects_long_name(self, engine):
        cash = engine.create_account("Cash")
        engine.record_flow("income", 5, cash.id)

        with pytest.raises(ValidationError):
            engine.rename_account(cash.id, "w" * 101)

        assert engine.get_account(cash.id).name == "Cash"
        assert {t.account_name for t in engine.transactions} == {"Cash"}

    def test_delete_account_orphans_history(self, engine):
        cash = engine.create_account("Cash", 100)
        engine.record_flow("income", 50, cash.id)

        orphaned = engine.delete_account(cash.id)

        assert orphaned == 2
        assert engine.accounts == []
        assert len(engine.transactions) == 2
        assert all(t.is_orphaned for t in engine.transactions)
        assert engine.total_balance() == Decimal("0")

    def test_delete_unknown_account_is_noop(self, engine):
        engine.create_account("Cash", 10)
        assert engine.delete_account("missing") == 0
        assert len(engine.accounts) == 1


class TestRecording:
    """Tests for income, expenditure and transfers."""

    def test_income_and_expenditure(self, engine):
        cash = engine.create_account("Cash", 100)

        engine.record_flow(TransactionType.INCOME, 25, cash.id, "gift")
        engine.record_flow("expenditure", "40.5", cash.id, "lunch")

        assert balance(engine, cash.id) == Decimal("84.5")
        assert_invariant(engine)

    def test_overdraft_allowed(self, engine):
        cash = engine.create_account("Cash", 10)
        engine.record_flow("expenditure", 30, cash.id)
        assert balance(engine, cash.id) == Decimal("-20")

    @pytest.mark.parametrize("amount", [0, -5, "abc"])
    def test_rejects_non_positive_amount(self, engine, amount):
        cash = engine.create_account("Cash", 10)
        with pytest.raises(ValidationError):
            engine.record_flow("income", amount, cash.id)
        assert balance(engine, cash.id) == Decimal("10")
        assert len(engine.transactions) == 1

    def test_rejects_non_flow_type(self, engine):
        cash = engine.create_account("Cash", 10)
        with pytest.raises(ValidationError):
            engine.record_flow("transfer", 5, cash.id)
        with pytest.raises(ValidationError):
            engine.record_flow("bonus", 5, cash.id)

    def test_unknown_account_is_noop(self, engine):
        result = engine.record_flow("income", 5, "missing")
        assert result is None
        assert engine.transactions == []

    def test_category_must_exist_and_match_kind(self, engine):
        cash = engine.create_account("Cash", 10)
        with pytest.raises(NotFoundError):
            engine.record_flow("expenditure", 5, cash.id, category="nope")
        with pytest.raises(ValidationError):
            engine.record_flow("expenditure", 5, cash.id, category="salary")

        tx = engine.record_flow("expenditure", 5, cash.id, category="food")
        assert tx.category == "food"

    def test_explicit_date_is_kept(self, engine):
        cash = engine.create_account("Cash", 10)
        when = datetime(2023, 12, 31, 23, 59, tzinfo=timezone.utc)
        tx = engine.record_flow("income", 5, cash.id, date=when)
        assert tx.date == when

    def test_transfer_moves_both_balances(self, engine):
        cash = engine.create_account("Cash", 100)
        bank = engine.create_account("Bank", 0)

        tx = engine.record_transfer(20, cash.id, bank.id, "deposit")

        assert balance(engine, cash.id) == Decimal("80")
        assert balance(engine, bank.id) == Decimal("20")
        assert engine.total_balance() == Decimal("100")
        assert tx.to_account_name == "Bank"
        assert_invariant(engine)

    def test_long_remarks_rejected_before_recording(self, engine):
        cash = engine.create_account("Cash", 100)
        bank = engine.create_account("Bank", 0)
        count = len(engine.transactions)

        with pytest.raises(ValidationError):
            engine.record_flow("income", 10, cash.id, "r" * 501)
        with pytest.raises(ValidationError):
            engine.record_transfer(10, cash.id, bank.id, "r" * 501)

        assert len(engine.transactions) == count
        assert balance(engine, cash.id) == Decimal("100")

    def test_transfer_to_same_account_rejected(self, engine):
        cash = engine.create_account("Cash", 100)
        with pytest.raises(ValidationError):
            engine.record_transfer(20, cash.id, cash.id)

    def test_transfer_with_missing_account_is_noop(self, engine):
        cash = engine.create_account("Cash", 100)
        assert engine.record_transfer(20, cash.id, "missing") is None
        assert balance(engine, cash.id) == Decimal("100")
        assert len(engine.transactions) == 1


class TestEditing:
    """Tests for editing and deleting transactions."""

    def test_edit_amount_round_trip(self, engine):
        cash = engine.create_account("Cash", 100)
        tx = engine.record_flow("expenditure", 30, cash.id, "food")

        engine.edit_flow(tx.id, 50, "food")
        assert balance(engine, cash.id) == Decimal("50")

        engine.edit_flow(tx.id, 30, "food")
        assert balance(engine, cash.id) == Decimal("70")
        assert_invariant(engine)

    def test_edit_keeps_date_and_stamps_modified(self, engine):
        cash = engine.create_account("Cash", 100)
        tx = engine.record_flow("income", 10, cash.id)

        edited = engine.edit_flow(tx.id, 15, "updated")

        assert edited.date == tx.date
        assert edited.modified_at is not None
        assert edited.modified_at > tx.date
        assert edited.remarks == "updated"

    def test_edit_with_new_date(self, engine):
        cash = engine.create_account("Cash", 100)
        tx = engine.record_flow("income", 10, cash.id)
        when = datetime(2024, 1, 15, tzinfo=timezone.utc)

        edited = engine.edit_flow(tx.id, 10, "", new_date=when)

        assert edited.date == when

    def test_edit_moves_to_another_account(self, engine):
        cash = engine.create_account("Cash", 100)
        bank = engine.create_account("Bank", 100)
        tx = engine.record_flow("expenditure", 30, cash.id)

        edited = engine.edit_flow(tx.id, 40, "", new_account_id=bank.id)

        assert balance(engine, cash.id) == Decimal("100")
        assert balance(engine, bank.id) == Decimal("60")
        assert edited.account_id == bank.id
        assert edited.account_name == "Bank"
        assert_invariant(engine)

    def test_edit_to_unknown_account_leaves_state(self, engine):
        cash = engine.create_account("Cash", 100)
        tx = engine.record_flow("expenditure", 30, cash.id)

        with pytest.raises(NotFoundError):
            engine.edit_flow(tx.id, 40, "", new_account_id="missing")

        assert balance(engine, cash.id) == Decimal("70")
        assert engine.get_transaction(tx.id).amount == Decimal("30")

    def test_edit_with_long_remarks_leaves_state(self, engine):
        cash = engine.create_account("Cash", 100)
        tx = engine.record_flow("expenditure", 30, cash.id, "lunch")

        with pytest.raises(ValidationError):
            engine.edit_flow(tx.id, 50, "r" * 501)

        assert balance(engine, cash.id) == Decimal("70")
        stored = engine.get_transaction(tx.id)
        assert (stored.amount, stored.remarks, stored.modified_at) == (Decimal("30"), "lunch", None)
        assert_invariant(engine)

    def test_move_with_long_remarks_leaves_state(self, engine):
        cash = engine.create_account("Cash", 100)
        bank = engine.create_account("Bank", 0)
        tx = engine.record_flow("income", 30, cash.id)

        with pytest.raises(ValidationError):
            engine.edit_flow(tx.id, 30, "r" * 501, new_account_id=bank.id)

        assert (balance(engine, cash.id), balance(engine, bank.id)) == (Decimal("130"), Decimal("0"))
        assert engine.get_transaction(tx.id).account_id == cash.id

    def test_edit_transfer_with_long_remarks_leaves_state(self, engine):
        cash = engine.create_account("Cash", 100)
        bank = engine.create_account("Bank", 0)
        tx = engine.record_transfer(20, cash.id, bank.id)

        with pytest.raises(ValidationError):
            engine.edit_transfer(tx.id, 60, "r" * 501)

        assert (balance(engine, cash.id), balance(engine, bank.id)) == (Decimal("80"), Decimal("20"))
        assert engine.get_transaction(tx.id).amount == Decimal("20")

    def test_edit_with_bad_date_leaves_state(self, engine):
        cash = engine.create_account("Cash", 100)
        tx = engine.record_flow("expenditure", 30, cash.id)

        with pytest.raises(ValidationError):
            engine.edit_flow(tx.id, 50, "", new_date="yesterday")

        assert balance(engine, cash.id) == Decimal("70")
        assert engine.get_transaction(tx.id).amount == Decimal("30")

    def test_edit_category(self, engine):
        cash = engine.create_account("Cash", 100)
        tx = engine.record_flow("expenditure", 30, cash.id, category="food")

        assert engine.edit_flow(tx.id, 30, "").category == "food"
        assert engine.edit_flow(tx.id, 30, "", new_category="travel").category == "travel"
        assert engine.edit_flow(tx.id, 30, "", new_category=None).category is None

    def test_edit_unknown_transaction(self, engine):
        with pytest.raises(NotFoundError):
            engine.edit_flow("missing", 10, "")

    def test_edit_transfer_through_edit_flow_rejected(self, engine):
        cash = engine.create_account("Cash", 100)
        bank = engine.create_account("Bank", 0)
        tx = engine.record_transfer(20, cash.id, bank.id)
        with pytest.raises(ValidationError):
            engine.edit_flow(tx.id, 10, "")

    def test_edit_transfer(self, engine):
        cash = engine.create_account("Cash", 100)
        bank = engine.create_account("Bank", 0)
        tx = engine.record_transfer(20, cash.id, bank.id)

        engine.edit_transfer(tx.id, 35, "rent")

        assert balance(engine, cash.id) == Decimal("65")
        assert balance(engine, bank.id) == Decimal("35")
        assert_invariant(engine)

    def test_account_creation_is_immutable(self, engine):
        cash = engine.create_account("Cash", 100)
        creation = engine.transactions[0]

        with pytest.raises(ImmutableRecordError):
            engine.edit_flow(creation.id, 500, "")
        with pytest.raises(ImmutableRecordError):
            engine.edit_transfer(creation.id, 500, "")
        with pytest.raises(ImmutableRecordError):
            engine.delete_flow(creation.id)

        assert balance(engine, cash.id) == Decimal("100")
        assert len(engine.transactions) == 1

    def test_delete_reverses_effect(self, engine):
        cash = engine.create_account("Cash", 100)
        tx = engine.record_flow("expenditure", 30, cash.id)

        assert engine.delete_flow(tx.id) is True

        assert balance(engine, cash.id) == Decimal("100")
        assert engine.get_transaction(tx.id) is None

    def test_delete_transfer_reverses_both_sides(self, engine):
        cash = engine.create_account("Cash", 100)
        bank = engine.create_account("Bank", 0)
        tx = engine.record_transfer(20, cash.id, bank.id)

        engine.delete_flow(tx.id)

        assert balance(engine, cash.id) == Decimal("100")
        assert balance(engine, bank.id) == Decimal("0")

    def test_delete_unknown_transaction(self, engine):
        assert engine.delete_flow("missing") is False


class TestOrphans:
    """Tests for transactions whose account was deleted."""

    def test_edit_orphaned_flow_is_metadata_only(self, engine):
        cash = engine.create_account("Cash", 100)
        bank = engine.create_account("Bank", 50)
        tx = engine.record_flow("expenditure", 30, cash.id)
        engine.delete_account(cash.id)

        edited = engine.edit_flow(tx.id, 45, "fixed")

        assert edited.amount == Decimal("45")
        assert edited.is_orphaned is True
        assert engine.total_balance() == Decimal("50")
        assert balance(engine, bank.id) == Decimal("50")

    def test_orphaned_flow_cannot_move(self, engine):
        cash = engine.create_account("Cash", 100)
        bank = engine.create_account("Bank", 50)
        tx = engine.record_flow("expenditure", 30, cash.id)
        engine.delete_account(cash.id)

        with pytest.raises(ValidationError):
            engine.edit_flow(tx.id, 30, "", new_account_id=bank.id)

    def test_partially_orphaned_transfer_keeps_live_side(self, engine):
        cash = engine.create_account("Cash", 100)
        bank = engine.create_account("Bank", 0)
        tx = engine.record_transfer(20, cash.id, bank.id)
        engine.delete_account(bank.id)

        engine.edit_transfer(tx.id, 30, "")
        assert balance(engine, cash.id) == Decimal("70")

        engine.delete_flow(tx.id)
        assert balance(engine, cash.id) == Decimal("100")
        assert_invariant(engine)


class TestCategoriesAndSettings:
    """Tests for categories, currency and reset."""

    def test_default_categories_loaded(self, engine):
        ids = {c.id for c in engine.categories}
        assert {"food", "salary", "other_expense", "other_income"} <= ids
        assert all(c.is_default for c in engine.categories)

    def test_add_edit_delete_category(self, engine):
        cash = engine.create_account("Cash", 100)
        category = engine.add_category("Pets", CategoryType.EXPENSE, "Bone")
        tx = engine.record_flow("expenditure", 10, cash.id, category=category.id)

        engine.edit_category(category.id, "Pet care")
        assert next(c for c in engine.categories if c.id == category.id).name == "Pet care"

        assert engine.delete_category(category.id) == 1
        assert engine.get_transaction(tx.id).category is None

    def test_duplicate_category_rejected(self, engine):
        with pytest.raises(ValidationError):
            engine.add_category("food & dining", "expense")

    def test_long_category_name_rejected(self, engine):
        category = engine.add_category("Pets", "expense")
        count = len(engine.categories)

        with pytest.raises(ValidationError):
            engine.add_category("c" * 51, "expense")
        with pytest.raises(ValidationError):
            engine.edit_category(category.id, "c" * 51)

        assert len(engine.categories) == count
        assert next(c for c in engine.categories if c.id == category.id).name == "Pets"

    def test_unknown_icon_rejected(self, engine):
        with pytest.raises(ValidationError):
            engine.add_category("Pets", "expense", "Rocket")

    def test_default_category_cannot_be_deleted(self, engine):
        with pytest.raises(ImmutableRecordError):
            engine.delete_category("food")
        engine.edit_category("food", "Groceries", "Pizza")
        food = next(c for c in engine.categories if c.id == "food")
        assert (food.name, food.icon) == ("Groceries", "Pizza")

    def test_set_currency(self, engine):
        assert engine.set_currency(" eur ") == "EUR"
        with pytest.raises(ValidationError):
            engine.set_currency("EURO")
        assert engine.currency == "EUR"

    def test_reset_all(self, engine):
        engine.create_account("Cash", 100)
        engine.add_category("Pets", "expense")
        engine.set_categories_enabled(False)

        engine.reset_all()

        assert engine.needs_setup
        assert engine.accounts == []
        assert engine.transactions == []
        assert engine.categories_enabled is True
        assert all(c.is_default for c in engine.categories)


class TestSnapshots:
    """Tests for snapshot round trips."""

    def test_from_snapshot_restores_state(self, engine):
        cash = engine.create_account("Cash", 100)
        bank = engine.create_account("Bank", 0)
        engine.record_transfer(20, cash.id, bank.id)
        engine.delete_account(bank.id)

        restored = LedgerEngine.from_snapshot(engine.to_snapshot())

        assert restored.accounts == engine.accounts
        assert restored.transactions == engine.transactions
        assert restored.currency == "USD"
        assert_invariant(restored)

    def test_views_are_copies(self, engine):
        cash = engine.create_account("Cash", 100)
        engine.accounts[0].balance = Decimal("999")
        assert balance(engine, cash.id) == Decimal("100")


class TestExampleScenario:
    """The full walk-through: create, spend, transfer, edit, delete."""

    def test_scenario(self, engine):
        cash = engine.create_account("Cash", 100)
        assert engine.total_balance() == Decimal("100")

        spend = engine.record_flow("expenditure", 30, cash.id)
        assert balance(engine, cash.id) == Decimal("70")
        assert engine.total_balance() == Decimal("70")

        bank = engine.create_account("Bank", 0)
        transfer = engine.record_transfer(20, cash.id, bank.id)
        assert balance(engine, cash.id) == Decimal("50")
        assert balance(engine, bank.id) == Decimal("20")
        assert engine.total_balance() == Decimal("70")

        engine.edit_flow(spend.id, 50, "")
        assert balance(engine, cash.id) == Decimal("30")
        assert engine.total_balance() == Decimal("50")

        engine.delete_account(bank.id)
        assert [a.name for a in engine.accounts] == ["Cash"]
        assert balance(engine, cash.id) == Decimal("30")
        assert engine.get_transaction(transfer.id).is_orphaned is True
        assert engine.total_balance() == Decimal("30")
        assert_invariant(engine)
