"""
Ledger Engine

Owns the in-memory accounts, transactions, categories and currency, and
applies every mutation so that account balances never drift from the
transaction log.

BALANCE INVARIANT:
    balance(account) == opening balance + signed effects of every
    transaction side that referenced it while it was live

Effects per transaction kind:
- income:            +amount on account_id
- expenditure:       -amount on account_id
- account_creation:  +amount (opening balance) on account_id
- transfer:          -amount on account_id, +amount on to_account_id

An effect only ever touches a LIVE account. When an account is deleted its
transactions stay in the log, flagged ``is_orphaned``, and the side that
pointed at the deleted account is frozen.

ATOMICITY: every public method validates all of its inputs first and only
then mutates, so a raised error always leaves the ledger untouched.

The engine is synchronous and does no I/O. Persistence and auditing are
layered on top by ``assetflow.orchestrator.LedgerSession``.
"""

from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Callable, Iterable, Optional, Union

import structlog

from assetflow.ledger.categories import (
    DEFAULT_ICON,
    default_categories,
    get_category_by_id,
    is_assignable_icon,
)
from assetflow.ledger.errors import (
    ImmutableRecordError,
    NotFoundError,
    ValidationError,
)
from assetflow.models.ledger import (
    ACCOUNT_NAME_MAX_LENGTH,
    CATEGORY_NAME_MAX_LENGTH,
    FLOW_TYPES,
    REMARKS_MAX_LENGTH,
    Account,
    AccountCreationTransaction,
    Category,
    CategoryType,
    ExpenditureTransaction,
    IncomeTransaction,
    LedgerSnapshot,
    Transaction,
    TransactionType,
    TransferTransaction,
    new_id,
    utcnow,
)


Amount = Union[Decimal, int, float, str]


class _Unset:
    """Marker for 'argument not given' where None is a meaningful value."""

    def __repr__(self) -> str:
        return "UNSET"


UNSET = _Unset()

_CATEGORY_KIND = {
    TransactionType.INCOME: CategoryType.INCOME,
    TransactionType.EXPENDITURE: CategoryType.EXPENSE,
}


def to_amount(value: Amount, field: str = "amount") -> Decimal:
    """Convert user input to a finite Decimal, raising ValidationError otherwise."""
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number")
    try:
        amount = Decimal(str(value)) if isinstance(value, float) else Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(f"{field} must be a number, got {value!r}")
    if not amount.is_finite():
        raise ValidationError(f"{field} must be finite")
    return amount


def _positive(value: Amount) -> Decimal:
    amount = to_amount(value)
    if amount <= 0:
        raise ValidationError("amount must be greater than zero")
    return amount


def _clean_name(name: str, what: str, max_length: int) -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise ValidationError(f"{what} cannot be empty")
    if len(cleaned) > max_length:
        raise ValidationError(f"{what} is longer than {max_length} characters")
    return cleaned


def _clean_remarks(remarks: Optional[str]) -> str:
    remarks = remarks or ""
    if len(remarks) > REMARKS_MAX_LENGTH:
        raise ValidationError(f"Remarks are longer than {REMARKS_MAX_LENGTH} characters")
    return remarks


class LedgerEngine:
    """
    In-memory ledger.

    One instance per ledger; nothing is shared between instances, so tests
    can build as many as they like. The clock and id factory are injectable
    for deterministic tests.

    Read accessors return copies. The only way to change state is through
    the operations below.
    """

    def __init__(
        self,
        accounts: Optional[Iterable[Account]] = None,
        transactions: Optional[Iterable[Transaction]] = None,
        categories: Optional[Iterable[Category]] = None,
        currency: Optional[str] = None,
        categories_enabled: bool = True,
        clock: Optional[Callable[[], datetime]] = None,
        id_factory: Optional[Callable[[], str]] = None,
    ):
        self._accounts: list[Account] = [a.model_copy(deep=True) for a in accounts or []]
        self._transactions: list[Transaction] = [
            t.model_copy(deep=True) for t in transactions or []
        ]
        self._categories: list[Category] = (
            [c.model_copy(deep=True) for c in categories]
            if categories is not None
            else default_categories()
        )
        self._currency = currency
        self._categories_enabled = categories_enabled
        self._clock = clock or utcnow
        self._new_id = id_factory or new_id
        self._logger = structlog.get_logger(__name__)

    # -------------------------------------------------------------------------
    # Read-only views
    # -------------------------------------------------------------------------

    @property
    def accounts(self) -> list[Account]:
        return [a.model_copy() for a in self._accounts]

    @property
    def transactions(self) -> list[Transaction]:
        return [t.model_copy() for t in self._transactions]

    @property
    def categories(self) -> list[Category]:
        return [c.model_copy() for c in self._categories]

    @property
    def currency(self) -> Optional[str]:
        return self._currency

    @property
    def categories_enabled(self) -> bool:
        return self._categories_enabled

    @property
    def needs_setup(self) -> bool:
        """True until a currency has been chosen."""
        return self._currency is None

    def get_account(self, account_id: str) -> Optional[Account]:
        account = self._live_account(account_id)
        return account.model_copy() if account else None

    def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        tx = self._find_transaction(transaction_id)
        return tx.model_copy() if tx else None

    def transactions_for_account(self, account_id: str) -> list[Transaction]:
        """Every transaction touching the account, as source or destination."""
        return [t.model_copy() for t in self._transactions if t.references(account_id)]

    def total_balance(self) -> Decimal:
        """Sum of live account balances, recomputed on every call."""
        return sum((a.balance for a in self._accounts), Decimal("0"))

    # -------------------------------------------------------------------------
    # Accounts
    # -------------------------------------------------------------------------

    def create_account(
        self,
        name: str,
        initial_balance: Amount = Decimal("0"),
        account_id: Optional[str] = None,
    ) -> Account:
        """
        Create an account and record its opening balance.

        An ``account_creation`` transaction is always appended, even for a
        zero opening balance, so replay can rebuild every balance.
        """
        name = _clean_name(name, "Account name", ACCOUNT_NAME_MAX_LENGTH)
        opening = to_amount(initial_balance, "initial_balance")
        account_id = account_id or self._new_id()
        if self._is_known_account_id(account_id):
            raise ValidationError(f"Account id already in use: {account_id}")

        account = Account(id=account_id, name=name, balance=opening)
        creation = AccountCreationTransaction(
            id=self._new_id(),
            amount=opening,
            account_id=account.id,
            account_name=name,
            date=self._clock(),
            remarks=f'Account "{name}" created',
        )

        self._accounts.append(account)
        self._transactions.append(creation)
        return account.model_copy()

    def rename_account(self, account_id: str, new_name: str) -> Account:
        """
        Rename a live account and sync the name onto its transactions.

        Raises:
            NotFoundError: account is not live
            ValidationError: empty name
        """
        account = self._require_account(account_id)
        new_name = _clean_name(new_name, "Account name", ACCOUNT_NAME_MAX_LENGTH)

        account.name = new_name
        for tx in self._transactions:
            if tx.account_id == account_id:
                tx.account_name = new_name
            if isinstance(tx, TransferTransaction) and tx.to_account_id == account_id:
                tx.to_account_name = new_name
        return account.model_copy()

    def delete_account(self, account_id: str) -> int:
        """
        Soft-delete an account.

        The account leaves the live set; its transactions stay and are
        flagged orphaned. Returns how many transactions were orphaned
        (0 when the account does not exist).
        """
        account = self._live_account(account_id)
        if account is None:
            self._logger.info("delete_account_ignored", account_id=account_id)
            return 0

        orphaned = 0
        for tx in self._transactions:
            if tx.references(account_id):
                tx.is_orphaned = True
                orphaned += 1
        self._accounts.remove(account)
        return orphaned

    # -------------------------------------------------------------------------
    # Recording
    # -------------------------------------------------------------------------

    def record_flow(
        self,
        type: Union[TransactionType, str],
        amount: Amount,
        account_id: str,
        remarks: str = "",
        category: Optional[str] = None,
        date: Optional[datetime] = None,
    ) -> Optional[Transaction]:
        """
        Record income or expenditure against a live account.

        Returns None without touching anything if the account is not live.
        Overdrafts are allowed.
        """
        flow_type = self._flow_type(type)
        value = _positive(amount)
        remarks = _clean_remarks(remarks)
        self._check_date(date)
        account = self._live_account(account_id)
        if account is None:
            self._logger.warning(
                "record_flow_ignored",
                reason="account_not_found",
                account_id=account_id,
            )
            return None
        self._check_category(category, flow_type)

        model = IncomeTransaction if flow_type == TransactionType.INCOME else ExpenditureTransaction
        tx = model(
            id=self._new_id(),
            amount=value,
            account_id=account.id,
            account_name=account.name,
            date=date or self._clock(),
            remarks=remarks,
            category=category,
        )

        self._apply(tx, sign=1)
        self._transactions.append(tx)
        return tx.model_copy()

    def record_transfer(
        self,
        amount: Amount,
        from_account_id: str,
        to_account_id: str,
        remarks: str = "",
        date: Optional[datetime] = None,
    ) -> Optional[Transaction]:
        """
        Move money between two live accounts.

        Both balances change together. Returns None without touching
        anything if either account is not live.
        """
        value = _positive(amount)
        remarks = _clean_remarks(remarks)
        self._check_date(date)
        if from_account_id == to_account_id:
            raise ValidationError("Cannot transfer to the same account")

        source = self._live_account(from_account_id)
        target = self._live_account(to_account_id)
        if source is None or target is None:
            self._logger.warning(
                "record_transfer_ignored",
                reason="account_not_found",
                from_account_id=from_account_id,
                to_account_id=to_account_id,
            )
            return None

        tx = TransferTransaction(
            id=self._new_id(),
            amount=value,
            account_id=source.id,
            account_name=source.name,
            to_account_id=target.id,
            to_account_name=target.name,
            date=date or self._clock(),
            remarks=remarks,
        )

        self._apply(tx, sign=1)
        self._transactions.append(tx)
        return tx.model_copy()

    # -------------------------------------------------------------------------
    # Editing and deleting
    # -------------------------------------------------------------------------

    def edit_flow(
        self,
        transaction_id: str,
        new_amount: Amount,
        new_remarks: str,
        new_date: Optional[datetime] = None,
        new_account_id: Optional[str] = None,
        new_category: Union[Optional[str], _Unset] = UNSET,
    ) -> Transaction:
        """
        Edit an income or expenditure record.

        Same account: the balance moves by the amount delta.
        New account: the old effect is reversed on the old account and the
        new effect applied on the new one.
        Orphaned record: fields change, balances do not; it cannot be moved
        to another account.

        ``date`` only changes when ``new_date`` is given; ``modified_at`` is
        always stamped.

        Raises:
            NotFoundError: unknown transaction, target account or category
            ImmutableRecordError: account_creation record
            ValidationError: transfer record, bad amount, overlong remarks,
                bad category kind
        """
        tx = self._require_transaction(transaction_id)
        self._reject_account_creation(tx)
        if tx.type == TransactionType.TRANSFER:
            raise ValidationError("Transfers are edited with edit_transfer")

        value = _positive(new_amount)
        remarks = _clean_remarks(new_remarks)
        self._check_date(new_date)
        flow_type = TransactionType(tx.type)
        target_id = new_account_id or tx.account_id
        category = tx.category if isinstance(new_category, _Unset) else new_category
        if not isinstance(new_category, _Unset):
            self._check_category(category, flow_type)

        sign = Decimal(1) if flow_type == TransactionType.INCOME else Decimal(-1)
        old_account = self._live_account(tx.account_id)

        if tx.is_orphaned or old_account is None:
            if target_id != tx.account_id:
                raise ValidationError("An orphaned transaction cannot be moved to another account")
            # metadata only; the account it belonged to no longer exists
        elif target_id == tx.account_id:
            old_account.balance += sign * (value - tx.amount)
        else:
            new_account = self._require_account(target_id)
            old_account.balance -= sign * tx.amount
            new_account.balance += sign * value
            tx.account_id = new_account.id
            tx.account_name = new_account.name

        tx.amount = value
        tx.remarks = remarks
        tx.category = category
        if new_date is not None:
            tx.date = new_date
        tx.modified_at = self._clock()
        return tx.model_copy()

    def edit_transfer(
        self,
        transaction_id: str,
        new_amount: Amount,
        new_remarks: str,
        new_date: Optional[datetime] = None,
    ) -> Transaction:
        """
        Edit a transfer's amount, remarks or date.

        Each live side moves by the delta; a deleted side stays frozen.
        """
        tx = self._require_transaction(transaction_id)
        self._reject_account_creation(tx)
        if not isinstance(tx, TransferTransaction):
            raise ValidationError("Only transfers are edited with edit_transfer")

        value = _positive(new_amount)
        remarks = _clean_remarks(new_remarks)
        self._check_date(new_date)
        delta = value - tx.amount
        source = self._live_account(tx.account_id)
        target = self._live_account(tx.to_account_id)
        if source is not None:
            source.balance -= delta
        if target is not None:
            target.balance += delta

        tx.amount = value
        tx.remarks = remarks
        if new_date is not None:
            tx.date = new_date
        tx.modified_at = self._clock()
        return tx.model_copy()

    def delete_flow(self, transaction_id: str) -> bool:
        """
        Hard-delete an income, expenditure or transfer record.

        Its effect is reversed on every live account it touched.
        Returns False if the transaction does not exist.

        Raises:
            ImmutableRecordError: account_creation record
        """
        tx = self._find_transaction(transaction_id)
        if tx is None:
            self._logger.info("delete_flow_ignored", transaction_id=transaction_id)
            return False
        self._reject_account_creation(tx)

        self._apply(tx, sign=-1)
        self._transactions.remove(tx)
        return True

    # -------------------------------------------------------------------------
    # Currency and lifecycle
    # -------------------------------------------------------------------------

    def set_currency(self, code: str) -> str:
        """Replace the currency code. Stored amounts are not converted."""
        normalized = (code or "").strip().upper()
        if len(normalized) != 3 or not normalized.isalpha():
            raise ValidationError(f"Invalid currency code: {code!r}")
        self._currency = normalized
        return normalized

    def reset_all(self) -> None:
        """Forget everything and go back to the needs-setup state."""
        self._accounts = []
        self._transactions = []
        self._categories = default_categories()
        self._currency = None
        self._categories_enabled = True

    # -------------------------------------------------------------------------
    # Categories
    # -------------------------------------------------------------------------

    def add_category(
        self,
        name: str,
        type: Union[CategoryType, str],
        icon: str = DEFAULT_ICON,
    ) -> Category:
        name = _clean_name(name, "Category name", CATEGORY_NAME_MAX_LENGTH)
        try:
            category_type = CategoryType(type)
        except ValueError:
            raise ValidationError(f"Unknown category type: {type!r}")
        self._check_icon(icon)
        if any(
            c.type == category_type and c.name.lower() == name.lower()
            for c in self._categories
        ):
            raise ValidationError(f"Category already exists: {name}")

        category = Category(id=self._new_id(), name=name, icon=icon, type=category_type)
        self._categories.append(category)
        return category.model_copy()

    def edit_category(
        self,
        category_id: str,
        name: str,
        icon: Optional[str] = None,
    ) -> Category:
        """Rename or re-icon a category. Its type never changes."""
        category = get_category_by_id(category_id, self._categories)
        if category is None:
            raise NotFoundError(f"Category not found: {category_id}")
        name = _clean_name(name, "Category name", CATEGORY_NAME_MAX_LENGTH)
        if icon is not None:
            self._check_icon(icon)

        category.name = name
        if icon is not None:
            category.icon = icon
        return category.model_copy()

    def delete_category(self, category_id: str) -> int:
        """
        Delete a custom category.

        Transactions using it become uncategorized. Returns how many were
        affected (0 when the category does not exist).
        """
        category = get_category_by_id(category_id, self._categories)
        if category is None:
            return 0
        if category.is_default:
            raise ImmutableRecordError(
                category_id, f"Built-in category cannot be deleted: {category.name}"
            )

        cleared = 0
        for tx in self._transactions:
            if getattr(tx, "category", None) == category_id:
                tx.category = None
                cleared += 1
        self._categories.remove(category)
        return cleared

    def set_categories_enabled(self, enabled: bool) -> None:
        self._categories_enabled = bool(enabled)

    # -------------------------------------------------------------------------
    # Replay and snapshots
    # -------------------------------------------------------------------------

    def replay_balances(self) -> dict[str, Decimal]:
        """
        Rebuild live balances by replaying the log in recording order.

        Used to check the balance invariant; the result should always equal
        ``{a.id: a.balance for a in accounts}``.
        """
        balances = {a.id: Decimal("0") for a in self._accounts}
        for tx in self._transactions:
            for account_id, delta in self._effects(tx):
                if account_id in balances:
                    balances[account_id] += delta
        return balances

    def to_snapshot(self) -> LedgerSnapshot:
        return LedgerSnapshot(
            accounts=[a.model_copy(deep=True) for a in self._accounts],
            transactions=[t.model_copy(deep=True) for t in self._transactions],
            categories=[c.model_copy(deep=True) for c in self._categories],
            currency=self._currency,
            categories_enabled=self._categories_enabled,
        )

    @classmethod
    def from_snapshot(
        cls,
        snapshot: LedgerSnapshot,
        clock: Optional[Callable[[], datetime]] = None,
        id_factory: Optional[Callable[[], str]] = None,
    ) -> "LedgerEngine":
        return cls(
            accounts=snapshot.accounts,
            transactions=snapshot.transactions,
            categories=snapshot.categories or None,
            currency=snapshot.currency,
            categories_enabled=snapshot.categories_enabled,
            clock=clock,
            id_factory=id_factory,
        )

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    @staticmethod
    def _effects(tx: Transaction) -> list[tuple[str, Decimal]]:
        """Signed balance changes a transaction makes, per account."""
        if tx.type == TransactionType.INCOME:
            return [(tx.account_id, tx.amount)]
        elif tx.type == TransactionType.EXPENDITURE:
            return [(tx.account_id, -tx.amount)]
        elif tx.type == TransactionType.ACCOUNT_CREATION:
            return [(tx.account_id, tx.amount)]
        elif tx.type == TransactionType.TRANSFER:
            return [(tx.account_id, -tx.amount), (tx.to_account_id, tx.amount)]
        raise AssertionError(f"Unhandled transaction type: {tx.type}")

    def _apply(self, tx: Transaction, sign: int) -> None:
        for account_id, delta in self._effects(tx):
            account = self._live_account(account_id)
            if account is not None:
                account.balance += sign * delta

    def _live_account(self, account_id: Optional[str]) -> Optional[Account]:
        return next((a for a in self._accounts if a.id == account_id), None)

    def _require_account(self, account_id: str) -> Account:
        account = self._live_account(account_id)
        if account is None:
            raise NotFoundError(f"Account not found: {account_id}")
        return account

    def _is_known_account_id(self, account_id: str) -> bool:
        if self._live_account(account_id) is not None:
            return True
        return any(t.references(account_id) for t in self._transactions)

    def _find_transaction(self, transaction_id: str) -> Optional[Transaction]:
        return next((t for t in self._transactions if t.id == transaction_id), None)

    def _require_transaction(self, transaction_id: str) -> Transaction:
        tx = self._find_transaction(transaction_id)
        if tx is None:
            raise NotFoundError(f"Transaction not found: {transaction_id}")
        return tx

    @staticmethod
    def _reject_account_creation(tx: Transaction) -> None:
        if tx.type == TransactionType.ACCOUNT_CREATION:
            raise ImmutableRecordError(
                tx.id, "Account creation records cannot be edited or deleted"
            )

    @staticmethod
    def _flow_type(value: Union[TransactionType, str]) -> TransactionType:
        try:
            flow_type = TransactionType(value)
        except ValueError:
            raise ValidationError(f"Unknown transaction type: {value!r}")
        if flow_type not in FLOW_TYPES:
            raise ValidationError(f"Not an income/expenditure type: {flow_type.value}")
        return flow_type

    def _check_category(self, category_id: Optional[str], flow_type: TransactionType) -> None:
        if category_id is None:
            return
        category = get_category_by_id(category_id, self._categories)
        if category is None:
            raise NotFoundError(f"Category not found: {category_id}")
        if category.type != _CATEGORY_KIND[flow_type]:
            raise ValidationError(
                f"Category '{category.name}' is for {category.type.value}, "
                f"not {flow_type.value}"
            )

    @staticmethod
    def _check_date(value: Optional[datetime]) -> None:
        if value is not None and not isinstance(value, datetime):
            raise ValidationError(f"date must be a datetime, got {value!r}")

    @staticmethod
    def _check_icon(icon: str) -> None:
        if not is_assignable_icon(icon):
            raise ValidationError(f"Unknown icon: {icon}")
