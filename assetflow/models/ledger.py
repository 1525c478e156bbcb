"""
Core Data Models for AssetFlow

These models define the schemas for everything the ledger holds.
They are designed to:
1. Enforce type safety at runtime
2. Serialize to the camelCase JSON snapshot the storage backends share
3. Make the transaction kinds a closed set

DESIGN DECISION: Transaction is a discriminated union on ``type``.
Each variant carries only the fields that make sense for it, so a transfer
cannot exist without its destination and an income record cannot carry one.
"""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Annotated, Literal, Optional, Union
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def new_id() -> str:
    """Opaque unique identifier for accounts, transactions and categories."""
    return str(uuid4())


ACCOUNT_NAME_MAX_LENGTH = 100
CATEGORY_NAME_MAX_LENGTH = 50
REMARKS_MAX_LENGTH = 500


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class TransactionType(str, Enum):
    """
    Transaction kinds.

    Not extensible at runtime: every switch over the kind must handle
    all four members.
    """
    INCOME = "income"
    EXPENDITURE = "expenditure"
    ACCOUNT_CREATION = "account_creation"
    TRANSFER = "transfer"


class CategoryType(str, Enum):
    """Which flows a category applies to."""
    INCOME = "income"
    EXPENSE = "expense"


FLOW_TYPES = (TransactionType.INCOME, TransactionType.EXPENDITURE)


class LedgerModel(BaseModel):
    """Shared config: camelCase aliases on the wire, snake_case in Python."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
        validate_assignment=True,
    )


# =============================================================================
# ACCOUNTS
# =============================================================================

class Account(LedgerModel):
    """
    A named balance-holding entity (bank account, cash, card).

    The balance is signed; overdrafts are allowed.
    """

    id: str = Field(
        default_factory=new_id,
        min_length=1,
        description="Opaque identifier, immutable once created"
    )
    name: str = Field(
        ...,
        min_length=1,
        max_length=ACCOUNT_NAME_MAX_LENGTH,
        description="Human-readable label"
    )
    balance: Decimal = Field(
        default=Decimal("0"),
        description="Current balance in the ledger currency"
    )


# =============================================================================
# TRANSACTIONS
# =============================================================================

class TransactionBase(LedgerModel):
    """
    Fields shared by every transaction kind.

    ``account_name`` is the display name at time of last sync. It is kept
    in step with renames and frozen once the account is deleted.
    """

    id: str = Field(
        default_factory=new_id,
        min_length=1,
        description="Opaque identifier, immutable"
    )
    amount: Decimal = Field(
        ...,
        ge=0,
        description="Magnitude; the sign is implied by the type"
    )
    account_id: str = Field(
        ...,
        min_length=1,
        description="Account affected (source account for transfers)"
    )
    account_name: str = Field(
        default="",
        description="Account name as last synced"
    )
    date: datetime = Field(
        default_factory=utcnow,
        description="When the financial event occurred"
    )
    modified_at: Optional[datetime] = Field(
        default=None,
        description="When the record was last edited"
    )
    remarks: str = Field(
        default="",
        max_length=REMARKS_MAX_LENGTH,
        description="Free-text note"
    )
    is_orphaned: bool = Field(
        default=False,
        description="A referenced account no longer exists"
    )

    def references(self, account_id: str) -> bool:
        """Does this transaction touch the given account?"""
        return self.account_id == account_id


class IncomeTransaction(TransactionBase):
    """Money flowing into an account."""

    type: Literal["income"] = "income"
    category: Optional[str] = Field(
        default=None,
        description="Category id"
    )


class ExpenditureTransaction(TransactionBase):
    """Money flowing out of an account."""

    type: Literal["expenditure"] = "expenditure"
    category: Optional[str] = Field(
        default=None,
        description="Category id"
    )


class AccountCreationTransaction(TransactionBase):
    """
    Audit record of an account's opening balance.

    CRITICAL: These are never edited or deleted directly.
    The amount is the signed opening balance.
    """

    type: Literal["account_creation"] = "account_creation"
    amount: Decimal = Field(
        ...,
        description="Opening balance of the account"
    )


class TransferTransaction(TransactionBase):
    """Money moved from ``account_id`` to ``to_account_id``."""

    type: Literal["transfer"] = "transfer"
    to_account_id: str = Field(
        ...,
        min_length=1,
        description="Destination account"
    )
    to_account_name: str = Field(
        default="",
        description="Destination account name as last synced"
    )

    def references(self, account_id: str) -> bool:
        return self.account_id == account_id or self.to_account_id == account_id


FlowTransaction = Union[IncomeTransaction, ExpenditureTransaction]

Transaction = Annotated[
    Union[
        IncomeTransaction,
        ExpenditureTransaction,
        AccountCreationTransaction,
        TransferTransaction,
    ],
    Field(discriminator="type"),
]

TransactionAdapter: TypeAdapter[Transaction] = TypeAdapter(Transaction)


# =============================================================================
# CATEGORIES
# =============================================================================

class Category(LedgerModel):
    """
    A transaction category.

    Built-in categories (``is_default``) can be renamed or re-iconed
    but never deleted.
    """

    id: str = Field(
        default_factory=new_id,
        min_length=1
    )
    name: str = Field(
        ...,
        min_length=1,
        max_length=CATEGORY_NAME_MAX_LENGTH
    )
    icon: str = Field(
        default="Shapes",
        description="Symbolic icon name"
    )
    type: CategoryType
    is_default: bool = False


# =============================================================================
# SNAPSHOT
# =============================================================================

class LedgerSnapshot(LedgerModel):
    """
    Everything the persistence backends save and load.

    Serialized with camelCase keys (``accountId``, ``isOrphaned``...).
    """

    accounts: list[Account] = Field(default_factory=list)
    transactions: list[Transaction] = Field(default_factory=list)
    categories: list[Category] = Field(default_factory=list)
    currency: Optional[str] = None
    categories_enabled: bool = True

    def to_json_dict(self) -> dict:
        """Convert to a JSON-ready dict with wire (camelCase) keys."""
        return self.model_dump(mode="json", by_alias=True)
