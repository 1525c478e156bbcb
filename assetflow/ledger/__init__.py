"""Ledger package: the engine, its errors and the read-only reports."""

from assetflow.ledger.categories import (
    ASSIGNABLE_ICONS,
    default_categories,
    get_categories_by_type,
    get_category_by_id,
)
from assetflow.ledger.engine import UNSET, LedgerEngine, to_amount
from assetflow.ledger.errors import (
    ImmutableRecordError,
    LedgerError,
    NotFoundError,
    ValidationError,
)
from assetflow.ledger.reports import (
    filter_statement,
    monthly_summary,
    spending_by_category,
)

__all__ = [
    "ASSIGNABLE_ICONS",
    "UNSET",
    "ImmutableRecordError",
    "LedgerEngine",
    "LedgerError",
    "NotFoundError",
    "ValidationError",
    "default_categories",
    "filter_statement",
    "get_categories_by_type",
    "get_category_by_id",
    "monthly_summary",
    "spending_by_category",
    "to_amount",
]
