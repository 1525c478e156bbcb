"""
Report Models

Inputs and outputs of the read-only views computed over the ledger:
statement filtering, the monthly income/expense summary and the
spending-by-category breakdown.
"""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, model_validator


def as_aware(value: datetime) -> datetime:
    """Naive datetimes are taken to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class SortOrder(str, Enum):
    """Statement ordering by transaction date."""
    ASC = "asc"
    DESC = "desc"


class StatementFilter(BaseModel):
    """
    Filters applied to the statement view.

    Search term shortcuts:
    - "+" income only
    - "-" expenditure only
    - "=" transfers and account creations
    Anything else matches remarks or category name.
    """

    account_ids: list[str] = Field(
        default_factory=list,
        description="Keep transactions touching any of these accounts"
    )
    show_account_creations: bool = Field(
        default=False,
        description="Include opening-balance records"
    )
    search_term: Optional[str] = Field(
        default=None,
        max_length=100
    )
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    sort_order: SortOrder = SortOrder.DESC

    @model_validator(mode='after')
    def validate_dates(self) -> 'StatementFilter':
        if (
            self.date_from
            and self.date_to
            and as_aware(self.date_to) < as_aware(self.date_from)
        ):
            raise ValueError("End date cannot be before start date")
        return self


class MonthlySummary(BaseModel):
    """Income and expense totals for one calendar month."""

    month: str = Field(
        ...,
        description="Month label, e.g. 'Mar 2025'"
    )
    income: Decimal = Decimal("0")
    expense: Decimal = Decimal("0")


class CategorySpending(BaseModel):
    """Expenditure total for one category."""

    name: str
    value: Decimal
