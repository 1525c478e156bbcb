"""
Read-only Ledger Reports

DESIGN DECISION: Reports are DETERMINISTIC pure functions over a list of
transactions. They never mutate the ledger and never talk to storage, so the
UI can call them as often as it re-renders.

Reports:
1. Statement filtering (accounts, search shortcuts, date range, ordering)
2. Monthly income/expense summary for the bar chart
3. Current-month spending by category for the pie chart
"""

from datetime import datetime
from decimal import Decimal
from typing import Iterable, Optional

from assetflow.ledger.categories import get_category_by_id
from assetflow.models.ledger import (
    Category,
    Transaction,
    TransactionType,
    TransferTransaction,
    utcnow,
)
from assetflow.models.reports import (
    CategorySpending,
    MonthlySummary,
    SortOrder,
    StatementFilter,
    as_aware,
)


MONTH_ABBREVIATIONS = (
    "Jan", "Feb", "Mar", "Apr", "May", "Jun",
    "Jul", "Aug", "Sep", "Oct", "Nov", "Dec",
)

UNCATEGORIZED = "Uncategorized"


def month_label(year: int, month: int) -> str:
    return f"{MONTH_ABBREVIATIONS[month - 1]} {year}"


def _touches_any(tx: Transaction, account_ids: set[str]) -> bool:
    if tx.account_id in account_ids:
        return True
    return isinstance(tx, TransferTransaction) and tx.to_account_id in account_ids


def _matches_search(
    tx: Transaction,
    term: str,
    categories: list[Category],
    categories_enabled: bool,
) -> bool:
    if term == "+":
        return tx.type == TransactionType.INCOME
    if term == "-":
        return tx.type == TransactionType.EXPENDITURE
    if term == "=":
        return tx.type in (TransactionType.TRANSFER, TransactionType.ACCOUNT_CREATION)

    if term in (tx.remarks or "").lower():
        return True
    if categories_enabled:
        category = get_category_by_id(getattr(tx, "category", None), categories)
        if category and term in category.name.lower():
            return True
    return False


def filter_statement(
    transactions: Iterable[Transaction],
    statement_filter: Optional[StatementFilter] = None,
    categories: Iterable[Category] = (),
    categories_enabled: bool = True,
    now: Optional[datetime] = None,
) -> list[Transaction]:
    """
    Apply the statement view filters.

    An open-ended date range runs up to ``now``.
    """
    statement_filter = statement_filter or StatementFilter()
    categories = list(categories)
    items = list(transactions)

    if not statement_filter.show_account_creations:
        items = [t for t in items if t.type != TransactionType.ACCOUNT_CREATION]

    if statement_filter.account_ids:
        wanted = set(statement_filter.account_ids)
        items = [t for t in items if _touches_any(t, wanted)]

    term = (statement_filter.search_term or "").strip().lower()
    if term:
        items = [
            t for t in items
            if _matches_search(t, term, categories, categories_enabled)
        ]

    if statement_filter.date_from or statement_filter.date_to:
        start = as_aware(statement_filter.date_from) if statement_filter.date_from else None
        end = as_aware(statement_filter.date_to or now or utcnow())
        items = [
            t for t in items
            if (start is None or as_aware(t.date) >= start) and as_aware(t.date) <= end
        ]

    items.sort(
        key=lambda t: as_aware(t.date),
        reverse=statement_filter.sort_order == SortOrder.DESC,
    )
    return items


def monthly_summary(
    transactions: Iterable[Transaction],
    months: int = 6,
    today: Optional[datetime] = None,
) -> list[MonthlySummary]:
    """
    Income and expense totals for the last ``months`` calendar months,
    including the current one, oldest first.

    Transfers and account creations are not income or expense.
    """
    today = today or utcnow()
    year, month = today.year, today.month
    keys = []
    for _ in range(months):
        keys.append((year, month))
        month -= 1
        if month == 0:
            year, month = year - 1, 12
    keys.reverse()

    totals = {key: MonthlySummary(month=month_label(*key)) for key in keys}
    for tx in transactions:
        summary = totals.get((tx.date.year, tx.date.month))
        if summary is None:
            continue
        if tx.type == TransactionType.INCOME:
            summary.income += tx.amount
        elif tx.type == TransactionType.EXPENDITURE:
            summary.expense += tx.amount

    return [totals[key] for key in keys]


def spending_by_category(
    transactions: Iterable[Transaction],
    categories: Iterable[Category],
    today: Optional[datetime] = None,
    categories_enabled: bool = True,
) -> list[CategorySpending]:
    """
    Current-month expenditure grouped by category name.

    Only categorized expenditure counts. Ids that no longer resolve are
    grouped as "Uncategorized".
    """
    if not categories_enabled:
        return []

    today = today or utcnow()
    categories = list(categories)
    spending: dict[str, Decimal] = {}

    for tx in transactions:
        if tx.type != TransactionType.EXPENDITURE or not tx.category:
            continue
        if (tx.date.year, tx.date.month) != (today.year, today.month):
            continue
        category = get_category_by_id(tx.category, categories)
        name = category.name if category else UNCATEGORIZED
        spending[name] = spending.get(name, Decimal("0")) + tx.amount

    return [CategorySpending(name=name, value=value) for name, value in spending.items()]
