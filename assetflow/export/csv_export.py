"""
CSV Export

Two layouts:
- Statement export: the transactions currently shown on the statement page
- Full export: every transaction in the ledger, with its orphan flag

Expenditure amounts are written negated so a spreadsheet SUM over the
Amount column gives the net flow.
"""

import csv
import io
from datetime import date, datetime
from typing import Iterable, Optional

from assetflow.ledger.categories import get_category_by_id
from assetflow.models.ledger import (
    Category,
    Transaction,
    TransactionType,
    TransferTransaction,
)


STATEMENT_HEADER = ["Date", "Time", "Type", "Amount", "Account", "To Account", "Category", "Remarks"]
FULL_HEADER = ["Date", "Time", "Type", "Amount", "Account", "Remarks", "Is Orphaned"]


def _signed_amount(tx: Transaction) -> str:
    if tx.type == TransactionType.EXPENDITURE:
        return str(-tx.amount)
    return str(tx.amount)


def _category_label(tx: Transaction, categories: list[Category]) -> str:
    category_id = getattr(tx, "category", None)
    if not category_id:
        return ""
    category = get_category_by_id(category_id, categories)
    return category.name if category else category_id


def _write(header: list[str], rows: Iterable[list]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(header)
    writer.writerows(rows)
    return buffer.getvalue()


def export_statement_csv(
    transactions: Iterable[Transaction],
    categories: Optional[list[Category]] = None,
) -> str:
    """Render a statement view as CSV, in the order given."""
    categories = categories or []
    rows = []
    for tx in transactions:
        rows.append([
            tx.date.strftime("%Y-%m-%d"),
            tx.date.strftime("%H:%M:%S"),
            tx.type,
            _signed_amount(tx),
            tx.account_name,
            tx.to_account_name if isinstance(tx, TransferTransaction) else "",
            _category_label(tx, categories),
            tx.remarks,
        ])
    return _write(STATEMENT_HEADER, rows)


def export_all_transactions_csv(transactions: Iterable[Transaction]) -> str:
    """Render the full transaction history as CSV."""
    rows = []
    for tx in transactions:
        rows.append([
            tx.date.strftime("%Y-%m-%d"),
            tx.date.strftime("%H:%M:%S"),
            tx.type,
            _signed_amount(tx),
            tx.account_name,
            tx.remarks,
            "true" if tx.is_orphaned else "false",
        ])
    return _write(FULL_HEADER, rows)


def export_filename(kind: str, today: Optional[date] = None) -> str:
    """
    Download name for an export, e.g. ``assetflow_statement_2024-05-01.csv``.

    ``kind`` is ``"statement"`` or ``"transactions"``.
    """
    today = today or datetime.now().date()
    return f"assetflow_{kind}_{today.isoformat()}.csv"
