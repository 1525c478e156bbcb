"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is used as the hosted document store because:
1. Users can view their ledger directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)
4. Easy to export/migrate later

TRADEOFFS:
- Not suitable for high-volume data (we're fine for personal use)
- No transactions: a snapshot is written sheet by sheet, last writer wins
- Limited query capabilities (the ledger lives in memory anyway)

Layout, one worksheet per collection:
- Accounts:      id, name, balance
- Transactions:  one row per transaction, variant fields left blank
- Categories:    id, name, icon, type, is_default
- Preferences:   key/value rows (currency, categories_enabled)
- AuditLog:      append-only audit events
"""

import json
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Optional
from uuid import UUID

import gspread
from google.oauth2.service_account import Credentials
from pydantic import ValidationError as PydanticValidationError
from tenacity import retry, stop_after_attempt, wait_exponential

from assetflow.config import get_settings
from assetflow.models.audit import AuditEvent, AuditEventType, AuditSeverity
from assetflow.models.ledger import (
    Account,
    Category,
    LedgerSnapshot,
    Transaction,
    TransactionAdapter,
    TransactionType,
    TransferTransaction,
)
from assetflow.services.storage.interface import (
    AuditStorageInterface,
    CorruptSnapshotError,
    LedgerStorageInterface,
    PersistenceError,
    StorageConnectionError,
)


ACCOUNT_COLUMNS = ["id", "name", "balance"]

TRANSACTION_COLUMNS = [
    "id",
    "type",
    "amount",
    "account_id",
    "account_name",
    "to_account_id",
    "to_account_name",
    "date",
    "modified_at",
    "remarks",
    "category",
    "is_orphaned",
]

CATEGORY_COLUMNS = ["id", "name", "icon", "type", "is_default"]

PREFERENCE_COLUMNS = ["key", "value"]

AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "entity_type",
    "entity_id",
    "description",
    "details_json",
    "error_message",
    "is_user_action",
]


def _row_dict(columns: list[str], row: list) -> dict[str, str]:
    """Pair a row with its header; short rows are padded with blanks."""
    padded = list(row) + [""] * (len(columns) - len(row))
    return dict(zip(columns, padded))


def _parse_bool(value: str) -> bool:
    return str(value).strip().lower() == "true"


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = get_settings().google_sheets

    @property
    def settings(self):
        return self._settings

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise StorageConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise StorageConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise StorageConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def get_worksheet(self, title: str, columns: list[str], rows: int = 1000) -> gspread.Worksheet:
        """Get or create a worksheet with the given header row."""
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet


class GoogleSheetsLedgerStorage(LedgerStorageInterface):
    """
    Google Sheets implementation of ledger snapshot storage.

    Every save rewrites each collection's sheet in full.
    """

    backend_name = "google_sheets"

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    # -- row conversion --------------------------------------------------------

    @staticmethod
    def _account_to_row(account: Account) -> list:
        return [account.id, account.name, str(account.balance)]

    @staticmethod
    def _row_to_account(row: list) -> Account:
        data = _row_dict(ACCOUNT_COLUMNS, row)
        return Account(
            id=data["id"],
            name=data["name"],
            balance=Decimal(data["balance"] or "0"),
        )

    @staticmethod
    def _transaction_to_row(tx: Transaction) -> list:
        is_transfer = isinstance(tx, TransferTransaction)
        return [
            tx.id,
            tx.type,
            str(tx.amount),
            tx.account_id,
            tx.account_name,
            tx.to_account_id if is_transfer else "",
            tx.to_account_name if is_transfer else "",
            tx.date.isoformat(),
            tx.modified_at.isoformat() if tx.modified_at else "",
            tx.remarks,
            getattr(tx, "category", None) or "",
            str(tx.is_orphaned),
        ]

    @staticmethod
    def _row_to_transaction(row: list) -> Transaction:
        data = _row_dict(TRANSACTION_COLUMNS, row)
        payload = {
            "id": data["id"],
            "type": data["type"],
            "amount": Decimal(data["amount"]),
            "account_id": data["account_id"],
            "account_name": data["account_name"],
            "date": datetime.fromisoformat(data["date"]),
            "modified_at": (
                datetime.fromisoformat(data["modified_at"]) if data["modified_at"] else None
            ),
            "remarks": data["remarks"],
            "is_orphaned": _parse_bool(data["is_orphaned"]),
        }
        if data["type"] == TransactionType.TRANSFER:
            payload["to_account_id"] = data["to_account_id"]
            payload["to_account_name"] = data["to_account_name"]
        elif data["type"] in (TransactionType.INCOME, TransactionType.EXPENDITURE):
            payload["category"] = data["category"] or None
        return TransactionAdapter.validate_python(payload)

    @staticmethod
    def _category_to_row(category: Category) -> list:
        return [
            category.id,
            category.name,
            category.icon,
            category.type.value,
            str(category.is_default),
        ]

    @staticmethod
    def _row_to_category(row: list) -> Category:
        data = _row_dict(CATEGORY_COLUMNS, row)
        return Category(
            id=data["id"],
            name=data["name"],
            icon=data["icon"] or "Shapes",
            type=data["type"],
            is_default=_parse_bool(data["is_default"]),
        )

    # -- sheets ----------------------------------------------------------------

    def _sheets(self) -> dict[str, gspread.Worksheet]:
        settings = self._client.settings
        return {
            "accounts": self._client.get_worksheet(settings.accounts_sheet_name, ACCOUNT_COLUMNS),
            "transactions": self._client.get_worksheet(
                settings.transactions_sheet_name, TRANSACTION_COLUMNS, rows=5000
            ),
            "categories": self._client.get_worksheet(settings.categories_sheet_name, CATEGORY_COLUMNS),
            "preferences": self._client.get_worksheet(
                settings.preferences_sheet_name, PREFERENCE_COLUMNS, rows=20
            ),
        }

    @staticmethod
    def _data_rows(sheet: gspread.Worksheet) -> list[list]:
        """All rows except the header, skipping empty ones."""
        return [row for row in sheet.get_all_values()[1:] if row and row[0]]

    @staticmethod
    def _rewrite(sheet: gspread.Worksheet, columns: list[str], rows: list[list]) -> None:
        sheet.clear()
        sheet.update(values=[columns] + rows, range_name="A1", value_input_option="RAW")

    # -- interface -------------------------------------------------------------

    async def load(self) -> Optional[LedgerSnapshot]:
        """Read every collection sheet back into a snapshot."""
        try:
            sheets = self._sheets()
            preferences = {
                row[0]: (row[1] if len(row) > 1 else "")
                for row in self._data_rows(sheets["preferences"])
            }
            if not preferences.get("currency"):
                return None

            account_rows = self._data_rows(sheets["accounts"])
            transaction_rows = self._data_rows(sheets["transactions"])
            category_rows = self._data_rows(sheets["categories"])
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(f"Failed to load ledger: {e}")

        try:
            return LedgerSnapshot(
                accounts=[self._row_to_account(r) for r in account_rows],
                transactions=[self._row_to_transaction(r) for r in transaction_rows],
                categories=[self._row_to_category(r) for r in category_rows],
                currency=preferences["currency"],
                categories_enabled=_parse_bool(preferences.get("categories_enabled", "True")),
            )
        except (PydanticValidationError, InvalidOperation, ValueError) as e:
            raise CorruptSnapshotError(f"Ledger spreadsheet holds invalid data: {e}")

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def save(self, snapshot: LedgerSnapshot) -> bool:
        """Rewrite every collection sheet from the snapshot."""
        try:
            sheets = self._sheets()
            self._rewrite(
                sheets["accounts"],
                ACCOUNT_COLUMNS,
                [self._account_to_row(a) for a in snapshot.accounts],
            )
            self._rewrite(
                sheets["transactions"],
                TRANSACTION_COLUMNS,
                [self._transaction_to_row(t) for t in snapshot.transactions],
            )
            self._rewrite(
                sheets["categories"],
                CATEGORY_COLUMNS,
                [self._category_to_row(c) for c in snapshot.categories],
            )
            self._rewrite(
                sheets["preferences"],
                PREFERENCE_COLUMNS,
                [
                    ["currency", snapshot.currency or ""],
                    ["categories_enabled", str(snapshot.categories_enabled)],
                ],
            )
            return True
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(f"Failed to save ledger: {e}")

    async def clear(self) -> bool:
        """Empty every collection sheet, keeping the headers."""
        try:
            sheets = self._sheets()
            self._rewrite(sheets["accounts"], ACCOUNT_COLUMNS, [])
            self._rewrite(sheets["transactions"], TRANSACTION_COLUMNS, [])
            self._rewrite(sheets["categories"], CATEGORY_COLUMNS, [])
            self._rewrite(sheets["preferences"], PREFERENCE_COLUMNS, [])
            return True
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(f"Failed to clear ledger: {e}")


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _sheet(self) -> gspread.Worksheet:
        return self._client.get_worksheet(
            self._client.settings.audit_sheet_name, AUDIT_COLUMNS, rows=5000
        )

    @staticmethod
    def _row_to_event(row: list) -> AuditEvent:
        data = _row_dict(AUDIT_COLUMNS, row)
        return AuditEvent(
            event_id=UUID(data["event_id"]),
            timestamp=datetime.fromisoformat(data["timestamp"]),
            event_type=AuditEventType(data["event_type"]),
            severity=AuditSeverity(data["severity"]),
            entity_type=data["entity_type"] or None,
            entity_id=data["entity_id"] or None,
            description=data["description"],
            details=json.loads(data["details_json"]) if data["details_json"] else {},
            error_message=data["error_message"] or None,
            is_user_action=_parse_bool(data["is_user_action"]),
        )

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            self._sheet().append_row(event.to_sheets_row(), value_input_option="RAW")
            return True
        except Exception as e:
            raise PersistenceError(f"Failed to write audit event: {e}")

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Get recent events."""
        try:
            all_rows = self._sheet().get_all_values()[1:]
        except Exception as e:
            raise PersistenceError(f"Failed to get audit events: {e}")

        events = []
        for row in all_rows:
            if row and row[0]:
                try:
                    events.append(self._row_to_event(row))
                except (ValueError, PydanticValidationError):
                    continue  # Skip malformed rows

        # Sort newest first
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
