"""
Data Models Package

This package contains all Pydantic models used in AssetFlow.
All data flowing through the system must conform to these schemas.
"""

from assetflow.models.ledger import (
    FLOW_TYPES,
    Account,
    AccountCreationTransaction,
    Category,
    CategoryType,
    ExpenditureTransaction,
    FlowTransaction,
    IncomeTransaction,
    LedgerSnapshot,
    Transaction,
    TransactionAdapter,
    TransactionType,
    TransferTransaction,
)
from assetflow.models.reports import (
    CategorySpending,
    MonthlySummary,
    SortOrder,
    StatementFilter,
)
from assetflow.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "FLOW_TYPES",
    "Account",
    "AccountCreationTransaction",
    "Category",
    "CategoryType",
    "ExpenditureTransaction",
    "FlowTransaction",
    "IncomeTransaction",
    "LedgerSnapshot",
    "Transaction",
    "TransactionAdapter",
    "TransactionType",
    "TransferTransaction",
    # Report models
    "CategorySpending",
    "MonthlySummary",
    "SortOrder",
    "StatementFilter",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
