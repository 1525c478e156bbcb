"""CSV export package."""

from assetflow.export.csv_export import (
    FULL_HEADER,
    STATEMENT_HEADER,
    export_all_transactions_csv,
    export_filename,
    export_statement_csv,
)

__all__ = [
    "FULL_HEADER",
    "STATEMENT_HEADER",
    "export_all_transactions_csv",
    "export_filename",
    "export_statement_csv",
]
