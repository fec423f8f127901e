"""
Google Sheets receipt ledger.

Rows are appended to the first worksheet of the configured spreadsheet.
Values are placed under the sheet's existing header row, so column order
in the sheet is free to differ from LEDGER_COLUMNS; an empty sheet gets
LEDGER_COLUMNS as its header first.
"""

import logging

import gspread

from app.config import Settings
from app.errors import LedgerWriteError
from app.models.receipt import LEDGER_COLUMNS, ReceiptRecord

logger = logging.getLogger(__name__)


class LedgerWriter:
    """Append-only writer over a gspread Worksheet."""

    def __init__(self, worksheet: gspread.Worksheet) -> None:
        self._worksheet = worksheet

    @classmethod
    def from_settings(cls, settings: Settings) -> "LedgerWriter":
        """
        Authenticate with the service account and open the ledger sheet.

        Raises:
            LedgerWriteError: If authentication or opening the sheet fails
        """
        try:
            client = gspread.service_account(filename=settings.google_service_account_file)
            worksheet = client.open_by_key(settings.google_sheet_id).get_worksheet(0)
        except Exception as e:
            raise LedgerWriteError(f"Failed to open ledger spreadsheet: {e}") from e
        return cls(worksheet)

    def _headers(self) -> list[str]:
        headers = [h.strip() for h in self._worksheet.row_values(1)]
        if any(headers):
            return headers
        self._worksheet.append_row(list(LEDGER_COLUMNS), value_input_option="RAW")
        return list(LEDGER_COLUMNS)

    def append(self, record: ReceiptRecord) -> None:
        """
        Append one record as a new row.

        Raises:
            LedgerWriteError: If the sheet cannot be read or written
        """
        row = record.to_ledger_row()
        try:
            values = [row.get(header, "") for header in self._headers()]
            self._worksheet.append_row(values, value_input_option="RAW")
        except Exception as e:
            raise LedgerWriteError(f"Failed to append receipt {record.id}: {e}") from e

        logger.info(f"Ledger updated with receipt {record.id}")
