"""
Google Sheets Blob Backend

DESIGN DECISION: the optional cloud backup lives in a spreadsheet the user
already owns, so a restore needs nothing but their Google account.

Each collection blob is one row: [key, blob, updated_at]. The sheet is
only ever touched through RecordStore.backup_to / restore_from, so the
latency of the Sheets API never sits on the interactive path.

TRADEOFFS:
- A single cell holds at most ~50k characters, fine for a personal ledger
- Last write wins; there is no merge
"""

from datetime import datetime, timezone
from typing import Optional

import gspread
from google.oauth2.service_account import Credentials
from tenacity import retry, stop_after_attempt, wait_exponential

from finbot.config import get_settings
from finbot.services.storage.interface import (
    BlobBackend,
    ConnectionError,
    NotFoundError,
    StorageError,
)


BLOB_COLUMNS = ["key", "blob", "updated_at"]


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self, settings=None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = settings or get_settings().google_sheets

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """Authorise once with the service account file from settings."""
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
                raise ConnectionError(
                    f"Service account file missing: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Google Sheets authorisation failed: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Open the backup spreadsheet by id, once per client."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise NotFoundError(
                    f"No backup spreadsheet with id {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def get_blobs_sheet(self) -> gspread.Worksheet:
        """Get or create the worksheet holding one row per collection."""
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(self._settings.blobs_sheet_name)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(
                title=self._settings.blobs_sheet_name,
                rows=100,
                cols=len(BLOB_COLUMNS),
            )
            sheet.append_row(BLOB_COLUMNS)
        return sheet


class GoogleSheetsBackend(BlobBackend):
    """
    Google Sheets implementation of the blob backend.

    `client` only needs a `get_blobs_sheet()` method, so tests can hand in
    a fake worksheet without touching the network.
    """

    def __init__(self, client=None):
        self._client = client or GoogleSheetsClient()

    def _rows(self, sheet) -> list[list[str]]:
        # Row 1 is the header
        return sheet.get_all_values()[1:]

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def read(self, key: str) -> Optional[str]:
        try:
            sheet = self._client.get_blobs_sheet()
            for row in self._rows(sheet):
                if row and row[0] == key:
                    return row[1] if len(row) > 1 else ""
            return None
        except ConnectionError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to read {key} from Google Sheets: {e}")

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def write(self, key: str, blob: str) -> None:
        try:
            sheet = self._client.get_blobs_sheet()
            now = datetime.now(timezone.utc).isoformat()
            for idx, row in enumerate(self._rows(sheet), start=2):
                if row and row[0] == key:
                    sheet.update_cell(idx, 2, blob)
                    sheet.update_cell(idx, 3, now)
                    return
            sheet.append_row([key, blob, now], value_input_option="RAW")
        except ConnectionError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to write {key} to Google Sheets: {e}")

    def delete(self, key: str) -> bool:
        try:
            sheet = self._client.get_blobs_sheet()
            for idx, row in enumerate(self._rows(sheet), start=2):
                if row and row[0] == key:
                    sheet.delete_rows(idx)
                    return True
            return False
        except ConnectionError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to delete {key} from Google Sheets: {e}")

    def keys(self) -> list[str]:
        try:
            sheet = self._client.get_blobs_sheet()
            return sorted(row[0] for row in self._rows(sheet) if row and row[0])
        except ConnectionError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to list Google Sheets keys: {e}")
