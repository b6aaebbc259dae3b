"""Thin Google Sheets v4 client for the destination spreadsheet.

Only the handful of calls the handlers need: read/write the header row,
append a data row, auto-size columns, and read a value range. Each failure is
wrapped in its own error kind so callers can tell a schema problem from a
failed append.
"""

import json
import logging
from typing import Any, Sequence

import google_auth_httplib2
import httplib2
from google.auth.exceptions import GoogleAuthError
from google.oauth2 import service_account
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from formpay.core.config import Settings
from formpay.core.errors import (
    AppendFailed,
    CosmeticFormattingFailed,
    CredentialsMissing,
    SchemaReadFailed,
    SchemaWriteFailed,
    StorageError,
)

logger = logging.getLogger(__name__)

SCOPES = ["https://www.googleapis.com/auth/spreadsheets"]

# Transport and API errors that are worth wrapping; anything else is a bug.
API_ERRORS = (HttpError, GoogleAuthError, httplib2.HttpLib2Error, OSError)


def a1_range(sheet_name: str, ref: str) -> str:
    """``'Sheet Name'!ref`` with the sheet name quoted for A1 notation."""
    escaped = sheet_name.replace("'", "''")
    return f"'{escaped}'!{ref}"


def load_credentials(credentials_json: str, scopes: Sequence[str] = SCOPES):
    if not credentials_json:
        raise CredentialsMissing("GOOGLE_APPLICATION_CREDENTIALS_JSON is not set")
    try:
        info = json.loads(credentials_json)
    except json.JSONDecodeError as exc:
        raise CredentialsMissing("Google credentials are not valid JSON") from exc
    if not info.get("client_email") or not info.get("private_key"):
        raise CredentialsMissing("Google credentials lack client_email or private_key")
    try:
        return service_account.Credentials.from_service_account_info(info, scopes=list(scopes))
    except (ValueError, GoogleAuthError) as exc:
        raise CredentialsMissing(f"Invalid Google credentials: {exc}") from exc


class SheetsClient:
    def __init__(
        self,
        credentials_json: str = "",
        timeout: float = 10.0,
        append_retries: int = 1,
        scopes: Sequence[str] = SCOPES,
        service=None,
    ):
        self._credentials_json = credentials_json
        self._timeout = timeout
        self._append_retries = append_retries
        self._scopes = scopes
        self._service = service

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs) -> "SheetsClient":
        return cls(
            credentials_json=settings.google_application_credentials_json,
            timeout=settings.sheets_timeout,
            append_retries=settings.sheets_append_retries,
            **kwargs,
        )

    @property
    def service(self):
        """The discovery service, built on first use."""
        if self._service is None:
            credentials = load_credentials(self._credentials_json, self._scopes)
            http = google_auth_httplib2.AuthorizedHttp(
                credentials, http=httplib2.Http(timeout=self._timeout)
            )
            self._service = build("sheets", "v4", http=http, cache_discovery=False)
        return self._service

    @property
    def values(self):
        return self.service.spreadsheets().values()

    # ---------- header row ----------
    def read_headers(self, spreadsheet_id: str, sheet_name: str) -> list[str]:
        try:
            result = self.values.get(
                spreadsheetId=spreadsheet_id, range=a1_range(sheet_name, "1:1")
            ).execute()
        except API_ERRORS as exc:
            raise SchemaReadFailed(f"Could not read headers of '{sheet_name}': {exc}") from exc
        rows = result.get("values") or [[]]
        return [str(h) for h in rows[0]]

    def write_headers(self, spreadsheet_id: str, sheet_name: str, headers: Sequence[str]) -> None:
        try:
            self.values.update(
                spreadsheetId=spreadsheet_id,
                range=a1_range(sheet_name, "A1"),
                valueInputOption="RAW",
                body={"values": [list(headers)]},
            ).execute()
        except API_ERRORS as exc:
            raise SchemaWriteFailed(f"Could not write headers of '{sheet_name}': {exc}") from exc

    # ---------- data rows ----------
    def append_row(self, spreadsheet_id: str, sheet_name: str, row: Sequence[Any]) -> dict:
        """Insert ``row`` after the last data row. Never overwrites existing rows."""
        try:
            return self.values.append(
                spreadsheetId=spreadsheet_id,
                range=a1_range(sheet_name, "A1"),
                valueInputOption="USER_ENTERED",
                insertDataOption="INSERT_ROWS",
                body={"values": [list(row)]},
            ).execute(num_retries=self._append_retries)
        except API_ERRORS as exc:
            raise AppendFailed(f"Could not append row to '{sheet_name}': {exc}") from exc

    def autosize_columns(self, spreadsheet_id: str, sheet_name: str, count: int) -> None:
        try:
            sheet_id = self._sheet_id(spreadsheet_id, sheet_name)
            self.service.spreadsheets().batchUpdate(
                spreadsheetId=spreadsheet_id,
                body={
                    "requests": [
                        {
                            "autoResizeDimensions": {
                                "dimensions": {
                                    "sheetId": sheet_id,
                                    "dimension": "COLUMNS",
                                    "startIndex": 0,
                                    "endIndex": count,
                                }
                            }
                        }
                    ]
                },
            ).execute()
        except (LookupError, *API_ERRORS) as exc:
            raise CosmeticFormattingFailed(f"Could not resize columns of '{sheet_name}': {exc}") from exc

    def _sheet_id(self, spreadsheet_id: str, sheet_name: str) -> int:
        meta = self.service.spreadsheets().get(
            spreadsheetId=spreadsheet_id, fields="sheets.properties"
        ).execute()
        for sheet in meta.get("sheets", []):
            props = sheet.get("properties", {})
            if props.get("title") == sheet_name:
                return props["sheetId"]
        raise LookupError(f"No sheet named '{sheet_name}'")

    # ---------- generic read ----------
    def get_values(self, spreadsheet_id: str, range_: str) -> list[list[str]]:
        try:
            result = self.values.get(spreadsheetId=spreadsheet_id, range=range_).execute()
        except API_ERRORS as exc:
            raise StorageError(f"Could not read range {range_}: {exc}") from exc
        return result.get("values", [])
