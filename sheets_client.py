"""
Google Sheets API client using gspread.
Provides Service Account authentication and the read-only queries
the tiered retrieval needs: metadata, structure, and range values.
"""
import json
import logging
from typing import Any

import gspread
from gspread.exceptions import APIError
from google.oauth2.service_account import Credentials

from lib.errors import NotFoundError
from lib.types import SheetValues

logger = logging.getLogger(__name__)

SCOPES = [
    "https://www.googleapis.com/auth/spreadsheets.readonly",
    "https://www.googleapis.com/auth/drive.readonly",
]

# Value render modes for range queries
UNFORMATTED_VALUE = "UNFORMATTED_VALUE"
FORMULA = "FORMULA"


def _is_not_found(e: APIError) -> bool:
    return getattr(e, "code", None) == 404


class SheetsClient:
    """Wrapper around gspread's HTTP client for read-only Sheets API access."""

    def __init__(self, credentials_json: str | dict):
        """
        Initialize the client with Service Account credentials.

        Args:
            credentials_json: Either a JSON string or dict containing
                             the Service Account credentials.
        """
        if isinstance(credentials_json, str):
            credentials_json = json.loads(credentials_json)
        creds = Credentials.from_service_account_info(credentials_json, scopes=SCOPES)
        self.gc = gspread.authorize(creds)

    def fetch_metadata(self, spreadsheet_id: str, fields: str) -> dict[str, Any]:
        """
        spreadsheets.get restricted to a field mask, without grid data.

        Used for both the metadata and the structure tier; the caller
        chooses the mask.
        """
        params = {"fields": fields, "includeGridData": "false"}
        logger.debug("spreadsheets.get %s fields=%s", spreadsheet_id, fields)
        try:
            return dict(self.gc.http_client.fetch_sheet_metadata(spreadsheet_id, params=params))
        except APIError as e:
            if _is_not_found(e):
                raise NotFoundError(f"spreadsheet not found: {spreadsheet_id}") from e
            raise

    def fetch_structure(self, spreadsheet_id: str, fields: str) -> dict[str, Any]:
        """Structural elements query (merges, formats, protections, charts, ...)."""
        return self.fetch_metadata(spreadsheet_id, fields)

    def get_values(
        self,
        spreadsheet_id: str,
        range_notation: str,
        render: str = UNFORMATTED_VALUE,
    ) -> SheetValues:
        """
        Get values from a range (e.g., "'Sheet1'!A1:D30").

        Args:
            render: UNFORMATTED_VALUE for raw values, FORMULA for formulas
        """
        params = {"valueRenderOption": render}
        logger.debug("values.get %s %s render=%s", spreadsheet_id, range_notation, render)
        try:
            response = self.gc.http_client.values_get(spreadsheet_id, range_notation, params=params)
        except APIError as e:
            if _is_not_found(e):
                raise NotFoundError(f"spreadsheet not found: {spreadsheet_id}") from e
            raise
        return response.get("values", [])


# Singleton instance for the application
_sheets_client: SheetsClient | None = None


def get_sheets_client() -> SheetsClient:
    """
    Get the global SheetsClient instance.
    Initializes from environment variables on first call.
    """
    global _sheets_client
    if _sheets_client is None:
        from env_loader import get_google_credentials
        credentials = get_google_credentials()
        _sheets_client = SheetsClient(credentials)
    return _sheets_client


def reset_sheets_client() -> None:
    """Reset the global client (useful for testing)."""
    global _sheets_client
    _sheets_client = None
