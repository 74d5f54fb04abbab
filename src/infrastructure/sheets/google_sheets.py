"""
Google Sheets Source - Sheets API v4 over httpx
================================================

Read-only access to the warehouse and client directory spreadsheets.

Authentication uses a Google service account, either inline
(GOOGLE_CLIENT_EMAIL + GOOGLE_PRIVATE_KEY) or a JSON key file
(GOOGLE_CREDENTIALS_FILE). The spreadsheet must be shared with the
service account email.
"""

import asyncio
import logging
from typing import Any, Optional
from urllib.parse import quote

import httpx
from google.auth.exceptions import GoogleAuthError
from google.auth.transport.requests import Request
from google.oauth2 import service_account

from ...domain.errors import ConfigurationError, SourceUnavailable
from ..config import SheetsSettings
from .source import SheetInfo, SheetSource, SpreadsheetInfo

logger = logging.getLogger(__name__)

SCOPES = [
    "https://www.googleapis.com/auth/spreadsheets.readonly",
    "https://www.googleapis.com/auth/drive.readonly",
]

TOKEN_URI = "https://oauth2.googleapis.com/token"


def load_credentials(settings: SheetsSettings):
    """Build service account credentials from settings."""
    try:
        if settings.credentials_file:
            logger.info(f"Using service account key file: {settings.credentials_file}")
            return service_account.Credentials.from_service_account_file(
                settings.credentials_file, scopes=SCOPES
            )

        if settings.client_email and settings.private_key:
            info = {
                "type": "service_account",
                "client_email": settings.client_email,
                # Keys stored in env files usually carry escaped newlines
                "private_key": settings.private_key.replace("\\n", "\n"),
                "token_uri": TOKEN_URI,
            }
            return service_account.Credentials.from_service_account_info(info, scopes=SCOPES)
    except (OSError, ValueError) as e:
        raise ConfigurationError(f"Invalid Google service account credentials: {e}") from e

    raise ConfigurationError(
        "Google credentials missing: set GOOGLE_CLIENT_EMAIL and GOOGLE_PRIVATE_KEY "
        "or GOOGLE_CREDENTIALS_FILE"
    )


class GoogleSheetsSource(SheetSource):
    """
    Sheets API v4 client.

    Usage:
        source = GoogleSheetsSource(settings.sheets)
        info = await source.get_spreadsheet_info(settings.sheets.spreadsheet_id)
    """

    def __init__(
        self,
        settings: SheetsSettings,
        credentials: Any = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self._settings = settings
        self._api_url = settings.api_url.rstrip("/")
        self._credentials = credentials
        self._client = http_client or httpx.AsyncClient(timeout=settings.timeout_seconds)

    async def _authorization(self) -> str:
        if self._credentials is None:
            self._credentials = load_credentials(self._settings)

        if not self._credentials.valid:
            try:
                # refresh() is a blocking requests call
                await asyncio.to_thread(self._credentials.refresh, Request())
            except GoogleAuthError as e:
                raise SourceUnavailable(f"Google authentication failed: {e}") from e

        return f"Bearer {self._credentials.token}"

    async def _get(self, url: str, params: Optional[dict] = None) -> dict:
        headers = {"Authorization": await self._authorization()}
        try:
            response = await self._client.get(url, headers=headers, params=params)
        except httpx.TimeoutException as e:
            raise SourceUnavailable(f"Google Sheets request timed out: {url}") from e
        except httpx.RequestError as e:
            raise SourceUnavailable(f"Google Sheets unreachable: {e}") from e

        if response.status_code != 200:
            raise SourceUnavailable(
                f"Google Sheets error ({response.status_code}): {self._error_message(response)}"
            )

        try:
            return response.json()
        except ValueError as e:
            raise SourceUnavailable("Google Sheets returned invalid JSON") from e

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            return response.json().get("error", {}).get("message", "") or response.text[:200]
        except ValueError:
            return response.text[:200]

    async def get_spreadsheet_info(self, spreadsheet_id: str) -> SpreadsheetInfo:
        if not spreadsheet_id:
            raise ConfigurationError("Spreadsheet id is not configured")

        data = await self._get(
            f"{self._api_url}/{spreadsheet_id}",
            params={"fields": "properties.title,sheets.properties(title,sheetId)"},
        )

        sheets = []
        for sheet in data.get("sheets", []):
            props = sheet.get("properties", {})
            sheets.append(SheetInfo(
                title=props.get("title", ""),
                sheet_id=props.get("sheetId", 0),
            ))

        title = data.get("properties", {}).get("title", "")
        logger.info(f"Spreadsheet '{title}': {len(sheets)} sheets")
        return SpreadsheetInfo(title=title, sheets=sheets)

    async def fetch_rows(self, spreadsheet_id: str, range_name: str) -> list[list[str]]:
        if not spreadsheet_id:
            raise ConfigurationError("Spreadsheet id is not configured")

        data = await self._get(
            f"{self._api_url}/{spreadsheet_id}/values/{quote(range_name, safe='')}"
        )
        rows = [[str(cell) for cell in row] for row in data.get("values", [])]
        logger.info(f"Fetched {len(rows)} rows from '{range_name}'")
        return rows

    async def close(self) -> None:
        await self._client.aclose()
