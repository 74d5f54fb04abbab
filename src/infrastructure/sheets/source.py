"""
Sheet Source - Abstraction Layer for Spreadsheet Access
========================================================

Provides a unified read-only interface over spreadsheets.
Currently supports the Google Sheets API and local workbook files.

USAGE:
    source = GoogleSheetsSource(settings.sheets)
    names = await source.list_sheet_names(spreadsheet_id)
    rows = await source.fetch_rows(spreadsheet_id, names[0])
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field


@dataclass(frozen=True)
class SheetInfo:
    title: str
    sheet_id: int = 0


@dataclass(frozen=True)
class SpreadsheetInfo:
    title: str
    sheets: list[SheetInfo] = field(default_factory=list)

    @property
    def sheet_names(self) -> list[str]:
        return [sheet.title for sheet in self.sheets]

    def to_dict(self) -> dict:
        return {
            "title": self.title,
            "sheets": [{"title": s.title, "sheetId": s.sheet_id} for s in self.sheets],
        }


class SheetSource(ABC):
    """
    Abstract base class for spreadsheet sources.
    Implementations raise SourceUnavailable on any read failure.
    """

    @abstractmethod
    async def get_spreadsheet_info(self, spreadsheet_id: str) -> SpreadsheetInfo:
        """Spreadsheet title and its sheets."""
        ...

    @abstractmethod
    async def fetch_rows(self, spreadsheet_id: str, range_name: str) -> list[list[str]]:
        """All rows of a sheet or A1 range as strings. Not cached."""
        ...

    async def list_sheet_names(self, spreadsheet_id: str) -> list[str]:
        info = await self.get_spreadsheet_info(spreadsheet_id)
        return info.sheet_names

    async def close(self) -> None:
        """Release network resources."""
        return None
