"""
Workbook Source - Local Excel/CSV Spreadsheets
===============================================

Reads .xlsx, .xls and .csv files with pandas and serves them through the
same interface as the Google Sheets source. The spreadsheet id is a file
path (relative paths resolve against base_dir). A CSV file has a single
sheet named after the file stem.

Useful for offline runs against an exported copy of the warehouse sheet.
"""

import logging
from pathlib import Path
from typing import Optional, Union

import pandas as pd

from ...domain.errors import ConfigurationError, SourceUnavailable
from .source import SheetInfo, SheetSource, SpreadsheetInfo

logger = logging.getLogger(__name__)

EXCEL_EXTENSIONS = ('.xlsx', '.xls')
SUPPORTED_EXTENSIONS = EXCEL_EXTENSIONS + ('.csv',)


class WorkbookSource(SheetSource):
    """
    Spreadsheet source backed by files on disk.

    Usage:
        source = WorkbookSource(base_dir="exports")
        rows = await source.fetch_rows("warehouse.xlsx", "12.05")
    """

    def __init__(self, base_dir: Union[str, Path, None] = None):
        self._base_dir = Path(base_dir) if base_dir else None

    def _resolve(self, spreadsheet_id: str) -> Path:
        if not spreadsheet_id:
            raise ConfigurationError("Spreadsheet path is not configured")

        path = Path(spreadsheet_id)
        if self._base_dir is not None and not path.is_absolute():
            path = self._base_dir / path

        if not path.exists():
            raise SourceUnavailable(f"File not found: {path}")

        if path.suffix.lower() not in SUPPORTED_EXTENSIONS:
            raise SourceUnavailable(
                f"Unsupported file format: {path.suffix}. Use .xlsx, .xls, or .csv"
            )
        return path

    async def get_spreadsheet_info(self, spreadsheet_id: str) -> SpreadsheetInfo:
        path = self._resolve(spreadsheet_id)

        if path.suffix.lower() == '.csv':
            names = [path.stem]
        else:
            try:
                names = pd.ExcelFile(path).sheet_names
            except Exception as e:
                raise SourceUnavailable(f"Failed to open workbook {path}: {e}") from e

        return SpreadsheetInfo(
            title=path.stem,
            sheets=[SheetInfo(title=str(name), sheet_id=i) for i, name in enumerate(names)],
        )

    async def fetch_rows(self, spreadsheet_id: str, range_name: str) -> list[list[str]]:
        path = self._resolve(spreadsheet_id)
        # "Sheet!A:Z" -> "Sheet"; column ranges are not applied to files
        sheet_name = range_name.split('!', 1)[0].strip("'")

        try:
            if path.suffix.lower() == '.csv':
                if sheet_name != path.stem:
                    raise SourceUnavailable(f"Sheet '{sheet_name}' not found in {path.name}")
                df = pd.read_csv(path, header=None, dtype=str, keep_default_na=False)
            else:
                df = pd.read_excel(
                    path, sheet_name=sheet_name, header=None, dtype=str, keep_default_na=False
                )
        except SourceUnavailable:
            raise
        except ValueError as e:
            # pandas raises ValueError for a missing worksheet
            raise SourceUnavailable(f"Sheet '{sheet_name}' not found in {path.name}: {e}") from e
        except Exception as e:
            logger.error(f"Failed to read file: {e}")
            raise SourceUnavailable(f"Failed to read {path.name}: {e}") from e

        rows = [self._trim_row(values) for values in df.values.tolist()]
        logger.info(f"Read {len(rows)} rows from {path.name} / {sheet_name}")
        return rows

    @staticmethod
    def _trim_row(values: list) -> list[str]:
        """Stringify cells and drop trailing blanks, as the Sheets API does."""
        row = ['' if value is None else str(value).strip() for value in values]
        while row and not row[-1]:
            row.pop()
        return row
