from .source import SheetInfo, SheetSource, SpreadsheetInfo
from .google_sheets import GoogleSheetsSource, load_credentials
from .workbook_source import WorkbookSource

__all__ = [
    "GoogleSheetsSource",
    "SheetInfo",
    "SheetSource",
    "SpreadsheetInfo",
    "WorkbookSource",
    "load_credentials",
]
