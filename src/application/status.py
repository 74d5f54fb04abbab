"""
Sheet Status - Processed-Sheet Reporting
=========================================

Answers "was this sheet already processed, and roughly how many messages
went out?" for the dashboard and the CLI.

The ledger does not record which sheet a tracking number came from, so
the counts are approximations: ledger entries written within a day of the
sheet's processing time.
"""

from datetime import timedelta
from typing import List

from ..infrastructure.persistence import Database, ProcessedSheet, parse_timestamp

LEDGER_WINDOW = timedelta(hours=24)
WEBHOOK_WINDOW = timedelta(hours=1)


class SheetStatusService:

    def __init__(self, database: Database):
        self._db = database

    def _tracking_count(self, processed: ProcessedSheet) -> int:
        at = parse_timestamp(processed.processed_at)
        return self._db.count_tracking_numbers_between(at - LEDGER_WINDOW, at + LEDGER_WINDOW)

    def sheet_status(self, sheet_name: str) -> dict:
        processed = self._db.get_processed_sheet(sheet_name)
        tracking_count = 0
        webhook_events = 0
        if processed:
            at = parse_timestamp(processed.processed_at)
            tracking_count = self._tracking_count(processed)
            webhook_events = self._db.count_webhook_logs_between(
                at - WEBHOOK_WINDOW, at + WEBHOOK_WINDOW
            )

        return {
            "sheetName": sheet_name,
            "isScanned": processed is not None,
            "scannedAt": processed.processed_at if processed else None,
            "statistics": {
                "trackingNumbers": tracking_count,
                "webhookEvents": webhook_events,
                "usersNotified": tracking_count,
            },
        }

    def sheets_status(self, sheet_names: List[str]) -> List[dict]:
        processed_map = self._db.get_processed_sheets(sheet_names)
        statuses = []
        for name in sheet_names:
            processed = processed_map.get(name)
            tracking_count = self._tracking_count(processed) if processed else 0
            statuses.append({
                "sheetName": name,
                "isScanned": processed is not None,
                "scannedAt": processed.processed_at if processed else None,
                "statistics": {
                    "trackingNumbers": tracking_count,
                    "usersNotified": tracking_count,
                },
            })
        return statuses
