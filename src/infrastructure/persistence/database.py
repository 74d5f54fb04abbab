"""
SQLite Database Repository - Tracking Ledger Persistence
=========================================================

Stores the tracking numbers that were already notified (the ledger),
processed-sheet markers for status display, and inbound webhook logs.

The ledger is append-only: rows are inserted once and never updated.
Retention cleanup only touches webhook logs and processed-sheet markers.
"""

import json
import sqlite3
import logging
from datetime import datetime, timezone
from typing import Any, Iterable, List, Optional
from dataclasses import dataclass
from contextlib import contextmanager

logger = logging.getLogger(__name__)

DATABASE_FILE = "order_notifier.db"

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


def format_timestamp(value: datetime) -> str:
    """UTC timestamp in sqlite CURRENT_TIMESTAMP format."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.strftime(TIMESTAMP_FORMAT)


def parse_timestamp(value: str) -> datetime:
    return datetime.strptime(value, TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)


@dataclass
class SentTrackingRecord:
    """Ledger entry: proof that a tracking number was notified."""
    tracking_number: str
    client_name: Optional[str] = None
    phone_number: Optional[str] = None
    sent_at: str = ""


@dataclass
class ProcessedSheet:
    """Marker of the last time a sheet was processed."""
    sheet_name: str
    processed_at: str


@dataclass
class WebhookLog:
    """Inbound webhook receipt."""
    id: int
    method: str
    url: str
    headers: dict
    body: Any
    status: str
    error: str = ""
    created_at: str = ""

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "method": self.method,
            "url": self.url,
            "headers": self.headers,
            "body": self.body,
            "status": self.status,
            "error": self.error,
            "createdAt": self.created_at,
        }


class Database:
    """
    SQLite database for the order notifier.

    Usage:
        db = Database()
        db.init()

        sent = db.load_sent_tracking_numbers()
        db.add_tracking_numbers([SentTrackingRecord("YT123", "Айбек", "700100518")])
        db.save_processed_sheet("12.05")
    """

    def __init__(self, db_path: str = DATABASE_FILE):
        self.db_path = str(db_path)

    @contextmanager
    def _get_connection(self):
        """Get database connection with context manager."""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        finally:
            conn.close()

    def init(self):
        """Initialize database tables."""
        with self._get_connection() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS sent_tracking_numbers (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    tracking_number TEXT UNIQUE NOT NULL,
                    client_name TEXT,
                    phone_number TEXT,
                    sent_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)

            conn.execute("""
                CREATE TABLE IF NOT EXISTS processed_sheets (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    sheet_name TEXT UNIQUE NOT NULL,
                    processed_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)

            conn.execute("""
                CREATE TABLE IF NOT EXISTS webhook_logs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    method TEXT NOT NULL,
                    url TEXT NOT NULL,
                    headers TEXT DEFAULT '{}',
                    body TEXT,
                    status TEXT NOT NULL,
                    error TEXT DEFAULT '',
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)

            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_sent_at ON sent_tracking_numbers(sent_at)"
            )

            logger.info(f"Database initialized: {self.db_path}")

    # ── Tracking ledger ────────────────────────────────────────────

    def load_sent_tracking_numbers(self) -> set[str]:
        """Snapshot of every tracking number already notified."""
        with self._get_connection() as conn:
            rows = conn.execute("SELECT tracking_number FROM sent_tracking_numbers").fetchall()
        numbers = {row["tracking_number"] for row in rows}
        logger.info(f"Loaded {len(numbers)} previously sent tracking numbers")
        return numbers

    def is_tracking_number_sent(self, tracking_number: str) -> bool:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT 1 FROM sent_tracking_numbers WHERE tracking_number = ?",
                (tracking_number,)
            ).fetchone()
            return row is not None

    def add_tracking_numbers(self, records: Iterable[SentTrackingRecord]) -> int:
        """
        Insert ledger entries, skipping tracking numbers already present.

        Returns:
            Number of rows actually inserted
        """
        added = 0
        with self._get_connection() as conn:
            for record in records:
                if record.sent_at:
                    cursor = conn.execute(
                        """INSERT OR IGNORE INTO sent_tracking_numbers
                           (tracking_number, client_name, phone_number, sent_at)
                           VALUES (?, ?, ?, ?)""",
                        (record.tracking_number, record.client_name or None,
                         record.phone_number or None, record.sent_at)
                    )
                else:
                    cursor = conn.execute(
                        """INSERT OR IGNORE INTO sent_tracking_numbers
                           (tracking_number, client_name, phone_number)
                           VALUES (?, ?, ?)""",
                        (record.tracking_number, record.client_name or None,
                         record.phone_number or None)
                    )
                added += cursor.rowcount

        if added:
            logger.info(f"Added {added} new tracking numbers to ledger")
        else:
            logger.info("No new tracking numbers to add")
        return added

    def get_sent_record(self, tracking_number: str) -> Optional[SentTrackingRecord]:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM sent_tracking_numbers WHERE tracking_number = ?",
                (tracking_number,)
            ).fetchone()
            return self._row_to_record(row) if row else None

    def count_tracking_numbers_between(self, start: datetime, end: datetime) -> int:
        """Ledger entries with sent_at in [start, end]."""
        with self._get_connection() as conn:
            return conn.execute(
                "SELECT COUNT(*) FROM sent_tracking_numbers WHERE sent_at BETWEEN ? AND ?",
                (format_timestamp(start), format_timestamp(end))
            ).fetchone()[0]

    def _row_to_record(self, row: sqlite3.Row) -> SentTrackingRecord:
        return SentTrackingRecord(
            tracking_number=row["tracking_number"],
            client_name=row["client_name"],
            phone_number=row["phone_number"],
            sent_at=row["sent_at"] or ""
        )

    # ── Processed sheets ───────────────────────────────────────────

    def save_processed_sheet(self, sheet_name: str, processed_at: Optional[datetime] = None):
        """Create the marker or refresh its timestamp."""
        stamp = format_timestamp(processed_at or datetime.now(timezone.utc))
        with self._get_connection() as conn:
            conn.execute(
                """INSERT INTO processed_sheets (sheet_name, processed_at) VALUES (?, ?)
                   ON CONFLICT(sheet_name) DO UPDATE SET processed_at = excluded.processed_at""",
                (sheet_name, stamp)
            )
        logger.info(f"Saved processed sheet: {sheet_name}")

    def get_processed_sheet(self, sheet_name: str) -> Optional[ProcessedSheet]:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT sheet_name, processed_at FROM processed_sheets WHERE sheet_name = ?",
                (sheet_name,)
            ).fetchone()
            return ProcessedSheet(row["sheet_name"], row["processed_at"]) if row else None

    def get_processed_sheets(self, sheet_names: List[str]) -> dict[str, ProcessedSheet]:
        if not sheet_names:
            return {}
        placeholders = ", ".join("?" for _ in sheet_names)
        with self._get_connection() as conn:
            rows = conn.execute(
                f"SELECT sheet_name, processed_at FROM processed_sheets "
                f"WHERE sheet_name IN ({placeholders})",
                list(sheet_names)
            ).fetchall()
            return {row["sheet_name"]: ProcessedSheet(row["sheet_name"], row["processed_at"])
                    for row in rows}

    def get_last_processed_sheet(self) -> Optional[str]:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT sheet_name FROM processed_sheets ORDER BY processed_at DESC, id DESC LIMIT 1"
            ).fetchone()
            return row["sheet_name"] if row else None

    # ── Webhook logs ───────────────────────────────────────────────

    def add_webhook_log(self, method: str, url: str, headers: dict, body: Any = None,
                        status: str = "success", error: str = "") -> int:
        with self._get_connection() as conn:
            cursor = conn.execute(
                """INSERT INTO webhook_logs (method, url, headers, body, status, error)
                   VALUES (?, ?, ?, ?, ?, ?)""",
                (method, url, json.dumps(headers, ensure_ascii=False),
                 json.dumps(body, ensure_ascii=False) if body is not None else None,
                 status, error)
            )
            return cursor.lastrowid

    def get_webhook_logs(self, limit: int = 50) -> List[WebhookLog]:
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM webhook_logs ORDER BY id DESC LIMIT ?", (limit,)
            ).fetchall()
            return [self._row_to_webhook_log(row) for row in rows]

    def get_webhook_log(self, log_id: int) -> Optional[WebhookLog]:
        with self._get_connection() as conn:
            row = conn.execute("SELECT * FROM webhook_logs WHERE id = ?", (log_id,)).fetchone()
            return self._row_to_webhook_log(row) if row else None

    def clear_webhook_logs(self) -> int:
        with self._get_connection() as conn:
            deleted = conn.execute("DELETE FROM webhook_logs").rowcount
        logger.info(f"Cleared {deleted} webhook logs")
        return deleted

    def get_webhook_stats(self) -> dict:
        with self._get_connection() as conn:
            total = conn.execute("SELECT COUNT(*) FROM webhook_logs").fetchone()[0]
            success = conn.execute(
                "SELECT COUNT(*) FROM webhook_logs WHERE status = 'success'").fetchone()[0]
            error = conn.execute(
                "SELECT COUNT(*) FROM webhook_logs WHERE status = 'error'").fetchone()[0]
            last = conn.execute("SELECT MAX(created_at) FROM webhook_logs").fetchone()[0]
            return {"total": total, "success": success, "error": error, "lastActivity": last}

    def count_webhook_logs_between(self, start: datetime, end: datetime) -> int:
        with self._get_connection() as conn:
            return conn.execute(
                "SELECT COUNT(*) FROM webhook_logs WHERE created_at BETWEEN ? AND ?",
                (format_timestamp(start), format_timestamp(end))
            ).fetchone()[0]

    def _row_to_webhook_log(self, row: sqlite3.Row) -> WebhookLog:
        return WebhookLog(
            id=row["id"],
            method=row["method"],
            url=row["url"],
            headers=json.loads(row["headers"] or "{}"),
            body=json.loads(row["body"]) if row["body"] is not None else None,
            status=row["status"],
            error=row["error"] or "",
            created_at=row["created_at"] or ""
        )

    # ── Maintenance ────────────────────────────────────────────────

    def cleanup_old_data(self, days_old: int = 30) -> dict:
        """
        Delete webhook logs and processed-sheet markers older than `days_old`.
        The tracking ledger is never cleaned.
        """
        modifier = f"-{int(days_old)} days"
        with self._get_connection() as conn:
            logs = conn.execute(
                "DELETE FROM webhook_logs WHERE created_at < datetime('now', ?)", (modifier,)
            ).rowcount
            sheets = conn.execute(
                "DELETE FROM processed_sheets WHERE processed_at < datetime('now', ?)", (modifier,)
            ).rowcount

        logger.info(f"Cleanup completed: {logs} logs, {sheets} sheets deleted")
        return {"webhookLogs": logs, "processedSheets": sheets}

    def get_stats(self) -> dict:
        with self._get_connection() as conn:
            return {
                "sentTrackingNumbers": conn.execute(
                    "SELECT COUNT(*) FROM sent_tracking_numbers").fetchone()[0],
                "processedSheets": conn.execute(
                    "SELECT COUNT(*) FROM processed_sheets").fetchone()[0],
                "webhookLogs": conn.execute(
                    "SELECT COUNT(*) FROM webhook_logs").fetchone()[0],
            }
