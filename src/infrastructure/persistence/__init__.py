from .database import (
    Database,
    ProcessedSheet,
    SentTrackingRecord,
    WebhookLog,
    format_timestamp,
    parse_timestamp,
)

__all__ = [
    "Database",
    "ProcessedSheet",
    "SentTrackingRecord",
    "WebhookLog",
    "format_timestamp",
    "parse_timestamp",
]
