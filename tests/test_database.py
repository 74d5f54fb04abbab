from datetime import datetime, timedelta, timezone

from src.application import SheetStatusService
from src.infrastructure.persistence import Database, SentTrackingRecord, format_timestamp


def test_init_is_idempotent(tmp_path):
    db = Database(tmp_path / "ledger.db")
    db.init()
    db.init()

    assert db.get_stats() == {"sentTrackingNumbers": 0, "processedSheets": 0, "webhookLogs": 0}


def test_add_tracking_numbers_skips_duplicates(database):
    first = database.add_tracking_numbers([
        SentTrackingRecord("T-1", "Айбек", "700100518"),
        SentTrackingRecord("T-2"),
    ])
    second = database.add_tracking_numbers([SentTrackingRecord("T-2"), SentTrackingRecord("T-3")])

    assert first == 2
    assert second == 1
    assert database.load_sent_tracking_numbers() == {"T-1", "T-2", "T-3"}
    assert database.is_tracking_number_sent("T-1")
    assert not database.is_tracking_number_sent("T-9")


def test_existing_ledger_entry_is_never_overwritten(database):
    database.add_tracking_numbers([SentTrackingRecord("T-1", "Айбек", "700100518")])
    database.add_tracking_numbers([SentTrackingRecord("T-1", "Someone Else", "555000000")])

    record = database.get_sent_record("T-1")
    assert record.client_name == "Айбек"
    assert record.phone_number == "700100518"
    assert record.sent_at


def test_processed_sheet_marker_is_upserted(database):
    database.save_processed_sheet("12.05", datetime(2026, 5, 12, 8, 0, tzinfo=timezone.utc))
    database.save_processed_sheet("13.05", datetime(2026, 5, 13, 8, 0, tzinfo=timezone.utc))
    database.save_processed_sheet("12.05", datetime(2026, 5, 14, 8, 0, tzinfo=timezone.utc))

    assert database.get_processed_sheet("12.05").processed_at == "2026-05-14 08:00:00"
    assert database.get_last_processed_sheet() == "12.05"
    assert set(database.get_processed_sheets(["12.05", "13.05", "14.05"])) == {"12.05", "13.05"}
    assert database.get_stats()["processedSheets"] == 2


def test_cleanup_never_touches_the_ledger(database):
    old = datetime.now(timezone.utc) - timedelta(days=90)
    database.add_tracking_numbers([SentTrackingRecord("T-OLD", sent_at=format_timestamp(old))])
    database.save_processed_sheet("01.01", old)
    database.save_processed_sheet("today")
    database.add_webhook_log("POST", "http://test/api/webhooks/orders", {"x": "1"}, {"C1": {}})

    deleted = database.cleanup_old_data(days_old=30)

    assert deleted == {"webhookLogs": 0, "processedSheets": 1}
    assert database.is_tracking_number_sent("T-OLD")
    assert database.get_processed_sheet("today") is not None


def test_webhook_logs(database):
    first = database.add_webhook_log("POST", "http://test/hook", {"content-type": "application/json"},
                                     {"C1": {"Ф.И.О": "Айбек"}})
    database.add_webhook_log("POST", "http://test/hook", {}, status="error", error="Invalid JSON")

    logs = database.get_webhook_logs()
    assert [log.status for log in logs] == ["error", "success"]
    assert database.get_webhook_log(first).body == {"C1": {"Ф.И.О": "Айбек"}}
    assert database.get_webhook_log(first).to_dict()["headers"] == {"content-type": "application/json"}

    stats = database.get_webhook_stats()
    assert stats["total"] == 2
    assert stats["success"] == 1
    assert stats["error"] == 1
    assert stats["lastActivity"]

    assert database.clear_webhook_logs() == 2
    assert database.get_webhook_logs() == []


def test_sheet_status_counts_ledger_entries_around_processing_time(database):
    at = datetime(2026, 5, 12, 8, 0, tzinfo=timezone.utc)
    database.add_tracking_numbers([
        SentTrackingRecord("T-1", sent_at=format_timestamp(at)),
        SentTrackingRecord("T-2", sent_at=format_timestamp(at + timedelta(hours=3))),
        SentTrackingRecord("T-3", sent_at=format_timestamp(at - timedelta(days=3))),
    ])
    database.save_processed_sheet("12.05", at)
    status = SheetStatusService(database)

    single = status.sheet_status("12.05")
    many = status.sheets_status(["12.05", "13.05"])

    assert single["isScanned"] is True
    assert single["scannedAt"] == "2026-05-12 08:00:00"
    assert single["statistics"]["trackingNumbers"] == 2
    assert single["statistics"]["usersNotified"] == 2
    assert many[0]["statistics"]["trackingNumbers"] == 2
    assert many[1] == {
        "sheetName": "13.05",
        "isScanned": False,
        "scannedAt": None,
        "statistics": {"trackingNumbers": 0, "usersNotified": 0},
    }
