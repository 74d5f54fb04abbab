import json

import pandas as pd
import pytest

import run_pipeline
from conftest import DIRECTORY, order_row
from src.infrastructure.config import get_settings
from src.infrastructure.persistence import Database


@pytest.fixture
def env(tmp_path, monkeypatch):
    monkeypatch.setenv("DATABASE_FILE", str(tmp_path / "cli.db"))
    monkeypatch.setenv("SPREADSHEET_ID", "")
    monkeypatch.setenv("CLIENTS_SPREADSHEET_ID", "")
    monkeypatch.setenv("WEBHOOK_URL", "")
    monkeypatch.setenv("WHATSAPP_SEND_DELAY", "0")
    get_settings.cache_clear()
    yield tmp_path
    get_settings.cache_clear()


def ledger(tmp_path):
    return Database(tmp_path / "cli.db").load_sent_tracking_numbers()


def test_command_is_required():
    with pytest.raises(SystemExit):
        run_pipeline.build_parser().parse_args([])


def test_import_legacy_ledger(env, capsys):
    numbers = env / "sent_tracking_numbers.json"
    numbers.write_text(json.dumps(["T-1", "T-2", "T-1", "", None]), encoding="utf-8")
    last_sheet = env / "last_processed_sheet.txt"
    last_sheet.write_text("12.05\n", encoding="utf-8")

    code = run_pipeline.main(["import-ledger", str(numbers), "--last-sheet", str(last_sheet)])

    assert code == 0
    assert ledger(env) == {"T-1", "T-2"}
    assert Database(env / "cli.db").get_last_processed_sheet() == "12.05"
    assert "Imported 2 of 3 tracking numbers" in capsys.readouterr().out


def test_import_rejects_non_list_json(env):
    numbers = env / "broken.json"
    numbers.write_text('{"T-1": true}', encoding="utf-8")

    assert run_pipeline.main(["import-ledger", str(numbers)]) == 1
    assert ledger(env) == set()


def test_status_of_unprocessed_sheet(env, capsys):
    assert run_pipeline.main(["status", "12.05"]) == 0

    out = json.loads(capsys.readouterr().out)
    assert out["sheetName"] == "12.05"
    assert out["isScanned"] is False


def test_dry_run_against_local_workbook_records_nothing(env, monkeypatch, capsys):
    workbook = env / "warehouse.xlsx"
    with pd.ExcelWriter(workbook) as writer:
        pd.DataFrame(DIRECTORY).to_excel(writer, sheet_name="Клиенты", header=False, index=False)
        pd.DataFrame([
            ["Статус", "", "Трек", "Код", "Вес", "", "", "Цена"],
            order_row("T-1", "C1", "2,5", "1500"),
            order_row("T-2", "C2", "1", "900"),
        ]).to_excel(writer, sheet_name="12.05", header=False, index=False)
    monkeypatch.setenv("SHEETS_BACKEND", "workbook")
    monkeypatch.setenv("SPREADSHEET_ID", str(workbook))
    get_settings.cache_clear()

    first = run_pipeline.main(["process", "12.05", "--dry-run"])
    second = run_pipeline.main(["process", "12.05", "--dry-run"])

    out = capsys.readouterr().out
    assert first == 0
    assert second == 0
    assert out.count("Successfully processed 2 new orders.") == 2
    assert "No new orders to send" not in out
    assert ledger(env) == set()
    assert Database(env / "cli.db").get_processed_sheet("12.05") is None


def test_failed_run_exits_non_zero(env):
    assert run_pipeline.main(["process", "12.05"]) == 1
