"""
Pipeline Runner - Command Line Interface
========================================

Processes warehouse sheets without the web server.

    python run_pipeline.py sheets
    python run_pipeline.py process "12.05"
    python run_pipeline.py process "12.05" --dry-run
    python run_pipeline.py status "12.05"
    python run_pipeline.py cleanup --days 30
    python run_pipeline.py import-ledger src/data/sent_tracking_numbers.json
    python run_pipeline.py test-whatsapp --phone 700100518 --message "Test"

Exit code is 0 on success and 1 on any failure.
"""

import argparse
import asyncio
import json
import logging
import sys

from src.application import ServiceContainer, create_container, import_legacy_ledger
from src.domain import PipelineError
from src.infrastructure.config import get_settings

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def _print_json(data) -> None:
    print(json.dumps(data, ensure_ascii=False, indent=2))


async def cmd_sheets(c: ServiceContainer, args) -> bool:
    info = await c.source.get_spreadsheet_info(c.settings.sheets.spreadsheet_id)
    print(f"\n{info.title}")
    for name in info.sheet_names:
        print(f"   - {name}")
    return True


async def cmd_process(c: ServiceContainer, args) -> bool:
    print("\n" + "=" * 60)
    print(f"   Processing sheet: {args.sheet}")
    if args.dry_run:
        print("   (dry run: nothing is sent, the ledger is not written)")
    print("=" * 60 + "\n")

    result = await c.pipeline.process_sheet(args.sheet)

    print("\n" + "=" * 60)
    print("Done!" if result.success else "Failed!")
    print(f"   {result.message}")
    if result.notification:
        for outcome in result.notification.failures:
            print(f"   Not sent: {outcome.client_name} ({outcome.phone_number}): {outcome.error}")
    timing = c.metrics.stats("process-sheet")
    if timing:
        print(f"   Took {timing['totalSeconds']}s")
    print("=" * 60 + "\n")
    return result.success


async def cmd_status(c: ServiceContainer, args) -> bool:
    _print_json(c.status.sheet_status(args.sheet))
    return True


async def cmd_cleanup(c: ServiceContainer, args) -> bool:
    days = args.days if args.days is not None else c.settings.retention_days
    deleted = c.database.cleanup_old_data(days)
    print(f"Deleted {deleted['webhookLogs']} webhook logs and "
          f"{deleted['processedSheets']} sheet markers older than {days} days")
    _print_json(c.database.get_stats())
    return True


async def cmd_import_ledger(c: ServiceContainer, args) -> bool:
    result = import_legacy_ledger(c.database, args.file, args.last_sheet)
    print(f"Imported {result['imported']} of {result['found']} tracking numbers")
    if result["lastSheet"]:
        print(f"Last processed sheet: {result['lastSheet']}")
    return True


async def cmd_test_whatsapp(c: ServiceContainer, args) -> bool:
    if not args.phone:
        connected = await c.provider.test_connection()
        print("WhatsApp API is working!" if connected else "WhatsApp API connection failed")
        return connected

    chat_id = c.batcher.chat_id(args.phone)
    sent = await c.provider.send_message(chat_id, args.message)
    print(f"Test message {'sent' if sent else 'NOT sent'} to {chat_id}")
    return sent


COMMANDS = {
    "sheets": cmd_sheets,
    "process": cmd_process,
    "status": cmd_status,
    "cleanup": cmd_cleanup,
    "import-ledger": cmd_import_ledger,
    "test-whatsapp": cmd_test_whatsapp,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="run_pipeline",
        description="Warehouse sheet to WhatsApp notification pipeline",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("sheets", help="list sheets of the configured spreadsheet")

    process = sub.add_parser("process", help="notify clients about new orders in a sheet")
    process.add_argument("sheet", help="sheet name, e.g. 12.05")
    process.add_argument("--dry-run", action="store_true",
                         help="log messages instead of sending them; ledger and webhook are untouched")

    status = sub.add_parser("status", help="show whether a sheet was processed")
    status.add_argument("sheet")

    cleanup = sub.add_parser("cleanup", help="delete old webhook logs and sheet markers")
    cleanup.add_argument("--days", type=int, default=None,
                         help="retention in days (default: RETENTION_DAYS)")

    ledger = sub.add_parser("import-ledger", help="import a legacy JSON list of tracking numbers")
    ledger.add_argument("file")
    ledger.add_argument("--last-sheet", default=None,
                        help="text file holding the last processed sheet name")

    test = sub.add_parser("test-whatsapp", help="check the gateway or send a test message")
    test.add_argument("--phone", default=None)
    test.add_argument("--message", default="Тестовое сообщение")

    return parser


async def run(args) -> bool:
    settings = get_settings()
    for issue in settings.validate():
        logger.warning(issue)

    container = create_container(settings, dry_run=getattr(args, "dry_run", False))
    try:
        return await COMMANDS[args.command](container, args)
    except PipelineError as e:
        logger.error(f"{args.command} failed: {e}")
        print(f"Error: {e}")
        return False
    finally:
        await container.aclose()


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    try:
        ok = asyncio.run(run(args))
    except KeyboardInterrupt:
        print("\nInterrupted!")
        return 1
    return 0 if ok else 1


if __name__ == "__main__":
    sys.exit(main())
