"""
Pipeline Orchestrator - Sheet Processing Use Case
==================================================

process_sheet(name) runs one sheet through the whole pipeline:

    VALIDATING -> FETCHING -> EXTRACTING -> FILTERING -> NOTIFYING -> PERSISTING -> DONE

FAILED is only reachable from VALIDATING and FETCHING. Once orders are
filtered the run always reaches DONE; notification and webhook problems
only show up in the result message.

Every new tracking number is written to the ledger after the notification
attempt, whether or not the message was delivered. The ledger guarantees a
tracking number is attempted at most once.
A dry run logs messages instead of sending them and writes neither the
ledger nor the webhook.

No exception crosses process_sheet(): the caller always gets a ProcessResult.
"""

import logging
import sqlite3
from typing import Optional

from ..domain.dedup import partition
from ..domain.errors import ConfigurationError, SourceUnavailable
from ..domain.extractor import OrderExtractor, build_client_map
from ..domain.models import (
    ClientOrderSet,
    NotificationResult,
    PipelineState,
    ProcessResult,
)
from ..infrastructure.config import SheetsSettings
from ..infrastructure.metrics import PipelineMetrics
from ..infrastructure.persistence import Database, SentTrackingRecord
from ..infrastructure.sheets import SheetSource
from ..infrastructure.webhook import WebhookForwarder
from .notifier import NotificationBatcher

logger = logging.getLogger(__name__)


class SheetRunGuard:
    """
    Single-flight guard: at most one run per sheet name in this process.
    Does not coordinate separate processes sharing one database.
    """

    def __init__(self):
        self._active: set[str] = set()

    def try_acquire(self, sheet_name: str) -> bool:
        if sheet_name in self._active:
            return False
        self._active.add(sheet_name)
        return True

    def release(self, sheet_name: str) -> None:
        self._active.discard(sheet_name)

    def is_running(self, sheet_name: str) -> bool:
        return sheet_name in self._active


class PipelineRun:
    """State of one process_sheet() call."""

    def __init__(self, sheet_name: str):
        self.sheet_name = sheet_name
        self.state = PipelineState.IDLE

    def enter(self, state: PipelineState) -> None:
        logger.info(f"[{self.sheet_name}] {self.state.value} -> {state.value}")
        self.state = state

    def fail(self, message: str) -> ProcessResult:
        logger.error(f"[{self.sheet_name}] failed during {self.state.value}: {message}")
        self.enter(PipelineState.FAILED)
        return ProcessResult(
            success=False,
            message=message,
            state=PipelineState.FAILED,
            sheet_name=self.sheet_name,
        )


class SheetPipeline:
    """
    Usage:
        pipeline = SheetPipeline(source, db, batcher, forwarder, settings.sheets)
        result = await pipeline.process_sheet("12.05")
        print(result.success, result.message)
    """

    def __init__(
        self,
        source: SheetSource,
        database: Database,
        batcher: NotificationBatcher,
        forwarder: WebhookForwarder,
        settings: SheetsSettings,
        extractor: Optional[OrderExtractor] = None,
        guard: Optional[SheetRunGuard] = None,
        metrics: Optional[PipelineMetrics] = None,
        dry_run: bool = False,
    ):
        self._source = source
        self._db = database
        self._batcher = batcher
        self._forwarder = forwarder
        self._settings = settings
        self._extractor = extractor or OrderExtractor()
        self._guard = guard or SheetRunGuard()
        self._metrics = metrics or PipelineMetrics()
        self._dry_run = dry_run

    @property
    def guard(self) -> SheetRunGuard:
        return self._guard

    async def process_sheet(self, sheet_name: str) -> ProcessResult:
        """Process one sheet. Never raises."""
        # Tab titles are matched exactly; blank names fail validation
        sheet_name = sheet_name or ""
        active = bool(sheet_name.strip())
        run = PipelineRun(sheet_name)

        if active and not self._guard.try_acquire(sheet_name):
            run.enter(PipelineState.VALIDATING)
            result = run.fail(f'Sheet "{sheet_name}" is already being processed')
            self._metrics.record_run(result)
            return result

        try:
            with self._metrics.timer("process-sheet"):
                result = await self._run(run)
        except Exception as e:
            logger.exception(f"Error processing sheet {sheet_name}: {e}")
            run.enter(PipelineState.FAILED)
            result = ProcessResult(
                success=False,
                message=f"Error: {e}",
                state=PipelineState.FAILED,
                sheet_name=sheet_name,
            )
        finally:
            if active:
                self._guard.release(sheet_name)

        self._metrics.record_run(result)
        return result

    async def _run(self, run: PipelineRun) -> ProcessResult:
        run.enter(PipelineState.VALIDATING)
        try:
            self._validate(run.sheet_name)
        except ConfigurationError as e:
            return run.fail(str(e))

        run.enter(PipelineState.FETCHING)
        try:
            rows = await self._fetch_sheet(run.sheet_name)
            client_map = build_client_map(
                await self._source.fetch_rows(
                    self._settings.directory_spreadsheet_id,
                    self._settings.clients_sheet_name,
                ),
                self._extractor.columns,
            )
            sent = self._load_ledger()
        except (ConfigurationError, SourceUnavailable) as e:
            return run.fail(str(e))

        run.enter(PipelineState.EXTRACTING)
        order_sets, extraction = self._extractor.extract(rows, client_map)

        run.enter(PipelineState.FILTERING)
        new_sets, dedup = partition(order_sets, sent)

        result = ProcessResult(
            success=True,
            message="",
            sheet_name=run.sheet_name,
            new_count=dedup.new_count,
            already_sent_count=dedup.already_sent_count,
            skipped_rows=extraction.skipped,
        )

        if dedup.new_count == 0:
            run.enter(PipelineState.DONE)
            if not order_sets:
                result.message = (
                    f'No valid orders found in sheet "{run.sheet_name}". '
                    f"{extraction.skipped} rows skipped."
                )
            else:
                result.message = (
                    f"No new orders to send. All {dedup.already_sent_count} orders "
                    f"were already sent before."
                )
            return result

        run.enter(PipelineState.NOTIFYING)
        result.notification = await self._notify(new_sets)

        persist_error = ""
        if self._dry_run:
            logger.info(f"[{run.sheet_name}] dry run: skipping webhook and ledger")
        else:
            result.webhook = await self._forwarder.forward(new_sets)
            run.enter(PipelineState.PERSISTING)
            persist_error = self._persist(run.sheet_name, new_sets)

        run.enter(PipelineState.DONE)
        result.message = self._summary(result, persist_error)
        if persist_error:
            result.success = False
        return result

    def _validate(self, sheet_name: str) -> None:
        if not sheet_name.strip():
            raise ConfigurationError("Sheet name is required")
        if not self._settings.spreadsheet_id:
            raise ConfigurationError("SPREADSHEET_ID not configured in environment")

    async def _fetch_sheet(self, sheet_name: str) -> list[list[str]]:
        spreadsheet_id = self._settings.spreadsheet_id
        names = await self._source.list_sheet_names(spreadsheet_id)
        logger.info(f"Available sheets: {names}")

        if sheet_name not in names:
            raise SourceUnavailable(
                f'Sheet "{sheet_name}" not found. Available sheets: {", ".join(names)}'
            )
        return await self._source.fetch_rows(spreadsheet_id, sheet_name)

    def _load_ledger(self) -> set[str]:
        try:
            return self._db.load_sent_tracking_numbers()
        except sqlite3.Error as e:
            raise SourceUnavailable(f"Tracking ledger unavailable: {e}") from e

    async def _notify(self, new_sets: dict[str, ClientOrderSet]) -> NotificationResult:
        try:
            return await self._batcher.send_all(new_sets)
        except Exception as e:
            # The ledger is still written below; count every client as failed
            logger.exception(f"Error sending WhatsApp notifications: {e}")
            return NotificationResult(failed=len(new_sets))

    def _persist(self, sheet_name: str, new_sets: dict[str, ClientOrderSet]) -> str:
        """Write the ledger and the sheet marker. Returns an error text or ''."""
        records = [
            SentTrackingRecord(
                tracking_number=order.tracking_number,
                client_name=order_set.client.full_name,
                phone_number=order_set.client.phone_number,
            )
            for order_set in new_sets.values()
            for order in order_set.orders.values()
        ]
        try:
            self._db.add_tracking_numbers(records)
            self._db.save_processed_sheet(sheet_name)
        except sqlite3.Error as e:
            logger.exception(f"Failed to record sent tracking numbers: {e}")
            return str(e)
        return ""

    def _summary(self, result: ProcessResult, persist_error: str) -> str:
        message = (
            f"Successfully processed {result.new_count} new orders. "
            f"{result.already_sent_count} orders were already sent before."
        )

        notification = result.notification
        if notification.sent > 0:
            message += f" WhatsApp sent: {notification.sent}/{notification.total}."
        else:
            message += f" WhatsApp failed: {notification.failed} messages not sent."

        webhook = result.webhook
        if webhook is not None:
            if not webhook.success:
                logger.warning(f"Webhook failed but continuing with database save: {webhook.message}")
                message += f" Webhook failed: {webhook.message}."
            elif self._forwarder.url:
                message += " Webhook notification sent."

        if result.skipped_rows:
            message += f" {result.skipped_rows} rows skipped."

        if persist_error:
            message += f" WARNING: sent tracking numbers were not recorded: {persist_error}"

        if self._dry_run:
            message += " Dry run: nothing was sent or recorded."

        return message
