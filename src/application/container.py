"""
Service Container - Explicit Wiring
====================================

Builds every collaborator of the pipeline from one Settings object and
hands them out together. Entry points (web app, CLI) create one container
and close it on shutdown; tests build one around fakes.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from ..infrastructure.config import Settings
from ..infrastructure.metrics import PipelineMetrics
from ..infrastructure.persistence import Database
from ..infrastructure.ratelimit import WebhookRateLimiter
from ..infrastructure.sheets import GoogleSheetsSource, SheetSource, WorkbookSource
from ..infrastructure.webhook import WebhookForwarder
from ..infrastructure.whatsapp import DryRunProvider, GreenAPIProvider, MessagingProvider
from ..domain.extractor import OrderExtractor
from .notifier import NotificationBatcher
from .pipeline import SheetPipeline, SheetRunGuard
from .status import SheetStatusService

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    settings: Settings
    database: Database
    source: SheetSource
    provider: MessagingProvider
    forwarder: WebhookForwarder
    batcher: NotificationBatcher
    pipeline: SheetPipeline
    status: SheetStatusService
    metrics: PipelineMetrics
    webhook_limiter: WebhookRateLimiter

    async def aclose(self) -> None:
        await self.source.close()
        await self.provider.close()
        await self.forwarder.close()


def create_source(settings: Settings) -> SheetSource:
    if settings.sheets.backend == "workbook":
        return WorkbookSource()
    return GoogleSheetsSource(settings.sheets)


def create_container(
    settings: Settings,
    source: Optional[SheetSource] = None,
    provider: Optional[MessagingProvider] = None,
    forwarder: Optional[WebhookForwarder] = None,
    metrics: Optional[PipelineMetrics] = None,
    webhook_limiter: Optional[WebhookRateLimiter] = None,
    dry_run: bool = False,
) -> ServiceContainer:
    """
    Wire the pipeline. Any collaborator passed in is used as-is; the rest
    are built from settings. dry_run swaps the WhatsApp gateway for a
    provider that only records messages and keeps the run from touching
    the ledger or the webhook.
    """
    database = Database(settings.database_file)
    database.init()

    source = source or create_source(settings)
    if provider is None:
        provider = DryRunProvider() if dry_run else GreenAPIProvider(settings.whatsapp)
    forwarder = forwarder or WebhookForwarder(settings.webhook)

    metrics = metrics or PipelineMetrics()
    webhook_limiter = webhook_limiter or WebhookRateLimiter(settings.webhook_rate_limit)

    batcher = NotificationBatcher(provider, settings.whatsapp, metrics=metrics)
    pipeline = SheetPipeline(
        source=source,
        database=database,
        batcher=batcher,
        forwarder=forwarder,
        settings=settings.sheets,
        extractor=OrderExtractor(settings.extraction),
        guard=SheetRunGuard(),
        metrics=metrics,
        dry_run=dry_run,
    )

    logger.info(
        f"Services ready (sheets={settings.sheets.backend}, "
        f"whatsapp={'dry-run' if dry_run else 'green-api'}, db={settings.database_file})"
    )
    return ServiceContainer(
        settings=settings,
        database=database,
        source=source,
        provider=provider,
        forwarder=forwarder,
        batcher=batcher,
        pipeline=pipeline,
        status=SheetStatusService(database),
        metrics=metrics,
        webhook_limiter=webhook_limiter,
    )
